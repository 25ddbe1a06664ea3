"""Change-set classification and granular tool metadata diffs (pure)."""

import pytest

from chatsync.models.enums import MessageRole
from chatsync.models.enums import MessageStatus
from chatsync.models.enums import ToolOutputStatus
from chatsync.schemas.schemas import StoredMessage
from chatsync.schemas.schemas import ToolCallPayload
from chatsync.schemas.schemas import ToolFunction
from chatsync.schemas.schemas import ToolOutputPayload
from chatsync.services.alignment import Alignment
from chatsync.services.alignment import AlignmentPolicy
from chatsync.services.alignment import align
from chatsync.services.message_diff import classify
from chatsync.services.message_diff import diff_tool_artifacts
from chatsync.services.message_diff import messages_equal
from chatsync.services.message_diff import tool_calls_equal


def _stored(seq, role, content, *, id=None, tool_calls=(), tool_outputs=(), status=MessageStatus.FINAL):
    return StoredMessage(
        id=id or f"m{seq}",
        conversation_id="c1",
        seq=seq,
        role=MessageRole(role),
        status=status,
        content=content,
        tool_calls=list(tool_calls),
        tool_outputs=list(tool_outputs),
    )


def _call(name, arguments="{}", *, id=None, index=None):
    return ToolCallPayload(id=id, index=index, function=ToolFunction(name=name, arguments=arguments))


def _history():
    return [
        _stored(1, "user", "hi"),
        _stored(2, "assistant", "hello"),
        _stored(3, "user", "question"),
        _stored(4, "assistant", "answer"),
    ]


# ---------------------------------------------------------------------------
# classify
# ---------------------------------------------------------------------------


def test_unchanged_list_produces_empty_diff(msg):
    existing = _history()
    incoming = [msg(m.role.value, m.content, id=m.id) for m in existing]

    diff = classify(existing, incoming, align(existing, incoming))

    assert diff.is_empty()
    assert len(diff.unchanged) == 4


def test_content_change_is_an_update(msg):
    existing = _history()
    incoming = [msg(m.role.value, m.content, id=m.id) for m in existing]
    incoming[3] = msg("assistant", "better answer", id="m4")

    diff = classify(existing, incoming, align(existing, incoming))

    assert [p.existing.id for p in diff.to_update] == ["m4"]
    assert diff.to_update[0].update.content.plain_text() == "better answer"
    assert not diff.to_delete and not diff.to_insert


def test_new_messages_are_inserted(msg):
    existing = _history()
    incoming = [msg(m.role.value, m.content) for m in existing] + [msg("user", "follow-up")]

    diff = classify(existing, incoming, align(existing, incoming))

    assert [m.content for m in diff.to_insert] == ["follow-up"]
    assert not diff.to_update and not diff.to_delete


def test_shorter_incoming_deletes_stored_tail(msg):
    existing = _history()
    incoming = [msg("user", "hi", id="m1"), msg("assistant", "hello", id="m2")]

    diff = classify(existing, incoming, align(existing, incoming))

    assert [m.id for m in diff.to_delete] == ["m3", "m4"]
    assert not diff.to_insert


def test_conflicting_id_turns_tail_into_delete_and_insert(msg):
    existing = [_stored(1, "user", "hi"), _stored(2, "assistant", "hello")]
    incoming = [msg("user", "hi", id="m1"), msg("assistant", "hello", id="other")]

    diff = classify(existing, incoming, align(existing, incoming))

    assert [m.id for m in diff.unchanged] == ["m1"]
    assert [m.id for m in diff.to_delete] == ["m2"]
    assert [m.id for m in diff.to_insert] == ["other"]


def test_role_change_turns_tail_into_delete_and_insert(msg):
    existing = [_stored(1, "user", "hi"), _stored(2, "assistant", "hello")]
    incoming = [msg("user", "hi"), msg("user", "hello")]
    alignment = align(existing, incoming, AlignmentPolicy(require_role_match=False))

    diff = classify(existing, incoming, alignment)

    assert [m.id for m in diff.to_delete] == ["m2"]
    assert [m.role for m in diff.to_insert] == [MessageRole.USER]


def test_prefix_before_anchor_is_untouched(msg):
    existing = _history()
    incoming = [msg("user", "question"), msg("assistant", "answer"), msg("user", "more")]

    diff = classify(existing, incoming, align(existing, incoming))

    assert [m.id for m in diff.unchanged] == ["m3", "m4"]
    assert [m.content for m in diff.to_insert] == ["more"]
    assert not diff.to_delete


def test_classify_refuses_fallback_alignment():
    with pytest.raises(ValueError):
        classify([], [], Alignment.rejected("no_overlap"))


# ---------------------------------------------------------------------------
# equality
# ---------------------------------------------------------------------------


def test_argument_json_formatting_is_ignored():
    assert tool_calls_equal(_call("search", '{"q": "x", "n": 1}'), _call("search", '{"n":1,"q":"x"}'))
    assert not tool_calls_equal(_call("search", '{"q": "x"}'), _call("lookup", '{"q": "x"}'))


def test_absent_metadata_and_status_keep_stored_values(msg):
    stored = _stored(
        1,
        "assistant",
        "done",
        status=MessageStatus.STREAMING,
        tool_calls=[_call("search", id="call_1", index=0)],
    )

    assert messages_equal(stored, msg("assistant", "done"))
    assert not messages_equal(stored, msg("assistant", "done", status=MessageStatus.FINAL))
    assert not messages_equal(stored, msg("assistant", "done", tool_calls=[]))


# ---------------------------------------------------------------------------
# tool artifacts
# ---------------------------------------------------------------------------


def test_no_tool_changes_returns_none(msg):
    stored = _stored(1, "assistant", "x", tool_calls=[_call("search", id="call_1", index=0)])

    assert diff_tool_artifacts(stored, msg("assistant", "x")) is None
    assert diff_tool_artifacts(stored, msg("assistant", "x", tool_calls=[_call("search", id="call_1")])) is None


def test_call_count_change_replaces_all(msg):
    stored = _stored(1, "assistant", "x", tool_calls=[_call("search", id="call_1", index=0)])
    incoming = msg("assistant", "x", tool_calls=[_call("search", id="call_1"), _call("fetch", id="call_2")])

    changes = diff_tool_artifacts(stored, incoming)

    assert changes.replace_all
    assert [c.id for c in changes.tool_calls] == ["call_1", "call_2"]


def test_vanished_call_id_replaces_all(msg):
    stored = _stored(1, "assistant", "x", tool_calls=[_call("search", id="call_1", index=0)])
    incoming = msg("assistant", "x", tool_calls=[_call("search", id="call_9")])

    assert diff_tool_artifacts(stored, incoming).replace_all


def test_changed_arguments_update_matching_call(msg):
    stored = _stored(
        1,
        "assistant",
        "x",
        tool_calls=[_call("search", '{"q": "a"}', id="call_1", index=0), _call("fetch", id="call_2", index=1)],
    )
    incoming = msg(
        "assistant",
        "x",
        tool_calls=[_call("search", '{"q": "b"}', id="call_1"), _call("fetch", id="call_2")],
    )

    changes = diff_tool_artifacts(stored, incoming)

    assert not changes.replace_all
    assert len(changes.calls_to_update) == 1
    assert changes.calls_to_update[0].stored_index == 0
    assert changes.calls_to_update[0].payload.function.arguments == '{"q": "b"}'


def test_calls_without_ids_match_by_index(msg):
    stored = _stored(1, "assistant", "x", tool_calls=[_call("search", '{"q": "a"}', id="call_1", index=0)])
    incoming = msg("assistant", "x", tool_calls=[_call("search", '{"q": "z"}')])

    changes = diff_tool_artifacts(stored, incoming)

    assert not changes.replace_all
    assert changes.calls_to_update[0].stored_index == 0


def test_shifted_indexes_replace_all(msg):
    stored = _stored(1, "assistant", "x", tool_calls=[_call("a", index=0), _call("b", index=1)])
    incoming = msg("assistant", "x", tool_calls=[_call("x", index=1), _call("y", index=2)])

    changes = diff_tool_artifacts(stored, incoming)

    assert changes.replace_all
    assert [c.function.name for c in changes.tool_calls] == ["x", "y"]


def test_two_calls_claiming_one_stored_call_replace_all(msg):
    stored = _stored(1, "assistant", "x", tool_calls=[_call("a", index=0), _call("b", index=1)])
    incoming = msg("assistant", "x", tool_calls=[_call("a", index=0), _call("c", index=0)])

    assert diff_tool_artifacts(stored, incoming).replace_all


def test_outputs_are_matched_by_tool_call_id(msg):
    stored = _stored(
        1,
        "tool",
        "",
        tool_outputs=[
            ToolOutputPayload(tool_call_id="call_1", output="old"),
            ToolOutputPayload(tool_call_id="call_2", output="gone"),
        ],
    )
    incoming = msg(
        "tool",
        "",
        tool_outputs=[
            ToolOutputPayload(tool_call_id="call_1", output="new"),
            ToolOutputPayload(tool_call_id="call_3", output="fresh", status=ToolOutputStatus.ERROR),
        ],
    )

    changes = diff_tool_artifacts(stored, incoming)

    assert [o.tool_call_id for o in changes.outputs_to_update] == ["call_1"]
    assert [o.tool_call_id for o in changes.outputs_to_insert] == ["call_3"]
    assert changes.outputs_to_delete == ["call_2"]
