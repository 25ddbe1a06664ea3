"""Full-list reconciliation: diff when the lists line up, rewrite when not."""

import pytest

from chatsync.errors import ConversationNotFound
from chatsync.errors import MissingRequiredField
from chatsync.schemas.schemas import ToolCallPayload
from chatsync.schemas.schemas import ToolFunction
from chatsync.schemas.schemas import ToolOutputPayload


def _history(msg):
    return [
        msg("user", "question", id="m1"),
        msg("assistant", "answer", id="m2"),
        msg("user", "follow-up", id="m3"),
        msg("assistant", "follow-up answer", id="m4"),
    ]


def _log(store, conversation_id):
    return [(m.id, m.seq, m.content) for m in store.list_all(conversation_id)]


def test_identical_list_is_a_no_op(orchestrator, store, seed_conversation, msg):
    conversation_id = seed_conversation(_history(msg))
    before = _log(store, conversation_id)

    result = orchestrator.legacy_sync(conversation_id, _history(msg))

    assert result.operations.inserted == []
    assert result.operations.updated == []
    assert result.operations.deleted == []
    assert _log(store, conversation_id) == before


def test_whitespace_only_differences_are_unchanged(orchestrator, seed_conversation, msg):
    conversation_id = seed_conversation([msg("user", "hello world")])

    result = orchestrator.legacy_sync(conversation_id, [msg("user", "  hello   world ")])

    assert result.operations.updated == []
    assert result.operations.inserted == []


def test_new_messages_are_appended(orchestrator, store, seed_conversation, msg):
    conversation_id = seed_conversation(_history(msg))
    incoming = _history(msg) + [msg("user", "third question")]

    result = orchestrator.legacy_sync(conversation_id, incoming)

    assert [r.seq for r in result.operations.inserted] == [5]
    assert _log(store, conversation_id)[-1][1:] == (5, "third question")


def test_changed_content_updates_in_place(orchestrator, store, seed_conversation, msg):
    conversation_id = seed_conversation(_history(msg))
    incoming = _history(msg)
    incoming[3] = msg("assistant", "a better answer", id="m4")

    result = orchestrator.legacy_sync(conversation_id, incoming)

    assert [(r.id, r.seq) for r in result.operations.updated] == [("m4", 4)]
    assert store.get(conversation_id, "m4").content == "a better answer"
    assert store.get(conversation_id, "m4").seq == 4


def test_shorter_list_deletes_tail(orchestrator, store, seed_conversation, msg):
    conversation_id = seed_conversation(_history(msg))

    result = orchestrator.legacy_sync(conversation_id, _history(msg)[:2])

    assert [r.id for r in result.operations.deleted] == ["m3", "m4"]
    assert [m[0] for m in _log(store, conversation_id)] == ["m1", "m2"]


def test_client_window_over_tail_keeps_older_history(orchestrator, store, seed_conversation, msg):
    conversation_id = seed_conversation(_history(msg))
    incoming = _history(msg)[2:] + [msg("user", "next")]

    result = orchestrator.legacy_sync(conversation_id, incoming)

    assert result.operations.deleted == []
    assert [r.seq for r in result.operations.inserted] == [5]
    assert [m[0] for m in _log(store, conversation_id)][:4] == ["m1", "m2", "m3", "m4"]


def test_divergent_list_is_rewritten(orchestrator, store, seed_conversation, msg):
    conversation_id = seed_conversation([msg("user", "A"), msg("assistant", "B"), msg("user", "C")])

    result = orchestrator.legacy_sync(conversation_id, [msg("user", "X"), msg("assistant", "Y")])

    assert len(result.operations.deleted) == 3
    assert len(result.operations.inserted) == 2
    assert [(seq, content) for _, seq, content in _log(store, conversation_id)] == [(1, "X"), (2, "Y")]


def test_rewrite_when_diffing_fails(orchestrator, store, seed_conversation, msg, monkeypatch):
    conversation_id = seed_conversation([msg("user", "first", id="m1")])

    def _broken(*args, **kwargs):
        raise RuntimeError("classifier bug")

    monkeypatch.setattr("chatsync.services.sync_orchestrator.classify", _broken)

    result = orchestrator.legacy_sync(conversation_id, [msg("user", "first", id="m1"), msg("assistant", "second")])

    assert [r.id for r in result.operations.deleted] == ["m1"]
    assert len(result.operations.inserted) == 2
    assert [(m[0], m[1]) for m in _log(store, conversation_id)][0] == ("m1", 1)
    assert [m[2] for m in _log(store, conversation_id)] == ["first", "second"]


def test_empty_incoming_is_rejected(orchestrator, store, seed_conversation, msg):
    conversation_id = seed_conversation(_history(msg))

    with pytest.raises(MissingRequiredField):
        orchestrator.legacy_sync(conversation_id, [])

    assert store.count(conversation_id) == 4


def test_unknown_conversation(orchestrator, msg):
    with pytest.raises(ConversationNotFound):
        orchestrator.legacy_sync("missing", [msg("user", "hi")])


def test_empty_conversation_takes_incoming_list(orchestrator, store, seed_conversation, msg):
    conversation_id = seed_conversation([])

    result = orchestrator.legacy_sync(conversation_id, _history(msg)[:2])

    assert [r.seq for r in result.operations.inserted] == [1, 2]
    assert [m[0] for m in _log(store, conversation_id)] == ["m1", "m2"]


def test_tool_output_change_updates_child_rows(orchestrator, store, seed_conversation, msg):
    call = ToolCallPayload(id="call_1", function=ToolFunction(name="search", arguments={"q": "x"}))

    def _conversation(output):
        return [
            msg("user", "search x", id="m1"),
            msg(
                "assistant",
                "",
                id="m2",
                tool_calls=[call],
                tool_outputs=[ToolOutputPayload(tool_call_id="call_1", output=output)],
            ),
        ]

    conversation_id = seed_conversation(_conversation("pending"))

    result = orchestrator.legacy_sync(conversation_id, _conversation("found it"))

    assert [r.id for r in result.operations.updated] == ["m2"]
    stored = store.get(conversation_id, "m2")
    assert [o.output for o in stored.tool_outputs] == ["found it"]
    assert [c.id for c in stored.tool_calls] == ["call_1"]


def test_reindexed_tool_calls_are_replaced_not_appended(orchestrator, store, seed_conversation, msg):
    def _calls(*pairs):
        return [ToolCallPayload(index=index, function=ToolFunction(name=name)) for name, index in pairs]

    conversation_id = seed_conversation(
        [
            msg("user", "go", id="m1"),
            msg("assistant", "", id="m2", tool_calls=_calls(("a", 0), ("b", 1))),
        ]
    )

    orchestrator.legacy_sync(
        conversation_id,
        [msg("user", "go", id="m1"), msg("assistant", "", id="m2", tool_calls=_calls(("x", 1), ("y", 2)))],
    )

    stored = store.get(conversation_id, "m2")
    assert [(c.index, c.function.name) for c in stored.tool_calls] == [(1, "x"), (2, "y")]
