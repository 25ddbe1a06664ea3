import pytest
from pydantic import ValidationError

from chatsync.errors import SeqMismatch
from chatsync.schemas.content import PartsContent
from chatsync.schemas.content import TextContent
from chatsync.schemas.content import to_content
from chatsync.schemas.schemas import AppendMessageIntent
from chatsync.schemas.schemas import EditMessageIntent
from chatsync.schemas.schemas import IncomingMessage
from chatsync.schemas.schemas import ToolCallPayload
from chatsync.schemas.schemas import ToolFunction
from chatsync.schemas.schemas import parse_intent


# ---------------------------------------------------------------------------
# Content
# ---------------------------------------------------------------------------


def test_plain_string_is_text():
    assert to_content("hello") == TextContent(text="hello")


def test_json_parts_string_is_parts():
    content = to_content('[{"type": "text", "text": "hi"}]')

    assert isinstance(content, PartsContent)
    assert content.plain_text() == "hi"


@pytest.mark.parametrize("raw", ["[not json", "[1, 2]", "[]"])
def test_bracketed_strings_that_are_not_parts_stay_text(raw):
    assert to_content(raw) == TextContent(text=raw)


def test_missing_or_empty_content_is_empty_text():
    assert to_content(None) == TextContent(text="")
    assert to_content([]) == TextContent(text="")


def test_signature_ignores_whitespace_runs():
    assert to_content("a  b\n").signature() == to_content("a b").signature()
    assert to_content("a b").signature() != to_content("ab").signature()


def test_text_and_parts_never_share_a_signature():
    assert to_content("hi").signature() != to_content([{"type": "text", "text": "hi"}]).signature()


def test_image_url_shorthand_is_canonicalized():
    short = to_content([{"type": "image_url", "image_url": "https://img/1.png"}])
    full = to_content([{"type": "image_url", "image_url": {"url": "https://img/1.png"}}])

    assert short == full
    assert short.to_wire() == [{"type": "image_url", "image_url": {"url": "https://img/1.png"}}]


def test_malformed_parts_list_is_rejected():
    with pytest.raises(ValueError):
        to_content([{"type": "video", "src": "x"}])


# ---------------------------------------------------------------------------
# Messages & tool payloads
# ---------------------------------------------------------------------------


def test_tool_arguments_are_serialized():
    function = ToolFunction(name="search", arguments={"q": "x"})

    assert function.arguments == '{"q": "x"}'


def test_tool_call_accepts_camel_case_offset():
    call = ToolCallPayload.model_validate({"function": {"name": "search"}, "textOffset": 12})

    assert call.text_offset == 12
    assert call.function.arguments == "{}"


def test_incoming_message_defaults_keep_stored_metadata():
    message = IncomingMessage(role="assistant", content="hi")

    assert message.status is None
    assert message.tool_calls is None
    assert message.tool_outputs is None


def test_unknown_role_is_rejected():
    with pytest.raises(ValidationError):
        IncomingMessage(role="narrator", content="hi")


# ---------------------------------------------------------------------------
# Intents
# ---------------------------------------------------------------------------


def test_append_requires_a_message():
    with pytest.raises(ValidationError):
        AppendMessageIntent(messages=[])


def test_append_accepts_only_user_messages():
    with pytest.raises(ValidationError):
        AppendMessageIntent(messages=[{"role": "assistant", "content": "sneaky"}])


def test_append_seq_must_be_positive():
    with pytest.raises(ValidationError):
        AppendMessageIntent(
            conversation_id="c1",
            after_message_id="m1",
            after_seq=0,
            messages=[{"role": "user", "content": "hi"}],
        )


def test_edit_seq_must_be_positive():
    with pytest.raises(ValidationError):
        EditMessageIntent(message_id="m1", expected_seq=0, content="x")


def test_parse_intent_uses_type_discriminator():
    append = parse_intent({"type": "append", "messages": [{"role": "user", "content": "hi"}]})
    edit = parse_intent({"type": "edit", "message_id": "m1", "expected_seq": 1, "content": "x"})

    assert isinstance(append, AppendMessageIntent)
    assert isinstance(edit, EditMessageIntent)


def test_parse_intent_rejects_unknown_type():
    with pytest.raises(ValidationError):
        parse_intent({"type": "delete", "message_id": "m1"})


def test_error_envelope_shape():
    exc = SeqMismatch(expected_seq=3, actual_seq=4, field="expected_seq", client_operation="op-1")

    assert exc.to_response() == {
        "success": False,
        "error": "validation_error",
        "error_code": "seq_mismatch",
        "message": exc.message,
        "client_operation": "op-1",
        "details": {"field": "expected_seq", "expected_seq": 3, "actual_seq": 4},
    }
