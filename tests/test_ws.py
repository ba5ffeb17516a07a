import json

import pytest

from trunk.ws import ClientMessage, MessageType, WsState, decode_message, messages_for_states


def test_reload_wire_form():
    assert ClientMessage.reload().to_json() == '{"type":"reload"}'


def test_build_failure_wire_form():
    message = ClientMessage.build_failure("boom")
    assert message.to_json() == '{"type":"buildFailure","data":{"reason":"boom"}}'


@pytest.mark.parametrize(
    "message",
    [
        ClientMessage.reload(),
        ClientMessage.build_failure("error: line 1\n\tcaused by: \"x\""),
    ],
)
def test_round_trip(message):
    assert decode_message(message.to_json()) == message


def test_json_is_valid_and_tagged():
    payload = json.loads(ClientMessage.build_failure("bad").to_json())
    assert payload["type"] == MessageType.BUILD_FAILURE.value
    assert payload["data"]["reason"] == "bad"


@pytest.mark.parametrize(
    "text",
    ["not json", "[]", '{"data": {}}', '{"type": "other"}', '{"type": "buildFailure"}'],
)
def test_decode_rejects_invalid(text):
    with pytest.raises(ValueError):
        decode_message(text)


def test_failure_requires_reason():
    with pytest.raises(ValueError):
        ClientMessage(MessageType.BUILD_FAILURE)


def test_default_state_is_ok():
    assert WsState().is_ok is True
    assert WsState.failed("x").is_ok is False


def test_first_ok_is_discarded():
    assert list(messages_for_states([WsState()])) == []


def test_later_ok_reloads():
    states = [WsState(), WsState.failed("broken"), WsState()]
    assert list(messages_for_states(states)) == [
        ClientMessage.build_failure("broken"),
        ClientMessage.reload(),
    ]


def test_failure_before_first_ok_keeps_discard():
    states = [WsState.failed("broken"), WsState(), WsState()]
    assert list(messages_for_states(states)) == [
        ClientMessage.build_failure("broken"),
        ClientMessage.reload(),
    ]