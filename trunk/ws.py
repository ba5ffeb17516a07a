"""Messages exchanged with the autoreload websocket client."""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional


@dataclass(frozen=True)
class WsState:
    """The build state published to websocket clients; no reason means the build is ok."""

    reason: Optional[str] = None

    @classmethod
    def failed(cls, reason: str) -> "WsState":
        return cls(reason)

    @property
    def is_ok(self) -> bool:
        return self.reason is None


class MessageType(str, enum.Enum):
    """Tag of a client message on the wire."""

    RELOAD = "reload"
    BUILD_FAILURE = "buildFailure"


@dataclass(frozen=True)
class ClientMessage:
    """An outgoing message to the browser."""

    type: MessageType
    reason: Optional[str] = None

    def __post_init__(self) -> None:
        if self.type is MessageType.BUILD_FAILURE and self.reason is None:
            raise ValueError("a build failure message needs a reason")
        if self.type is MessageType.RELOAD and self.reason is not None:
            raise ValueError("a reload message carries no reason")

    @classmethod
    def reload(cls) -> "ClientMessage":
        return cls(MessageType.RELOAD)

    @classmethod
    def build_failure(cls, reason: str) -> "ClientMessage":
        return cls(MessageType.BUILD_FAILURE, reason)

    def to_json(self) -> str:
        payload: dict = {"type": self.type.value}
        if self.type is MessageType.BUILD_FAILURE:
            payload["data"] = {"reason": self.reason}
        return json.dumps(payload, separators=(",", ":"))


def decode_message(text: str) -> ClientMessage:
    """Decode a client message from its JSON form."""
    try:
        payload = json.loads(text)
    except ValueError as err:
        raise ValueError(f"invalid client message: {err}") from err
    if not isinstance(payload, dict) or "type" not in payload:
        raise ValueError("client message must be an object with a type")
    try:
        kind = MessageType(payload["type"])
    except ValueError as err:
        raise ValueError(f"unknown client message type: {payload['type']!r}") from err
    if kind is MessageType.RELOAD:
        return ClientMessage.reload()
    data = payload.get("data")
    if not isinstance(data, dict) or not isinstance(data.get("reason"), str):
        raise ValueError("build failure message needs a string reason")
    return ClientMessage.build_failure(data["reason"])


def messages_for_states(states: Iterable[WsState]) -> Iterator[ClientMessage]:
    """Turn a stream of build states into the messages sent to a connected client.

    An ok state seen before any other ok state is dropped, so a fresh connection
    does not reload right away; failures are always reported.
    """
    first = True
    for state in states:
        if state.is_ok:
            if first:
                first = False
                continue
            yield ClientMessage.reload()
        else:
            yield ClientMessage.build_failure(state.reason)