from __future__ import annotations
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Tuple, Union


@dataclass(frozen=True)
class TokenMessage:
    tokens: int
    kind: str = "TOKEN"

    def __str__(self) -> str:
        return f"token({self.tokens})"

    def to_json(self) -> dict:
        return {"kind": self.kind, "tokens": self.tokens}


@dataclass(frozen=True)
class MarkerMessage:
    snapshot_id: int
    kind: str = "MARKER"

    def __str__(self) -> str:
        return f"marker({self.snapshot_id})"

    def to_json(self) -> dict:
        return {"kind": self.kind, "snapshot_id": self.snapshot_id}


Message = Union[TokenMessage, MarkerMessage]


def message_from_json(x: dict) -> Message:
    kind = x.get("kind")
    if kind == "TOKEN":
        return TokenMessage(int(x["tokens"]))
    elif kind == "MARKER":
        return MarkerMessage(int(x["snapshot_id"]))
    raise ValueError(f"Unknown message kind: {kind}")


@dataclass(frozen=True)
class SendMessageEvent:
    """A message sitting on a link, eligible for delivery from receive_time on."""
    src: str
    dest: str
    message: Message
    receive_time: int


# Events a caller can inject. TickEvent only appears in scenario scripts.

@dataclass(frozen=True)
class PassTokenEvent:
    src: str
    dest: str
    tokens: int
    kind: str = "PASS_TOKEN"


@dataclass(frozen=True)
class SnapshotEvent:
    node_id: str
    kind: str = "SNAPSHOT"


@dataclass(frozen=True)
class TickEvent:
    count: int = 1
    kind: str = "TICK"


@dataclass(frozen=True)
class SnapshotMessage:
    src: str
    dest: str
    message: TokenMessage

    def to_json(self) -> dict:
        return {"src": self.src, "dest": self.dest, "message": self.message.to_json()}

    @staticmethod
    def from_json(x: dict) -> "SnapshotMessage":
        msg = message_from_json(x["message"])
        if msg.kind != "TOKEN":
            raise ValueError(f"In-transit message must carry tokens, got {msg.kind}")
        return SnapshotMessage(src=str(x["src"]), dest=str(x["dest"]), message=msg)


@dataclass(frozen=True)
class SnapshotState:
    """
    Global snapshot: recorded balance of every node plus the token messages
    that were in a channel when the cut was taken.
    """
    snapshot_id: int
    tokens: Mapping[str, int]
    messages: Tuple[SnapshotMessage, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "tokens", MappingProxyType(dict(self.tokens)))
        object.__setattr__(self, "messages", tuple(self.messages))

    def token_total(self) -> int:
        return sum(self.tokens.values()) + sum(m.message.tokens for m in self.messages)

    def to_json(self) -> dict:
        return {
            "snapshot_id": self.snapshot_id,
            "tokens": dict(self.tokens),
            "messages": [m.to_json() for m in self.messages],
        }

    @staticmethod
    def from_json(x: dict) -> "SnapshotState":
        return SnapshotState(
            snapshot_id=int(x["snapshot_id"]),
            tokens={str(k): int(v) for k, v in x["tokens"].items()},
            messages=tuple(SnapshotMessage.from_json(m) for m in x.get("messages", [])),
        )

