"""
Data Models for RPC Envelopes and Keymapp Replies.

Defines the small hierarchy shared by the channel and the facade:
- `StatusCode`: status of a completed remote call (mirrors gRPC codes).
- Request/response envelopes carried over the wire.
- Typed replies handed back to callers.
"""
from dataclasses import dataclass, field, asdict
from enum import IntEnum
import json
import time
from typing import Any, ClassVar, Dict, Optional


class StatusCode(IntEnum):
    OK = 0
    CANCELLED = 1
    UNKNOWN = 2
    INVALID_ARGUMENT = 3
    DEADLINE_EXCEEDED = 4
    NOT_FOUND = 5
    ALREADY_EXISTS = 6
    PERMISSION_DENIED = 7
    RESOURCE_EXHAUSTED = 8
    FAILED_PRECONDITION = 9
    ABORTED = 10
    OUT_OF_RANGE = 11
    UNIMPLEMENTED = 12
    INTERNAL = 13
    UNAVAILABLE = 14
    DATA_LOSS = 15
    UNAUTHENTICATED = 16

    @classmethod
    def from_wire(cls, value: Any) -> "StatusCode":
        """Unknown or malformed codes collapse to UNKNOWN."""
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            return cls.UNKNOWN


# --- Wire envelopes ---

@dataclass(frozen=True, kw_only=True)
class BasePayload:
    """Base class for all JSON payloads sent over MQTT."""
    timestamp: float = field(default_factory=time.time)

    def to_json(self) -> str:
        """Converts the object to a JSON string."""
        return json.dumps(asdict(self))

    def to_bytes(self) -> bytes:
        """Converts the object to UTF-8 encoded bytes for MQTT."""
        return self.to_json().encode('utf-8')


@dataclass(frozen=True, kw_only=True)
class RPCRequestPayload(BasePayload):
    """A single remote call: the method name plus its keyword parameters."""
    method: str
    params: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, kw_only=True)
class RPCResponsePayload(BasePayload):
    """The service's answer to one `RPCRequestPayload`."""
    code: StatusCode = StatusCode.OK
    detail: str = ""
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.code == StatusCode.OK

    @classmethod
    def from_bytes(cls, raw: bytes) -> "RPCResponsePayload":
        """Raises ValueError for anything that is not a well-formed reply envelope."""
        data = json.loads(raw.decode('utf-8'))
        if not isinstance(data, dict):
            raise ValueError(f"reply must be a JSON object, got {type(data).__name__}")
        payload = data.get("payload") or {}
        if not isinstance(payload, dict):
            raise ValueError(f"reply payload must be a JSON object, got {type(payload).__name__}")
        return cls(
            code=StatusCode.from_wire(data.get("code", StatusCode.UNKNOWN)),
            detail=str(data.get("detail") or ""),
            payload=payload,
            timestamp=float(data.get("timestamp") or time.time()),
        )


# --- Replies handed to callers ---

@dataclass(frozen=True)
class Color:
    """Three opaque channel values; the service decides what they mean."""
    red: int
    green: int
    blue: int

    BLACK: ClassVar["Color"]


Color.BLACK = Color(0, 0, 0)


@dataclass(frozen=True)
class CommandReply:
    """Reply of every command-style call (connect, layers, LEDs, brightness)."""
    success: bool

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CommandReply":
        return cls(success=bool(data.get("success", False)))


@dataclass(frozen=True)
class Keyboard:
    id: int
    friendly_name: str
    is_connected: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Keyboard":
        return cls(
            id=int(data.get("id", 0)),
            friendly_name=str(data.get("friendly_name", "")),
            is_connected=bool(data.get("is_connected", False)),
        )


@dataclass(frozen=True)
class ConnectedKeyboard:
    friendly_name: str
    firmware_version: str = ""
    current_layer: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConnectedKeyboard":
        return cls(
            friendly_name=str(data.get("friendly_name", "")),
            firmware_version=str(data.get("firmware_version", "")),
            current_layer=int(data.get("current_layer", 0)),
        )


@dataclass(frozen=True)
class StatusReply:
    """Service version plus the keyboard currently attached, if any."""
    keymapp_version: str
    connected_keyboard: Optional[ConnectedKeyboard] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StatusReply":
        keyboard = data.get("connected_keyboard")
        return cls(
            keymapp_version=str(data.get("keymapp_version", "")),
            connected_keyboard=ConnectedKeyboard.from_dict(keyboard) if keyboard else None,
        )
