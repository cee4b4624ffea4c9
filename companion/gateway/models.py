"""
Cached resource snapshots and gateway payload parsing
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from .errors import DecodeError


@dataclass(frozen=True)
class SessionRecord:
    key: str
    label: str
    active: bool = False

    @classmethod
    def from_payload(cls, item: Any) -> "SessionRecord":
        if not isinstance(item, dict):
            raise DecodeError(f"Session entry must be an object, got {type(item).__name__}")

        key = item.get("key") or item.get("sessionKey") or item.get("id")
        if not key:
            raise DecodeError("Session entry has no key", {"entry": item})

        label = item.get("label") or item.get("displayName") or str(key)
        return cls(key=str(key), label=str(label), active=bool(item.get("active", False)))

    def to_dict(self) -> Dict[str, Any]:
        return {"key": self.key, "label": self.label, "active": self.active}


@dataclass(frozen=True)
class MessageRecord:
    content: str
    timestamp: Any = None
    from_me: bool = False

    @classmethod
    def from_payload(cls, item: Any) -> "MessageRecord":
        if not isinstance(item, dict):
            raise DecodeError(f"Message entry must be an object, got {type(item).__name__}")

        content = item.get("content", item.get("text"))
        if not isinstance(content, str):
            raise DecodeError("Message entry has no text content", {"entry": item})

        from_me = item.get("fromMe", item.get("from_me", False))
        return cls(content=content, timestamp=item.get("timestamp"), from_me=bool(from_me))

    def to_dict(self) -> Dict[str, Any]:
        return {"content": self.content, "timestamp": self.timestamp, "fromMe": self.from_me}


@dataclass(frozen=True)
class StatusSnapshot:
    """Last good status payload; timestamp 0 means never fetched"""
    status: Optional[Dict[str, Any]] = None
    timestamp: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status, "timestamp": self.timestamp}


@dataclass(frozen=True)
class SessionSnapshot:
    sessions: Tuple[SessionRecord, ...] = ()
    timestamp: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {"sessions": [s.to_dict() for s in self.sessions], "timestamp": self.timestamp}


@dataclass(frozen=True)
class MessageSnapshot:
    messages: Tuple[MessageRecord, ...] = ()
    timestamp: float = 0.0

    def limited(self, limit: int) -> "MessageSnapshot":
        """View holding at most the newest limit messages, same timestamp"""
        if len(self.messages) <= limit:
            return self
        return MessageSnapshot(self.messages[-limit:] if limit > 0 else (), self.timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {"messages": [m.to_dict() for m in self.messages], "timestamp": self.timestamp}


def _unwrap_list(payload: Any, key: str) -> List[Any]:
    if isinstance(payload, dict) and isinstance(payload.get(key), list):
        return payload[key]
    if isinstance(payload, list):
        return payload
    raise DecodeError(f"Expected a list of {key}, got {type(payload).__name__}")


def parse_status(payload: Any) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        raise DecodeError(f"Status payload must be an object, got {type(payload).__name__}")
    return payload


def parse_sessions(payload: Any) -> Tuple[SessionRecord, ...]:
    return tuple(SessionRecord.from_payload(item) for item in _unwrap_list(payload, "sessions"))


def parse_messages(payload: Any, limit: int) -> Tuple[MessageRecord, ...]:
    """Parse a message list, keeping the newest limit entries"""
    records = [MessageRecord.from_payload(item) for item in _unwrap_list(payload, "messages")]
    if limit <= 0:
        return ()
    return tuple(records[-limit:])
