"""
Typed notifications published by the connection supervisor
"""

import time
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Optional

from ..config import GatewayConfig
from ..core.state_manager import ConnectionState


class EventTypes:
    CONNECTION_STATE_CHANGED = "connection.state_changed"
    CONFIG_CHANGED = "config.changed"
    CACHE_UPDATED = "cache.updated"
    GATEWAY_PUSH = "gateway.push"
    CONNECTION_ERROR = "connection.error"


# Cache kinds
CACHE_STATUS = "status"
CACHE_SESSIONS = "sessions"
CACHE_MESSAGES = "messages"

# Push kinds forwarded from the event channel
PUSH_NEW_MESSAGE = "new_message"
PUSH_CHAT_RESPONSE = "chat_response"
PUSH_SYSTEM_STATUS = "system_status"


@dataclass(frozen=True)
class StateChanged:
    type: ClassVar[str] = EventTypes.CONNECTION_STATE_CHANGED

    previous: ConnectionState
    current: ConnectionState
    reason: str = ""
    error: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "previous": self.previous.value,
            "state": self.current.value,
            "reason": self.reason,
            "error": self.error,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class ConfigChanged:
    type: ClassVar[str] = EventTypes.CONFIG_CHANGED

    config: GatewayConfig
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {"config": self.config.to_dict(camel_case=True), "timestamp": self.timestamp}


@dataclass(frozen=True)
class CacheUpdated:
    type: ClassVar[str] = EventTypes.CACHE_UPDATED

    kind: str
    snapshot: Any
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "snapshot": self.snapshot.to_dict(), "timestamp": self.timestamp}


@dataclass(frozen=True)
class GatewayPush:
    type: ClassVar[str] = EventTypes.GATEWAY_PUSH

    kind: str
    payload: Dict[str, Any]
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "payload": self.payload, "timestamp": self.timestamp}


@dataclass(frozen=True)
class ConnectionFailed:
    """A failure worth showing the user; authentication failures are flagged"""
    type: ClassVar[str] = EventTypes.CONNECTION_ERROR

    operation: str
    message: str
    authentication: bool = False
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation,
            "error": self.message,
            "authentication": self.authentication,
            "timestamp": self.timestamp,
        }
