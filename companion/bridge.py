"""
Request/response surface for a presentation layer.

Requests are addressed by name (getStatus, saveConfig, ...) and answered
with JSON-friendly values. Supervisor notifications are forwarded as named
pushes through the emit callable the host supplies.
"""

from typing import Any, Awaitable, Callable, Dict, Optional

from .core.connection_supervisor import ConnectionSupervisor
from .core.logging_config import get_logger
from .events import (
    PUSH_CHAT_RESPONSE,
    PUSH_NEW_MESSAGE,
    PUSH_SYSTEM_STATUS,
    CacheUpdated,
    ConfigChanged,
    ConnectionFailed,
    GatewayPush,
    StateChanged,
)
from .gateway.discovery import is_first_run

logger = get_logger(__name__)

PUSH_NAMES = {
    PUSH_NEW_MESSAGE: "newMessage",
    PUSH_CHAT_RESPONSE: "chatResponse",
    PUSH_SYSTEM_STATUS: "systemStatus",
}


class PresentationBridge:
    """Maps named presentation requests onto a ConnectionSupervisor"""

    def __init__(self,
                 supervisor: ConnectionSupervisor,
                 emit: Callable[[str, Dict[str, Any]], None],
                 first_run: Optional[Callable[[], bool]] = None):
        self.supervisor = supervisor
        self.emit = emit
        self._first_run = first_run or is_first_run

        self.handlers: Dict[str, Callable[..., Awaitable[Any]]] = {
            "getStatus": self.get_status,
            "getSessions": self.get_sessions,
            "getMessages": self.get_messages,
            "sendMessage": self.send_message,
            "testConnection": self.test_connection,
            "connect": self.connect,
            "disconnect": self.disconnect,
            "saveConfig": self.save_config,
            "resetConfig": self.reset_config,
            "getConfig": self.get_config,
            "markOnboardingSeen": self.mark_onboarding_seen,
            "getAppState": self.get_app_state,
            "isFirstRun": self.is_first_run,
            "getSystemInfo": self.get_system_info,
        }

        self._unsubscribe = supervisor.subscribe(self._forward)

    async def handle(self, name: str, *args: Any) -> Any:
        """Answer one presentation request"""
        handler = self.handlers.get(name)
        if handler is None:
            logger.warning(f"Unknown presentation request: {name}")
            return {"success": False, "error": f"Unknown request: {name}"}
        try:
            return await handler(*args)
        except (TypeError, ValueError) as e:
            logger.warning(f"Bad arguments for {name}: {e}")
            return {"success": False, "error": f"Bad arguments for {name}"}

    def close(self):
        self._unsubscribe()

    # Requests

    async def get_status(self) -> Optional[Dict[str, Any]]:
        snapshot = await self.supervisor.get_status()
        return snapshot.status

    async def get_sessions(self):
        snapshot = await self.supervisor.get_sessions()
        return [session.to_dict() for session in snapshot.sessions]

    async def get_messages(self, limit: int = 50):
        snapshot = await self.supervisor.get_messages(int(limit))
        return [message.to_dict() for message in snapshot.messages]

    async def send_message(self, text: str, target: Optional[str] = None) -> Dict[str, Any]:
        return await self.supervisor.send_command(text, target)

    async def test_connection(self) -> Dict[str, Any]:
        return await self.supervisor.test_connection()

    async def connect(self) -> Dict[str, Any]:
        return await self.supervisor.connect()

    async def disconnect(self) -> Dict[str, Any]:
        return await self.supervisor.disconnect()

    async def save_config(self, partial: Dict[str, Any]) -> Dict[str, Any]:
        if not isinstance(partial, dict):
            return {"success": False, "error": "Configuration must be an object"}
        return await self.supervisor.update_config(partial)

    async def reset_config(self) -> Dict[str, Any]:
        return await self.supervisor.reset_config()

    async def get_config(self) -> Dict[str, Any]:
        return self.supervisor.get_config_dict()

    async def mark_onboarding_seen(self) -> Dict[str, Any]:
        return self.supervisor.mark_onboarding_seen()

    async def get_app_state(self) -> Dict[str, Any]:
        return self.supervisor.get_app_state()

    async def is_first_run(self) -> bool:
        return self._first_run()

    async def get_system_info(self) -> Dict[str, Any]:
        return self.supervisor.get_system_info()

    # Pushes

    def _forward(self, event: Any):
        if isinstance(event, StateChanged):
            self.emit("connectionStateChanged", event.to_dict())
        elif isinstance(event, ConfigChanged):
            self.emit("configChanged", self.supervisor.get_config_dict())
        elif isinstance(event, GatewayPush):
            name = PUSH_NAMES.get(event.kind)
            if name:
                self.emit(name, event.payload)
        elif isinstance(event, CacheUpdated):
            self.emit("cacheUpdated", event.to_dict())
        elif isinstance(event, ConnectionFailed):
            self.emit("connectionError", event.to_dict())
