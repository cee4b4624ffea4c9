"""
Connection supervisor: one logical connection to the gateway.

Combines the REST transport and the push channel into a single state
machine, owns the cached status/sessions/messages snapshots, drives the
periodic refresh and the reconnect timer, and publishes typed notifications
to subscribers. Public operations never raise; they return result dicts or
emit notifications.
"""

import asyncio
import os
import platform
import sys
import time
from dataclasses import replace
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from ..config import CONNECTION_CONFIG, GatewayConfig, normalize_keys
from ..events import (
    CACHE_MESSAGES,
    CACHE_SESSIONS,
    CACHE_STATUS,
    PUSH_CHAT_RESPONSE,
    PUSH_NEW_MESSAGE,
    PUSH_SYSTEM_STATUS,
    CacheUpdated,
    ConfigChanged,
    ConnectionFailed,
    EventBus,
    GatewayPush,
    StateChanged,
)
from ..gateway.errors import (
    AuthenticationError,
    ConfigurationError,
    DecodeError,
    GatewayError,
    InputValidationError,
    TransientNetworkError,
)
from ..gateway.event_channel import (
    FRAME_CHAT_RESPONSE,
    FRAME_NEW_MESSAGE,
    FRAME_STATUS,
    ChannelEvent,
    ChannelNotification,
    EventChannel,
)
from ..gateway.models import (
    MessageSnapshot,
    SessionSnapshot,
    StatusSnapshot,
    parse_messages,
    parse_sessions,
    parse_status,
)
from ..gateway.transport import TransportClient, TransportResult
from ..security import InputSanitizer, mask_secret
from ..storage import ConfigStore
from .config_validator import ConfigValidator, get_connection_status
from .logging_config import get_logger, log_error_with_context
from .state_manager import ConnectionState, StateManager

SUPERSEDED = {"success": False, "error": "Connection attempt superseded"}


class ConnectionSupervisor:
    """Coordinates the transport, the push channel and the cached snapshots"""

    def __init__(self,
                 store: ConfigStore,
                 transport: Optional[TransportClient] = None,
                 channel: Optional[EventChannel] = None,
                 notifier: Optional[Callable[[str, str], None]] = None,
                 refresh_interval: float = CONNECTION_CONFIG["refresh_interval"],
                 reconnect_delay: float = CONNECTION_CONFIG["reconnect_delay"],
                 message_limit: int = CONNECTION_CONFIG["default_message_limit"]):
        """
        Initialize the supervisor

        Args:
            store: Persisted settings; the only place configuration is written
            transport: REST client, built from the live configuration if omitted
            channel: Push channel, built from the live configuration if omitted
            notifier: Desktop notification callback (title, body)
            refresh_interval: Seconds between REST refreshes while connected
            reconnect_delay: Seconds before the single reconnect attempt
            message_limit: Message count fetched by the periodic refresh
        """
        self.logger = get_logger(__name__)
        self.store = store
        self._config = GatewayConfig.from_store(store)

        self.transport = transport or TransportClient(self.get_config)
        self.channel = channel or EventChannel(self.get_config)
        self.channel.set_listener(self._on_channel_notification)
        self.notifier = notifier

        self.refresh_interval = refresh_interval
        self.reconnect_delay = reconnect_delay
        self.message_limit = message_limit

        self.bus = EventBus()
        self.validator = ConfigValidator()
        initial_state = ConnectionState.DISCONNECTED if self._config.is_usable else ConnectionState.UNCONFIGURED
        self.state_manager = StateManager(initial_state)

        # Cached snapshots (last good values)
        self._status = StatusSnapshot()
        self._sessions = SessionSnapshot()
        self._messages = MessageSnapshot()

        # Owned scheduling; the generation invalidates stale timers and attempts
        self._generation = 0
        self._reconnect_handle: Optional[asyncio.TimerHandle] = None
        self._refresh_tasks: Dict[str, asyncio.Task] = {}
        self._inflight: Dict[str, asyncio.Task] = {}
        self._background: Set[asyncio.Task] = set()
        self._closed = False

        # Stats
        self._start_time = time.time()
        self.last_error: Optional[GatewayError] = None
        self.reconnect_attempts = 0

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self.state_manager.get_state()

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    def get_config(self) -> GatewayConfig:
        return self._config

    def subscribe(self, listener: Callable[[Any], None]) -> Callable[[], None]:
        """
        Receive every notification

        Returns:
            Function that removes the listener again
        """
        self.bus.on_all(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: Callable[[Any], None]):
        self.bus.off_all(listener)

    def _transition(self, new_state: ConnectionState, reason: str = "", error: Optional[str] = None) -> bool:
        previous = self.state
        if previous == new_state:
            return False
        if not self.state_manager.transition_to(new_state, reason):
            return False
        self.bus.emit(StateChanged(previous, new_state, reason, error))
        return True

    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    def _record_error(self, operation: str, error: GatewayError):
        self.last_error = error
        self.state_manager.record_error(error.message)
        log_error_with_context(self.logger, error, operation, error_details=error.details)
        self.bus.emit(ConnectionFailed(
            operation=operation,
            message=error.message,
            authentication=isinstance(error, AuthenticationError),
        ))

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> Dict[str, Any]:
        """Connect right away when the user enabled auto-connect"""
        if self._config.auto_connect and self.state == ConnectionState.DISCONNECTED:
            return await self.connect()
        return {"success": True, "state": self.state.value}

    async def connect(self) -> Dict[str, Any]:
        """
        Open the push channel and verify the REST API.

        Returns:
            {"success": True, "status": ...} or {"success": False, "error": ...}
        """
        if self._closed:
            return {"success": False, "error": "Supervisor is shut down"}

        if self.state == ConnectionState.UNCONFIGURED or not self._config.is_usable:
            error = ConfigurationError(get_connection_status(self._config)["message"])
            self._record_error("connect", error)
            return {"success": False, "error": error.message}

        self._cancel_reconnect()
        generation = self._next_generation()
        self._stop_refresh()

        # The previous socket is gone before a new one is opened
        await self.channel.close()
        if generation != self._generation:
            return dict(SUPERSEDED)

        if self.state in (ConnectionState.CONNECTED, ConnectionState.CONNECTING):
            self._transition(ConnectionState.DISCONNECTED, "Reconnect requested")
        self._transition(ConnectionState.CONNECTING, "Connect requested")

        await self.channel.open()
        if generation != self._generation:
            return dict(SUPERSEDED)

        result = await self.transport.test_connection()
        if generation != self._generation:
            self.logger.debug("Discarding result of superseded connection attempt")
            return dict(SUPERSEDED)

        if result.success:
            self.last_error = None
            self.state_manager.clear_error()
            self.reconnect_attempts = 0
            if isinstance(result.payload, dict):
                self._apply_status(result.payload)
            self._transition(ConnectionState.CONNECTED, "Gateway reachable")
            self._start_refresh()
            return {"success": True, "status": result.payload}

        error = result.error
        await self.channel.close()
        if generation != self._generation:
            return dict(SUPERSEDED)

        self._record_error("connect", error)
        self._transition(ConnectionState.DISCONNECTED, "Connection test failed", error.message)
        if error.recoverable:
            self._schedule_reconnect()
        return {"success": False, "error": error.message}

    async def test_connection(self) -> Dict[str, Any]:
        """Presentation-triggered connection test; runs the full connect flow"""
        return await self.connect()

    async def disconnect(self, reason: str = "Disconnect requested") -> Dict[str, Any]:
        """Cancel the reconnect timer and refresh, close the socket"""
        self._cancel_reconnect()
        self._next_generation()
        self._stop_refresh()

        if self.state in (ConnectionState.CONNECTED, ConnectionState.CONNECTING, ConnectionState.ERROR):
            self._transition(ConnectionState.DISCONNECTED, reason)

        await self.channel.close()
        return {"success": True, "state": self.state.value}

    async def shutdown(self):
        """Release every timer, task, socket and HTTP session this instance owns"""
        if self._closed:
            return
        self.logger.info("Shutting down connection supervisor...")

        self._closed = True
        self._cancel_reconnect()
        self._next_generation()
        self._stop_refresh()

        if self.state in (ConnectionState.CONNECTED, ConnectionState.CONNECTING):
            self._transition(ConnectionState.DISCONNECTED, "Shutdown")

        current = asyncio.current_task()
        pending = [
            task for task in [*self._refresh_tasks.values(), *self._inflight.values(), *self._background]
            if task is not current and not task.done()
        ]
        for task in pending:
            task.cancel()

        await self.channel.close()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        await self.transport.close()

    def _schedule_reconnect(self):
        """Arm the single reconnect timer, replacing any pending one"""
        self._cancel_reconnect()
        if self._closed or not self._config.is_usable:
            return

        generation = self._generation
        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(self.reconnect_delay, self._fire_reconnect, generation)
        self.logger.info(f"Reconnecting in {self.reconnect_delay:.0f}s")

    def _fire_reconnect(self, generation: int):
        self._reconnect_handle = None
        if generation != self._generation or self._closed or self.state != ConnectionState.DISCONNECTED:
            return
        self.reconnect_attempts += 1
        self._spawn(self.connect(), "reconnect")

    def _cancel_reconnect(self):
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    def _spawn(self, coro: Awaitable[Any], name: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._background.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: asyncio.Task):
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self.logger.error(f"Background task {task.get_name()} failed", exc_info=task.exception())

    # ------------------------------------------------------------------
    # Push channel
    # ------------------------------------------------------------------

    def _on_channel_notification(self, notification: ChannelNotification):
        kind = notification.kind

        if kind == ChannelEvent.OPENED:
            self.logger.debug("Event channel opened, waiting for authentication")

        elif kind == ChannelEvent.AUTHENTICATED:
            self.logger.info("Event channel authenticated")
            self._notify("Clawdbot", "Connected to gateway")

        elif kind == ChannelEvent.ERRORED:
            error = notification.error
            if isinstance(error, AuthenticationError):
                self._record_error("event_channel", error)
            elif isinstance(error, DecodeError):
                self.logger.warning(f"Ignoring malformed push frame: {error.message}")
            else:
                self.logger.debug(f"Event channel error: {notification.message}")

        elif kind == ChannelEvent.CLOSED:
            self._handle_channel_lost(notification.error)

        elif kind == ChannelEvent.EVENT:
            self._handle_push(notification.event_kind, notification.payload or {})

    def _handle_channel_lost(self, error: Optional[GatewayError]):
        if self.state not in (ConnectionState.CONNECTED, ConnectionState.CONNECTING):
            return

        self._next_generation()
        self._stop_refresh()

        if error is None:
            error = TransientNetworkError("Event channel closed")
        if not isinstance(error, AuthenticationError):
            self._record_error("event_channel", error)

        self._transition(ConnectionState.DISCONNECTED, "Event channel lost", error.message)
        if error.recoverable:
            self._schedule_reconnect()

    def _handle_push(self, kind: Optional[str], payload: Dict[str, Any]):
        if kind == FRAME_NEW_MESSAGE:
            self.bus.emit(GatewayPush(PUSH_NEW_MESSAGE, payload))
            preview = str(payload.get("content") or "")[:CONNECTION_CONFIG["notification_preview_chars"]]
            self._notify("New message", preview)
            self.query_messages(self.message_limit)

        elif kind == FRAME_CHAT_RESPONSE:
            self.bus.emit(GatewayPush(PUSH_CHAT_RESPONSE, payload))

        elif kind == FRAME_STATUS:
            status = payload.get("data") if isinstance(payload.get("data"), dict) else {
                key: value for key, value in payload.items() if key != "type"
            }
            self._apply_status(status)
            self.bus.emit(GatewayPush(PUSH_SYSTEM_STATUS, payload))

    def _notify(self, title: str, body: str):
        if self.notifier is None or not self._config.notifications_enabled:
            return
        try:
            self.notifier(title, body)
        except Exception as e:
            self.logger.warning(f"Notification delivery failed: {e}")

    # ------------------------------------------------------------------
    # Periodic refresh and snapshots
    # ------------------------------------------------------------------

    def _start_refresh(self):
        self._stop_refresh()
        loop = asyncio.get_running_loop()
        refreshers = {
            CACHE_STATUS: self.refresh_status,
            CACHE_SESSIONS: self.refresh_sessions,
            CACHE_MESSAGES: lambda: self.refresh_messages(self.message_limit),
        }
        for kind, refresh in refreshers.items():
            self._refresh_tasks[kind] = loop.create_task(self._refresh_loop(refresh), name=f"refresh-{kind}")

    def _stop_refresh(self):
        tasks, self._refresh_tasks = self._refresh_tasks, {}
        for task in tasks.values():
            task.cancel()

    async def _refresh_loop(self, refresh: Callable[[], Awaitable[TransportResult]]):
        # Each slice fails independently; errors never end the loop
        while True:
            try:
                await refresh()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                log_error_with_context(self.logger, e, "refresh")
            await asyncio.sleep(self.refresh_interval)

    async def refresh_status(self) -> TransportResult:
        result = await self.transport.get_status()
        return self._apply_result("refresh_status", result, self._apply_status)

    async def refresh_sessions(self) -> TransportResult:
        result = await self.transport.get_sessions()
        return self._apply_result("refresh_sessions", result, self._apply_sessions)

    async def refresh_messages(self, limit: Optional[int] = None) -> TransportResult:
        limit = self.message_limit if limit is None else limit
        result = await self.transport.get_messages(limit)
        return self._apply_result("refresh_messages", result, lambda payload: self._apply_messages(payload, limit))

    def _apply_result(self, operation: str, result: TransportResult,
                      apply: Callable[[Any], None]) -> TransportResult:
        if result.success:
            try:
                apply(result.payload)
                return result
            except DecodeError as e:
                result = TransportResult.failure(e)

        # Keep the last good value for this slice
        if isinstance(result.error, AuthenticationError):
            self._record_error(operation, result.error)
        else:
            log_error_with_context(self.logger, result.error, operation)
        return result

    def _apply_status(self, payload: Any):
        status = parse_status(payload)
        changed = status != self._status.status
        self._status = StatusSnapshot(status, time.time())
        if changed:
            self.bus.emit(CacheUpdated(CACHE_STATUS, self._status))

    def _apply_sessions(self, payload: Any):
        sessions = parse_sessions(payload)
        changed = sessions != self._sessions.sessions
        self._sessions = SessionSnapshot(sessions, time.time())
        if changed:
            self.bus.emit(CacheUpdated(CACHE_SESSIONS, self._sessions))

    def _apply_messages(self, payload: Any, limit: int):
        messages = parse_messages(payload, limit)
        changed = messages != self._messages.messages
        self._messages = MessageSnapshot(messages, time.time())
        if changed:
            self.bus.emit(CacheUpdated(CACHE_MESSAGES, self._messages))

    def _refresh(self, key: str, factory: Callable[[], Awaitable[TransportResult]]) -> Optional[asyncio.Task]:
        """Start a refresh unless the same one is already running"""
        if self._closed or self.state == ConnectionState.UNCONFIGURED:
            return None
        task = self._inflight.get(key)
        if task is None or task.done():
            task = asyncio.get_running_loop().create_task(factory(), name=f"fetch-{key}")
            self._inflight[key] = task
            task.add_done_callback(lambda done: self._inflight.pop(key, None) if self._inflight.get(key) is done else None)
        return task

    def query_status(self) -> StatusSnapshot:
        """Cached status now, fresh value via CacheUpdated later"""
        self._refresh(CACHE_STATUS, self.refresh_status)
        return self._status

    def query_sessions(self) -> SessionSnapshot:
        self._refresh(CACHE_SESSIONS, self.refresh_sessions)
        return self._sessions

    def query_messages(self, limit: int = CONNECTION_CONFIG["default_message_limit"]) -> MessageSnapshot:
        self._refresh(f"{CACHE_MESSAGES}:{limit}", lambda: self.refresh_messages(limit))
        return self._messages.limited(limit)

    async def _await_refresh(self, task: Optional[asyncio.Task]):
        if task is not None:
            # A cancelled caller must not cancel a fetch other callers share
            await asyncio.shield(task)

    async def get_status(self) -> StatusSnapshot:
        """Fetch now; on failure the last good snapshot comes back unchanged"""
        await self._await_refresh(self._refresh(CACHE_STATUS, self.refresh_status))
        return self._status

    async def get_sessions(self) -> SessionSnapshot:
        await self._await_refresh(self._refresh(CACHE_SESSIONS, self.refresh_sessions))
        return self._sessions

    async def get_messages(self, limit: int = CONNECTION_CONFIG["default_message_limit"]) -> MessageSnapshot:
        await self._await_refresh(self._refresh(f"{CACHE_MESSAGES}:{limit}", lambda: self.refresh_messages(limit)))
        return self._messages.limited(limit)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def send_command(self, text: str, target: Optional[str] = None) -> Dict[str, Any]:
        """
        Send a chat message through the REST API.

        A failed send is reported to the caller only; it is not a
        disconnection signal and leaves the connection state alone.
        """
        if self.state == ConnectionState.UNCONFIGURED:
            return {"success": False, "error": ConfigurationError("Gateway is not configured").message}

        try:
            message = InputSanitizer.sanitize_text(text, 'message')
            if target is not None:
                target = InputSanitizer.sanitize_text(target, 'target')
        except InputValidationError as e:
            return {"success": False, "error": e.message}

        result = await self.transport.send_message(message, target)
        if not result.success:
            if isinstance(result.error, AuthenticationError):
                self._record_error("send_message", result.error)
            else:
                log_error_with_context(self.logger, result.error, "send_message")
        return result.to_dict()

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    async def update_config(self, partial: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge a partial configuration, persist it and notify subscribers.

        Changing an endpoint, the secret or the mode drops the current
        connection; the next connect() starts fresh.
        """
        changes, unknown = normalize_keys(partial or {})
        if unknown:
            self.logger.warning(f"Ignoring unknown configuration keys: {', '.join(sorted(unknown))}")

        type_errors = self.validator.validate_types(changes)
        if type_errors:
            error = ConfigurationError("; ".join(type_errors), {"errors": type_errors})
            log_error_with_context(self.logger, error, "update_config")
            return {"success": False, "error": error.message}

        candidate = self._config.merged(changes)
        is_valid, errors, warnings = self.validator.validate(candidate)
        if not is_valid:
            error = ConfigurationError("; ".join(errors), {"errors": errors})
            log_error_with_context(self.logger, error, "update_config")
            return {"success": False, "error": error.message}
        for warning in warnings:
            self.logger.debug(f"Configuration warning: {warning}")

        previous = self._config
        self._config = candidate
        persisted = self._persist(candidate.to_dict())

        if previous.connection_changed(candidate):
            self.logger.info("Connection settings changed", extra={"extra_data": {
                "api_url": candidate.api_url,
                "event_url": candidate.event_url,
                "api_secret": mask_secret(candidate.api_secret),
                "connection_mode": candidate.connection_mode,
            }})
            self._cancel_reconnect()
            self._next_generation()
            self._stop_refresh()

            if not candidate.is_usable:
                self._transition(ConnectionState.UNCONFIGURED, "Configuration incomplete")
            else:
                self._transition(ConnectionState.DISCONNECTED, "Configuration changed")
            await self.channel.close()

        self.bus.emit(ConfigChanged(candidate))
        response = {"success": True, "config": self.get_config_dict()}
        if not persisted:
            response["warning"] = "Settings could not be saved"
        return response

    async def reset_config(self) -> Dict[str, Any]:
        """Forget configuration and cached data; back to UNCONFIGURED"""
        self._cancel_reconnect()
        self._next_generation()
        self._stop_refresh()

        try:
            self.store.clear()
        except OSError as e:
            self.logger.error(f"Could not clear settings: {e}")

        self._config = replace(GatewayConfig(), api_secret="", onboarding_seen=False)
        self._status = StatusSnapshot()
        self._sessions = SessionSnapshot()
        self._messages = MessageSnapshot()
        self.last_error = None
        self.state_manager.clear_error()

        self._transition(ConnectionState.UNCONFIGURED, "Configuration reset")
        await self.channel.close()

        self.bus.emit(CacheUpdated(CACHE_STATUS, self._status))
        self.bus.emit(CacheUpdated(CACHE_SESSIONS, self._sessions))
        self.bus.emit(CacheUpdated(CACHE_MESSAGES, self._messages))
        self.bus.emit(ConfigChanged(self._config))
        return {"success": True, "state": self.state.value}

    def mark_onboarding_seen(self) -> Dict[str, Any]:
        self._config = replace(self._config, onboarding_seen=True)
        persisted = self._persist({"onboarding_seen": True})
        return {"success": persisted}

    def _persist(self, values: Dict[str, Any]) -> bool:
        try:
            self.store.update(values)
            return True
        except OSError as e:
            self.logger.error(f"Could not save settings: {e}")
            return False

    def get_config_dict(self, reveal_secret: bool = False) -> Dict[str, Any]:
        """Configuration in presentation (camelCase) form"""
        data = self._config.to_dict(camel_case=True)
        if not reveal_secret:
            data["apiSecret"] = mask_secret(self._config.api_secret)
        return data

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def uptime(self) -> int:
        return int(time.time() - self._start_time)

    def get_app_state(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "isConnected": self.state == ConnectionState.CONNECTED,
            "isConnecting": self.state == ConnectionState.CONNECTING,
            "connectionMode": self._config.connection_mode,
            "connectionStatus": get_connection_status(self._config),
            "error": self.last_error.message if self.last_error else None,
            "reconnectPending": self.reconnect_pending,
            "activeSessions": sum(1 for s in self._sessions.sessions if s.active),
            "onboardingSeen": self._config.onboarding_seen,
            "uptime": self.uptime,
        }

    def get_system_info(self) -> Dict[str, Any]:
        return {
            "platform": sys.platform,
            "arch": platform.machine(),
            "pythonVersion": platform.python_version(),
            "pid": os.getpid(),
            "uptime": self.uptime,
        }

    def get_stats(self) -> Dict[str, Any]:
        return {
            "state": self.state_manager.get_stats(),
            "events": self.bus.get_stats(),
            "channel": self.channel.get_stats(),
            "reconnect_attempts": self.reconnect_attempts,
            "reconnect_pending": self.reconnect_pending,
            "refresh_tasks": sorted(self._refresh_tasks),
        }
