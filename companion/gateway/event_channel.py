"""
Push channel to the gateway for server-initiated events.

The channel keeps at most one socket open, authenticates with the shared
secret and classifies inbound frames. Business frames that arrive before the
gateway confirms authentication are dropped, not queued. Failures never
escape the public methods; they become ERRORED/CLOSED notifications.
Reconnect scheduling is left to the owner of the channel.
"""

import asyncio
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..config import CONNECTION_CONFIG, GatewayConfig
from ..core.logging_config import get_logger
from .errors import (
    AuthenticationError,
    ConfigurationError,
    DecodeError,
    GatewayError,
    TransientNetworkError,
)

logger = get_logger(__name__)

# Frame type discriminators
FRAME_AUTH = "auth"
FRAME_NEW_MESSAGE = "new_message"
FRAME_CHAT_RESPONSE = "chat_response"
FRAME_STATUS = "status"

BUSINESS_FRAMES = (FRAME_NEW_MESSAGE, FRAME_CHAT_RESPONSE, FRAME_STATUS)


class ChannelEvent(Enum):
    """Notification kinds emitted to the channel owner"""
    OPENED = "opened"
    AUTHENTICATED = "authenticated"
    CLOSED = "closed"
    ERRORED = "errored"
    EVENT = "event"


@dataclass(frozen=True)
class ChannelNotification:
    kind: ChannelEvent
    error: Optional[GatewayError] = None
    event_kind: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None

    @property
    def message(self) -> Optional[str]:
        return self.error.message if self.error else None


class EventChannel:
    """Owns one push connection at a time"""

    def __init__(self,
                 config_provider: Callable[[], GatewayConfig],
                 listener: Optional[Callable[[ChannelNotification], None]] = None,
                 connect: Optional[Callable[..., Any]] = None,
                 open_timeout: float = CONNECTION_CONFIG["channel_open_timeout"]):
        """
        Initialize the channel

        Args:
            config_provider: Returns the current configuration when opening
            listener: Receives every ChannelNotification
            connect: Socket factory, websockets.connect by default
            open_timeout: Handshake timeout in seconds
        """
        self._config_provider = config_provider
        self._listener = listener
        self._connect = connect or websockets.connect
        self.open_timeout = open_timeout

        self._task: Optional[asyncio.Task] = None
        self._epoch = 0
        self.authenticated = False

        # Stats
        self.connections_opened = 0
        self.frames_received = 0
        self.frames_dropped = 0

    def set_listener(self, listener: Optional[Callable[[ChannelNotification], None]]):
        self._listener = listener

    @property
    def is_open(self) -> bool:
        """True while a connection attempt or live socket exists"""
        return self._task is not None and not self._task.done()

    async def open(self) -> None:
        """Close any existing socket, then start a new connection"""
        await self.close()

        config = self._config_provider()
        self._epoch += 1
        self.authenticated = False
        self._task = asyncio.get_running_loop().create_task(
            self._run(config.event_url, config.api_secret, self._epoch),
            name=f"event-channel-{self._epoch}",
        )

    async def close(self) -> None:
        """Close the socket without emitting CLOSED"""
        task, self._task = self._task, None
        self.authenticated = False
        self._epoch += 1

        if task is None or task.done():
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def get_stats(self) -> Dict[str, Any]:
        return {
            "is_open": self.is_open,
            "authenticated": self.authenticated,
            "connections_opened": self.connections_opened,
            "frames_received": self.frames_received,
            "frames_dropped": self.frames_dropped,
        }

    async def _run(self, url: str, secret: str, epoch: int):
        if not url:
            error = ConfigurationError("Event URL is not configured")
            self._emit(epoch, ChannelNotification(ChannelEvent.ERRORED, error=error))
            self._emit(epoch, ChannelNotification(ChannelEvent.CLOSED, error=error))
            return

        error: Optional[GatewayError] = None
        try:
            async with self._connect(url, open_timeout=self.open_timeout) as ws:
                self.connections_opened += 1
                logger.info("Event channel connected", extra={"extra_data": {"url": url}})
                self._emit(epoch, ChannelNotification(ChannelEvent.OPENED))

                await ws.send(json.dumps({"type": FRAME_AUTH, "secret": secret}))

                async for raw in ws:
                    error = self._handle_frame(epoch, raw)
                    if error is not None:
                        await ws.close()
                        break

        except asyncio.CancelledError:
            raise
        except ConnectionClosed as e:
            error = TransientNetworkError(f"Event channel closed: {e}")
            self._emit(epoch, ChannelNotification(ChannelEvent.ERRORED, error=error))
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            error = TransientNetworkError(f"Event channel error: {e or type(e).__name__}", {"url": url})
            self._emit(epoch, ChannelNotification(ChannelEvent.ERRORED, error=error))
        except Exception as e:
            logger.exception("Unexpected event channel failure")
            error = TransientNetworkError(f"Event channel failed: {e}")
            self._emit(epoch, ChannelNotification(ChannelEvent.ERRORED, error=error))
        finally:
            if epoch == self._epoch:
                self.authenticated = False

        logger.info("Event channel disconnected", extra={"extra_data": {"url": url}})
        self._emit(epoch, ChannelNotification(ChannelEvent.CLOSED, error=error))

    def _handle_frame(self, epoch: int, raw: Any) -> Optional[GatewayError]:
        """
        Classify one inbound frame

        Returns:
            An error that must end the connection, otherwise None
        """
        self.frames_received += 1
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")

        try:
            frame = json.loads(raw)
        except ValueError as e:
            logger.warning(f"Undecodable event frame: {e}")
            self._emit(epoch, ChannelNotification(ChannelEvent.ERRORED, error=DecodeError(f"Invalid frame: {e}")))
            return None

        if not isinstance(frame, dict):
            self._emit(epoch, ChannelNotification(
                ChannelEvent.ERRORED, error=DecodeError("Frame is not a JSON object")))
            return None

        frame_type = frame.get("type")

        if frame_type == FRAME_AUTH:
            if frame.get("success"):
                self.authenticated = True
                self._emit(epoch, ChannelNotification(ChannelEvent.AUTHENTICATED))
            elif frame.get("success") is False or frame.get("error"):
                error = AuthenticationError(details={"reason": frame.get("error")})
                self._emit(epoch, ChannelNotification(ChannelEvent.ERRORED, error=error))
                return error
            return None

        if frame_type not in BUSINESS_FRAMES:
            logger.debug(f"Ignoring unrecognized frame type: {frame_type!r}")
            return None

        if not self.authenticated:
            self.frames_dropped += 1
            logger.warning(f"Dropping {frame_type} frame received before authentication")
            return None

        self._emit(epoch, ChannelNotification(ChannelEvent.EVENT, event_kind=frame_type, payload=frame))
        return None

    def _emit(self, epoch: int, notification: ChannelNotification):
        if epoch != self._epoch or self._listener is None:
            return
        try:
            self._listener(notification)
        except Exception as e:
            logger.error(f"Error in event channel listener: {e}", exc_info=True)
