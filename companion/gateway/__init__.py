"""
Gateway access: REST transport and the authenticated push channel
"""

from .errors import AuthenticationError, GatewayError
from .event_channel import ChannelEvent, ChannelNotification, EventChannel
from .transport import TransportClient, TransportResult

__all__ = [
    "AuthenticationError", "GatewayError", "ChannelEvent", "ChannelNotification",
    "EventChannel", "TransportClient", "TransportResult",
]
