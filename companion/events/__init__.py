"""
Notifications published by the connection supervisor
"""

from .event_bus import EventBus
from .notifications import (
    CACHE_MESSAGES,
    CACHE_SESSIONS,
    CACHE_STATUS,
    PUSH_CHAT_RESPONSE,
    PUSH_NEW_MESSAGE,
    PUSH_SYSTEM_STATUS,
    CacheUpdated,
    ConfigChanged,
    ConnectionFailed,
    EventTypes,
    GatewayPush,
    StateChanged,
)

__all__ = [
    'EventBus', 'EventTypes', 'StateChanged', 'ConfigChanged', 'CacheUpdated', 'GatewayPush',
    'ConnectionFailed', 'CACHE_STATUS', 'CACHE_SESSIONS', 'CACHE_MESSAGES',
    'PUSH_NEW_MESSAGE', 'PUSH_CHAT_RESPONSE', 'PUSH_SYSTEM_STATUS',
]
