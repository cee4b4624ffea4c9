"""
Centralized configuration for the gateway connection and companion settings
"""

import os
from dataclasses import dataclass, asdict, fields, replace
from pathlib import Path
from typing import Dict, Any, Optional, Tuple
from urllib.parse import urlparse, urlunparse

from dotenv import load_dotenv

load_dotenv()


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


# Connection modes
CONNECTION_MODES = ("unconfigured", "local", "remote")

# Gateway ports (overridable for non-standard installs)
GATEWAY_PORTS = {
    "gateway": int(os.getenv("CLAWDBOT_PORT", "3000")),
    "api": int(os.getenv("CLAWDBOT_API_PORT", "4000")),
    "dashboard": int(os.getenv("CLAWDBOT_DASHBOARD_PORT", "18789")),
}

DEFAULT_GATEWAY_URL = os.getenv("COMPANION_GATEWAY_URL", f"http://localhost:{GATEWAY_PORTS['gateway']}")
DEFAULT_CONNECTION_MODE = os.getenv("COMPANION_CONNECTION_MODE", "local")

# Connection supervisor timing
CONNECTION_CONFIG = {
    "refresh_interval": _env_float("COMPANION_REFRESH_INTERVAL", 5.0),  # seconds between REST refreshes
    "reconnect_delay": _env_float("COMPANION_RECONNECT_DELAY", 5.0),  # fixed delay before one reconnect attempt
    "test_timeout": 5.0,  # test-connection calls are always bounded
    "request_timeout": _env_float("COMPANION_REQUEST_TIMEOUT", None),  # None = unbounded, caller cancels
    "channel_open_timeout": 10.0,
    "default_message_limit": 50,
    "notification_preview_chars": 50,
    "max_message_length": 10000,
}

# Persisted settings location
STORE_CONFIG = {
    "namespace": "clawdbot-companion",
    "directory": os.getenv("COMPANION_CONFIG_DIR", str(Path.home() / ".clawdbot")),
}

# Logging configuration
LOGGING_CONFIG = {
    "log_level": os.getenv("LOG_LEVEL", "INFO"),
    "log_dir": os.getenv("LOG_DIR", "./logs"),
    "enable_file_logging": os.getenv("ENABLE_FILE_LOGGING", "false").lower() == "true",
    "enable_console_logging": os.getenv("ENABLE_CONSOLE_LOGGING", "true").lower() == "true",
    "structured_logging": os.getenv("ENVIRONMENT", "development").lower() == "production",
    "max_log_size_mb": int(os.getenv("MAX_LOG_SIZE_MB", "10")),
    "backup_count": int(os.getenv("LOG_BACKUP_COUNT", "5")),
}

# Presentation-side (camelCase) names accepted in partial updates
KEY_ALIASES = {
    "gatewayUrl": "gateway_url",
    "apiUrl": "api_url",
    "eventUrl": "event_url",
    "wsUrl": "event_url",
    "apiSecret": "api_secret",
    "notifications": "notifications_enabled",
    "notificationsEnabled": "notifications_enabled",
    "autoConnect": "auto_connect",
    "startMinimized": "start_minimized",
    "connectionMode": "connection_mode",
    "onboardingSeen": "onboarding_seen",
}

CAMEL_CASE_KEYS = {
    "gateway_url": "gatewayUrl",
    "api_url": "apiUrl",
    "event_url": "eventUrl",
    "api_secret": "apiSecret",
    "notifications_enabled": "notifications",
    "auto_connect": "autoConnect",
    "start_minimized": "startMinimized",
    "theme": "theme",
    "connection_mode": "connectionMode",
    "onboarding_seen": "onboardingSeen",
}

# Fields whose change invalidates the current connection
CONNECTION_FIELDS = ("gateway_url", "api_url", "event_url", "api_secret", "connection_mode")

# Fields that only accept text
STRING_FIELDS = ("gateway_url", "api_url", "event_url", "api_secret", "theme", "connection_mode")

_BOOL_FIELDS = ("notifications_enabled", "auto_connect", "start_minimized", "onboarding_seen")


def derive_api_url(gateway_url: str) -> str:
    """REST base for a locally hosted gateway"""
    return f"{gateway_url.rstrip('/')}/api"


def derive_event_url(gateway_url: str) -> str:
    """Push channel endpoint for a locally hosted gateway"""
    parsed = urlparse(gateway_url)
    scheme = "wss" if parsed.scheme == "https" else "ws"
    return urlunparse((scheme, parsed.netloc, "/ws", "", "", ""))


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def normalize_keys(partial: Dict[str, Any]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """
    Map presentation keys onto config field names.

    Returns:
        Tuple of (known fields, unknown keys)
    """
    known_fields = {f.name for f in fields(GatewayConfig)}
    normalized: Dict[str, Any] = {}
    unknown: Dict[str, Any] = {}

    for key, value in partial.items():
        name = KEY_ALIASES.get(key, key)
        if name not in known_fields:
            unknown[key] = value
            continue
        normalized[name] = _coerce_bool(value) if name in _BOOL_FIELDS else value

    return normalized, unknown


@dataclass(frozen=True)
class GatewayConfig:
    """Immutable configuration snapshot shared by the transport and the push channel"""

    gateway_url: str = DEFAULT_GATEWAY_URL
    api_url: str = os.getenv("COMPANION_API_URL", derive_api_url(DEFAULT_GATEWAY_URL))
    event_url: str = os.getenv("COMPANION_EVENT_URL", derive_event_url(DEFAULT_GATEWAY_URL))
    api_secret: str = os.getenv("COMPANION_API_SECRET", "")
    notifications_enabled: bool = True
    auto_connect: bool = False
    start_minimized: bool = False
    theme: str = "dark"
    connection_mode: str = DEFAULT_CONNECTION_MODE
    onboarding_seen: bool = False

    @property
    def is_usable(self) -> bool:
        """True when a connection attempt makes sense"""
        if self.connection_mode not in ("local", "remote"):
            return False
        parsed = urlparse(self.api_url or "")
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            return False
        return bool(self.api_secret)

    def merged(self, partial: Dict[str, Any]) -> "GatewayConfig":
        """
        Apply a partial update and re-derive dependent fields.

        Args:
            partial: Field values keyed by snake_case or camelCase names

        Returns:
            New configuration; fields not mentioned keep their values
        """
        changes, _ = normalize_keys(partial)
        updated = replace(self, **changes)

        if updated.connection_mode == "local" and (
            "gateway_url" in changes or changes.get("connection_mode") == "local"
        ):
            updated = replace(
                updated,
                api_url=changes.get("api_url") or derive_api_url(updated.gateway_url),
                event_url=changes.get("event_url") or derive_event_url(updated.gateway_url),
            )
        return updated

    def connection_changed(self, other: "GatewayConfig") -> bool:
        """Whether switching to other requires a fresh connection"""
        return any(getattr(self, name) != getattr(other, name) for name in CONNECTION_FIELDS)

    def to_dict(self, camel_case: bool = False) -> Dict[str, Any]:
        data = asdict(self)
        if camel_case:
            return {CAMEL_CASE_KEYS[key]: value for key, value in data.items()}
        return data

    @classmethod
    def from_store(cls, store) -> "GatewayConfig":
        """Load persisted values, falling back to defaults for missing keys"""
        stored = {f.name: store.get(f.name) for f in fields(cls) if store.has(f.name)}
        values, _ = normalize_keys(stored)
        # Hand-edited stores may hold non-text values; fall back to defaults
        values = {name: value for name, value in values.items() if name not in STRING_FIELDS or isinstance(value, str)}
        return cls(**values)
