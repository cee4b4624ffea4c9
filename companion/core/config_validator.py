"""
Configuration validation for the gateway connection.

Used on startup and before every configuration update, so a malformed
endpoint is rejected with a clear message instead of surfacing later as a
connection failure.
"""

from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

from ..config import CONNECTION_CONFIG, CONNECTION_MODES, LOGGING_CONFIG, STRING_FIELDS, GatewayConfig
from .logging_config import get_logger

logger = get_logger(__name__)

KNOWN_THEMES = ("dark", "light", "system")


class ConfigValidationError(Exception):
    """Raised when configuration validation fails"""
    pass


def validate_gateway_url(url: str, schemes: Tuple[str, ...] = ("http", "https")) -> Tuple[bool, Optional[str]]:
    """
    Validate an endpoint URL.

    Returns:
        Tuple of (is_valid, error message)
    """
    try:
        parsed = urlparse(url)
    except (TypeError, ValueError):
        return False, "Invalid URL format"

    if not parsed.scheme or not parsed.netloc:
        return False, "Invalid URL format"
    if parsed.scheme not in schemes:
        return False, f"URL must use {' or '.join(schemes)} protocol"
    if not parsed.hostname:
        return False, "Invalid hostname"
    return True, None


def get_connection_status(config: GatewayConfig) -> Dict[str, str]:
    """Summarize whether a configuration is ready to connect"""
    if config.connection_mode == "unconfigured" or not config.gateway_url:
        return {"status": "unconfigured", "message": "Gateway URL not set"}
    if not config.api_secret:
        return {"status": "incomplete", "message": "API secret not configured"}
    return {"status": "ready", "message": "Ready to connect"}


class ConfigValidator:
    """Collects errors and warnings for a configuration snapshot"""

    def __init__(self):
        self.errors: List[str] = []
        self.warnings: List[str] = []

    def validate(self, config: GatewayConfig) -> Tuple[bool, List[str], List[str]]:
        """
        Validate a configuration snapshot.

        Returns:
            Tuple of (is_valid, errors, warnings)
        """
        self.errors.clear()
        self.warnings.clear()

        self._validate_connection_mode(config)
        self._validate_endpoints(config)
        self._validate_preferences(config)

        return len(self.errors) == 0, self.errors.copy(), self.warnings.copy()

    def validate_types(self, changes: Dict[str, Any]) -> List[str]:
        """Errors for text fields given a non-string value (None included)"""
        return [
            f"{name} must be a string, got {type(value).__name__}"
            for name, value in changes.items()
            if name in STRING_FIELDS and not isinstance(value, str)
        ]

    def validate_runtime(self) -> Tuple[bool, List[str], List[str]]:
        """Validate the process-wide timing and logging settings"""
        self.errors.clear()
        self.warnings.clear()

        self._validate_timing(CONNECTION_CONFIG)
        self._validate_logging_config(LOGGING_CONFIG)

        return len(self.errors) == 0, self.errors.copy(), self.warnings.copy()

    def _validate_connection_mode(self, config: GatewayConfig):
        if config.connection_mode not in CONNECTION_MODES:
            self.errors.append(
                f"Invalid connection mode '{config.connection_mode}'. Must be one of: {', '.join(CONNECTION_MODES)}"
            )

    def _validate_endpoints(self, config: GatewayConfig):
        endpoints = (
            ("gateway_url", config.gateway_url, ("http", "https")),
            ("api_url", config.api_url, ("http", "https")),
            ("event_url", config.event_url, ("ws", "wss")),
        )
        for name, url, schemes in endpoints:
            if not url:
                if config.connection_mode != "unconfigured":
                    self.warnings.append(f"{name} is not set")
                continue
            is_valid, error = validate_gateway_url(url, schemes)
            if not is_valid:
                self.errors.append(f"{name}: {error} ({url})")

        if not config.api_secret and config.connection_mode != "unconfigured":
            self.warnings.append("API secret not configured; the companion stays unconfigured")

        if config.api_secret and config.api_url.startswith("http://") and config.connection_mode == "remote":
            self.warnings.append("Shared secret will be sent over plain HTTP to a remote gateway")

    def _validate_preferences(self, config: GatewayConfig):
        if config.theme not in KNOWN_THEMES:
            self.warnings.append(f"Unknown theme '{config.theme}'. Known themes: {', '.join(KNOWN_THEMES)}")

    def _validate_timing(self, connection_config: Dict[str, Any]):
        for key in ("refresh_interval", "reconnect_delay", "test_timeout"):
            value = connection_config.get(key)
            if value is None or value <= 0:
                self.errors.append(f"{key} must be a positive number of seconds, got {value!r}")

        request_timeout = connection_config.get("request_timeout")
        if request_timeout is not None and request_timeout <= 0:
            self.errors.append(f"request_timeout must be positive when set, got {request_timeout!r}")

        refresh = connection_config.get("refresh_interval") or 0
        if 0 < refresh < 1.0:
            self.warnings.append(f"Refresh interval {refresh}s will put noticeable load on the gateway")

    def _validate_logging_config(self, logging_config: Dict[str, Any]):
        log_level = str(logging_config.get("log_level", "INFO"))
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if log_level.upper() not in valid_levels:
            self.errors.append(f"Invalid log level '{log_level}'. Must be one of: {', '.join(valid_levels)}")

        backup_count = logging_config.get("backup_count", 5)
        if backup_count < 1 or backup_count > 50:
            self.warnings.append(f"Log backup count {backup_count} is unusual. Recommended: 3-20")


def validate_startup_config(config: GatewayConfig) -> List[str]:
    """
    Validate configuration on startup.

    Returns:
        Warnings worth showing the user

    Raises:
        ConfigValidationError: If critical configuration errors are found
    """
    validator = ConfigValidator()
    _, runtime_errors, runtime_warnings = validator.validate_runtime()
    _, config_errors, config_warnings = validator.validate(config)

    warnings = runtime_warnings + config_warnings
    errors = runtime_errors + config_errors

    for warning in warnings:
        logger.warning(f"Configuration warning: {warning}")

    if errors:
        for error in errors:
            logger.error(f"Configuration error: {error}")
        raise ConfigValidationError(
            f"Found {len(errors)} configuration error(s) that must be fixed before connecting."
        )

    logger.info(f"Configuration validated with {len(warnings)} warning(s)")
    return warnings
