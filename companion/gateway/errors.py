"""
Error taxonomy for gateway communication
"""

from typing import Optional, Dict, Any


class GatewayError(Exception):
    """Base exception for all gateway-related errors"""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def recoverable(self) -> bool:
        """Whether the reconnect policy should retry after this error"""
        return False


class ConfigurationError(GatewayError):
    """Missing or invalid endpoint; fatal to connecting, not to the process"""
    pass


class AuthenticationError(GatewayError):
    """Shared secret rejected by the REST API (401) or the push channel"""
    def __init__(self, message: str = "Invalid API secret", status: Optional[int] = None,
                 details: Optional[Dict[str, Any]] = None):
        self.status = status
        super().__init__(message, details)


class TransientNetworkError(GatewayError):
    """Timeouts, refused connections and dropped sockets"""

    @property
    def recoverable(self) -> bool:
        return True


class NetworkError(TransientNetworkError):
    """A REST request never produced an HTTP response"""
    pass


class HttpError(GatewayError):
    """Non-2xx response other than 401"""
    def __init__(self, status: int, body: str = "", details: Optional[Dict[str, Any]] = None):
        self.status = status
        self.body = body
        super().__init__(f"HTTP {status}", {**(details or {}), "body": body[:200]})


class DecodeError(GatewayError):
    """Payload was not the JSON shape we expected"""
    pass


class InputValidationError(GatewayError):
    """Outbound text rejected before it reached the gateway"""
    pass
