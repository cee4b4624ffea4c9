"""
Request/response client for the gateway REST API.

Each operation issues exactly one HTTP request and converts every failure
into a typed TransportResult; retry policy belongs to the caller.
"""

import asyncio
import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import aiohttp

from ..config import CONNECTION_CONFIG, GatewayConfig
from ..core.logging_config import get_logger, log_api_call
from .errors import (
    AuthenticationError,
    ConfigurationError,
    DecodeError,
    GatewayError,
    HttpError,
    NetworkError,
)

SECRET_HEADER = "X-API-Secret"


@dataclass(frozen=True)
class TransportResult:
    """Decoded payload on success, typed error on failure"""
    success: bool
    payload: Any = None
    error: Optional[GatewayError] = None

    @classmethod
    def ok(cls, payload: Any) -> "TransportResult":
        return cls(True, payload=payload)

    @classmethod
    def failure(cls, error: GatewayError) -> "TransportResult":
        return cls(False, error=error)

    @property
    def error_message(self) -> Optional[str]:
        return self.error.message if self.error else None

    def to_dict(self, payload_key: str = "result") -> Dict[str, Any]:
        if self.success:
            return {"success": True, payload_key: self.payload}
        return {"success": False, "error": self.error_message}


class TransportClient:
    """Wraps the gateway's synchronous API behind one aiohttp session"""

    def __init__(self,
                 config_provider: Callable[[], GatewayConfig],
                 session: Optional[aiohttp.ClientSession] = None,
                 test_timeout: float = CONNECTION_CONFIG["test_timeout"],
                 request_timeout: Optional[float] = CONNECTION_CONFIG["request_timeout"]):
        """
        Initialize the transport

        Args:
            config_provider: Returns the current configuration on every call
            session: Externally owned session (the client then never closes it)
            test_timeout: Bound for test_connection, in seconds
            request_timeout: Bound for every other call; None means unbounded
        """
        self.logger = get_logger(__name__)
        self._config_provider = config_provider
        self._session = session
        self._owns_session = session is None
        self.test_timeout = test_timeout
        self.request_timeout = request_timeout

    async def get_status(self) -> TransportResult:
        return await self._request("GET", "/status")

    async def get_sessions(self) -> TransportResult:
        return await self._request("GET", "/sessions")

    async def get_messages(self, limit: int = CONNECTION_CONFIG["default_message_limit"]) -> TransportResult:
        return await self._request("GET", "/messages", params={"limit": str(limit)})

    async def send_message(self, text: str, target: Optional[str] = None) -> TransportResult:
        body: Dict[str, Any] = {"message": text}
        if target:
            body["target"] = target
        return await self._request("POST", "/chat", payload=body)

    async def test_connection(self) -> TransportResult:
        """Probe the status endpoint; always bounded by test_timeout"""
        return await self._request("GET", "/status", timeout=self.test_timeout)

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        if self._owns_session:
            self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    @staticmethod
    def _headers(config: GatewayConfig) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if config.api_secret:
            headers[SECRET_HEADER] = config.api_secret
        return headers

    async def _request(self,
                       method: str,
                       path: str,
                       params: Optional[Dict[str, str]] = None,
                       payload: Optional[Dict[str, Any]] = None,
                       timeout: Optional[float] = None) -> TransportResult:
        config = self._config_provider()
        if not config.api_url:
            return TransportResult.failure(ConfigurationError("API URL is not configured"))

        url = f"{config.api_url.rstrip('/')}{path}"
        total = timeout if timeout is not None else self.request_timeout
        start = time.monotonic()
        status = None

        try:
            session = self._get_session()
            async with session.request(
                method,
                url,
                headers=self._headers(config),
                params=params,
                json=payload,
                timeout=aiohttp.ClientTimeout(total=total),
            ) as response:
                status = response.status
                body = await response.read()

                if status == 401:
                    return TransportResult.failure(AuthenticationError(status=401))
                if not 200 <= status < 300:
                    return TransportResult.failure(HttpError(status, body.decode("utf-8", errors="replace")))

                return self._decode(body, path)

        except (asyncio.TimeoutError, TimeoutError):
            return TransportResult.failure(
                NetworkError(f"Request to {path} timed out", {"timeout": total})
            )
        except (aiohttp.ClientError, OSError) as e:
            return TransportResult.failure(
                NetworkError(str(e) or type(e).__name__, {"url": url})
            )
        finally:
            log_api_call(self.logger, method, path, status, (time.monotonic() - start) * 1000)

    @staticmethod
    def _decode(body: bytes, path: str) -> TransportResult:
        if not body.strip():
            return TransportResult.ok(None)
        try:
            return TransportResult.ok(json.loads(body.decode("utf-8")))
        except ValueError as e:
            # UnicodeDecodeError is a ValueError too
            return TransportResult.failure(
                DecodeError(f"Invalid JSON from {path}: {e}", {"body": body[:200].decode("utf-8", errors="replace")})
            )
