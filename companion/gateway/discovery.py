"""
Helpers for locating a gateway on this machine
"""

import asyncio
from pathlib import Path
from typing import Any, Dict, Optional

import aiohttp

from ..config import GATEWAY_PORTS, STORE_CONFIG
from ..core.logging_config import get_logger

logger = get_logger(__name__)


def get_available_ports() -> Dict[str, int]:
    return dict(GATEWAY_PORTS)


def get_default_gateway_url() -> str:
    return f"http://localhost:{GATEWAY_PORTS['gateway']}"


def get_default_api_url() -> str:
    return f"http://localhost:{GATEWAY_PORTS['api']}/api"


def is_first_run(directory: Optional[str] = None, namespace: Optional[str] = None) -> bool:
    """True until the settings file has been written once"""
    directory = Path(directory or STORE_CONFIG["directory"])
    namespace = namespace or STORE_CONFIG["namespace"]
    return not (directory / f"{namespace}.json").exists()


async def detect_gateway(port: Optional[int] = None, timeout: float = 2.0) -> Dict[str, Any]:
    """
    Check whether a gateway answers on localhost.

    Args:
        port: Gateway port, defaults to CLAWDBOT_PORT
        timeout: Seconds to wait for the status endpoint

    Returns:
        Dict with running flag, port and, when running, version/uptime
    """
    port = port or GATEWAY_PORTS["gateway"]
    url = f"http://localhost:{port}/status"

    try:
        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout)) as session:
            async with session.get(url) as response:
                if response.status == 200:
                    status = await response.json(content_type=None)
                    if not isinstance(status, dict):
                        status = {}
                    return {
                        "running": True,
                        "port": port,
                        "version": status.get("version"),
                        "uptime": status.get("uptime"),
                    }
                logger.debug(f"Gateway probe on port {port} answered HTTP {response.status}")
    except (asyncio.TimeoutError, aiohttp.ClientError, OSError, ValueError) as e:
        logger.debug(f"No gateway on port {port}: {e or type(e).__name__}")

    return {"running": False, "port": port}


async def is_port_in_use(port: int, host: str = "localhost", timeout: float = 2.0) -> bool:
    """Whether something accepts TCP connections on host:port"""
    try:
        _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=timeout)
    except (ConnectionRefusedError, asyncio.TimeoutError):
        return False
    except OSError as e:
        # Anything other than a refusal means something is bound there
        logger.debug(f"Port {port} probe failed: {e}")
        return True

    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass
    return True
