#!/usr/bin/env python3
"""
Headless companion - keeps one supervised connection to a Clawdbot gateway
and logs what a presentation layer would display
"""

import argparse
import asyncio
import signal
import sys
from typing import Any, Dict, Optional

from .bridge import PresentationBridge
from .config import LOGGING_CONFIG, STORE_CONFIG, GatewayConfig
from .core.config_validator import ConfigValidationError, validate_startup_config
from .core.connection_supervisor import ConnectionSupervisor
from .core.logging_config import get_logger, setup_logging
from .gateway.discovery import detect_gateway
from .security import generate_api_secret, mask_secret
from .storage import JsonConfigStore


class CompanionApp:
    """Wires the settings store, supervisor and bridge together"""

    def __init__(self, config_dir: Optional[str] = None):
        self.logger = get_logger(__name__)
        self.store = JsonConfigStore(config_dir or STORE_CONFIG["directory"])
        self.supervisor = ConnectionSupervisor(self.store, notifier=self._notify)
        self.bridge = PresentationBridge(self.supervisor, self._on_push, first_run=lambda: not self.store.exists())
        self._stop_event: Optional[asyncio.Event] = None

    def _notify(self, title: str, body: str):
        self.logger.info(f"[{title}] {body}")

    def _on_push(self, name: str, payload: Dict[str, Any]):
        self.logger.info(f"Push: {name}", extra={"extra_data": payload})

    async def run(self, connect: bool = False):
        """Run until stop() is called or a termination signal arrives"""
        self._stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.stop)
            except (NotImplementedError, RuntimeError):
                # Signal handlers are unavailable on some platforms
                pass

        config = self.supervisor.get_config()
        self.logger.info("Companion started", extra={"extra_data": {
            "state": self.supervisor.state.value,
            "api_url": config.api_url,
            "event_url": config.event_url,
            "api_secret": mask_secret(config.api_secret),
            "first_run": await self.bridge.handle("isFirstRun"),
        }})

        if connect:
            result = await self.supervisor.connect()
        else:
            result = await self.supervisor.start()
        if not result.get("success"):
            self.logger.warning(f"Initial connection failed: {result.get('error')}")

        try:
            await self._stop_event.wait()
        finally:
            await self.shutdown()

    def stop(self):
        if self._stop_event is not None:
            self._stop_event.set()

    async def shutdown(self):
        self.logger.info("Stopping companion")
        self.bridge.close()
        await self.supervisor.shutdown()
        self.logger.info("Companion stopped")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gateway-companion", description=__doc__)
    parser.add_argument("--config-dir", help="Directory holding the settings file")
    parser.add_argument("--connect", action="store_true", help="Connect on start even without auto-connect")
    parser.add_argument("--detect", action="store_true", help="Probe for a local gateway and exit")
    parser.add_argument("--generate-secret", action="store_true", help="Print a new shared secret and exit")
    parser.add_argument("--log-level", help="Override LOG_LEVEL")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    if args.generate_secret:
        print(generate_api_secret())
        return 0

    logging_config = dict(LOGGING_CONFIG)
    if args.log_level:
        logging_config["log_level"] = args.log_level
    setup_logging(logging_config)
    logger = get_logger(__name__)

    if args.detect:
        result = asyncio.run(detect_gateway())
        state = "running" if result["running"] else "not running"
        print(f"Gateway on port {result['port']}: {state}")
        return 0 if result["running"] else 1

    try:
        validate_startup_config(GatewayConfig.from_store(JsonConfigStore(args.config_dir)))
    except ConfigValidationError as e:
        logger.error(f"Configuration validation failed: {e}")
        return 1

    logger.info("Starting gateway companion")
    app = CompanionApp(args.config_dir)
    try:
        asyncio.run(app.run(connect=args.connect))
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
