"""
Centralized logging configuration for the companion.

Console output is coloured in development and JSON in production; optional
rotating log files keep a full log plus an errors-only log. Modules obtain
loggers through get_logger() and attach context with
extra={"extra_data": {...}}.
"""

import json
import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Dict, Any


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, for production log shipping"""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_data"):
            log_entry.update(record.extra_data)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """Console formatter with colors for development"""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[92m',
        'WARNING': '\033[93m',
        'ERROR': '\033[91m',
        'CRITICAL': '\033[95m',
    }
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, '')
        level = f"{color}{record.levelname}{self.RESET}"

        formatted = f"[{datetime.now().strftime('%H:%M:%S')}] [{level}] [{record.name}] {record.getMessage()}"

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            context = " ".join(f"{key}={value}" for key, value in extra_data.items())
            formatted += f" ({context})"

        if record.exc_info:
            formatted += f"\n{self.formatException(record.exc_info)}"

        return formatted


class LoggingConfig:
    """Configures the root logger once per process"""

    def __init__(self,
                 log_level: str = "INFO",
                 log_dir: Optional[str] = None,
                 enable_file_logging: bool = False,
                 enable_console_logging: bool = True,
                 structured_logging: bool = False,
                 max_log_size_mb: int = 10,
                 backup_count: int = 5):
        """
        Initialize logging configuration.

        Args:
            log_level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for log files (defaults to ./logs)
            enable_file_logging: Whether to write rotating log files
            enable_console_logging: Whether to log to stdout
            structured_logging: Emit JSON records instead of coloured text
            max_log_size_mb: Rotation size of each log file
            backup_count: Rotated files to keep
        """
        self.log_level = getattr(logging, log_level.upper())
        self.log_dir = Path(log_dir) if log_dir else Path("./logs")
        self.enable_file_logging = enable_file_logging
        self.enable_console_logging = enable_console_logging
        self.structured_logging = structured_logging
        self.max_log_size_mb = max_log_size_mb
        self.backup_count = backup_count

        self._configured = False

    def configure(self) -> None:
        """Install handlers on the root logger"""
        if self._configured:
            return

        root_logger = logging.getLogger()
        root_logger.handlers.clear()
        root_logger.setLevel(self.log_level)

        if self.enable_console_logging:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(self.log_level)
            if self.structured_logging:
                console_handler.setFormatter(StructuredFormatter())
            else:
                console_handler.setFormatter(ColoredConsoleFormatter())
            root_logger.addHandler(console_handler)

        if self.enable_file_logging:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            self._setup_file_handlers(root_logger)

        self._configure_third_party_loggers()
        self._configured = True

        logging.getLogger(__name__).debug("Logging system configured", extra={
            "extra_data": {
                "log_level": logging.getLevelName(self.log_level),
                "file_logging": self.enable_file_logging,
                "structured_logging": self.structured_logging,
            }
        })

    def _setup_file_handlers(self, root_logger: logging.Logger) -> None:
        """Full log plus an errors-only log, both rotating"""
        max_bytes = self.max_log_size_mb * 1024 * 1024

        main_handler = logging.handlers.RotatingFileHandler(
            self.log_dir / "companion.log",
            maxBytes=max_bytes,
            backupCount=self.backup_count,
            encoding='utf-8'
        )
        main_handler.setLevel(self.log_level)

        error_handler = logging.handlers.RotatingFileHandler(
            self.log_dir / "errors.log",
            maxBytes=max_bytes,
            backupCount=self.backup_count,
            encoding='utf-8'
        )
        error_handler.setLevel(logging.ERROR)

        if self.structured_logging:
            formatter = StructuredFormatter()
        else:
            formatter = logging.Formatter(
                '[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )

        main_handler.setFormatter(formatter)
        error_handler.setFormatter(formatter)
        root_logger.addHandler(main_handler)
        root_logger.addHandler(error_handler)

    def _configure_third_party_loggers(self) -> None:
        """Keep library chatter out of the companion log"""
        for logger_name in ('aiohttp', 'websockets', 'asyncio'):
            logging.getLogger(logger_name).setLevel(logging.WARNING)


_logging_config: Optional[LoggingConfig] = None


def setup_logging(config_dict: Optional[Dict[str, Any]] = None) -> None:
    """
    Setup logging for the application.

    Args:
        config_dict: Overrides for the environment-derived defaults
    """
    global _logging_config

    is_production = os.getenv("ENVIRONMENT", "development").lower() == "production"

    defaults = {
        "log_level": os.getenv("LOG_LEVEL", "INFO" if is_production else "DEBUG"),
        "log_dir": os.getenv("LOG_DIR", "./logs"),
        "enable_file_logging": os.getenv("ENABLE_FILE_LOGGING", "false").lower() == "true",
        "enable_console_logging": os.getenv("ENABLE_CONSOLE_LOGGING", "true").lower() == "true",
        "structured_logging": is_production,
        "max_log_size_mb": int(os.getenv("MAX_LOG_SIZE_MB", "10")),
        "backup_count": int(os.getenv("LOG_BACKUP_COUNT", "5")),
    }

    _logging_config = LoggingConfig(**{**defaults, **(config_dict or {})})
    _logging_config.configure()


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the given name.

    Handlers are installed by setup_logging(); until then records propagate
    to whatever the host application configured.
    """
    return logging.getLogger(name)


def log_with_context(logger: logging.Logger, level: int, message: str, **context) -> None:
    """Log a message with additional context data"""
    logger.log(level, message, extra={"extra_data": context})


def log_api_call(logger: logging.Logger, method: str, endpoint: str,
                 status_code: Optional[int], duration_ms: float, **context) -> None:
    """Log one gateway REST call"""
    log_with_context(logger, logging.DEBUG, f"API call: {method} {endpoint}",
                     method=method, endpoint=endpoint, status_code=status_code,
                     duration_ms=round(duration_ms, 1), **context)


def log_error_with_context(logger: logging.Logger, error: Exception,
                           operation: str, **context) -> None:
    """Log error with its type and the failing operation"""
    log_with_context(logger, logging.WARNING, f"Error in {operation}: {error}",
                     operation=operation, error_type=type(error).__name__,
                     error_message=str(error), **context)
