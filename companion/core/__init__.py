"""
Core system components for connection and state management
"""

from .logging_config import get_logger, setup_logging
from .state_manager import ConnectionState, StateManager

__all__ = ["ConnectionState", "StateManager", "get_logger", "setup_logging"]
