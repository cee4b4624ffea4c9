"""
Connection state tracking with enforced transitions
"""

import time
from datetime import datetime
from enum import Enum
from typing import Dict, Any, Callable, List, Optional

from .logging_config import get_logger

logger = get_logger(__name__)


class ConnectionState(Enum):
    """Connection states, exactly one at any instant"""
    UNCONFIGURED = "unconfigured"
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class StateTransition:
    """Represents a state transition"""
    def __init__(self, from_state: ConnectionState, to_state: ConnectionState, reason: str = ""):
        self.from_state = from_state
        self.to_state = to_state
        self.reason = reason
        self.timestamp = time.time()
        self.datetime = datetime.now()

    def __str__(self):
        return f"{self.from_state.value} → {self.to_state.value} ({self.reason})"


class StateManager:
    """Owns the current ConnectionState and rejects transitions outside the table"""

    # Reset to UNCONFIGURED is allowed from everywhere
    VALID_TRANSITIONS = {
        ConnectionState.UNCONFIGURED: [ConnectionState.DISCONNECTED],
        ConnectionState.DISCONNECTED: [ConnectionState.CONNECTING, ConnectionState.UNCONFIGURED],
        ConnectionState.CONNECTING: [ConnectionState.CONNECTED, ConnectionState.DISCONNECTED,
                                     ConnectionState.UNCONFIGURED],
        ConnectionState.CONNECTED: [ConnectionState.DISCONNECTED, ConnectionState.UNCONFIGURED],
        ConnectionState.ERROR: [ConnectionState.DISCONNECTED, ConnectionState.UNCONFIGURED],
    }

    def __init__(self, initial_state: ConnectionState = ConnectionState.UNCONFIGURED):
        self.current_state = initial_state

        # State history
        self.transitions: List[StateTransition] = []
        self.max_history = 100

        self.state_listeners: List[Callable[[ConnectionState, ConnectionState, str], None]] = []

        # State timing
        self.state_start_time = time.time()
        self.state_durations: Dict[ConnectionState, float] = {state: 0.0 for state in ConnectionState}

        # Error tracking
        self.error_count = 0
        self.last_error: Optional[str] = None

    def get_state(self) -> ConnectionState:
        return self.current_state

    def transition_to(self, new_state: ConnectionState, reason: str = "") -> bool:
        """
        Transition to a new state

        Args:
            new_state: Target state
            reason: Reason for transition

        Returns:
            True if transition happened, False if it is not in the table
        """
        if not self.can_transition(new_state):
            logger.warning(f"Invalid state transition: {self.current_state.value} → {new_state.value}")
            return False

        self.state_durations[self.current_state] += time.time() - self.state_start_time

        transition = StateTransition(self.current_state, new_state, reason)
        self.transitions.append(transition)
        if len(self.transitions) > self.max_history:
            self.transitions = self.transitions[-self.max_history:]

        old_state = self.current_state
        self.current_state = new_state
        self.state_start_time = time.time()

        logger.info(f"State transition: {transition}")

        self._notify_listeners(old_state, new_state, reason)
        return True

    def can_transition(self, new_state: ConnectionState) -> bool:
        return new_state in self.VALID_TRANSITIONS.get(self.current_state, [])

    def record_error(self, message: str):
        self.error_count += 1
        self.last_error = message

    def clear_error(self):
        self.last_error = None

    def add_listener(self, listener: Callable[[ConnectionState, ConnectionState, str], None]):
        self.state_listeners.append(listener)

    def remove_listener(self, listener: Callable[[ConnectionState, ConnectionState, str], None]):
        if listener in self.state_listeners:
            self.state_listeners.remove(listener)

    def _notify_listeners(self, old_state: ConnectionState, new_state: ConnectionState, reason: str):
        for listener in self.state_listeners:
            try:
                listener(old_state, new_state, reason)
            except Exception as e:
                logger.error(f"Error in state listener: {e}", exc_info=True)

    def get_state_duration(self) -> float:
        """Seconds spent in the current state"""
        return time.time() - self.state_start_time

    def get_transition_history(self, limit: int = 10) -> List[Dict[str, Any]]:
        recent = self.transitions[-limit:] if self.transitions else []
        return [
            {
                "from": t.from_state.value,
                "to": t.to_state.value,
                "reason": t.reason,
                "timestamp": t.timestamp,
                "datetime": t.datetime.isoformat()
            }
            for t in recent
        ]

    def get_stats(self) -> Dict[str, Any]:
        return {
            "current_state": self.current_state.value,
            "state_duration": self.get_state_duration(),
            "transition_count": len(self.transitions),
            "error_count": self.error_count,
            "last_error": self.last_error,
            "time_in_state": {
                state.value: duration + (self.get_state_duration() if state == self.current_state else 0.0)
                for state, duration in self.state_durations.items()
            },
        }
