"""
Enumeration classes for the task driver.
"""

from enum import Enum


class State(str, Enum):
    """Lifecycle states a task passes through."""
    PENDING = "pending"
    SCHEDULED = "scheduled"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class Action(str, Enum):
    """Driver actions reported on a result."""
    START = "start"
    STOP = "stop"
    LOGS = "logs"
