"""
Data-exchange types shared between the driver and its callers.
"""

from taskdriver.models.enums import State
from taskdriver.models.config import Config, InvalidConfig
from taskdriver.models.task import Task, TaskEvent
from taskdriver.models.result import DockerResult, DockerInspectResponse

__all__ = [
    "State",
    "Config",
    "InvalidConfig",
    "Task",
    "TaskEvent",
    "DockerResult",
    "DockerInspectResponse",
]
