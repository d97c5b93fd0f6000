"""
Task and TaskEvent models for the task driver.
"""

import copy
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Dict, FrozenSet, List, Optional
from uuid import UUID, uuid4

from taskdriver.models.config import ports_of
from taskdriver.models.enums import State


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Task:
    """
    Represents a unit of work bound to a single container.

    Owned by the orchestrator. The driver never sees a Task; it receives a
    Config built from one and reports back through a DockerResult.
    """
    name: str
    image: str
    id: UUID = field(default_factory=uuid4)
    state: State = State.PENDING
    cpu: float = 0.0
    memory: int = 0
    disk: int = 0
    exposed_ports: FrozenSet[str] = field(default_factory=frozenset)
    port_bindings: Dict[str, str] = field(default_factory=dict)
    restart_policy: str = ""
    env: List[str] = field(default_factory=list)
    cmd: List[str] = field(default_factory=list)
    container_id: Optional[str] = None
    start_time: Optional[datetime] = None
    finish_time: Optional[datetime] = None

    def __post_init__(self):
        self.exposed_ports = ports_of(self.exposed_ports)

    def to_dict(self) -> Dict:
        """Convert task to a JSON-friendly dictionary."""
        data = asdict(self)
        data["id"] = str(self.id)
        data["state"] = self.state.value
        data["exposed_ports"] = sorted(self.exposed_ports)
        for key in ("start_time", "finish_time"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data


@dataclass(frozen=True)
class TaskEvent:
    """
    Immutable, timestamped snapshot of a task's state.

    The task is deep-copied at construction so later changes to the
    orchestrator's Task never leak into the recorded event.
    """
    state: State
    task: Task
    id: UUID = field(default_factory=uuid4)
    timestamp: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        object.__setattr__(self, "task", copy.deepcopy(self.task))

    @classmethod
    def for_task(cls, task: Task) -> "TaskEvent":
        """Snapshot a task as it is right now."""
        return cls(state=task.state, task=task)

    def to_dict(self) -> Dict:
        return {
            "id": str(self.id),
            "state": self.state.value,
            "timestamp": self.timestamp.isoformat(),
            "task": self.task.to_dict(),
        }
