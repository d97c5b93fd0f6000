"""
Resource specification for a single run action.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Tuple, Union

from taskdriver.utils.formatting import parse_memory


RESTART_POLICIES = frozenset({"", "no", "always", "unless-stopped", "on-failure"})
PORT_PROTOCOLS = frozenset({"tcp", "udp", "sctp"})


class InvalidConfig(ValueError):
    """Raised when a Config is constructed with values the runtime would reject."""


def normalize_port(port: Union[int, str]) -> str:
    """
    Normalize a port definition to the runtime's "<port>/<proto>" form.

    Args:
        port: A port number or a string such as "6379" or "53/udp"

    Returns:
        str: The normalized port, tcp when no protocol is given
    """
    text = str(port).strip().lower()
    number, _, proto = text.partition("/")
    proto = proto or "tcp"
    if not number.isdigit() or not 0 < int(number) < 65536:
        raise InvalidConfig(f"Invalid port: {port!r}")
    if proto not in PORT_PROTOCOLS:
        raise InvalidConfig(f"Invalid port protocol: {port!r}")
    return f"{int(number)}/{proto}"


def split_port(port: str) -> Tuple[int, str]:
    """Split a normalized port into its number and protocol."""
    number, _, proto = port.partition("/")
    return int(number), proto or "tcp"


@dataclass(frozen=True)
class Config:
    """
    Immutable description of what to run and with what constraints.

    cpu is in fractional cores, memory and disk in bytes. exposed_ports are
    published to ephemeral host ports when the container is created.
    """
    name: str
    image: str
    cpu: float = 0.0
    memory: int = 0
    disk: int = 0
    exposed_ports: FrozenSet[str] = field(default_factory=frozenset)
    env: Tuple[str, ...] = ()
    cmd: Tuple[str, ...] = ()
    restart_policy: str = ""
    attach_stdin: bool = False
    attach_stdout: bool = True
    attach_stderr: bool = True

    def __post_init__(self):
        if not self.image or not self.image.strip():
            raise InvalidConfig("Image must not be empty")
        if isinstance(self.cpu, bool) or not isinstance(self.cpu, (int, float)) or not math.isfinite(self.cpu):
            raise InvalidConfig(f"cpu must be a finite number, got {self.cpu!r}")
        for attr in ("memory", "disk"):
            if isinstance(getattr(self, attr), bool) or not isinstance(getattr(self, attr), int):
                raise InvalidConfig(f"{attr} must be a whole number of bytes, got {getattr(self, attr)!r}")
        for attr in ("cpu", "memory", "disk"):
            if getattr(self, attr) < 0:
                raise InvalidConfig(f"{attr} must be >= 0, got {getattr(self, attr)}")
        if self.restart_policy not in RESTART_POLICIES:
            raise InvalidConfig(f"Unknown restart policy: {self.restart_policy!r}")

        env = tuple(self.env)
        for entry in env:
            if "=" not in entry:
                raise InvalidConfig(f"Environment entry must be KEY=VALUE: {entry!r}")

        # frozen, so normalized values go through object.__setattr__
        object.__setattr__(self, "exposed_ports", frozenset(normalize_port(p) for p in self.exposed_ports))
        object.__setattr__(self, "env", env)
        object.__setattr__(self, "cmd", tuple(self.cmd))

    @property
    def nano_cpus(self) -> int:
        """CPU request in the runtime's nanocpu unit."""
        return round(self.cpu * 10 ** 9)

    @classmethod
    def from_task(cls, task) -> "Config":
        """Build the run configuration for a task."""
        return cls(
            name=task.name,
            image=task.image,
            cpu=task.cpu,
            memory=task.memory,
            disk=task.disk,
            exposed_ports=frozenset(task.exposed_ports),
            env=tuple(task.env),
            cmd=tuple(task.cmd),
            restart_policy=task.restart_policy,
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Config":
        """
        Build a Config from a plain mapping, e.g. a parsed YAML task file.

        Memory and disk accept either byte counts or strings such as "64m".
        env may be a list of KEY=VALUE strings or a mapping.
        """
        if "image" not in data:
            raise InvalidConfig("Missing required field: image")

        env = data.get("env") or ()
        if isinstance(env, Mapping):
            env = [f"{key}={value}" for key, value in env.items()]

        cmd = data.get("cmd") or ()
        if isinstance(cmd, str):
            cmd = cmd.split()

        return cls(
            name=data.get("name", ""),
            image=data["image"],
            cpu=_cpu(data.get("cpu", 0.0)),
            memory=_bytes(data.get("memory", 0)),
            disk=_bytes(data.get("disk", 0)),
            exposed_ports=frozenset(data.get("exposed_ports") or data.get("ports") or ()),
            env=tuple(env),
            cmd=tuple(cmd),
            restart_policy=data.get("restart_policy", "") or "",
            attach_stdin=bool(data.get("attach_stdin", False)),
            attach_stdout=bool(data.get("attach_stdout", True)),
            attach_stderr=bool(data.get("attach_stderr", True)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "image": self.image,
            "cpu": self.cpu,
            "memory": self.memory,
            "disk": self.disk,
            "exposed_ports": sorted(self.exposed_ports),
            "env": list(self.env),
            "cmd": list(self.cmd),
            "restart_policy": self.restart_policy,
        }


def _cpu(value: Union[float, str, None]) -> float:
    try:
        return float(value or 0.0)
    except (TypeError, ValueError) as e:
        raise InvalidConfig(f"Invalid cpu: {value!r}") from e


def _bytes(value: Union[int, str, None]) -> int:
    if value is None:
        return 0
    if isinstance(value, str):
        try:
            return parse_memory(value)
        except ValueError as e:
            raise InvalidConfig(str(e)) from e
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError) as e:
        raise InvalidConfig(f"Invalid size: {value!r}") from e


def ports_of(ports: Iterable[Union[int, str]]) -> FrozenSet[str]:
    """Normalize a collection of port definitions."""
    return frozenset(normalize_port(p) for p in ports)
