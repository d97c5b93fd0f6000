"""
Result types returned by the container driver.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class DockerResult:
    """
    Outcome of a single driver action.

    error is None on success. When it is set, container_id tells the caller
    whether a container exists that still needs attention: a failed start
    carries the id of the created container, a failed pull or create does not.
    """
    action: str = ""
    result: str = ""
    container_id: Optional[str] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "result": self.result,
            "container_id": self.container_id,
            "error": str(self.error) if self.error is not None else None,
            "step": getattr(self.error, "step", None),
        }


@dataclass(frozen=True)
class DockerInspectResponse:
    """Outcome of inspecting a container."""
    error: Optional[Exception] = None
    container: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def state(self) -> str:
        """Runtime status, e.g. "running" or "exited"; empty if unknown."""
        return self.container.get("State", {}).get("Status", "")

    @property
    def exit_code(self) -> Optional[int]:
        return self.container.get("State", {}).get("ExitCode")

    def port_bindings(self) -> Dict[str, str]:
        """
        Map each published container port to its host binding.

        Returns:
            Dict[str, str]: e.g. {"6379/tcp": "0.0.0.0:49153"}
        """
        ports = self.container.get("NetworkSettings", {}).get("Ports") or {}
        bindings = {}
        for port, hosts in ports.items():
            if not hosts:
                continue
            host = hosts[0]
            bindings[port] = f"{host.get('HostIp') or '0.0.0.0'}:{host.get('HostPort', '')}"
        return bindings
