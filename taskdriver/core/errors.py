"""
Error taxonomy surfaced by the container driver.

Driver errors are never raised across the driver boundary. They are returned
on a DockerResult, with the runtime exception that caused them chained as
__cause__.
"""

from typing import Optional


class ContextError(Exception):
    """The caller's context ended before the runtime call was made."""


class Cancelled(ContextError):
    """The context was cancelled."""

    def __init__(self, message: str = "context cancelled"):
        super().__init__(message)


class DeadlineExceeded(ContextError):
    """The context's deadline passed."""

    def __init__(self, message: str = "context deadline exceeded"):
        super().__init__(message)


class InvalidTransition(Exception):
    """A task was asked to move between states the state machine forbids."""

    def __init__(self, src, dst):
        self.src = src
        self.dst = dst
        super().__init__(f"Invalid state transition from {src.value} to {dst.value}")


class DriverError(Exception):
    """
    Base class for failures of a single driver step.

    Attributes:
        action: The driver action that failed ("start", "stop", ...)
        step: The runtime step within that action ("pull", "create", ...)
        container_id: The container involved, if one exists at that point
    """
    action = ""
    step = ""

    def __init__(self, message: str, container_id: Optional[str] = None):
        super().__init__(message)
        self.container_id = container_id


class PullFailure(DriverError):
    """The image could not be pulled. No container exists."""
    action = "start"
    step = "pull"


class CreateFailure(DriverError):
    """The container could not be created. No container exists."""
    action = "start"
    step = "create"


class StartFailure(DriverError):
    """The container exists but is not running."""
    action = "start"
    step = "start"


class LogAttachFailure(DriverError):
    """The container is running but its logs could not be read."""
    action = "start"
    step = "logs"


class StopFailure(DriverError):
    """The container could not be stopped. Removal was not attempted."""
    action = "stop"
    step = "stop"


class RemoveFailure(DriverError):
    """The container is stopped but still present."""
    action = "stop"
    step = "remove"


class InspectFailure(DriverError):
    """The container could not be inspected."""
    action = "inspect"
    step = "inspect"
