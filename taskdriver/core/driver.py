"""
Container driver for the task driver.

This module translates a Config into container runtime calls and reports
every outcome as a DockerResult. No exception crosses Docker.run() or
Docker.stop(): each failure is logged where it happens and returned on the
result's error field.
"""

import json
import logging
import sys
from typing import BinaryIO, Optional

import requests
from docker.errors import DockerException

from taskdriver.core.context import Context
from taskdriver.core.errors import (
    ContextError,
    CreateFailure,
    InspectFailure,
    LogAttachFailure,
    PullFailure,
    RemoveFailure,
    StartFailure,
    StopFailure,
)
from taskdriver.core.runtime import RuntimeClient
from taskdriver.core.stdcopy import FrameError, StreamSystemError, std_copy
from taskdriver.models.config import Config
from taskdriver.models.enums import Action
from taskdriver.models.result import DockerInspectResponse, DockerResult


logger = logging.getLogger('taskdriver.driver')

# Exceptions a runtime call may raise that the driver turns into results
RUNTIME_ERRORS = (
    DockerException,
    requests.exceptions.RequestException,
    ContextError,
    OSError,
    FrameError,
    StreamSystemError,
)


class ImagePullError(DockerException):
    """The pull progress stream reported an error."""


class Docker:
    """
    Drives one task's container through the runtime lifecycle.

    The driver holds the injected runtime client and its output sinks and
    nothing else, so one instance may be shared by concurrent callers working
    on different containers. Calls for the same container must be serialized
    by the caller.
    """
    def __init__(self, client: RuntimeClient, stdout: BinaryIO = None, stderr: BinaryIO = None):
        self.client = client
        self.stdout = stdout if stdout is not None else sys.stdout.buffer
        self.stderr = stderr if stderr is not None else sys.stderr.buffer
        # text streams whose pending output must precede raw bytes on the same fd
        self._text_streams = [s for s, sink in ((sys.stdout, stdout), (sys.stderr, stderr)) if sink is None]

    def _fail(self, error_cls, message: str, cause: Exception, container_id: Optional[str] = None,
              action: str = Action.START.value) -> DockerResult:
        error = error_cls(f"{message}: {cause}", container_id=container_id)
        error.__cause__ = cause
        logger.error(f"{message}: {cause}")
        return DockerResult(action=action, result="failed", container_id=container_id, error=error)

    def run(self, config: Config, ctx: Context = None) -> DockerResult:
        """
        Pull, create, start and attach to a container for the config.

        Args:
            config: What to run
            ctx: Optional cancellation context, checked before every call

        Returns:
            DockerResult: container_id is set once the container exists,
            including when a later step failed
        """
        ctx = ctx or Context.background()

        try:
            self._raise_if_done(ctx)
            self._pull(config.image, ctx)
        except RUNTIME_ERRORS as e:
            return self._fail(PullFailure, f"Error pulling image {config.image}", e)

        try:
            self._raise_if_done(ctx)
            container_id = self.client.create_container(config)
        except RUNTIME_ERRORS as e:
            return self._fail(CreateFailure, f"Error creating container using image {config.image}", e)
        logger.info(f"Created container {container_id} from image {config.image}")

        try:
            self._raise_if_done(ctx)
            self.client.start_container(container_id)
        except RUNTIME_ERRORS as e:
            return self._fail(StartFailure, f"Error starting container {container_id}", e,
                              container_id=container_id)
        logger.info(f"Started container {container_id}")

        try:
            self._copy_logs(container_id, ctx, follow=False)
        except RUNTIME_ERRORS as e:
            return self._fail(LogAttachFailure, f"Error getting logs for container {container_id}", e,
                              container_id=container_id)

        return DockerResult(action=Action.START.value, result="success", container_id=container_id)

    def stop(self, container_id: str, ctx: Context = None) -> DockerResult:
        """
        Stop a container gracefully, then remove it with its anonymous volumes.

        Removal is only attempted after the stop succeeded.

        Args:
            container_id: The container to stop
            ctx: Optional cancellation context

        Returns:
            DockerResult: The outcome of the stop action
        """
        ctx = ctx or Context.background()
        logger.info(f"Attempting to stop container {container_id}")

        try:
            self._raise_if_done(ctx)
            self.client.stop_container(container_id)
        except RUNTIME_ERRORS as e:
            return self._fail(StopFailure, f"Error stopping container {container_id}", e,
                              container_id=container_id, action=Action.STOP.value)

        try:
            self._raise_if_done(ctx)
            self.client.remove_container(container_id)
        except RUNTIME_ERRORS as e:
            return self._fail(RemoveFailure, f"Error removing container {container_id}", e,
                              container_id=container_id, action=Action.STOP.value)

        logger.info(f"Stopped and removed container {container_id}")
        return DockerResult(action=Action.STOP.value, result="success", container_id=container_id)

    def inspect(self, container_id: str, ctx: Context = None) -> DockerInspectResponse:
        """Fetch the runtime's view of a container."""
        ctx = ctx or Context.background()
        try:
            self._raise_if_done(ctx)
            container = self.client.inspect_container(container_id)
        except RUNTIME_ERRORS as e:
            logger.error(f"Error inspecting container {container_id}: {e}")
            error = InspectFailure(f"Error inspecting container {container_id}: {e}",
                                   container_id=container_id)
            error.__cause__ = e
            return DockerInspectResponse(error=error)
        return DockerInspectResponse(container=container)

    def stream_logs(self, container_id: str, ctx: Context = None, follow: bool = True) -> DockerResult:
        """
        Copy a container's logs to the driver's sinks until the stream ends.

        With follow=True this blocks for the container's lifetime; run it on
        its own thread and cancel ctx to end it.
        """
        ctx = ctx or Context.background()
        try:
            self._copy_logs(container_id, ctx, follow=follow)
        except RUNTIME_ERRORS as e:
            return self._fail(LogAttachFailure, f"Error streaming logs for container {container_id}", e,
                              container_id=container_id, action=Action.LOGS.value)
        return DockerResult(action=Action.LOGS.value, result="success", container_id=container_id)

    def _flush_text(self):
        for text in self._text_streams:
            text.flush()

    @staticmethod
    def _raise_if_done(ctx: Context):
        err = ctx.err()
        if err is not None:
            raise err

    def _pull(self, image: str, ctx: Context):
        logger.info(f"Pulling image {image}")
        self._flush_text()
        # the pull is only complete once its progress stream is exhausted
        for record in self.client.pull_image(image):
            self._raise_if_done(ctx)
            if "error" in record:
                raise ImagePullError(record.get("error"))
            self.stdout.write(json.dumps(record).encode("utf-8") + b"\n")
        self.stdout.flush()

    def _copy_logs(self, container_id: str, ctx: Context, follow: bool):
        self._raise_if_done(ctx)
        stream = self.client.container_logs(container_id, follow=follow)
        unregister = ctx.on_cancel(stream.close)
        try:
            self._flush_text()
            std_copy(self.stdout, self.stderr, stream, ctx=ctx)
            self.stdout.flush()
            self.stderr.flush()
        finally:
            unregister()
            stream.close()

