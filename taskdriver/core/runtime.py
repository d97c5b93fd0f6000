"""
Container runtime client.

RuntimeClient is the capability the driver is constructed with. DockerRuntime
implements it over the docker SDK's low-level APIClient; tests substitute a
mock.
"""

import logging
import socket
import threading
from typing import Any, BinaryIO, Dict, Iterator, Optional, Protocol

import docker
import requests
import urllib3
from docker.errors import APIError, create_api_error_from_http_exception

from taskdriver.models.config import Config, split_port


logger = logging.getLogger('taskdriver.runtime')

# Grace period the daemon applies to a stop request when none is given
DEFAULT_STOP_GRACE = 10


class ContainerNotRunning(APIError):
    """The runtime answered a stop request with "not modified"."""


class RuntimeClient(Protocol):
    """Operations the driver needs from a container runtime."""

    def pull_image(self, image: str) -> Iterator[Dict[str, Any]]:
        """Start pulling an image and return its progress records."""
        ...

    def create_container(self, config: Config) -> str:
        """Create a container and return its runtime-assigned id."""
        ...

    def start_container(self, container_id: str) -> None:
        ...

    def container_logs(self, container_id: str, follow: bool = False) -> BinaryIO:
        """Open the framed, combined stdout/stderr log stream."""
        ...

    def stop_container(self, container_id: str) -> None:
        ...

    def remove_container(self, container_id: str) -> None:
        ...

    def inspect_container(self, container_id: str) -> Dict[str, Any]:
        ...


class LogStream:
    """
    Raw log stream over a streaming HTTP response.

    close() may be called from another thread while read() is blocked. It
    shuts the connection's socket down, which wakes the reader, and leaves
    releasing the response to whichever thread is not inside read().
    """
    def __init__(self, response: requests.Response):
        self._response = response
        self._lock = threading.Lock()
        self._reading = False
        self.closed = False

    def read(self, size: int = -1) -> bytes:
        with self._lock:
            if self.closed:
                return b""
            self._reading = True
        try:
            return self._response.raw.read(size)
        except urllib3.exceptions.ProtocolError as e:
            raise requests.exceptions.ChunkedEncodingError(e) from e
        except urllib3.exceptions.ReadTimeoutError as e:
            raise requests.exceptions.ConnectionError(e) from e
        finally:
            with self._lock:
                self._reading = False
                release = self.closed
            if release:
                self._response.close()

    def _socket(self) -> Optional[socket.socket]:
        # same walk as docker.types.daemon.CancellableStream.close()
        sock_fp = getattr(getattr(self._response.raw, "_fp", None), "fp", None)
        if sock_fp is None:
            return None
        sock_raw = getattr(sock_fp, "raw", None)
        if sock_raw is not None:
            sock = getattr(sock_raw, "sock", None) or getattr(sock_raw, "_sock", None)
        else:
            sock = getattr(sock_fp, "_sock", None)
        pyopenssl = getattr(getattr(urllib3, "contrib", None), "pyopenssl", None)
        if pyopenssl is not None and isinstance(sock, pyopenssl.WrappedSocket):
            sock = sock.socket
        return sock

    def close(self):
        with self._lock:
            if self.closed:
                return
            self.closed = True
            reading = self._reading

        sock = self._socket()
        if sock is not None:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError as e:
                logger.debug(f"Log stream socket already disconnected: {e}")
        if not reading:
            self._response.close()


class DockerRuntime:
    """
    RuntimeClient backed by the Docker Engine API.
    """
    def __init__(self, api: docker.APIClient):
        self.api = api

    @classmethod
    def from_settings(cls, settings) -> "DockerRuntime":
        """
        Connect to the runtime described by the settings.

        Args:
            settings: taskdriver.config.Settings

        Returns:
            DockerRuntime: Runtime client bound to that daemon
        """
        if settings.docker_host:
            logger.debug(f"Connecting to Docker at {settings.docker_host}")
            api = docker.APIClient(base_url=settings.docker_host, timeout=settings.api_timeout)
        else:
            api = docker.from_env(timeout=settings.api_timeout).api
        return cls(api)

    def _url(self, path: str) -> str:
        return f"{self.api.base_url}/v{self.api.api_version}{path}"

    @staticmethod
    def _raise_for_status(response: requests.Response):
        try:
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            # raises the matching docker.errors.APIError subclass
            create_api_error_from_http_exception(e)

    def pull_image(self, image: str) -> Iterator[Dict[str, Any]]:
        return self.api.pull(image, stream=True, decode=True)

    def create_container(self, config: Config) -> str:
        host_config = self.api.create_host_config(
            restart_policy={"Name": config.restart_policy},
            mem_limit=config.memory,
            nano_cpus=config.nano_cpus,
            publish_all_ports=True,
        )
        ports = [split_port(port) for port in sorted(config.exposed_ports)]

        response = self.api.create_container(
            image=config.image,
            name=config.name or None,
            command=list(config.cmd) or None,
            environment=list(config.env) or None,
            ports=ports or None,
            tty=False,
            host_config=host_config,
        )
        for warning in response.get("Warnings") or []:
            logger.warning(f"Runtime warning for {config.name or config.image}: {warning}")
        return response["Id"]

    def start_container(self, container_id: str) -> None:
        self.api.start(container_id)

    def container_logs(self, container_id: str, follow: bool = False) -> LogStream:
        params = {"stdout": 1, "stderr": 1, "follow": 1 if follow else 0}
        response = self.api.get(
            self._url(f"/containers/{container_id}/logs"),
            params=params,
            stream=True,
            timeout=None if follow else self.api.timeout,
        )
        self._raise_for_status(response)
        return LogStream(response)

    def stop_container(self, container_id: str) -> None:
        timeout: Optional[float] = self.api.timeout
        if timeout is not None:
            timeout += DEFAULT_STOP_GRACE

        response = self.api.post(self._url(f"/containers/{container_id}/stop"), timeout=timeout)
        if response.status_code == 304:
            raise ContainerNotRunning(
                f"Container {container_id} is not running",
                response=response,
                explanation="container already stopped or never started",
            )
        self._raise_for_status(response)

    def remove_container(self, container_id: str) -> None:
        self.api.remove_container(container_id, v=True, link=False, force=False)

    def inspect_container(self, container_id: str) -> Dict[str, Any]:
        return self.api.inspect_container(container_id)
