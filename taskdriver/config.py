"""
Settings for the task driver, read from the environment.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional


DEFAULT_API_TIMEOUT = 60  # docker SDK default, seconds


@dataclass
class Settings:
    """
    Runtime connection and logging settings.

    docker_host None means "use docker.from_env()", which honors DOCKER_HOST,
    DOCKER_TLS_VERIFY and DOCKER_CERT_PATH.
    """
    docker_host: Optional[str] = None
    api_timeout: float = DEFAULT_API_TIMEOUT
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = None) -> "Settings":
        if environ is None:
            environ = os.environ

        timeout = environ.get('TASKDRIVER_API_TIMEOUT')
        try:
            api_timeout = float(timeout) if timeout else DEFAULT_API_TIMEOUT
        except ValueError:
            raise ValueError(f"TASKDRIVER_API_TIMEOUT must be a number, got {timeout!r}") from None

        return cls(
            docker_host=environ.get('TASKDRIVER_DOCKER_HOST') or None,
            api_timeout=api_timeout,
            log_level=environ.get('TASKDRIVER_LOG_LEVEL', 'INFO').upper(),
        )
