from __future__ import annotations

import docker
from docker.errors import DockerException


def _client() -> docker.DockerClient:
    return docker.from_env()


def docker_available() -> bool:
    """True when the host runtime daemon answers on its socket."""
    try:
        c = _client()
        c.ping()
        return True
    except DockerException:
        return False


def docker_version() -> str | None:
    try:
        return _client().version().get("Version")
    except DockerException:
        return None
