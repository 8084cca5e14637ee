from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    # Layout
    config_dir: str = os.getenv("NBR_CONFIG_DIR", "/configs")
    host_root: str = os.getenv("NBR_HOST_ROOT", "/")

    # Host command execution
    nsenter_path: str = os.getenv("NBR_NSENTER", "/usr/bin/nsenter")
    host_mount_ns: str = os.getenv("NBR_HOST_MOUNT_NS", "/proc/1/ns/mnt")
    systemctl_path: str = os.getenv("NBR_SYSTEMCTL", "/bin/systemctl")

    # Cascade policy
    # "reboot" ends the kubelet cascade with a host reboot, "restart" stops after restarting kubelet.
    kubelet_change_action: str = os.getenv("NBR_KUBELET_CHANGE_ACTION", "reboot")
    update_containerd: bool = _env_bool("NBR_UPDATE_CONTAINERD", True)
    containerd_version: str = os.getenv("NBR_CONTAINERD_VERSION", "1.3.0")

    # Event journal
    db_path: str = os.getenv("NBR_DB_PATH", "/var/lib/nbr/nbr.db")

    # Status API (optional)
    api_host: str = os.getenv("NBR_API_HOST", "0.0.0.0")
    api_port: int = _env_int("NBR_API_PORT", 8080)
    kubelet_healthz_url: str = os.getenv("NBR_KUBELET_HEALTHZ", "http://127.0.0.1:10248/healthz")


settings = Settings()
