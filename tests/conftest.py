import io
import os
import sys

import pytest

# Ensure project root is importable (so `import cli` / `import main` work without installing)
_project_root = os.path.dirname(os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from nbr.db import EventLog  # noqa: E402
from nbr.settings import Settings  # noqa: E402

# Desired file name -> content used by full-run tests.
ALL_CONFIGS = {
    "daemon.json": '{"log-level":"info"}\n',
    "runtime.slice": "[Unit]\nDescription=Kubernetes and container runtime slice\n",
    "kubelet-10-cgroup.conf": "[Service]\nCPUAccounting=true\nMemoryAccounting=true\nSlice=runtime.slice\n",
    "docker-10-cgroup.conf": "[Service]\nCPUAccounting=true\nMemoryAccounting=true\nSlice=runtime.slice\n",
    "containerd-10-cgroup.conf": "[Service]\nCPUAccounting=true\nMemoryAccounting=true\nSlice=runtime.slice\n",
    "config.toml": 'version = 2\n[plugins."io.containerd.grpc.v1.cri"]\n',
    "containerd.service": "[Unit]\nDescription=containerd container runtime\n",
    "kubenet.conf": '{"cniVersion":"0.3.1","name":"kubenet","type":"bridge"}\n',
    "kubelet.service": "[Unit]\nDescription=kubelet: The Kubernetes Node Agent\n",
    "10-kubeadm.conf": "[Service]\nEnvironmentFile=-/var/lib/kubelet/flags.env\n",
    "flags.env": "KUBELET_FLAGS=--container-runtime=remote\n",
    "config.yaml": "kind: KubeletConfiguration\napiVersion: kubelet.config.k8s.io/v1beta1\n",
}


@pytest.fixture()
def events(tmp_path):
    ev = EventLog(str(tmp_path / "journal" / "nbr.db"), stream=io.StringIO())
    ev.init()
    return ev


@pytest.fixture()
def node(tmp_path):
    """Settings pointing at an empty config dir and an empty fake host root."""
    config_dir = tmp_path / "configs"
    host_root = tmp_path / "host"
    config_dir.mkdir()
    host_root.mkdir()
    return Settings(
        config_dir=str(config_dir),
        host_root=str(host_root),
        db_path=str(tmp_path / "journal" / "nbr.db"),
        systemctl_path="/bin/systemctl",
        kubelet_change_action="reboot",
        update_containerd=True,
        containerd_version="1.3.0",
    )


def write_configs(cfg: Settings, files: dict[str, str]) -> None:
    for name, content in files.items():
        with open(os.path.join(cfg.config_dir, name), "w", encoding="utf-8") as f:
            f.write(content)


def host_path(cfg: Settings, path: str) -> str:
    return os.path.join(cfg.host_root, path.lstrip("/"))
