from __future__ import annotations

import shlex
import subprocess
from dataclasses import dataclass, field
from typing import Protocol

from .errors import ExecutionError
from .settings import Settings, settings as default_settings

CONTAINERD_RELEASE_URL = (
    "https://github.com/containerd/containerd/releases/download/v{version}/containerd-{version}.linux-amd64.tar.gz"
)


@dataclass(frozen=True)
class PrivilegedCommand:
    """One administrative action to run in the host's mount namespace."""

    action: str
    argv: tuple[str, ...]

    def __str__(self) -> str:
        return " ".join(shlex.quote(a) for a in self.argv)


class HostCommandRunner(Protocol):
    def run(self, command: PrivilegedCommand) -> str:
        """Run ``command`` to completion and return its combined output.

        Raises ExecutionError when the command fails.
        """
        ...


class NsenterRunner:
    """Runs commands inside the host mount namespace via nsenter.

    No timeout is applied: a hung service manager call blocks the run.
    """

    def __init__(self, cfg: Settings | None = None, prefix: list[str] | None = None):
        cfg = cfg or default_settings
        if prefix is None:
            prefix = [cfg.nsenter_path, f"-m{cfg.host_mount_ns}", "--"]
        self.prefix = list(prefix)

    def run(self, command: PrivilegedCommand) -> str:
        argv = self.prefix + list(command.argv)
        try:
            proc = subprocess.run(argv, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, check=False)
        except OSError as e:
            raise ExecutionError(command.action, argv, None, str(e)) from e
        output = proc.stdout.decode("utf-8", errors="replace")
        if proc.returncode != 0:
            raise ExecutionError(command.action, argv, proc.returncode, output)
        return output


@dataclass
class RecordingRunner:
    """Records commands instead of running them.

    ``fail_on`` names an action that raises ExecutionError when reached.
    """

    fail_on: str | None = None
    commands: list[PrivilegedCommand] = field(default_factory=list)

    def run(self, command: PrivilegedCommand) -> str:
        self.commands.append(command)
        if self.fail_on and command.action == self.fail_on:
            raise ExecutionError(command.action, list(command.argv), 1, f"{command.action}: simulated failure")
        return ""

    @property
    def actions(self) -> list[str]:
        return [c.action for c in self.commands]


class HostCommands:
    """Builds the fixed service manager invocations used by cascades."""

    def __init__(self, cfg: Settings | None = None):
        self.cfg = cfg or default_settings

    def _systemctl(self, action: str, *args: str) -> PrivilegedCommand:
        return PrivilegedCommand(action=action, argv=(self.cfg.systemctl_path, *args))

    def daemon_reload(self) -> PrivilegedCommand:
        return self._systemctl("daemon-reload", "daemon-reload")

    def restart(self, unit: str) -> PrivilegedCommand:
        return self._systemctl(f"restart-{unit}", "restart", unit)

    def enable(self, unit: str) -> PrivilegedCommand:
        return self._systemctl(f"enable-{unit}", "enable", unit)

    def reboot(self) -> PrivilegedCommand:
        return self._systemctl("reboot", "reboot")

    def update_containerd(self, version: str | None = None) -> PrivilegedCommand:
        """Fetch the pinned containerd release and unpack it over /usr on the host."""
        version = version or self.cfg.containerd_version
        url = CONTAINERD_RELEASE_URL.format(version=version)
        tarball = f"/tmp/containerd-{version}.linux-amd64.tar.gz"
        script = (
            f"/usr/bin/curl -f -s -L {shlex.quote(url)} -o {shlex.quote(tarball)}"
            f" && /bin/tar xvzf {shlex.quote(tarball)} -C /usr"
        )
        return PrivilegedCommand(action="update-containerd", argv=("/bin/sh", "-c", script))
