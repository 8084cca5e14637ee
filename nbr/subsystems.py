from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Callable, Mapping

from .db import EventLog
from .hostexec import HostCommandRunner, HostCommands, PrivilegedCommand
from .installer import ConfigInstaller, ensure_dirs
from .settings import Settings

KUBELET_CHANGE_ACTIONS = {"reboot", "restart"}

CascadeRule = Callable[[Mapping[str, bool]], list[PrivilegedCommand]]


@dataclass(frozen=True)
class ConfigUnit:
    name: str
    source: str
    dest: str


@dataclass(frozen=True)
class Subsystem:
    name: str
    units: tuple[ConfigUnit, ...]
    cascade: CascadeRule
    dirs: tuple[str, ...] = ()


@dataclass
class SubsystemReport:
    name: str
    changed: dict[str, bool] = field(default_factory=dict)
    commands: list[PrivilegedCommand] = field(default_factory=list)
    state: str = "pending"
    failed_at: str | None = None

    @property
    def any_changed(self) -> bool:
        return any(self.changed.values())


class SubsystemReconciler:
    """Installs one subsystem's config units, then runs its cascade.

    State walks preparing -> installing:<unit> -> evaluating -> cascading:<action> -> done,
    or stops at failed on the first error (which is re-raised).
    """

    def __init__(
        self,
        subsystem: Subsystem,
        installer: ConfigInstaller,
        runner: HostCommandRunner,
        events: EventLog,
    ):
        self.subsystem = subsystem
        self.installer = installer
        self.runner = runner
        self.events = events
        self.report = SubsystemReport(name=subsystem.name)

    def _set_state(self, state: str) -> None:
        self.report.state = state

    def reconcile(self) -> SubsystemReport:
        sub = self.subsystem
        try:
            self._set_state("preparing")
            if not self.installer.dry_run:
                ensure_dirs(list(sub.dirs))
            for unit in sub.units:
                self._set_state(f"installing:{unit.name}")
                self.report.changed[unit.name] = self.installer.install_if_changed(
                    unit.source, unit.dest, subsystem=sub.name, unit=unit.name
                )

            self._set_state("evaluating")
            commands = sub.cascade(dict(self.report.changed))

            for cmd in commands:
                self._set_state(f"cascading:{cmd.action}")
                self.events.info(f"Running {cmd.action}: {cmd}", subsystem=sub.name)
                self.runner.run(cmd)
                self.report.commands.append(cmd)
        except Exception:
            self.report.failed_at = self.report.state
            self._set_state("failed")
            raise

        self._set_state("done")
        return self.report


# Cascade rules. Each is a pure function of {unit name: changed}.


def docker_cascade(commands: HostCommands) -> CascadeRule:
    def rule(changed: Mapping[str, bool]) -> list[PrivilegedCommand]:
        if not any(changed.values()):
            return []
        return [commands.restart("docker"), commands.restart("kubelet")]

    return rule


def cgroups_cascade(commands: HostCommands) -> CascadeRule:
    # A slice-only change is picked up on the next service restart.
    def rule(changed: Mapping[str, bool]) -> list[PrivilegedCommand]:
        if not (changed.get("kubelet-cgroup") or changed.get("docker-cgroup")):
            return []
        return [commands.daemon_reload(), commands.restart("docker"), commands.restart("kubelet")]

    return rule


def containerd_cascade(commands: HostCommands, update: bool, version: str) -> CascadeRule:
    def rule(changed: Mapping[str, bool]) -> list[PrivilegedCommand]:
        if not any(changed.values()):
            return []
        out = [commands.enable("containerd"), commands.daemon_reload(), commands.restart("containerd")]
        if update:
            out.append(commands.update_containerd(version))
        return out

    return rule


def kubelet_cascade(commands: HostCommands, change_action: str) -> CascadeRule:
    if change_action not in KUBELET_CHANGE_ACTIONS:
        raise ValueError(
            f"Invalid kubelet change action {change_action!r}; expected one of {sorted(KUBELET_CHANGE_ACTIONS)}."
        )

    def rule(changed: Mapping[str, bool]) -> list[PrivilegedCommand]:
        if not any(changed.values()):
            return []
        out = [commands.daemon_reload(), commands.restart("kubelet")]
        if change_action == "reboot":
            out.append(commands.reboot())
        return out

    return rule


def default_subsystems(cfg: Settings, commands: HostCommands | None = None) -> list[Subsystem]:
    """The four node subsystems in the order they must be reconciled.

    cgroups runs before containerd and kubelet because their drop-ins reference
    runtime.slice; containerd runs before kubelet, which talks to it.
    """
    commands = commands or HostCommands(cfg)

    def src(name: str) -> str:
        return os.path.join(cfg.config_dir, name)

    def host(path: str) -> str:
        return os.path.join(cfg.host_root, path.lstrip("/"))

    systemd = "/etc/systemd/system"
    containerd_cgroup = ConfigUnit(
        "containerd-cgroup", src("containerd-10-cgroup.conf"), host(f"{systemd}/containerd.service.d/10-cgroup.conf")
    )

    return [
        Subsystem(
            name="docker",
            dirs=(host("/etc/docker"),),
            units=(ConfigUnit("daemon.json", src("daemon.json"), host("/etc/docker/daemon.json")),),
            cascade=docker_cascade(commands),
        ),
        Subsystem(
            name="cgroups",
            dirs=(
                host(f"{systemd}/kubelet.service.d"),
                host(f"{systemd}/docker.service.d"),
                host(f"{systemd}/containerd.service.d"),
            ),
            units=(
                ConfigUnit("runtime.slice", src("runtime.slice"), host(f"{systemd}/runtime.slice")),
                ConfigUnit(
                    "kubelet-cgroup", src("kubelet-10-cgroup.conf"), host(f"{systemd}/kubelet.service.d/10-cgroup.conf")
                ),
                ConfigUnit(
                    "docker-cgroup", src("docker-10-cgroup.conf"), host(f"{systemd}/docker.service.d/10-cgroup.conf")
                ),
                containerd_cgroup,
            ),
            cascade=cgroups_cascade(commands),
        ),
        Subsystem(
            name="containerd",
            dirs=(
                host("/etc/containerd"),
                host(f"{systemd}/containerd.service.d"),
                host("/etc/cni/net.d"),
            ),
            units=(
                # Already installed by cgroups earlier in the run, so it never triggers this cascade on its own.
                containerd_cgroup,
                ConfigUnit("config.toml", src("config.toml"), host("/etc/containerd/config.toml")),
                ConfigUnit("containerd.service", src("containerd.service"), host(f"{systemd}/containerd.service")),
                ConfigUnit("kubenet.conf", src("kubenet.conf"), host("/etc/containerd/kubenet.conf")),
            ),
            cascade=containerd_cascade(commands, cfg.update_containerd, cfg.containerd_version),
        ),
        Subsystem(
            name="kubelet",
            dirs=(host(f"{systemd}/kubelet.service.d"), host("/var/lib/kubelet")),
            units=(
                ConfigUnit("kubelet.service", src("kubelet.service"), host(f"{systemd}/kubelet.service")),
                ConfigUnit(
                    "10-kubeadm.conf", src("10-kubeadm.conf"), host(f"{systemd}/kubelet.service.d/10-kubeadm.conf")
                ),
                ConfigUnit("flags.env", src("flags.env"), host("/var/lib/kubelet/flags.env")),
                ConfigUnit("config.yaml", src("config.yaml"), host("/var/lib/kubelet/config.yaml")),
            ),
            cascade=kubelet_cascade(commands, cfg.kubelet_change_action),
        ),
    ]
