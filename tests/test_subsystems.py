import dataclasses
import os

import pytest

from conftest import host_path, write_configs
from nbr.errors import ConfigIOError, ExecutionError
from nbr.hostexec import HostCommands, RecordingRunner
from nbr.installer import ConfigInstaller
from nbr.settings import Settings
from nbr.subsystems import (
    SubsystemReconciler,
    cgroups_cascade,
    containerd_cascade,
    default_subsystems,
    docker_cascade,
    kubelet_cascade,
)

CMDS = HostCommands(Settings(systemctl_path="/bin/systemctl"))


def _actions(commands):
    return [c.action for c in commands]


def test_subsystem_order_and_units(node):
    subs = default_subsystems(node)
    assert [s.name for s in subs] == ["docker", "cgroups", "containerd", "kubelet"]
    assert [u.name for u in subs[1].units] == ["runtime.slice", "kubelet-cgroup", "docker-cgroup", "containerd-cgroup"]
    assert [u.name for u in subs[2].units] == ["containerd-cgroup", "config.toml", "containerd.service", "kubenet.conf"]
    assert [u.name for u in subs[3].units] == ["kubelet.service", "10-kubeadm.conf", "flags.env", "config.yaml"]
    assert subs[0].units[0].dest == host_path(node, "/etc/docker/daemon.json")
    assert subs[3].units[2].dest == host_path(node, "/var/lib/kubelet/flags.env")


def test_cascades_are_empty_without_changes():
    none = {"a": False, "b": False}
    assert docker_cascade(CMDS)(none) == []
    assert cgroups_cascade(CMDS)(none) == []
    assert containerd_cascade(CMDS, True, "1.3.0")(none) == []
    assert kubelet_cascade(CMDS, "reboot")(none) == []


def test_cgroups_slice_only_change_does_not_restart():
    rule = cgroups_cascade(CMDS)
    assert rule({"runtime.slice": True, "kubelet-cgroup": False, "docker-cgroup": False}) == []
    assert rule({"containerd-cgroup": True}) == []
    assert _actions(rule({"docker-cgroup": True})) == ["daemon-reload", "restart-docker", "restart-kubelet"]
    assert _actions(rule({"kubelet-cgroup": True})) == ["daemon-reload", "restart-docker", "restart-kubelet"]


def test_containerd_cascade_update_is_optional():
    changed = {"config.toml": True}
    assert _actions(containerd_cascade(CMDS, True, "1.3.0")(changed)) == [
        "enable-containerd",
        "daemon-reload",
        "restart-containerd",
        "update-containerd",
    ]
    assert _actions(containerd_cascade(CMDS, False, "1.3.0")(changed)) == [
        "enable-containerd",
        "daemon-reload",
        "restart-containerd",
    ]


def test_kubelet_change_action_policy():
    changed = {"flags.env": True}
    assert _actions(kubelet_cascade(CMDS, "reboot")(changed)) == ["daemon-reload", "restart-kubelet", "reboot"]
    assert _actions(kubelet_cascade(CMDS, "restart")(changed)) == ["daemon-reload", "restart-kubelet"]
    with pytest.raises(ValueError):
        kubelet_cascade(CMDS, "reload")


def test_reconciler_creates_dirs_and_reports_changes(node, events):
    write_configs(node, {"config.yaml": "kind: KubeletConfiguration\n"})
    kubelet = default_subsystems(node)[3]
    runner = RecordingRunner()

    rec = SubsystemReconciler(kubelet, ConfigInstaller(events), runner, events)
    report = rec.reconcile()

    assert report.state == "done"
    assert report.changed == {
        "kubelet.service": False,
        "10-kubeadm.conf": False,
        "flags.env": False,
        "config.yaml": True,
    }
    assert runner.actions == ["daemon-reload", "restart-kubelet", "reboot"]
    assert _actions(report.commands) == runner.actions
    with open(host_path(node, "/var/lib/kubelet/config.yaml")) as f:
        assert f.read() == "kind: KubeletConfiguration\n"
    assert os.path.isdir(host_path(node, "/etc/systemd/system/kubelet.service.d"))


def test_reconciler_stops_cascade_at_first_failing_command(node, events):
    write_configs(node, {"daemon.json": "{}"})
    docker = default_subsystems(node)[0]
    runner = RecordingRunner(fail_on="restart-docker")

    rec = SubsystemReconciler(docker, ConfigInstaller(events), runner, events)
    with pytest.raises(ExecutionError):
        rec.reconcile()

    assert rec.report.state == "failed"
    assert runner.actions == ["restart-docker"]
    assert rec.report.commands == []


def test_reconciler_with_custom_cascade(node, events):
    write_configs(node, {"daemon.json": "{}"})
    docker = dataclasses.replace(
        default_subsystems(node)[0],
        cascade=lambda changed: [CMDS.reboot()] if changed["daemon.json"] else [],
    )
    runner = RecordingRunner()
    SubsystemReconciler(docker, ConfigInstaller(events), runner, events).reconcile()
    assert runner.actions == ["reboot"]


def test_directory_failure_is_reported_as_preparing(node, events):
    write_configs(node, {"daemon.json": "{}"})
    os.makedirs(host_path(node, "/etc"))
    with open(host_path(node, "/etc/docker"), "w") as f:
        f.write("not a directory")
    docker = default_subsystems(node)[0]
    runner = RecordingRunner()

    rec = SubsystemReconciler(docker, ConfigInstaller(events), runner, events)
    with pytest.raises(ConfigIOError):
        rec.reconcile()

    assert rec.report.failed_at == "preparing"
    assert rec.report.state == "failed"
    assert runner.actions == []


def test_dry_run_does_not_create_directories(node, events):
    write_configs(node, {"config.yaml": "kind: KubeletConfiguration\n"})
    kubelet = default_subsystems(node)[3]
    runner = RecordingRunner()

    report = SubsystemReconciler(kubelet, ConfigInstaller(events, dry_run=True), runner, events).reconcile()

    assert report.changed["config.yaml"] is True
    assert runner.actions == ["daemon-reload", "restart-kubelet", "reboot"]
    assert os.listdir(node.host_root) == []
