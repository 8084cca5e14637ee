"""Node Bootstrap Reconciler (NBR).

Installs host-level configuration for the container runtime, cgroup slices,
containerd and kubelet, then restarts only what changed, in dependency order:

 - byte-exact compare of desired vs installed files
 - atomic replacement of files that differ
 - per-subsystem cascades of service manager commands run in the host namespace
 - fail-fast orchestration with no rollback; re-runs converge
"""
