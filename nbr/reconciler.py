from __future__ import annotations

import threading
from dataclasses import dataclass, field

from .db import EventLog
from .errors import ReconcileError
from .hostexec import HostCommandRunner
from .installer import ConfigInstaller
from .subsystems import Subsystem, SubsystemReconciler, SubsystemReport

RUN_STARTED = "Reconciliation started"
RUN_SUCCEEDED = "Reconciliation succeeded"
RUN_FAILED = "Reconciliation failed"


@dataclass
class ReconciliationResult:
    ok: bool
    reports: list[SubsystemReport] = field(default_factory=list)
    failed_subsystem: str | None = None
    error: ReconcileError | None = None

    @property
    def commands(self) -> list[str]:
        return [c.action for r in self.reports for c in r.commands]


class Orchestrator:
    """Reconciles node subsystems strictly in order and stops at the first failure.

    Nothing is rolled back: whatever was written or restarted before the
    failing step stays that way, and a re-run skips files that already match.
    """

    def __init__(
        self, subsystems: list[Subsystem], runner: HostCommandRunner, events: EventLog, dry_run: bool = False
    ):
        self.subsystems = list(subsystems)
        self.runner = runner
        self.events = events
        self.dry_run = dry_run
        self.installer = ConfigInstaller(events, dry_run=dry_run)

    def run(self) -> ReconciliationResult:
        result = ReconciliationResult(ok=True)
        self.events.info(f"{RUN_STARTED}: {', '.join(s.name for s in self.subsystems)}")

        for sub in self.subsystems:
            rec = SubsystemReconciler(sub, self.installer, self.runner, self.events)
            result.reports.append(rec.report)
            try:
                report = rec.reconcile()
            except ReconcileError as e:
                result.ok = False
                result.failed_subsystem = sub.name
                result.error = e
                self.events.error(f"{RUN_FAILED} in {rec.report.failed_at}: {e}", subsystem=sub.name)
                return result
            if not report.any_changed:
                self.events.info("No changes", subsystem=sub.name)

        if self.dry_run:
            self.events.info(f"Dry run finished: {len(result.commands)} host command(s) skipped")
        else:
            self.events.info(f"{RUN_SUCCEEDED}: {len(result.commands)} host command(s) issued")
        return result


def wait_forever() -> None:
    """Block the calling thread indefinitely without timers or I/O."""
    threading.Event().wait()
