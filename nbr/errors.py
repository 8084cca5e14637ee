from __future__ import annotations


class ReconcileError(Exception):
    """Base class for failures that abort a reconciliation run."""


class ConfigIOError(ReconcileError):
    """Reading a desired file or writing an installed file failed."""

    def __init__(self, path: str, cause: OSError):
        self.path = path
        self.cause = cause
        super().__init__(f"{path}: {cause.strerror or cause}")


class ExecutionError(ReconcileError):
    """A privileged host command exited non-zero or could not be started."""

    def __init__(self, action: str, argv: list[str], returncode: int | None, output: str):
        self.action = action
        self.argv = list(argv)
        self.returncode = returncode
        self.output = output
        detail = output.strip() or "no output"
        if returncode is None:
            super().__init__(f"{action} could not be started: {detail}")
        else:
            super().__init__(f"{action} exited with status {returncode}: {detail}")
