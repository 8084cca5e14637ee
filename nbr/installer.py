from __future__ import annotations

import os
from tempfile import NamedTemporaryFile

from .db import EventLog
from .errors import ConfigIOError

FILE_MODE = 0o644
DIR_MODE = 0o755


def read_bytes(path: str, missing_ok: bool = False) -> bytes:
    try:
        with open(path, "rb") as f:
            return f.read()
    except FileNotFoundError:
        if missing_ok:
            return b""
        raise
    except OSError as e:
        raise ConfigIOError(path, e) from e


def write_atomic(path: str, data: bytes, mode: int = FILE_MODE) -> None:
    """Write to a temp file next to ``path``, fsync, then rename over it."""
    tmp_path = None
    try:
        with NamedTemporaryFile(dir=os.path.dirname(path) or ".", prefix=".nbr-", delete=False) as tmp:
            tmp_path = tmp.name
            tmp.write(data)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    except OSError as e:
        if tmp_path and os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise ConfigIOError(path, e) from e


def ensure_dirs(paths: list[str]) -> None:
    for p in paths:
        try:
            os.makedirs(p, mode=DIR_MODE, exist_ok=True)
        except OSError as e:
            raise ConfigIOError(p, e) from e


class ConfigInstaller:
    """Replaces installed files whose bytes differ from the desired ones."""

    def __init__(self, events: EventLog, dry_run: bool = False):
        self.events = events
        self.dry_run = dry_run

    def install_if_changed(
        self, source: str, dest: str, subsystem: str | None = None, unit: str | None = None
    ) -> bool:
        """Install ``source`` over ``dest`` when their contents differ.

        Returns True only when ``dest`` was rewritten (or, in dry-run mode, would
        be). A missing ``source`` is skipped and ``dest`` is left alone; a missing
        ``dest`` compares as empty.
        Raises ConfigIOError on any other read or write failure.
        """
        if not os.path.exists(source):
            return False

        current = read_bytes(dest, missing_ok=True)
        try:
            desired = read_bytes(source)
        except FileNotFoundError as e:
            raise ConfigIOError(source, e) from e

        if current == desired:
            self.events.info(f"{dest} already configured", subsystem=subsystem, unit=unit)
            return False

        text = desired.decode("utf-8", errors="replace")
        if self.dry_run:
            self.events.info(f"Dry run, would update {dest}:\n{text}", subsystem=subsystem, unit=unit)
            return True

        write_atomic(dest, desired)
        self.events.info(f"Updating {dest}:\n{text}", subsystem=subsystem, unit=unit)
        return True
