from __future__ import annotations

import argparse
import json
import sys

import requests

from nbr.db import EventLog
from nbr.hostexec import HostCommandRunner, NsenterRunner, RecordingRunner
from nbr.reconciler import Orchestrator, wait_forever
from nbr.settings import Settings, settings
from nbr.subsystems import default_subsystems

COMMANDS = ("init", "serve", "events", "status")


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def run_init(events: EventLog, cfg: Settings, runner: HostCommandRunner | None = None, dry_run: bool = False) -> int:
    """Reconcile the node. A dry run compares files and plans commands but changes nothing."""
    if runner is None:
        runner = RecordingRunner() if dry_run else NsenterRunner(cfg)
    try:
        subsystems = default_subsystems(cfg)
    except ValueError as e:
        events.error(f"Invalid configuration: {e}")
        return 1

    result = Orchestrator(subsystems, runner, events, dry_run=dry_run).run()
    if dry_run and isinstance(runner, RecordingRunner):
        for cmd in runner.commands:
            events.info(f"Dry run, not executed: {cmd.action}: {cmd}")
    return 0 if result.ok else 1


def serve(cfg: Settings) -> int:
    import uvicorn

    from main import app

    uvicorn.run(app, host=cfg.api_host, port=cfg.api_port)
    return 0


def _subcommand(argv: list[str]) -> int | None:
    """Index of the subcommand: the first token that is not a flag, if it is a known one."""
    for i, tok in enumerate(argv):
        if tok.startswith("-"):
            continue
        return i if tok in COMMANDS else None
    return None


def main(argv: list[str] | None = None, cfg: Settings | None = None) -> int:
    cfg = cfg or settings
    p = argparse.ArgumentParser(prog="nbr", description="Node bootstrap reconciler")
    sub = p.add_subparsers(dest="cmd")

    s_init = sub.add_parser("init", help="Install node configs and restart changed services")
    s_init.add_argument("--dry-run", action="store_true", help="Compare files and log host commands without applying")

    sub.add_parser("serve", help="Run the read-only status API")

    s_ev = sub.add_parser("events", help="Show journal events")
    s_ev.add_argument("--limit", type=int, default=20)

    s_st = sub.add_parser("status", help="Query a running status API")
    s_st.add_argument("--api", default=f"http://localhost:{cfg.api_port}", help="API base URL")

    argv = list(sys.argv[1:] if argv is None else argv)
    events = EventLog(cfg.db_path)
    events.init()

    # Without a known subcommand this is the steady-state sidecar: stay alive.
    idx = _subcommand(argv)
    if idx is None:
        events.info("Host successfully configured")
        wait_forever()
        return 0

    # Flags meant for other tooling (e.g. logging verbosity) are ignored.
    try:
        args, _unknown = p.parse_known_args(argv[idx:])
    except SystemExit as e:
        return 0 if e.code in (0, None) else 1

    if args.cmd == "init":
        return run_init(events, cfg, dry_run=args.dry_run)

    if args.cmd == "serve":
        return serve(cfg)

    if args.cmd == "events":
        _print(events.latest(args.limit))
        return 0

    if args.cmd == "status":
        try:
            r = requests.get(f"{args.api.rstrip('/')}/status", timeout=10)
            body = r.json()
        except requests.RequestException as e:
            print(f"status: {type(e).__name__}: {e}", file=sys.stderr)
            return 1
        _print(body)
        return 0 if r.ok else 1

    return 1


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
