#!/usr/bin/env python3
"""
StockFlow movement service management.

    python manage.py serve [--reload]    Run the API in the foreground
    python manage.py start | stop | restart | status
                                         Manage a background server via a PID file
    python manage.py migrate [--status | --verify] [--no-backup]
                                         Apply or inspect database migrations
"""

import argparse
import asyncio
import os
import signal
import socket
import subprocess
import sys
import time
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parent
PID_FILE = ROOT_DIR / ".stockflow.pid"
APP = "src.api.main:app"

DEFAULT_HOST = os.environ.get("API_HOST", "0.0.0.0")
DEFAULT_PORT = int(os.environ.get("API_PORT", "8000"))


def _alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except OSError:
        return False
    return True


def _running_pid() -> int | None:
    """PID from the pid file when that process still exists; stale files are removed."""
    try:
        pid = int(PID_FILE.read_text().strip())
    except (FileNotFoundError, ValueError):
        return None
    if _alive(pid):
        return pid
    PID_FILE.unlink(missing_ok=True)
    return None


def _port_in_use(port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        return sock.connect_ex(("127.0.0.1", port)) == 0


def _terminate(pid: int, grace: float = 5.0) -> bool:
    for sig, wait in ((signal.SIGTERM, grace), (signal.SIGKILL, 1.0)):
        try:
            os.kill(pid, sig)
        except ProcessLookupError:
            return True
        deadline = time.monotonic() + wait
        while time.monotonic() < deadline:
            if not _alive(pid):
                return True
            time.sleep(0.1)
    return not _alive(pid)


def _uvicorn(args: argparse.Namespace, reload: bool = False) -> list[str]:
    cmd = [sys.executable, "-m", "uvicorn", APP, "--host", args.host, "--port", str(args.port)]
    if reload:
        cmd.append("--reload")
    return cmd


def cmd_serve(args: argparse.Namespace) -> int:
    proc = subprocess.Popen(_uvicorn(args, reload=args.reload), cwd=ROOT_DIR)
    try:
        return proc.wait()
    except KeyboardInterrupt:
        proc.send_signal(signal.SIGTERM)
        return proc.wait()


def cmd_start(args: argparse.Namespace) -> int:
    pid = _running_pid()
    if pid is not None:
        print(f"Already running (PID {pid}).")
        return 1
    if _port_in_use(args.port):
        print(f"Port {args.port} is taken.")
        return 1

    proc = subprocess.Popen(_uvicorn(args), cwd=ROOT_DIR, start_new_session=True)
    PID_FILE.write_text(str(proc.pid))
    print(f"Started PID {proc.pid}: http://{args.host}:{args.port}/api/v1/movements")
    return 0


def cmd_stop(args: argparse.Namespace) -> int:
    pid = _running_pid()
    if pid is None:
        print("Not running.")
        return 0
    stopped = _terminate(pid)
    PID_FILE.unlink(missing_ok=True)
    print("Stopped." if stopped else f"PID {pid} did not exit.")
    return 0 if stopped else 1


def cmd_restart(args: argparse.Namespace) -> int:
    return cmd_stop(args) or cmd_start(args)


def cmd_status(args: argparse.Namespace) -> int:
    pid = _running_pid()
    if pid is not None:
        print(f"Running (PID {pid}).")
        return 0
    print(f"Not running; port {args.port} is {'busy' if _port_in_use(args.port) else 'free'}.")
    return 3


async def _migrate(args: argparse.Namespace) -> int:
    from src.infrastructure.storage.sqlite.migrations.migrator import (
        get_migration_status,
        initialize_database,
        verify_schema_integrity,
    )

    if args.status:
        status = await get_migration_status()
        print(f"database exists:  {status['exists']}")
        print(f"current version:  {status['current_version'] or '-'}")
        print(f"applied:          {', '.join(status['applied_migrations']) or '-'}")
        print(f"pending:          {', '.join(status['pending_migrations']) or '-'}")
        return 0

    if args.verify:
        checks = await verify_schema_integrity()
        for check in checks:
            extra = {k: v for k, v in check.items() if k not in ("check", "status")}
            print(f"[{check['status']}] {check['check']} {extra}")
        return 0 if all(c["status"] == "PASS" for c in checks) else 1

    results = await initialize_database(create_backup_before=not args.no_backup)
    if not results:
        print("Schema is up to date.")
    for result in results:
        mark = "ok" if result.success else "FAILED"
        print(f"v{result.version} {result.name}: {mark} ({result.execution_time_ms}ms)")
        if result.error:
            print(f"    {result.error}")
    return 0 if all(r.success for r in results) else 1


def cmd_migrate(args: argparse.Namespace) -> int:
    sys.path.insert(0, str(ROOT_DIR))
    return asyncio.run(_migrate(args))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="StockFlow movement service management",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    def bind(p: argparse.ArgumentParser) -> argparse.ArgumentParser:
        p.add_argument("--host", default=DEFAULT_HOST)
        p.add_argument("--port", type=int, default=DEFAULT_PORT)
        return p

    serve = bind(sub.add_parser("serve", help="Run in the foreground"))
    serve.add_argument("--reload", action="store_true", help="Restart on code changes")
    serve.set_defaults(func=cmd_serve)

    bind(sub.add_parser("start", help="Start in the background")).set_defaults(func=cmd_start)
    bind(sub.add_parser("restart", help="Stop, then start")).set_defaults(func=cmd_restart)
    sub.add_parser("stop", help="Stop the background server").set_defaults(func=cmd_stop)
    bind(sub.add_parser("status", help="Is the server up?")).set_defaults(func=cmd_status)

    migrate = sub.add_parser("migrate", help="Apply pending migrations")
    mode = migrate.add_mutually_exclusive_group()
    mode.add_argument("--status", action="store_true", help="List applied and pending versions")
    mode.add_argument("--verify", action="store_true", help="Run schema integrity checks")
    migrate.add_argument("--no-backup", action="store_true", help="Skip the pre-migration copy")
    migrate.set_defaults(func=cmd_migrate)
    return parser


def main() -> None:
    args = build_parser().parse_args()
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
