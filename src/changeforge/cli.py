"""Command-line interface."""

from __future__ import annotations

import argparse
import json
from pathlib import Path
import signal
import sys
import threading
from typing import Any

from changeforge.cancel import CancelToken
from changeforge.config import Settings
from changeforge.errors import ChangeforgeError, ValidationError
from changeforge.factory import build_orchestrator
from changeforge.models import ExecutionOptions, Task
from changeforge.util.logging import configure_logging


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="changeforge CLI")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP service")
    serve.add_argument("--host", dest="host")
    serve.add_argument("--port", type=int, dest="port")

    run = sub.add_parser("run", help="Run one batch and print the report")
    run.add_argument("--objective", required=True, dest="objective")
    run.add_argument("--tasks", dest="tasks", help="JSON file with a list of tasks")
    run.add_argument("--constraints", dest="constraints", help="JSON object of policy constraints")
    run.add_argument("--auto-merge", action="store_true", dest="auto_merge")
    run.add_argument("--enable-pages", action="store_true", dest="enable_pages")
    run.add_argument("--strict-dependencies", action="store_true", dest="strict_dependencies")
    return parser.parse_args(argv)


def load_tasks(path: str) -> list[Task]:
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(payload, dict):
        payload = payload.get("tasks", [])
    if not isinstance(payload, list):
        raise ValidationError("Tasks file must contain a list or an object with a 'tasks' list.")
    return [Task.model_validate(item) for item in payload]


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    data: dict[str, Any] = settings.model_dump()
    if getattr(args, "host", None):
        data["host"] = args.host
    if getattr(args, "port", None):
        data["port"] = args.port
    if getattr(args, "strict_dependencies", False):
        data["strict_dependencies"] = True
    return Settings(**data)


def _install_cancel_handler(token: CancelToken) -> Any:
    if threading.current_thread() is not threading.main_thread():
        return None

    def _handle(_signum: int, _frame: Any) -> None:
        print("Cancelling after the current task...", file=sys.stderr)
        token.cancel()

    return signal.signal(signal.SIGINT, _handle)


def run_batch(args: argparse.Namespace, settings: Settings) -> int:
    orchestrator = build_orchestrator(settings)
    execution = ExecutionOptions(auto_merge=args.auto_merge, enable_pages=args.enable_pages)
    constraints = json.loads(args.constraints) if args.constraints else {}
    token = CancelToken()
    previous = _install_cancel_handler(token)
    try:
        if args.tasks:
            report = orchestrator.run_tasks(
                args.objective, load_tasks(args.tasks), execution, constraints, cancel=token
            )
        else:
            report = orchestrator.run_agent(args.objective, constraints, execution, cancel=token)
    finally:
        if previous is not None:
            signal.signal(signal.SIGINT, previous)
    print(json.dumps(report.model_dump(mode="json", exclude_none=True), indent=2))
    return 0


def serve(settings: Settings) -> int:
    import uvicorn

    from changeforge.api import create_app

    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings = apply_overrides(Settings(), args)
    configure_logging(settings.log_level)
    try:
        if args.command == "serve":
            return serve(settings)
        return run_batch(args, settings)
    except ChangeforgeError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
