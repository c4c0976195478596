"""Command line entry point.

Usage:
  claude-monitor serve [--port 9147] [--session-stale 30] [--no-journal]
  claude-monitor hook < payload.json
  claude-monitor dismiss <session-id>
  claude-monitor clear
"""
from __future__ import annotations

import argparse
import json
import logging
import sys

import requests

from claude_monitor import config


def _apply_serve_overrides(args: argparse.Namespace) -> None:
    overrides = {
        "HOST": args.host,
        "PORT": args.port,
        "SESSION_STALE_SECONDS": args.session_stale,
        "AGENT_STALE_SECONDS": args.agent_stale,
        "AGENT_REMOVE_SECONDS": args.agent_remove,
        "SWEEP_INTERVAL_SECONDS": args.sweep_interval,
        "RESCAN_INTERVAL_SECONDS": args.rescan_interval,
    }
    for name, value in overrides.items():
        if value is not None:
            setattr(config, name, value)
    if args.permission_keywords:
        keywords = tuple(k.strip().lower() for k in args.permission_keywords.split(",") if k.strip())
        if keywords:
            config.PERMISSION_KEYWORDS = keywords
    if args.no_journal:
        config.JOURNAL_ENABLED = False
    if args.no_watch:
        config.FILE_WATCH_ENABLED = False


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    _apply_serve_overrides(args)
    uvicorn.run("claude_monitor.main:app", host=config.HOST, port=config.PORT, log_level=args.log_level.lower())
    return 0


def _hook(args: argparse.Namespace) -> int:
    from claude_monitor.hook import run_hook

    return run_hook(transport=args.transport)


def _operator_request(method: str, path: str, url: str) -> int:
    try:
        response = requests.request(method, f"{url.rstrip('/')}{path}", timeout=config.HOOK_TIMEOUT_SECONDS)
        response.raise_for_status()
    except requests.RequestException as e:
        print(f"Request failed: {e}", file=sys.stderr)
        return 1
    print(json.dumps(response.json(), indent=2))
    return 0


def _dismiss(args: argparse.Namespace) -> int:
    return _operator_request("DELETE", f"/api/sessions/{args.session_id}", args.url)


def _clear(args: argparse.Namespace) -> int:
    return _operator_request("DELETE", "/api/sessions", args.url)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="claude-monitor", description="Track live Claude CLI sessions.")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the monitor backend")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)
    serve.add_argument("--session-stale", type=float, default=None, help="Seconds before an active session idles")
    serve.add_argument("--agent-stale", type=float, default=None, help="Seconds before an active agent is force-completed")
    serve.add_argument("--agent-remove", type=float, default=None, help="Seconds a completed agent stays visible")
    serve.add_argument("--sweep-interval", type=float, default=None)
    serve.add_argument("--rescan-interval", type=float, default=None)
    serve.add_argument("--permission-keywords", default="", help="Comma-separated permission keywords")
    serve.add_argument("--no-journal", action="store_true", help="Do not persist or replay events")
    serve.add_argument("--no-watch", action="store_true", help="Rely on the periodic spool rescan only")
    serve.set_defaults(func=_serve)

    hook = subparsers.add_parser("hook", help="Deliver one hook payload read from stdin")
    hook.add_argument("--transport", choices=["http", "file", "auto"], default=None)
    hook.set_defaults(func=_hook)

    dismiss = subparsers.add_parser("dismiss", help="Remove one session from the display")
    dismiss.add_argument("session_id")
    dismiss.add_argument("--url", default=config.MONITOR_URL)
    dismiss.set_defaults(func=_dismiss)

    clear = subparsers.add_parser("clear", help="Remove all sessions")
    clear.add_argument("--url", default=config.MONITOR_URL)
    clear.set_defaults(func=_clear)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level))
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
