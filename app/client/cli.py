"""
doglog-client — log behavior events from a terminal, offline first.

  doglog-client log positive --intensity 4 --tags leash,walk --notes "loose leash"
  doglog-client log negative --offline      # queue only, no network
  doglog-client sync                         # upload the queue
  doglog-client status                       # pending count
  doglog-client plan 3                       # generate steps for goal 3
  doglog-client notice                       # show the last AI notice once

Output is JSON on stdout. Exit code 0 on success, 1 when the server could
not be reached (events stay queued), 2 on bad input.
"""
from __future__ import annotations

import argparse
import json
import sys
from typing import Any, Optional

import httpx

from app.client.goals import request_step_plan
from app.client.queue import VALENCES, EventQueueStore
from app.client.storage import LocalStorage, SessionNoticeStore
from app.client.sync import SyncClient, SyncResult, SyncStatus
from app.core.config import ClientSettings
from app.core.logging import configure_logging


def _print_json(obj: Any) -> None:
    json.dump(obj, sys.stdout, ensure_ascii=False, indent=2, sort_keys=True)
    sys.stdout.write("\n")


def _result_dict(result: Optional[SyncResult]) -> Optional[dict[str, Any]]:
    if result is None:
        return None
    return {
        "status": result.status.value,
        "sent": result.sent,
        "pending": result.pending,
        "error": result.error,
    }


def _exit_code(result: Optional[SyncResult]) -> int:
    return 1 if result is not None and result.status == SyncStatus.offline else 0


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def _cmd_log(args: argparse.Namespace, client: SyncClient, notices: SessionNoticeStore) -> int:
    client.online = not args.offline
    try:
        event, result = client.queue_event(
            args.valence,
            intensity=args.intensity,
            tags=args.tags,
            notes=args.notes,
        )
    except ValueError as exc:
        _print_json({"ok": False, "error": str(exc)})
        return 2
    _print_json({
        "ok": True,
        "event": event,
        "sync": _result_dict(result),
        "pending": client.queue.pending_count(),
    })
    return _exit_code(result)


def _cmd_sync(args: argparse.Namespace, client: SyncClient, notices: SessionNoticeStore) -> int:
    result = client.sync()
    _print_json({"ok": result.status != SyncStatus.offline, "sync": _result_dict(result)})
    return _exit_code(result)


def _cmd_status(args: argparse.Namespace, client: SyncClient, notices: SessionNoticeStore) -> int:
    _print_json({"ok": True, "pending": client.queue.pending_count()})
    return 0


def _cmd_plan(args: argparse.Namespace, client: SyncClient, notices: SessionNoticeStore) -> int:
    try:
        body = request_step_plan(client.http, notices, args.goal_id)
    except httpx.HTTPError as exc:
        _print_json({"ok": False, "error": str(exc)})
        return 1
    _print_json({"ok": True, **body})
    return 0


def _cmd_notice(args: argparse.Namespace, client: SyncClient, notices: SessionNoticeStore) -> int:
    _print_json({"ok": True, "notice": notices.consume()})
    return 0


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="doglog-client", description=__doc__.splitlines()[1])
    parser.add_argument("--api-url", help="Server base URL (default: DOGLOG_API_URL)")
    parser.add_argument("--data-dir", help="Local state directory (default: DOGLOG_DATA_DIR)")
    parser.add_argument("--log-level", default="WARNING")
    sub = parser.add_subparsers(dest="command", required=True)

    log = sub.add_parser("log", help="Record a behavior event")
    log.add_argument("valence", choices=VALENCES)
    log.add_argument("--intensity", type=int, default=3, help="1 (mild) to 5 (strong)")
    log.add_argument("--tags", default="", help="Comma-separated, e.g. leash,walk")
    log.add_argument("--notes")
    log.add_argument("--offline", action="store_true", help="Queue only; do not try to sync")
    log.set_defaults(func=_cmd_log)

    sub.add_parser("sync", help="Upload queued events").set_defaults(func=_cmd_sync)
    sub.add_parser("status", help="Show the pending count").set_defaults(func=_cmd_status)

    plan = sub.add_parser("plan", help="Generate training steps for a goal")
    plan.add_argument("goal_id", type=int)
    plan.set_defaults(func=_cmd_plan)

    sub.add_parser("notice", help="Show the last AI status notice once").set_defaults(func=_cmd_notice)
    return parser


def main(argv: Optional[list[str]] = None, http: Optional[httpx.Client] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, stream=sys.stderr)
    settings = ClientSettings()

    storage = LocalStorage(args.data_dir or settings.DATA_DIR)
    queue = EventQueueStore(storage)
    notices = SessionNoticeStore(storage)

    owns_http = http is None
    if http is None:
        http = httpx.Client(base_url=args.api_url or settings.API_URL, timeout=settings.TIMEOUT_SECONDS)
    try:
        return args.func(args, SyncClient(queue, http), notices)
    finally:
        if owns_http:
            http.close()


if __name__ == "__main__":
    sys.exit(main())
