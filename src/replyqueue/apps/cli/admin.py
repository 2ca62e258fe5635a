from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from replyqueue.config import load_settings
from replyqueue.core.confirm.oracle import ConfirmationOracle
from replyqueue.core.queue.errors import QueueError
from replyqueue.core.queue.store import TaskStore


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Inspect and repair the reply task directory")
    parser.add_argument("--task-dir", default=None, help="Task directory (defaults to REPLYQUEUE_TASK_DIR)")
    parser.add_argument("--log-dir", default=None, help="Activity log directory (defaults to REPLYQUEUE_ACTIVITY_LOG_DIR)")
    parser.add_argument("--json", action="store_true", help="Print machine-readable JSON")
    sub = parser.add_subparsers(dest="command", required=True)

    list_cmd = sub.add_parser("list", help="List pending, claimed and quarantined tasks")
    list_cmd.add_argument("--state", choices=["pending", "claimed", "quarantined"], default=None)
    list_cmd.add_argument("--older-than", type=float, default=None, help="Only entries older than this many seconds")

    requeue_cmd = sub.add_parser("requeue", help="Return a stuck claimed task to pending")
    requeue_cmd.add_argument("lock_id")

    check_cmd = sub.add_parser("has-reply", help="Ask the activity log whether a reply was seen")
    check_cmd.add_argument("chat_id")
    check_cmd.add_argument("author_id")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    settings = load_settings()
    task_dir = Path(args.task_dir).expanduser() if args.task_dir else settings.resolved_task_dir
    log_dir = Path(args.log_dir).expanduser() if args.log_dir else settings.resolved_activity_log_dir

    if args.command == "list":
        store = TaskStore(task_dir, default_account=settings.default_account)
        entries = [
            entry
            for entry in store.list_entries()
            if (args.state is None or entry.state == args.state)
            and (args.older_than is None or entry.age_s > args.older_than)
        ]
        if args.json:
            print(json.dumps([entry.model_dump() for entry in entries], ensure_ascii=False, indent=2))
        else:
            for entry in entries:
                print(f"{entry.state:<11} {entry.age_s:>10.0f}s  {entry.name}")
            print(f"{len(entries)} entries in {task_dir}")
        return 0

    if args.command == "requeue":
        store = TaskStore(task_dir, default_account=settings.default_account)
        try:
            changed = store.requeue(args.lock_id)
        except QueueError as exc:
            print(f"error: {exc}", file=sys.stderr)
            return 2
        print("requeued" if changed else "nothing to requeue")
        return 0

    oracle = ConfirmationOracle(
        log_dir,
        segments=settings.confirm_segments,
        tail_bytes=settings.confirm_tail_bytes,
        radius_bytes=settings.confirm_radius_bytes,
    )
    evidence = oracle.find_evidence(args.chat_id, args.author_id)
    if args.json:
        print(json.dumps({"exists": evidence is not None, "file": evidence.segment if evidence else None}))
    else:
        print(f"seen in {evidence.segment} ({evidence.strategy})" if evidence else "not seen")
    return 0 if evidence else 1


if __name__ == "__main__":
    raise SystemExit(main())
