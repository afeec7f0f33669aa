#!/usr/bin/env python3
"""Run one scheduled chair report pass.

Intended usage: schedule via cron or a workflow runner in place of the HTTP
trigger.

Example:
    python tooling/scripts/run_report_scheduler.py
    python tooling/scripts/run_report_scheduler.py --preview
    python tooling/scripts/run_report_scheduler.py --force-replay --now 2025-03-10T08:00:00Z

`--force-replay` re-sends month-to-date reports without moving any cursor.
`--preview` prints what the next normal pass would deliver and sends nothing.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import datetime
from pathlib import Path

from loguru import logger


def _parse_instant(raw: str) -> datetime:
    text = raw.strip()
    if text.endswith(("Z", "z")):
        text = f"{text[:-1]}+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Not an ISO-8601 instant: {raw}") from exc


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Deliver due chair reports")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--force-replay",
        action="store_true",
        help="Re-send the month-to-date window for every eligible item; cursors are not updated.",
    )
    mode.add_argument(
        "--preview",
        action="store_true",
        help="Print the windows a normal run would deliver without sending anything.",
    )
    parser.add_argument(
        "--now",
        type=_parse_instant,
        default=None,
        help="Evaluate the schedule at this ISO-8601 instant instead of the current time.",
    )
    parser.add_argument(
        "--fail-on-error",
        action="store_true",
        help="Exit with status 1 when any item errored.",
    )
    return parser.parse_args()


async def _run(args: argparse.Namespace) -> int:
    repo_root = Path(__file__).resolve().parents[2]
    api_src = repo_root / "apps" / "api" / "src"
    if str(api_src) not in sys.path:
        sys.path.insert(0, str(api_src))

    from regdesk_api.core.kv import RedisKeyValueStore, create_redis_client  # type: ignore import-position
    from regdesk_api.core.settings import settings  # type: ignore import-position
    from regdesk_api.services.reports import (  # type: ignore import-position
        SchedulerMode,
        build_email_backend,
        build_scheduled_report_service,
    )

    store = RedisKeyValueStore(create_redis_client(settings.redis_url))
    try:
        email_backend = None if args.preview else build_email_backend(settings)
        service = build_scheduled_report_service(store, email_backend=email_backend)

        if args.preview:
            previews = await service.preview(now=args.now)
            print(json.dumps([preview.as_dict() for preview in previews], indent=2, default=str))
            logger.success(
                "Scheduled report preview completed",
                items=len(previews),
                due=sum(1 for preview in previews if preview.would_send),
            )
            return 0

        mode = SchedulerMode.FORCE_REPLAY if args.force_replay else SchedulerMode.NORMAL
        result = await service.run(now=args.now, mode=mode)
        logger.success(
            "Scheduled report run completed",
            mode=mode.value,
            sent=result.sent,
            skipped=result.skipped,
            errors=result.errors,
        )
        return result.errors
    finally:
        await store.close()


def main() -> int:
    args = parse_args()
    errors = asyncio.run(_run(args))
    if errors and args.fail_on_error:
        logger.error("Scheduled report run reported item errors", errors=errors)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
