"""Command-line entry point for running dispatches outside the web service.

    python -m fibrodiario.cli trigger --category evening-check-in --hour 20
    python -m fibrodiario.cli zones --hour 8
    python -m fibrodiario.cli evict-stale
"""
import argparse
import asyncio
import logging
import sys
from datetime import datetime, timezone

from .config import settings
from .models import NotificationCategory

logger = logging.getLogger(__name__)


def _parse_now(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


async def _trigger(args) -> int:
    from .database import init_db, close_db
    from .services.scheduler import SchedulerService

    await init_db()
    try:
        result = await SchedulerService().trigger(
            NotificationCategory(args.category), args.hour, _parse_now(args.now)
        )
    finally:
        await close_db()

    print(f"zones: {', '.join(result.zones) or '-'}")
    print(f"success: {result.success_count}  failed: {result.failed_count}")
    print(f"invalid tokens: {len(result.eviction_candidates)}  removed: {result.evicted}")
    return 0


async def _evict_stale(args) -> int:
    from .database import init_db, close_db
    from .services.tokens import TokenLifecycleManager

    await init_db()
    try:
        count = await TokenLifecycleManager().evict_stale()
    finally:
        await close_db()
    print(f"removed {count} stale token(s)")
    return 0


def _zones(args) -> int:
    from .services.timezones import TimeWindowResolver

    now = _parse_now(args.now) or datetime.now(timezone.utc)
    zones = TimeWindowResolver().resolve(args.hour, now)
    for zone in sorted(zones):
        print(zone)
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="FibroDiário notification dispatch")
    parser.add_argument("--log-level", default=settings.log_level, help="Logging level")
    sub = parser.add_subparsers(dest="command", required=True)

    trigger = sub.add_parser("trigger", help="Send a notification category now")
    trigger.add_argument(
        "--category",
        required=True,
        choices=[c.value for c in NotificationCategory],
    )
    trigger.add_argument("--hour", type=int, required=True, help="Target local hour (0-23)")
    trigger.add_argument("--now", help="Override current time (ISO-8601, default UTC)")

    zones = sub.add_parser("zones", help="List catalog zones currently at an hour")
    zones.add_argument("--hour", type=int, required=True)
    zones.add_argument("--now", help="Override current time (ISO-8601, default UTC)")

    sub.add_parser("evict-stale", help="Remove device tokens past the staleness limit")

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.command == "trigger":
        return asyncio.run(_trigger(args))
    if args.command == "evict-stale":
        return asyncio.run(_evict_stale(args))
    return _zones(args)


if __name__ == "__main__":
    sys.exit(main())
