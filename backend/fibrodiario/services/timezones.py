"""Time window resolver - which zones are at a given local hour right now.

The external scheduler fires several times per hour. Sends only happen in
the first ``window_minutes`` of the hour, so repeated firings within one
hour select nothing after the window closes.
"""
import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Set
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..config import settings

logger = logging.getLogger(__name__)


class TimeWindowResolver:
    """Resolve the catalog zones currently at a target local hour."""

    def __init__(self, catalog: Optional[Iterable[str]] = None, window_minutes: Optional[int] = None):
        zones = settings.zone_catalog if catalog is None else catalog
        self.catalog: List[str] = list(dict.fromkeys(zones))
        self.window_minutes = settings.trigger_window_minutes if window_minutes is None else window_minutes

    def with_zones(self, extra: Iterable[str]) -> "TimeWindowResolver":
        """Return a resolver whose catalog also contains ``extra`` zones."""
        return TimeWindowResolver(
            catalog=self.catalog + [z for z in extra if z],
            window_minutes=self.window_minutes,
        )

    def in_window(self, now: datetime) -> bool:
        return _as_utc(now).minute < self.window_minutes

    def local_hour(self, zone: str, now: datetime) -> Optional[int]:
        """Local hour of ``zone`` at ``now``, or None if the zone can't be loaded."""
        try:
            return _as_utc(now).astimezone(ZoneInfo(zone)).hour
        except (ZoneInfoNotFoundError, ValueError, OSError) as e:
            logger.warning(f"Skipping unresolvable zone {zone!r}: {e}")
            return None

    def resolve(self, target_hour: int, now: datetime) -> Set[str]:
        """Zones whose local hour at ``now`` equals ``target_hour``.

        Args:
            target_hour: Hour of day, 0-23, in the recipient's local time
            now: Current instant. Naive datetimes are taken as UTC.

        Returns:
            Set of IANA zone names. Empty outside the trigger window.
        """
        if not 0 <= target_hour <= 23:
            raise ValueError(f"target_hour must be between 0 and 23, got {target_hour}")

        if not self.in_window(now):
            logger.info(
                f"Outside send window (first {self.window_minutes} minutes of the hour), "
                f"no zones selected"
            )
            return set()

        matching = {zone for zone in self.catalog if self.local_hour(zone, now) == target_hour}
        for zone in sorted(matching):
            logger.debug(f"Zone {zone} is at {target_hour}h local")

        logger.info(f"Found {len(matching)} zone(s) at {target_hour}h local")
        return matching


def _as_utc(now: datetime) -> datetime:
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)
