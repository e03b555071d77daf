"""Scheduler service - fires scheduled notification triggers.

Each check-in category has an hourly job at minute 0 UTC. The job asks the
dispatch entry point for zones currently at the category's local hour, so
one job covers every zone in the catalog as the day moves around the globe.
A daily job removes device tokens older than the staleness limit.
"""
import logging
from datetime import datetime
from typing import Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from ..config import settings
from ..models import NotificationCategory
from .dispatcher import BatchDispatcher
from .push_sender import FcmPushProvider, PushProvider
from .recipients import RecipientSelector
from .tokens import TokenLifecycleManager
from .trigger import TriggerResult, run_dispatch

logger = logging.getLogger(__name__)


class SchedulerService:
    """Runs the scheduled check-in sends and token housekeeping."""

    def __init__(
        self,
        provider: Optional[PushProvider] = None,
        selector: Optional[RecipientSelector] = None,
        token_manager: Optional[TokenLifecycleManager] = None,
    ):
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._running = False
        self.provider = provider or FcmPushProvider(
            credentials_path=settings.firebase_credentials_path,
            dry_run=settings.fcm_dry_run,
        )
        self.selector = selector or RecipientSelector()
        self.token_manager = token_manager or TokenLifecycleManager()
        self.schedules: Dict[NotificationCategory, int] = {
            NotificationCategory.MORNING_CHECK_IN: settings.morning_hour,
            NotificationCategory.EVENING_CHECK_IN: settings.evening_hour,
        }

    def start(self):
        """Start the scheduler."""
        if self._running:
            return

        self.scheduler = AsyncIOScheduler(timezone="UTC")

        for category, hour in self.schedules.items():
            self.scheduler.add_job(
                self.run_scheduled,
                trigger=CronTrigger(minute=0, timezone="UTC"),
                args=[category, hour],
                id=f"notify_{category.column_name}",
                replace_existing=True,
                max_instances=1,
                misfire_grace_time=settings.trigger_window_minutes * 60,
            )

        self.scheduler.add_job(
            self.cleanup_stale_tokens,
            trigger=CronTrigger(hour=3, minute=30, timezone="UTC"),
            id="cleanup_stale_tokens",
            replace_existing=True,
            max_instances=1,
        )

        self.scheduler.start()
        self._running = True
        schedule_desc = ", ".join(f"{c.value}@{h}h" for c, h in self.schedules.items())
        logger.info(f"Scheduler started ({schedule_desc})")

    def stop(self):
        """Stop the scheduler."""
        if self.scheduler and self._running:
            self.scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")

    async def trigger(
        self,
        category: NotificationCategory,
        target_hour: int,
        now: Optional[datetime] = None,
    ) -> TriggerResult:
        """Run one dispatch and hand eviction candidates to the token manager."""
        result = await run_dispatch(
            category,
            target_hour,
            now,
            selector=self.selector,
            dispatcher=BatchDispatcher(self.provider),
        )
        if settings.evict_invalid_tokens and result.eviction_candidates:
            result.evicted = await self.token_manager.evict_invalid(result.eviction_candidates)
        return result

    async def run_scheduled(self, category: NotificationCategory, target_hour: int):
        """Scheduled job wrapper. Errors are logged; the next tick retries."""
        try:
            await self.trigger(category, target_hour)
        except Exception as e:
            logger.error(f"Error sending {NotificationCategory(category).value} notifications: {e}")

    async def cleanup_stale_tokens(self):
        """Delete tokens older than the staleness limit."""
        try:
            await self.token_manager.evict_stale()
        except Exception as e:
            logger.error(f"Error cleaning up stale tokens: {e}")


# Global instance
scheduler_service = SchedulerService()
