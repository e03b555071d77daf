"""Dispatch entry point for scheduled notifications.

``run_dispatch`` is a function of (category, target_hour, now) plus the
injected selector, dispatcher and resolver, so any scheduler (APScheduler,
cron, a queue consumer, the CLI) can call it. It never writes to the
account store.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from ..config import settings
from ..models import NotificationCategory
from .dispatcher import BatchDispatcher
from .payloads import template_for
from .reconciler import FailureReconciler
from .recipients import RecipientSelector, flatten_tokens
from .timezones import TimeWindowResolver

logger = logging.getLogger(__name__)


@dataclass
class TriggerResult:
    """Outcome of one trigger invocation."""
    category: NotificationCategory
    target_hour: int
    success_count: int = 0
    failed_count: int = 0
    zones: List[str] = field(default_factory=list)
    recipients: int = 0
    eviction_candidates: List[str] = field(default_factory=list)
    # Rows removed by the caller after dispatch; run_dispatch leaves it 0
    evicted: int = 0


async def run_dispatch(
    category: NotificationCategory,
    target_hour: int,
    now: Optional[datetime] = None,
    *,
    selector: RecipientSelector,
    dispatcher: BatchDispatcher,
    resolver: Optional[TimeWindowResolver] = None,
    reconciler: Optional[FailureReconciler] = None,
    zone_discovery: Optional[bool] = None,
) -> TriggerResult:
    """Send the ``category`` notification to accounts at ``target_hour`` local time.

    Recipient store errors propagate; the next scheduled trigger retries.
    """
    category = NotificationCategory(category)
    now = now or datetime.now(timezone.utc)
    resolver = resolver or TimeWindowResolver()
    reconciler = reconciler or FailureReconciler()
    if zone_discovery is None:
        zone_discovery = settings.zone_discovery

    result = TriggerResult(category=category, target_hour=target_hour)
    logger.info(f"Trigger {category.value} at {target_hour}h (now={now.isoformat()})")

    if not resolver.in_window(now):
        # Nothing to send, skip the store round trip for discovery
        resolver.resolve(target_hour, now)
        return result

    if zone_discovery:
        resolver = resolver.with_zones(await selector.distinct_timezones())

    zones = resolver.resolve(target_hour, now)
    result.zones = sorted(zones)
    if not zones:
        logger.info(f"No zones at {target_hour}h right now")
        return result

    recipients = await selector.select(category, zones)
    result.recipients = len(recipients)
    tokens = flatten_tokens(recipients)
    if not tokens:
        logger.info(f"No recipients for {category.value} in {result.zones}")
        return result

    template = template_for(category)
    dispatch_result = await dispatcher.dispatch(
        tokens,
        template.content(),
        template.data(now),
        template.overrides(),
    )

    result.success_count = dispatch_result.success_count
    result.failed_count = dispatch_result.failure_count
    result.eviction_candidates = reconciler.reconcile(dispatch_result.outcomes)

    logger.info(
        f"Trigger {category.value} done: {result.recipients} account(s), "
        f"{result.success_count} success, {result.failed_count} failed, "
        f"{len(result.eviction_candidates)} token(s) to evict"
    )
    return result
