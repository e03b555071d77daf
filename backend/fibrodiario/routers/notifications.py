"""Notification trigger API endpoint.

Lets an external scheduler (Cloud Scheduler, cron + curl) or an operator
fire a dispatch without the in-process scheduler.
"""
import logging

from fastapi import APIRouter, Depends

from ..schemas import TriggerRequest, TriggerResponse
from ..services.scheduler import SchedulerService, scheduler_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


def get_scheduler() -> SchedulerService:
    return scheduler_service


@router.post("/trigger", response_model=TriggerResponse)
async def trigger_notifications(
    request: TriggerRequest,
    scheduler: SchedulerService = Depends(get_scheduler),
):
    """Send a category to every zone currently at ``target_hour``."""
    result = await scheduler.trigger(request.category, request.target_hour)
    return TriggerResponse(
        success_count=result.success_count,
        failed_count=result.failed_count,
        zones=result.zones,
        evicted=result.evicted,
    )
