"""Notification trigger schemas for API."""
from typing import List
from pydantic import BaseModel, Field

from ..models import NotificationCategory


class TriggerRequest(BaseModel):
    """Manual or externally scheduled trigger invocation."""
    category: NotificationCategory
    target_hour: int = Field(..., ge=0, le=23)


class TriggerResponse(BaseModel):
    success_count: int
    failed_count: int
    zones: List[str] = []
    evicted: int = 0
