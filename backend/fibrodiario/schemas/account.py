"""Account notification settings schemas for API."""
from typing import List, Optional
from pydantic import BaseModel, Field

from .device import DeviceTokenResponse


class PreferencesUpdate(BaseModel):
    """Partial update of notification switches. Omitted fields are unchanged."""
    enabled: Optional[bool] = None
    morning_check_in: Optional[bool] = None
    evening_check_in: Optional[bool] = None
    medication_reminder: Optional[bool] = None
    health_insight: Optional[bool] = None
    emergency_alert: Optional[bool] = None


class PreferencesResponse(BaseModel):
    enabled: bool
    morning_check_in: bool
    evening_check_in: bool
    medication_reminder: bool
    health_insight: bool
    emergency_alert: bool

    class Config:
        from_attributes = True


class TimezoneUpdate(BaseModel):
    """Timezone reported by the client."""
    timezone: str = Field(..., min_length=1)
    timezone_offset: Optional[int] = None
    auto_detected: bool = True


class AccountResponse(BaseModel):
    id: str
    subscription_active: bool
    timezone: Optional[str] = None
    preferences: PreferencesResponse
    devices: List[DeviceTokenResponse] = []
