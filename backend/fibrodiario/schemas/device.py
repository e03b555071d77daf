"""Device token schemas for API."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class DeviceRegisterRequest(BaseModel):
    """Register a push token after notification permission is granted."""
    account_id: str = Field(..., min_length=1)
    token: str = Field(..., min_length=1)
    platform: Optional[str] = Field(None, pattern="^(android|ios|web)$")
    user_agent: str = ""
    browser: Optional[str] = None
    os: Optional[str] = None


class DeviceRefreshRequest(BaseModel):
    """Swap the device's current token for a newly issued one."""
    account_id: str = Field(..., min_length=1)
    new_token: str = Field(..., min_length=1)
    # Token being replaced; identifies the device when no user agent is sent
    old_token: Optional[str] = None
    platform: Optional[str] = Field(None, pattern="^(android|ios|web)$")
    user_agent: str = ""
    browser: Optional[str] = None
    os: Optional[str] = None


class DeviceTouchRequest(BaseModel):
    account_id: str = Field(..., min_length=1)
    token: str = Field(..., min_length=1)


class DeviceTokenResponse(BaseModel):
    """Device token in API responses."""
    token: str
    platform: str
    issued_at: datetime
    last_active_at: datetime
    browser: Optional[str] = None
    os: Optional[str] = None

    class Config:
        from_attributes = True


class DeviceRegisterResponse(BaseModel):
    success: bool
    message: str
    device: Optional[DeviceTokenResponse] = None


class DeviceRefreshResponse(BaseModel):
    success: bool
    new_token: Optional[str] = None
    message: str
