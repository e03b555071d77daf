"""Pydantic schemas for API request/response models."""
from .device import (
    DeviceRegisterRequest,
    DeviceRefreshRequest,
    DeviceTouchRequest,
    DeviceTokenResponse,
    DeviceRegisterResponse,
    DeviceRefreshResponse,
)
from .account import (
    PreferencesUpdate,
    PreferencesResponse,
    TimezoneUpdate,
    AccountResponse,
)
from .notification import (
    TriggerRequest,
    TriggerResponse,
)

__all__ = [
    "DeviceRegisterRequest",
    "DeviceRefreshRequest",
    "DeviceTouchRequest",
    "DeviceTokenResponse",
    "DeviceRegisterResponse",
    "DeviceRefreshResponse",
    "PreferencesUpdate",
    "PreferencesResponse",
    "TimezoneUpdate",
    "AccountResponse",
    "TriggerRequest",
    "TriggerResponse",
]
