"""Database models."""
from .account import Account, NotificationCategory, NotificationPreferences
from .device_token import DeviceToken, PLATFORMS

__all__ = ["Account", "NotificationCategory", "NotificationPreferences", "DeviceToken", "PLATFORMS"]
