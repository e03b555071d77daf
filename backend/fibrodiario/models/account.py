"""Account model - a diary user and their notification preferences."""
import enum
from dataclasses import dataclass
from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.orm import relationship

from ..database import Base


class NotificationCategory(str, enum.Enum):
    """Notification types a user can opt in or out of."""

    MORNING_CHECK_IN = "morning-check-in"
    EVENING_CHECK_IN = "evening-check-in"
    MEDICATION_REMINDER = "medication-reminder"
    HEALTH_INSIGHT = "health-insight"
    EMERGENCY_ALERT = "emergency-alert"

    @property
    def column_name(self) -> str:
        """Name of the Account column holding this category's opt-in flag."""
        return self.value.replace("-", "_")


class Account(Base):
    """Registered user of the diary."""

    __tablename__ = "accounts"

    id = Column(String, primary_key=True)
    subscription_active = Column(Boolean, nullable=False, default=False)
    notifications_enabled = Column(Boolean, nullable=False, default=True)

    # Per-category opt-in. NULL = never set, read as enabled
    morning_check_in = Column(Boolean, nullable=True, default=True)
    evening_check_in = Column(Boolean, nullable=True, default=True)
    medication_reminder = Column(Boolean, nullable=True, default=True)
    health_insight = Column(Boolean, nullable=True, default=True)
    emergency_alert = Column(Boolean, nullable=True, default=True)

    timezone = Column(String, nullable=True, index=True)  # IANA name
    timezone_offset = Column(Integer, nullable=True)  # minutes, as reported by the client
    timezone_auto_detected = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    device_tokens = relationship(
        "DeviceToken",
        back_populates="account",
        cascade="all, delete-orphan",
        order_by="DeviceToken.issued_at",
    )

    @classmethod
    def preference_column(cls, category: NotificationCategory):
        return getattr(cls, NotificationCategory(category).column_name)

    @property
    def preferences(self) -> "NotificationPreferences":
        return NotificationPreferences.from_account(self)


@dataclass
class NotificationPreferences:
    """Fixed-shape view of an account's notification switches."""

    enabled: bool = True
    morning_check_in: bool = True
    evening_check_in: bool = True
    medication_reminder: bool = True
    health_insight: bool = True
    emergency_alert: bool = True

    @classmethod
    def from_account(cls, account: Account) -> "NotificationPreferences":
        values = {}
        for category in NotificationCategory:
            stored = getattr(account, category.column_name)
            values[category.column_name] = True if stored is None else bool(stored)
        return cls(enabled=bool(account.notifications_enabled), **values)
