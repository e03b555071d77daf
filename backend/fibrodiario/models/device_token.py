"""DeviceToken model - push registration tokens per account."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from ..database import Base

PLATFORMS = ("android", "ios", "web")


class DeviceToken(Base):
    """Provider-issued token for one app installation.

    The token string is unique table-wide, so a token is only ever owned
    by one account at a time.
    """

    __tablename__ = "device_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(String, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    token = Column(String, unique=True, nullable=False, index=True)
    platform = Column(String, nullable=False, default="web")  # android, ios, web
    issued_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    last_active_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Device fingerprint - identifies the same device across re-registrations
    user_agent = Column(String, nullable=True)
    browser = Column(String, nullable=True)
    os = Column(String, nullable=True)

    account = relationship("Account", back_populates="device_tokens")
