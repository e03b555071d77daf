"""Account notification settings API endpoints."""
import logging
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy import select

from ..database import get_db
from ..models import Account, NotificationCategory
from ..schemas import (
    AccountResponse,
    DeviceTokenResponse,
    PreferencesResponse,
    PreferencesUpdate,
    TimezoneUpdate,
)
from ..utils.db_utils import retry_on_lock

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/accounts", tags=["accounts"])


async def _get_account(db: AsyncSession, account_id: str) -> Account:
    result = await db.execute(
        select(Account)
        .options(selectinload(Account.device_tokens))
        .where(Account.id == account_id)
    )
    account = result.scalar_one_or_none()
    if not account:
        raise HTTPException(status_code=404, detail="Account not found")
    return account


def _preferences_response(account: Account) -> PreferencesResponse:
    return PreferencesResponse.model_validate(account.preferences)


@router.get("/{account_id}", response_model=AccountResponse)
async def get_account(account_id: str, db: AsyncSession = Depends(get_db)):
    """Get an account's notification settings and devices."""
    account = await _get_account(db, account_id)
    return AccountResponse(
        id=account.id,
        subscription_active=bool(account.subscription_active),
        timezone=account.timezone,
        preferences=_preferences_response(account),
        devices=[DeviceTokenResponse.model_validate(t) for t in account.device_tokens],
    )


@router.patch("/{account_id}/preferences", response_model=PreferencesResponse)
async def update_preferences(
    account_id: str,
    update: PreferencesUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Merge notification preference changes into the account."""
    account = await _get_account(db, account_id)
    changes = update.model_dump(exclude_unset=True, exclude_none=True)

    if "enabled" in changes:
        account.notifications_enabled = changes.pop("enabled")
    for category in NotificationCategory:
        if category.column_name in changes:
            setattr(account, category.column_name, changes[category.column_name])

    await retry_on_lock(db.commit)
    logger.info(f"Notification preferences updated for {account_id}: {update.model_dump(exclude_none=True)}")
    return _preferences_response(account)


@router.put("/{account_id}/timezone")
async def update_timezone(
    account_id: str,
    update: TimezoneUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Store the timezone detected on the client."""
    try:
        ZoneInfo(update.timezone)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        raise HTTPException(status_code=400, detail=f"Unknown timezone: {update.timezone}")

    account = await _get_account(db, account_id)
    account.timezone = update.timezone
    account.timezone_offset = update.timezone_offset
    account.timezone_auto_detected = update.auto_detected
    await retry_on_lock(db.commit)

    logger.info(f"Timezone for {account_id} set to {update.timezone}")
    return {"success": True, "timezone": account.timezone}
