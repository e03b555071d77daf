"""Device registration API endpoints for push notifications."""
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..exceptions import AccountNotFoundError
from ..models import DeviceToken
from ..schemas import (
    DeviceRegisterRequest,
    DeviceRefreshRequest,
    DeviceTouchRequest,
    DeviceTokenResponse,
    DeviceRegisterResponse,
    DeviceRefreshResponse,
)
from ..services.tokens import DeviceFingerprint, TokenLifecycleManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/devices", tags=["devices"])


def get_token_manager() -> TokenLifecycleManager:
    """Dependency providing the token lifecycle manager."""
    return TokenLifecycleManager()


def _fingerprint(request) -> DeviceFingerprint:
    detected = DeviceFingerprint.from_user_agent(request.user_agent)
    return DeviceFingerprint(
        user_agent=request.user_agent,
        browser=request.browser or detected.browser,
        os=request.os or detected.os,
    )


@router.post("/register", response_model=DeviceRegisterResponse)
async def register_device(
    request: DeviceRegisterRequest,
    manager: TokenLifecycleManager = Depends(get_token_manager),
):
    """Register a device token for an account.

    Safe to call on every app launch: a token that is already registered
    is refreshed rather than duplicated.
    """
    try:
        record = await manager.register(
            request.account_id,
            request.token,
            fingerprint=_fingerprint(request),
            platform=request.platform,
        )
    except AccountNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return DeviceRegisterResponse(
        success=True,
        message="Device registered successfully",
        device=DeviceTokenResponse.model_validate(record),
    )


@router.post("/refresh", response_model=DeviceRefreshResponse)
async def refresh_device(
    request: DeviceRefreshRequest,
    manager: TokenLifecycleManager = Depends(get_token_manager),
):
    """Replace this device's token with the newly issued one in the request."""

    async def issue_token() -> str:
        return request.new_token

    try:
        result = await manager.force_refresh(
            request.account_id,
            issue_token,
            fingerprint=_fingerprint(request) if request.user_agent else None,
            platform=request.platform,
            old_token=request.old_token,
        )
    except AccountNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    if not result.success:
        return DeviceRefreshResponse(success=False, message=f"Token refresh failed: {result.error}")
    return DeviceRefreshResponse(success=True, new_token=result.new_token, message="Token refreshed")


@router.post("/touch")
async def touch_device(
    request: DeviceTouchRequest,
    manager: TokenLifecycleManager = Depends(get_token_manager),
):
    """Mark a device as active (app foreground)."""
    if not await manager.touch(request.account_id, request.token):
        raise HTTPException(status_code=404, detail="Device not found")
    return {"success": True}


@router.delete("/{account_id}/{device_token}")
async def unregister_device(
    account_id: str,
    device_token: str,
    manager: TokenLifecycleManager = Depends(get_token_manager),
):
    """Remove a device token from an account."""
    if not await manager.unregister(account_id, device_token):
        raise HTTPException(status_code=404, detail="Device not found")
    return {"success": True, "message": "Device unregistered successfully"}


@router.get("/count")
async def get_device_count(db: AsyncSession = Depends(get_db)):
    """Count registered tokens per platform (for admin dashboard)."""
    result = await db.execute(
        select(DeviceToken.platform, func.count(DeviceToken.id)).group_by(DeviceToken.platform)
    )
    by_platform = {platform: count for platform, count in result.all()}
    return {
        "total": sum(by_platform.values()),
        "by_platform": by_platform,
    }
