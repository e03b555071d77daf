"""Token lifecycle manager - the only writer of the device token pool.

Each account holds a keyed set of device tokens (token string -> record).
A token string is unique across all accounts; registering a token that
another account holds moves it to the new owner.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Iterable, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..database import async_session
from ..exceptions import AccountNotFoundError
from ..models import Account, DeviceToken, PLATFORMS
from ..utils.db_utils import retry_on_lock

logger = logging.getLogger(__name__)

# Keep IN clauses well under backend parameter limits
_DELETE_CHUNK = 500


@dataclass
class DeviceFingerprint:
    """Identifies one browser/app installation across re-registrations."""
    user_agent: str = ""
    browser: Optional[str] = None
    os: Optional[str] = None

    @classmethod
    def from_user_agent(cls, user_agent: str) -> "DeviceFingerprint":
        """Derive browser and OS names from a user agent string."""
        ua = user_agent or ""

        browser = "Unknown"
        if "Edg" in ua:
            browser = "Edge"
        elif "Chrome" in ua:
            browser = "Chrome"
        elif "Firefox" in ua:
            browser = "Firefox"
        elif "Safari" in ua:
            browser = "Safari"

        os_name = "Unknown"
        if "Windows" in ua:
            os_name = "Windows"
        elif "Android" in ua:
            os_name = "Android"
        elif "iPhone" in ua or "iPad" in ua or "iOS" in ua:
            os_name = "iOS"
        elif "Mac" in ua:
            os_name = "macOS"
        elif "Linux" in ua:
            os_name = "Linux"

        return cls(user_agent=ua, browser=browser, os=os_name)


def detect_platform(user_agent: str) -> str:
    """Platform of a client from its user agent: android, ios or web."""
    ua = (user_agent or "").lower()
    if "android" in ua:
        return "android"
    if any(device in ua for device in ("iphone", "ipad", "ipod")):
        return "ios"
    return "web"


@dataclass
class RefreshResult:
    success: bool
    new_token: Optional[str] = None
    error: Optional[str] = None


class TokenLifecycleManager:
    """Registration, refresh and eviction of device tokens."""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = async_session,
        max_age_days: Optional[int] = None,
    ):
        self._session_factory = session_factory
        self.max_age_days = max_age_days or settings.token_max_age_days

    async def _get_account(self, session: AsyncSession, account_id: str) -> Account:
        account = await session.get(Account, account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    async def _upsert(
        self,
        session: AsyncSession,
        account_id: str,
        token: str,
        fingerprint: Optional[DeviceFingerprint],
        platform: Optional[str],
        now: datetime,
    ) -> DeviceToken:
        """Add ``token`` to the account's set, or refresh it if already there."""
        if platform is not None and platform not in PLATFORMS:
            raise ValueError(f"Unknown platform: {platform}")

        result = await session.execute(select(DeviceToken).where(DeviceToken.token == token))
        record = result.scalar_one_or_none()

        if record is not None and record.account_id != account_id:
            # Same token value must never sit under two accounts
            logger.info(f"Moving token {token[:16]}... from account {record.account_id} to {account_id}")
            record.account_id = account_id
            record.issued_at = now
        elif record is None:
            record = DeviceToken(account_id=account_id, token=token, issued_at=now)
            session.add(record)

        record.last_active_at = now
        if platform is not None:
            record.platform = platform
        elif record.platform is None:
            record.platform = detect_platform(fingerprint.user_agent if fingerprint else "")
        if fingerprint is not None:
            record.user_agent = fingerprint.user_agent
            record.browser = fingerprint.browser
            record.os = fingerprint.os
        return record

    async def register(
        self,
        account_id: str,
        token: str,
        fingerprint: Optional[DeviceFingerprint] = None,
        platform: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> DeviceToken:
        """Register a device token for an account.

        Idempotent: registering the same token again refreshes its
        ``last_active_at`` and fingerprint instead of adding a second entry.

        Raises:
            AccountNotFoundError: If the account does not exist
        """
        if not token:
            raise ValueError("token must not be empty")
        now = now or datetime.utcnow()

        for attempt in range(2):
            async with self._session_factory() as session:
                await self._get_account(session, account_id)
                record = await self._upsert(session, account_id, token, fingerprint, platform, now)
                try:
                    await retry_on_lock(session.commit)
                except IntegrityError:
                    # A concurrent registration inserted the same token first
                    await session.rollback()
                    if attempt == 1:
                        raise
                    continue
                logger.info(f"Device token registered for {account_id}: {token[:16]}...")
                return record

    async def touch(self, account_id: str, token: str, now: Optional[datetime] = None) -> bool:
        """Refresh ``last_active_at`` on app foreground or delivery confirmation."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(DeviceToken).where(DeviceToken.account_id == account_id, DeviceToken.token == token)
            )
            record = result.scalar_one_or_none()
            if record is None:
                return False
            record.last_active_at = now or datetime.utcnow()
            await retry_on_lock(session.commit)
            return True

    async def unregister(self, account_id: str, token: str) -> bool:
        """Remove one token from an account. Returns False if it wasn't there."""
        async with self._session_factory() as session:
            result = await session.execute(
                delete(DeviceToken).where(DeviceToken.account_id == account_id, DeviceToken.token == token)
            )
            await retry_on_lock(session.commit)
            removed = result.rowcount > 0
        if removed:
            logger.info(f"Device token removed for {account_id}: {token[:16]}...")
        return removed

    async def list_tokens(self, account_id: str) -> List[DeviceToken]:
        async with self._session_factory() as session:
            await self._get_account(session, account_id)
            result = await session.execute(
                select(DeviceToken)
                .where(DeviceToken.account_id == account_id)
                .order_by(DeviceToken.issued_at)
            )
            return list(result.scalars().all())

    def _current_device_token(
        self,
        tokens: List[DeviceToken],
        fingerprint: Optional[DeviceFingerprint],
        old_token: Optional[str] = None,
    ) -> Optional[DeviceToken]:
        # Unidentified device: nothing counts as its old token
        if old_token:
            return next((record for record in tokens if record.token == old_token), None)
        if fingerprint and fingerprint.user_agent:
            return next((record for record in tokens if record.user_agent == fingerprint.user_agent), None)
        return None

    async def force_refresh(
        self,
        account_id: str,
        issue_token: Callable[[], Awaitable[str]],
        fingerprint: Optional[DeviceFingerprint] = None,
        platform: Optional[str] = None,
        now: Optional[datetime] = None,
        old_token: Optional[str] = None,
    ) -> RefreshResult:
        """Replace the device's token with a newly issued one.

        The device is identified by ``old_token`` when given, else by the
        fingerprint's user agent. An unidentified device only gains the new
        token; no existing token is removed.

        The new token is committed before the old one is deleted. If the
        new token can't be issued or persisted, the old token is left as it
        was and a failed result is returned.

        Raises:
            AccountNotFoundError: If the account does not exist
        """
        now = now or datetime.utcnow()
        old = self._current_device_token(await self.list_tokens(account_id), fingerprint, old_token)
        old_token = old.token if old else None

        try:
            new_token = await issue_token()
        except Exception as e:
            logger.error(f"Token refresh failed for {account_id}: could not issue token: {e}")
            return RefreshResult(success=False, error=str(e))

        if not new_token:
            logger.error(f"Token refresh failed for {account_id}: empty token issued")
            return RefreshResult(success=False, error="empty token")

        if fingerprint is None and old is not None:
            fingerprint = DeviceFingerprint(user_agent=old.user_agent or "", browser=old.browser, os=old.os)
        if platform is None and old is not None:
            platform = old.platform

        # Write the new token and confirm before touching the old one
        try:
            async with self._session_factory() as session:
                await self._upsert(session, account_id, new_token, fingerprint, platform, now)
                await retry_on_lock(session.commit)
        except SQLAlchemyError as e:
            logger.error(f"Token refresh failed for {account_id}: could not persist new token: {e}")
            return RefreshResult(success=False, error=str(e))

        if old_token and old_token != new_token:
            try:
                removed = await self.unregister(account_id, old_token)
            except SQLAlchemyError as e:
                # New token is live; the old one ages out with stale eviction
                logger.warning(f"Old token kept after refresh for {account_id}: {e}")
            else:
                if not removed:
                    logger.debug(f"Old token already gone for {account_id}")

        logger.info(f"Token refreshed for {account_id}: {new_token[:16]}...")
        return RefreshResult(success=True, new_token=new_token)

    async def evict_stale(
        self,
        account_ids: Optional[Iterable[str]] = None,
        now: Optional[datetime] = None,
    ) -> int:
        """Delete tokens issued more than ``max_age_days`` ago.

        Args:
            account_ids: Limit eviction to these accounts. None = all accounts.
            now: Reference time (naive UTC)

        Returns:
            Number of tokens removed. Running again removes nothing new.
        """
        cutoff = (now or datetime.utcnow()) - timedelta(days=self.max_age_days)
        query = delete(DeviceToken).where(DeviceToken.issued_at < cutoff)
        if account_ids is not None:
            ids = list(account_ids)
            if not ids:
                return 0
            query = query.where(DeviceToken.account_id.in_(ids))

        async with self._session_factory() as session:
            result = await session.execute(query)
            await retry_on_lock(session.commit)

        count = result.rowcount or 0
        if count:
            logger.info(f"Removed {count} stale token(s) older than {self.max_age_days} days")
        return count

    async def evict_invalid(self, tokens: Iterable[str]) -> int:
        """Delete tokens the push provider reported as permanently invalid."""
        tokens = list(dict.fromkeys(tokens))
        if not tokens:
            return 0

        count = 0
        async with self._session_factory() as session:
            for start in range(0, len(tokens), _DELETE_CHUNK):
                chunk = tokens[start:start + _DELETE_CHUNK]
                result = await session.execute(delete(DeviceToken).where(DeviceToken.token.in_(chunk)))
                count += result.rowcount or 0
            await retry_on_lock(session.commit)

        logger.info(f"Removed {count} invalid token(s)")
        return count
