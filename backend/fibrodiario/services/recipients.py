"""Recipient selector - accounts eligible for a scheduled notification."""
import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional

from sqlalchemy import select, or_, true
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..config import settings
from ..database import async_session
from ..models import Account, DeviceToken, NotificationCategory

logger = logging.getLogger(__name__)


@dataclass
class Recipient:
    """A matched account and the device tokens to notify."""
    account: Account
    tokens: List[DeviceToken] = field(default_factory=list)

    @property
    def token_strings(self) -> List[str]:
        return [t.token for t in self.tokens]


class RecipientSelector:
    """Read-only query over the account store.

    An account matches when its subscription is active, notifications are
    enabled, the category preference is true (or never set), and its
    timezone is one of the requested zones.
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = async_session,
        page_size: Optional[int] = None,
    ):
        self._session_factory = session_factory
        self.page_size = page_size or settings.recipient_page_size

    def _eligibility_query(self, category: NotificationCategory, zones: List[str]):
        preference = Account.preference_column(category)
        return (
            select(Account)
            .options(selectinload(Account.device_tokens))
            .where(
                Account.subscription_active == true(),
                Account.notifications_enabled == true(),
                or_(preference == true(), preference.is_(None)),
                Account.timezone.in_(zones),
            )
            .order_by(Account.id)
        )

    async def select(self, category: NotificationCategory, zones: Iterable[str]) -> List[Recipient]:
        """Return every eligible account with its device tokens.

        Pages through the store by account id so large result sets are read
        in bounded queries. Store errors propagate to the caller.
        """
        category = NotificationCategory(category)
        zones = sorted(set(zones))
        if not zones:
            return []

        recipients: List[Recipient] = []
        last_id: Optional[str] = None
        pages = 0

        async with self._session_factory() as session:
            while True:
                query = self._eligibility_query(category, zones).limit(self.page_size)
                if last_id is not None:
                    query = query.where(Account.id > last_id)

                result = await session.execute(query)
                accounts = result.scalars().all()
                pages += 1

                for account in accounts:
                    if account.device_tokens:
                        recipients.append(Recipient(account=account, tokens=list(account.device_tokens)))

                if len(accounts) < self.page_size:
                    break
                last_id = accounts[-1].id

        token_count = sum(len(r.tokens) for r in recipients)
        logger.info(
            f"Selected {len(recipients)} account(s) with {token_count} token(s) "
            f"for {category.value} in {len(zones)} zone(s) ({pages} page(s))"
        )
        return recipients

    async def distinct_timezones(self) -> List[str]:
        """Timezones present on accounts that could receive notifications."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Account.timezone)
                .where(Account.timezone.is_not(None), Account.subscription_active == true())
                .distinct()
            )
            return sorted(tz for tz in result.scalars().all() if tz)


def flatten_tokens(recipients: Iterable[Recipient]) -> List[str]:
    """Token strings of all recipients, in selection order, without repeats."""
    return list(dict.fromkeys(token for r in recipients for token in r.token_strings))
