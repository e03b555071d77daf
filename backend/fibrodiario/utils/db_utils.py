"""Retry helpers for transient database and provider errors."""
import asyncio
import logging
from typing import Awaitable, Callable, Tuple, Type, TypeVar

from sqlalchemy.exc import OperationalError, InterfaceError

logger = logging.getLogger(__name__)

T = TypeVar('T')

_TRANSIENT_DB_MESSAGES = [
    "connection refused",
    "connection reset",
    "connection closed",
    "server closed",
    "timeout",
    "too many clients",
    "database is locked",
]


async def retry_with_backoff(
    coro_func: Callable[[], Awaitable[T]],
    retry_on: Tuple[Type[BaseException], ...],
    max_retries: int = 3,
    base_delay: float = 0.1,
    should_retry: Callable[[BaseException], bool] = lambda exc: True,
    label: str = "operation",
) -> T:
    """Call ``coro_func`` until it succeeds, retrying matching errors.

    The delay doubles after each failed attempt, unless the error carries
    its own ``retry_after``. The last error is raised once ``max_retries``
    attempts have failed; errors rejected by ``should_retry`` are raised
    immediately.
    """
    if max_retries < 1:
        raise ValueError("max_retries must be at least 1")

    for attempt in range(max_retries):
        try:
            return await coro_func()
        except retry_on as e:
            if not should_retry(e) or attempt == max_retries - 1:
                raise
            delay = getattr(e, "retry_after", None) or base_delay * (2 ** attempt)
            logger.warning(f"{label} failed ({e}), retrying in {delay}s (attempt {attempt + 1}/{max_retries})")
            await asyncio.sleep(delay)


def _is_transient_db_error(exc: BaseException) -> bool:
    error_str = str(exc).lower()
    return any(msg in error_str for msg in _TRANSIENT_DB_MESSAGES)


async def retry_on_lock(coro_func: Callable[[], Awaitable[T]], max_retries: int = 3, base_delay: float = 0.1) -> T:
    """Retry a database operation on transient errors with exponential backoff.

    Raises:
        OperationalError: If all retries fail or error is not transient
    """
    return await retry_with_backoff(
        coro_func,
        retry_on=(OperationalError, InterfaceError),
        max_retries=max_retries,
        base_delay=base_delay,
        should_retry=_is_transient_db_error,
        label="Database commit",
    )
