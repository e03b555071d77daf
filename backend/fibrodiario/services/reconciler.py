"""Failure reconciler - picks the tokens a dispatch proved dead."""
import logging
from typing import Iterable, List

from .dispatcher import TokenOutcome
from .push_sender import ERROR_INVALID_ARGUMENT, ERROR_INVALID_TOKEN, ERROR_UNREGISTERED

logger = logging.getLogger(__name__)

# Reasons meaning the token will never be deliverable again
PERMANENT_ERRORS = frozenset({
    ERROR_UNREGISTERED,
    ERROR_INVALID_TOKEN,
    ERROR_INVALID_ARGUMENT,
})


def is_permanent(error_reason: str | None) -> bool:
    return error_reason in PERMANENT_ERRORS


class FailureReconciler:
    """Detects eviction candidates. Removal is left to the token lifecycle manager."""

    def reconcile(self, outcomes: Iterable[TokenOutcome]) -> List[str]:
        """Tokens whose failure reason is permanent, in first-seen order."""
        evict: List[str] = []
        seen = set()
        transient = 0

        for outcome in outcomes:
            if outcome.success:
                continue
            if not is_permanent(outcome.error_reason):
                transient += 1
                continue
            if outcome.token not in seen:
                seen.add(outcome.token)
                evict.append(outcome.token)
                logger.warning(f"Invalid token flagged for removal: {outcome.token[:16]}...")

        if evict or transient:
            logger.info(f"Reconciled failures: {len(evict)} to evict, {transient} transient")
        return evict
