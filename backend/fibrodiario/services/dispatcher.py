"""Batch dispatcher - bounded, sequential multicast fan-out.

A dispatch call moves through these states:

    Idle -> Partitioning -> SendingChunk(0) -> ... -> SendingChunk(n-1) -> Aggregated

Chunks are sent one at a time in partition order. A chunk that fails as a
whole is recorded as failed for every token in it and the next chunk is
still sent, so ``Aggregated`` is always reached.
"""
import enum
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

from ..config import FCM_MULTICAST_LIMIT, settings
from ..exceptions import PushThrottledError
from ..utils.db_utils import retry_with_backoff
from .payloads import NotificationContent, PlatformOverrides
from .push_sender import DispatchBatch, ProviderResponse, PushProvider

logger = logging.getLogger(__name__)

BATCH_SEND_ERROR = "batch-send-error"


class DispatchState(str, enum.Enum):
    IDLE = "idle"
    PARTITIONING = "partitioning"
    SENDING_CHUNK = "sending_chunk"
    AGGREGATED = "aggregated"


@dataclass
class TokenOutcome:
    """Delivery outcome for one token."""
    token: str
    success: bool
    error_reason: Optional[str] = None


@dataclass
class DispatchResult:
    """Aggregate of all chunk sends for one dispatch call."""
    success_count: int = 0
    failure_count: int = 0
    outcomes: List[TokenOutcome] = field(default_factory=list)
    chunks_sent: int = 0
    chunks_failed: int = 0
    state: DispatchState = DispatchState.IDLE

    @property
    def total(self) -> int:
        return self.success_count + self.failure_count


def partition(tokens: List[str], size: int) -> Iterator[List[str]]:
    """Split ``tokens`` into consecutive chunks of at most ``size``."""
    if size < 1:
        raise ValueError("chunk size must be positive")
    for start in range(0, len(tokens), size):
        yield tokens[start:start + size]


class BatchDispatcher:
    """Sends a token list through a push provider in bounded chunks."""

    def __init__(
        self,
        provider: PushProvider,
        batch_size: Optional[int] = None,
        max_retries: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
    ):
        self.provider = provider
        self.batch_size = min(batch_size or settings.fcm_batch_size, FCM_MULTICAST_LIMIT)
        self.max_retries = settings.throttle_max_retries if max_retries is None else max_retries
        self.retry_base_delay = settings.throttle_base_delay if retry_base_delay is None else retry_base_delay

    async def _send_chunk(self, batch: DispatchBatch) -> ProviderResponse:
        """Send one chunk, backing off while the provider throttles."""
        return await retry_with_backoff(
            lambda: self.provider.send_multicast(batch),
            retry_on=(PushThrottledError,),
            max_retries=max(self.max_retries, 1),
            base_delay=self.retry_base_delay,
            label="Push batch",
        )

    async def dispatch(
        self,
        tokens: List[str],
        notification: NotificationContent,
        data: Optional[Dict[str, str]] = None,
        overrides: Optional[PlatformOverrides] = None,
    ) -> DispatchResult:
        """Send ``notification`` to every token, chunk by chunk.

        Args:
            tokens: Device tokens in the order they should be sent
            notification: Title and body shared by every chunk
            data: Category data payload (string values)
            overrides: Platform-specific options

        Returns:
            DispatchResult with per-token outcomes in send order
        """
        result = DispatchResult()
        data = dict(data or {})
        overrides = overrides or PlatformOverrides()

        result.state = DispatchState.PARTITIONING
        chunks = list(partition(list(tokens), self.batch_size))
        logger.info(f"Dispatching to {len(tokens)} token(s) in {len(chunks)} chunk(s)")

        for index, chunk in enumerate(chunks, start=1):
            result.state = DispatchState.SENDING_CHUNK
            batch = DispatchBatch(tokens=chunk, notification=notification, data=data, overrides=overrides)
            logger.info(f"Sending chunk {index}/{len(chunks)}: {len(chunk)} token(s)")
            result.chunks_sent += 1

            try:
                response = await self._send_chunk(batch)
            except Exception as e:
                logger.error(f"Chunk {index}/{len(chunks)} failed: {e}")
                result.chunks_failed += 1
                result.failure_count += len(chunk)
                result.outcomes.extend(
                    TokenOutcome(token=token, success=False, error_reason=BATCH_SEND_ERROR)
                    for token in chunk
                )
                continue

            self._record_chunk(result, chunk, response)
            logger.info(
                f"Chunk {index}/{len(chunks)} complete: "
                f"{response.success_count} success, {response.failure_count} failed"
            )

        result.state = DispatchState.AGGREGATED
        logger.info(
            f"Dispatch complete: {result.success_count} success, {result.failure_count} failed "
            f"({result.chunks_failed}/{result.chunks_sent} chunk(s) failed)"
        )
        return result

    def _record_chunk(self, result: DispatchResult, chunk: List[str], response: ProviderResponse):
        """Thread the provider's per-token responses into the result."""
        if len(response.responses) != len(chunk):
            logger.warning(
                f"Provider returned {len(response.responses)} responses for {len(chunk)} tokens"
            )

        for position, token in enumerate(chunk):
            if position >= len(response.responses):
                # No response for this token - count it as failed
                result.failure_count += 1
                result.outcomes.append(TokenOutcome(token=token, success=False, error_reason=BATCH_SEND_ERROR))
                continue

            resp = response.responses[position]
            if resp.success:
                result.success_count += 1
                result.outcomes.append(TokenOutcome(token=token, success=True))
            else:
                reason = resp.error.code if resp.error else None
                result.failure_count += 1
                result.outcomes.append(TokenOutcome(token=token, success=False, error_reason=reason))
                logger.debug(f"Token {token[:16]}... failed: {reason}")
