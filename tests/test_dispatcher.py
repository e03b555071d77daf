"""Tests for chunked dispatch and result aggregation."""
import pytest

from fibrodiario.exceptions import PushDeliveryError, PushThrottledError
from fibrodiario.services.dispatcher import (
    BATCH_SEND_ERROR,
    BatchDispatcher,
    DispatchState,
    partition,
)
from fibrodiario.services.payloads import NotificationContent, PlatformOverrides
from fibrodiario.services.push_sender import ERROR_UNAVAILABLE, ERROR_UNREGISTERED

from .fakes import FakeProvider, respond

NOTE = NotificationContent(title="Olá", body="Teste")


def tokens(n, prefix="tok"):
    return [f"{prefix}-{i:05d}" for i in range(n)]


def make_dispatcher(provider, **kwargs):
    kwargs.setdefault("retry_base_delay", 0)
    return BatchDispatcher(provider, **kwargs)


@pytest.mark.parametrize("count, sizes", [
    (0, []),
    (1, [1]),
    (500, [500]),
    (501, [500, 1]),
    (1200, [500, 500, 200]),
])
async def test_chunks_are_bounded_and_ordered(count, sizes):
    provider = FakeProvider()
    all_tokens = tokens(count)

    result = await make_dispatcher(provider).dispatch(all_tokens, NOTE)

    assert [len(b.tokens) for b in provider.batches] == sizes
    assert [t for b in provider.batches for t in b.tokens] == all_tokens
    assert result.success_count == count
    assert result.failure_count == 0
    assert result.state == DispatchState.AGGREGATED


def test_partition_rejects_zero_size():
    with pytest.raises(ValueError):
        list(partition(["a"], 0))


async def test_batch_size_never_exceeds_provider_limit():
    assert make_dispatcher(FakeProvider(), batch_size=1000).batch_size == 500


async def test_payload_is_shared_by_every_chunk():
    provider = FakeProvider()
    overrides = PlatformOverrides(android_channel_id="quiz_reminders")
    await make_dispatcher(provider, batch_size=2).dispatch(tokens(5), NOTE, {"type": "x"}, overrides)

    assert len(provider.batches) == 3
    for batch in provider.batches:
        assert batch.notification == NOTE
        assert batch.data == {"type": "x"}
        assert batch.overrides is overrides


async def test_failed_chunk_does_not_stop_later_chunks():
    def handler(number, batch):
        if number == 2:
            raise PushDeliveryError("connection reset")
        return respond(batch.tokens)

    provider = FakeProvider(handler)
    all_tokens = tokens(1200)
    result = await make_dispatcher(provider).dispatch(all_tokens, NOTE)

    assert len(provider.batches) == 3
    assert result.success_count == 700
    assert result.failure_count == 500
    assert result.chunks_failed == 1
    assert result.state == DispatchState.AGGREGATED
    failed = [o for o in result.outcomes if not o.success]
    assert [o.token for o in failed] == all_tokens[500:1000]
    assert {o.error_reason for o in failed} == {BATCH_SEND_ERROR}


async def test_every_chunk_failing_still_aggregates():
    def handler(number, batch):
        raise RuntimeError("offline")

    result = await make_dispatcher(FakeProvider(handler)).dispatch(tokens(750), NOTE)
    assert result.success_count == 0
    assert result.failure_count == 750
    assert result.chunks_failed == result.chunks_sent == 2
    assert result.state == DispatchState.AGGREGATED


async def test_per_token_outcomes_follow_provider_order():
    def handler(number, batch):
        return respond(batch.tokens, {1: ERROR_UNREGISTERED, 3: ERROR_UNAVAILABLE})

    all_tokens = tokens(4)
    result = await make_dispatcher(FakeProvider(handler)).dispatch(all_tokens, NOTE)

    assert [o.token for o in result.outcomes] == all_tokens
    assert [o.success for o in result.outcomes] == [True, False, True, False]
    assert result.outcomes[1].error_reason == ERROR_UNREGISTERED
    assert result.outcomes[3].error_reason == ERROR_UNAVAILABLE
    assert result.success_count + result.failure_count == 4


async def test_missing_responses_count_as_failures():
    def handler(number, batch):
        return respond(batch.tokens[:2])

    result = await make_dispatcher(FakeProvider(handler)).dispatch(tokens(3), NOTE)
    assert result.success_count == 2
    assert result.failure_count == 1
    assert result.outcomes[2].error_reason == BATCH_SEND_ERROR


async def test_throttled_chunk_is_retried():
    calls = []

    def handler(number, batch):
        calls.append(number)
        if number == 1:
            raise PushThrottledError("429")
        return respond(batch.tokens)

    provider = FakeProvider(handler)
    result = await make_dispatcher(provider, max_retries=3).dispatch(tokens(3), NOTE)

    assert calls == [1, 2]
    assert result.success_count == 3
    assert result.chunks_failed == 0


async def test_throttling_gives_up_after_max_retries():
    def handler(number, batch):
        raise PushThrottledError("429")

    provider = FakeProvider(handler)
    result = await make_dispatcher(provider, max_retries=2).dispatch(tokens(3), NOTE)

    assert len(provider.batches) == 2
    assert result.failure_count == 3
    assert {o.error_reason for o in result.outcomes} == {BATCH_SEND_ERROR}
