"""End-to-end tests for the scheduled dispatch entry point."""
from datetime import datetime, timezone

import pytest
from sqlalchemy.exc import OperationalError

from fibrodiario.config import settings
from fibrodiario.models import NotificationCategory
from fibrodiario.exceptions import PushDeliveryError
from fibrodiario.services.dispatcher import BatchDispatcher
from fibrodiario.services.push_sender import ERROR_INVALID_TOKEN, ERROR_UNAVAILABLE, ERROR_UNREGISTERED
from fibrodiario.services.recipients import RecipientSelector
from fibrodiario.services.scheduler import SchedulerService
from fibrodiario.services.timezones import TimeWindowResolver
from fibrodiario.services.tokens import TokenLifecycleManager
from fibrodiario.services.trigger import run_dispatch

from .fakes import FakeProvider, respond

EVENING = NotificationCategory.EVENING_CHECK_IN
# 23:05 UTC in January = 20:05 in Sao Paulo
EVENING_IN_SAO_PAULO = datetime(2026, 1, 15, 23, 5, tzinfo=timezone.utc)


@pytest.fixture
def selector(session_factory):
    return RecipientSelector(session_factory=session_factory)


@pytest.fixture
def resolver():
    return TimeWindowResolver(catalog=["America/Sao_Paulo", "Europe/Lisbon"], window_minutes=15)


def chunk2_down_chunk1_invalid(number, batch):
    if number == 2:
        raise PushDeliveryError("network unreachable")
    if number == 1:
        failures = {i: ERROR_UNREGISTERED for i in range(3)}
        failures.update({3: ERROR_INVALID_TOKEN, 4: ERROR_INVALID_TOKEN})
        return respond(batch.tokens, failures)
    return respond(batch.tokens)


async def test_transient_failures_are_not_evicted(selector, resolver, make_account):
    await make_account("u1", tokens=["a", "b"])

    def handler(number, batch):
        return respond(batch.tokens, {0: ERROR_UNAVAILABLE, 1: ERROR_UNREGISTERED})

    provider = FakeProvider(handler)
    result = await run_dispatch(
        EVENING, 20, EVENING_IN_SAO_PAULO,
        selector=selector, dispatcher=BatchDispatcher(provider), resolver=resolver,
    )

    assert result.failed_count == 2
    assert result.eviction_candidates == [provider.batches[0].tokens[1]]


async def seed_1200_tokens(make_account):
    await make_account("acc-1", tokens=[f"a-{i:04d}" for i in range(450)])
    await make_account("acc-2", tokens=[f"b-{i:04d}" for i in range(450)])
    await make_account("acc-3", tokens=[f"c-{i:04d}" for i in range(300)])


async def test_partial_failure_scenario(selector, resolver, make_account):
    await seed_1200_tokens(make_account)
    provider = FakeProvider(chunk2_down_chunk1_invalid)

    result = await run_dispatch(
        EVENING,
        20,
        EVENING_IN_SAO_PAULO,
        selector=selector,
        dispatcher=BatchDispatcher(provider, retry_base_delay=0),
        resolver=resolver,
    )

    assert [len(b.tokens) for b in provider.batches] == [500, 500, 200]
    assert result.zones == ["America/Sao_Paulo"]
    assert result.recipients == 3
    assert result.failed_count == 505
    assert result.success_count == 695
    assert result.eviction_candidates == provider.batches[0].tokens[:5]
    chunk2 = set(provider.batches[1].tokens)
    assert not chunk2 & set(result.eviction_candidates)


async def test_payload_matches_category(selector, resolver, make_account, provider):
    await make_account("u1", tokens=["t1"])

    await run_dispatch(
        EVENING, 20, EVENING_IN_SAO_PAULO,
        selector=selector, dispatcher=BatchDispatcher(provider), resolver=resolver,
    )

    batch = provider.batches[0]
    assert batch.notification.title.startswith("🌙 Boa noite")
    assert batch.data["type"] == "evening_quiz"
    assert batch.data["route"] == "/quiz"
    assert batch.data["variant"] == "evening"
    assert batch.data["timestamp"] == EVENING_IN_SAO_PAULO.isoformat()
    assert batch.overrides.android_channel_id == "quiz_reminders"
    assert batch.overrides.web_tag == "evening-quiz"


async def test_outside_window_sends_nothing(selector, resolver, make_account, provider):
    await make_account("u1", tokens=["t1"])
    late = EVENING_IN_SAO_PAULO.replace(minute=20)

    result = await run_dispatch(
        EVENING, 20, late,
        selector=selector, dispatcher=BatchDispatcher(provider), resolver=resolver,
    )

    assert provider.batches == []
    assert (result.success_count, result.failed_count) == (0, 0)


async def test_no_matching_accounts_stops_cleanly(selector, resolver, make_account, provider):
    await make_account("u1", tokens=["t1"], evening_check_in=False)

    result = await run_dispatch(
        EVENING, 20, EVENING_IN_SAO_PAULO,
        selector=selector, dispatcher=BatchDispatcher(provider), resolver=resolver,
    )

    assert provider.batches == []
    assert result.zones == ["America/Sao_Paulo"]
    assert result.recipients == 0


async def test_zone_discovery_adds_account_timezones(selector, make_account, provider):
    # Buenos Aires is not in the catalog but shares Sao Paulo's offset
    await make_account("u1", tokens=["t1"], timezone="America/Argentina/Buenos_Aires")
    resolver = TimeWindowResolver(catalog=["Europe/Lisbon"], window_minutes=15)

    without = await run_dispatch(
        EVENING, 20, EVENING_IN_SAO_PAULO,
        selector=selector, dispatcher=BatchDispatcher(provider), resolver=resolver,
        zone_discovery=False,
    )
    with_discovery = await run_dispatch(
        EVENING, 20, EVENING_IN_SAO_PAULO,
        selector=selector, dispatcher=BatchDispatcher(provider), resolver=resolver,
        zone_discovery=True,
    )

    assert without.success_count == 0
    assert with_discovery.zones == ["America/Argentina/Buenos_Aires"]
    assert with_discovery.success_count == 1


async def test_store_errors_propagate(resolver, provider):
    class BrokenSelector(RecipientSelector):
        async def select(self, category, zones):
            raise OperationalError("SELECT", {}, Exception("database is down"))

    with pytest.raises(OperationalError):
        await run_dispatch(
            EVENING, 20, EVENING_IN_SAO_PAULO,
            selector=BrokenSelector(), dispatcher=BatchDispatcher(provider), resolver=resolver,
        )
    assert provider.batches == []


async def test_scheduler_trigger_evicts_invalid_tokens(session_factory, make_account, monkeypatch):
    await make_account("u1", tokens=["good", "dead"])

    def handler(number, batch):
        return respond(batch.tokens, {batch.tokens.index("dead"): ERROR_UNREGISTERED})

    manager = TokenLifecycleManager(session_factory=session_factory)
    service = SchedulerService(
        provider=FakeProvider(handler),
        selector=RecipientSelector(session_factory=session_factory),
        token_manager=manager,
    )
    monkeypatch.setattr(settings, "zone_catalog", ["America/Sao_Paulo"])
    monkeypatch.setattr(settings, "zone_discovery", False)
    monkeypatch.setattr(settings, "evict_invalid_tokens", True)

    result = await service.trigger(EVENING, 20, EVENING_IN_SAO_PAULO)

    assert result.eviction_candidates == ["dead"]
    assert result.evicted == 1
    assert [t.token for t in await manager.list_tokens("u1")] == ["good"]
