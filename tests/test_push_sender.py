"""Tests for FCM message shaping and error mapping."""
from datetime import datetime, timezone

import pytest
from firebase_admin import exceptions, messaging

from fibrodiario.exceptions import ConfigurationError
from fibrodiario.models import NotificationCategory
from fibrodiario.services.payloads import TEMPLATES, template_for
from fibrodiario.services.push_sender import (
    ERROR_INVALID_ARGUMENT,
    ERROR_UNAVAILABLE,
    ERROR_UNKNOWN,
    ERROR_UNREGISTERED,
    DispatchBatch,
    FcmPushProvider,
    build_multicast_message,
    error_code_for,
)

NOW = datetime(2026, 1, 15, 11, 5, tzinfo=timezone.utc)


@pytest.mark.parametrize("category, route", [
    (NotificationCategory.MORNING_CHECK_IN, "/quiz"),
    (NotificationCategory.EVENING_CHECK_IN, "/quiz"),
    (NotificationCategory.MEDICATION_REMINDER, "/medications"),
    (NotificationCategory.HEALTH_INSIGHT, "/reports"),
    (NotificationCategory.EMERGENCY_ALERT, "/emergencia"),
])
def test_category_routes(category, route):
    assert template_for(category).data(NOW)["route"] == route


def test_every_category_has_a_template():
    assert set(TEMPLATES) == set(NotificationCategory)


def test_data_values_are_strings():
    for template in TEMPLATES.values():
        assert all(isinstance(v, str) for v in template.data(NOW).values())


def test_multicast_message_carries_platform_options():
    template = template_for(NotificationCategory.MORNING_CHECK_IN)
    batch = DispatchBatch(
        tokens=["t1", "t2"],
        notification=template.content(),
        data=template.data(NOW),
        overrides=template.overrides(),
    )

    message = build_multicast_message(batch)

    assert message.tokens == ["t1", "t2"]
    assert message.notification.title.startswith("🌅 Bom dia")
    assert message.data["variant"] == "morning"
    assert message.android.priority == "high"
    assert message.android.notification.channel_id == "quiz_reminders"
    assert message.apns.payload.aps.badge == 1
    assert message.webpush.notification.tag == "morning-quiz"
    assert message.webpush.notification.vibrate == [200, 100, 200]


@pytest.mark.parametrize("exc, code", [
    (messaging.UnregisteredError("gone"), ERROR_UNREGISTERED),
    (exceptions.InvalidArgumentError("bad token"), ERROR_INVALID_ARGUMENT),
    (exceptions.UnavailableError("try later"), ERROR_UNAVAILABLE),
    (RuntimeError("boom"), ERROR_UNKNOWN),
    (None, ERROR_UNKNOWN),
])
def test_error_code_mapping(exc, code):
    assert error_code_for(exc) == code


def test_missing_credentials_file_is_a_configuration_error(tmp_path, monkeypatch):
    def no_app():
        raise ValueError("no default app")

    monkeypatch.setattr("firebase_admin.get_app", no_app)
    provider = FcmPushProvider(credentials_path=str(tmp_path / "missing.json"))
    with pytest.raises(ConfigurationError):
        provider.configure()
