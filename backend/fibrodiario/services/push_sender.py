"""Push provider client - multicast sends through Firebase Cloud Messaging."""
import asyncio
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import firebase_admin
from firebase_admin import credentials, exceptions, messaging

from ..exceptions import ConfigurationError, PushDeliveryError, PushThrottledError
from .payloads import NotificationContent, PlatformOverrides

logger = logging.getLogger(__name__)

# FCM error codes used in per-token outcomes
ERROR_UNREGISTERED = "messaging/registration-token-not-registered"
ERROR_INVALID_TOKEN = "messaging/invalid-registration-token"
ERROR_INVALID_ARGUMENT = "messaging/invalid-argument"
ERROR_SENDER_MISMATCH = "messaging/mismatched-credential"
ERROR_RATE_EXCEEDED = "messaging/message-rate-exceeded"
ERROR_UNAVAILABLE = "messaging/server-unavailable"
ERROR_DEADLINE = "messaging/deadline-exceeded"
ERROR_AUTH = "messaging/third-party-auth-error"
ERROR_INTERNAL = "messaging/internal-error"
ERROR_UNKNOWN = "messaging/unknown-error"

# Most specific first - several of these subclass each other
_ERROR_CODES = [
    (messaging.UnregisteredError, ERROR_UNREGISTERED),
    (messaging.SenderIdMismatchError, ERROR_SENDER_MISMATCH),
    (messaging.QuotaExceededError, ERROR_RATE_EXCEEDED),
    (messaging.ThirdPartyAuthError, ERROR_AUTH),
    (exceptions.InvalidArgumentError, ERROR_INVALID_ARGUMENT),
    (exceptions.ResourceExhaustedError, ERROR_RATE_EXCEEDED),
    (exceptions.UnavailableError, ERROR_UNAVAILABLE),
    (exceptions.DeadlineExceededError, ERROR_DEADLINE),
    (exceptions.InternalError, ERROR_INTERNAL),
]


@dataclass
class DispatchBatch:
    """One multicast request: up to 500 tokens sharing a single payload."""
    tokens: List[str]
    notification: NotificationContent
    data: Dict[str, str] = field(default_factory=dict)
    overrides: PlatformOverrides = field(default_factory=PlatformOverrides)


@dataclass
class ProviderError:
    code: str
    message: str = ""


@dataclass
class SendResponse:
    """Provider result for one token."""
    success: bool
    error: Optional[ProviderError] = None
    message_id: Optional[str] = None


@dataclass
class ProviderResponse:
    """Provider result for a batch, one response per token in input order."""
    success_count: int
    failure_count: int
    responses: List[SendResponse]


class PushProvider:
    """Interface of a multicast push provider."""

    async def send_multicast(self, batch: DispatchBatch) -> ProviderResponse:
        raise NotImplementedError


def error_code_for(exc: Optional[BaseException]) -> str:
    """Map a firebase_admin exception to an FCM error code string."""
    if exc is None:
        return ERROR_UNKNOWN
    for exc_type, code in _ERROR_CODES:
        if isinstance(exc, exc_type):
            return code
    return ERROR_UNKNOWN


def build_multicast_message(batch: DispatchBatch) -> messaging.MulticastMessage:
    """Shape a batch into an FCM multicast message with platform options."""
    overrides = batch.overrides
    return messaging.MulticastMessage(
        tokens=list(batch.tokens),
        notification=messaging.Notification(
            title=batch.notification.title,
            body=batch.notification.body,
        ),
        data={k: str(v) for k, v in batch.data.items()},
        android=messaging.AndroidConfig(
            priority=overrides.android_priority,
            notification=messaging.AndroidNotification(
                channel_id=overrides.android_channel_id,
                priority=overrides.android_priority,
                sound=overrides.sound,
            ),
        ),
        apns=messaging.APNSConfig(
            payload=messaging.APNSPayload(
                aps=messaging.Aps(sound=overrides.sound, badge=overrides.apns_badge),
            ),
        ),
        webpush=messaging.WebpushConfig(
            notification=messaging.WebpushNotification(
                icon=overrides.web_icon,
                badge=overrides.web_badge,
                tag=overrides.web_tag,
                require_interaction=overrides.web_require_interaction,
                vibrate=list(overrides.web_vibrate),
            ),
        ),
    )


class FcmPushProvider(PushProvider):
    """Sends multicast messages with the Firebase Admin SDK."""

    def __init__(self, credentials_path: str = "", dry_run: bool = False):
        self.credentials_path = credentials_path
        self.dry_run = dry_run
        self._app: Optional[firebase_admin.App] = None

    def configure(self) -> firebase_admin.App:
        """Initialise the Firebase app once.

        Raises:
            ConfigurationError: If the service account file is missing or invalid
        """
        if self._app is not None:
            return self._app

        try:
            self._app = firebase_admin.get_app()
            return self._app
        except ValueError:
            pass

        if self.credentials_path:
            if not os.path.exists(self.credentials_path):
                raise ConfigurationError(f"Firebase service account not found: {self.credentials_path}")
            try:
                cred = credentials.Certificate(self.credentials_path)
            except (ValueError, IOError) as e:
                raise ConfigurationError(f"Invalid Firebase service account: {e}") from e
            self._app = firebase_admin.initialize_app(cred)
        else:
            # Application default credentials
            self._app = firebase_admin.initialize_app()

        logger.info(f"Firebase messaging configured (dry_run={self.dry_run})")
        return self._app

    async def send_multicast(self, batch: DispatchBatch) -> ProviderResponse:
        app = self.configure()
        message = build_multicast_message(batch)

        try:
            response = await asyncio.to_thread(
                messaging.send_each_for_multicast, message, self.dry_run, app
            )
        except (messaging.QuotaExceededError, exceptions.ResourceExhaustedError) as e:
            raise PushThrottledError(f"FCM rate limit exceeded: {e}") from e
        except exceptions.FirebaseError as e:
            raise PushDeliveryError(f"FCM request failed: {e}") from e

        responses = []
        for resp in response.responses:
            if resp.success:
                responses.append(SendResponse(success=True, message_id=resp.message_id))
            else:
                responses.append(SendResponse(
                    success=False,
                    error=ProviderError(code=error_code_for(resp.exception), message=str(resp.exception)),
                ))

        return ProviderResponse(
            success_count=response.success_count,
            failure_count=response.failure_count,
            responses=responses,
        )
