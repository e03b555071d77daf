"""Error types raised by the dispatch subsystem."""


class DispatchError(Exception):
    """Base class for notification dispatch errors."""


class ConfigurationError(DispatchError):
    """Missing or malformed configuration. Fatal at startup."""


class PushDeliveryError(DispatchError):
    """A whole multicast request to the push provider failed."""


class PushThrottledError(PushDeliveryError):
    """The push provider rejected a request for rate limiting (HTTP 429)."""

    def __init__(self, message: str, retry_after: float | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class AccountNotFoundError(DispatchError):
    """No account exists with the given id."""

    def __init__(self, account_id: str):
        super().__init__(f"Account not found: {account_id}")
        self.account_id = account_id
