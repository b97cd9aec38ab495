"""Classified errors for every outbound call.

All provider, AI and network failures are raised as a ServiceError subclass so
callers can branch on the type (or on ``retryable``) without knowing which
service produced it:

    NetworkError         no HTTP status reached          retryable
    RateLimitedError     429                             retryable
    ServerError          5xx                             retryable
    ClientError          other 4xx                       not retryable
    RequestTimeoutError  deadline exceeded (TIMEOUT)     not retryable
    UserCancelledError   caller cancelled (CANCELLED)    not retryable
"""

from __future__ import annotations

CANCELLED = "CANCELLED"
TIMEOUT = "TIMEOUT"


def is_retryable_status(status: int | None) -> bool:
    """Network failures (no status), 429 and 5xx are worth another attempt."""
    return status is None or status == 429 or 500 <= status < 600


class ServiceError(Exception):
    def __init__(
        self,
        provider: str,
        message: str,
        status: int | None = None,
        code: str | None = None,
        request_id: str | None = None,
        retryable: bool | None = None,
    ):
        self.provider = provider
        self.message = message
        self.status = status
        self.code = code
        self.request_id = request_id
        self.retryable = is_retryable_status(status) if retryable is None else retryable
        super().__init__(self._render())

    def _render(self) -> str:
        parts = [f"[{self.provider}]"]
        if self.status:
            parts.append(str(self.status))
        if self.code:
            parts.append(f"({self.code})")
        parts.append(self.message)
        if self.request_id:
            parts.append(f"[requestId: {self.request_id}]")
        return " ".join(parts)


class NetworkError(ServiceError):
    pass


class RateLimitedError(ServiceError):
    pass


class ServerError(ServiceError):
    pass


class ClientError(ServiceError):
    pass


class RequestTimeoutError(ServiceError):
    def __init__(self, provider: str, message: str, **kwargs):
        super().__init__(provider, message, code=TIMEOUT, retryable=False, **kwargs)


class UserCancelledError(ServiceError):
    """Raised when the caller cancelled; never retried and not an application failure."""

    def __init__(self, provider: str, message: str = "Request was cancelled", **kwargs):
        super().__init__(provider, message, code=CANCELLED, retryable=False, **kwargs)


class AdapterNotInitializedError(RuntimeError):
    """No platform adapter is active; connect a platform before calling it."""

    def __init__(self, message: str = "Platform client is not initialized. Configure and connect a platform first."):
        super().__init__(message)


class ReviewBackendNotConfiguredError(ValueError):
    """No AI provider and model are selected."""


def create_service_error(
    provider: str,
    message: str,
    status: int | None = None,
    code: str | None = None,
    request_id: str | None = None,
) -> ServiceError:
    """Return the ServiceError subclass matching ``status``."""
    if status is None:
        cls = NetworkError
    elif status == 429:
        cls = RateLimitedError
    elif 500 <= status < 600:
        cls = ServerError
    else:
        cls = ClientError
    return cls(provider, message, status=status, code=code, request_id=request_id)


def cancelled_error(provider: str = "system") -> UserCancelledError:
    return UserCancelledError(provider)


def is_cancellation(error: BaseException) -> bool:
    return isinstance(error, UserCancelledError) or getattr(error, "code", None) == CANCELLED
