"""Exception taxonomy for credential resolution, discovery and upstream requests.

Every error carries a structured ``context`` mapping (field, endpoint, status,
source, ...) so callers can build actionable messages. Bearer tokens are never
stored on an error instance.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class GenAIConnectorError(Exception):
    """Base error for the connector."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = {
            key: value for key, value in context.items() if value is not None
        }

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = " ".join(
            f"{key}={self.context[key]}" for key in sorted(self.context)
        )
        return f"{self.message} ({details})"


class CredentialError(GenAIConnectorError):
    pass


class CredentialFormatError(CredentialError):
    pass


class MissingCredentialsError(CredentialError):
    pass


class BindingNotFoundError(CredentialError):
    def __init__(self, binding_name: str, available: list[str]) -> None:
        super().__init__(
            f"No service binding named '{binding_name}'",
            binding_name=binding_name,
            available=",".join(available) or "<none>",
        )
        self.binding_name = binding_name
        self.available = available


class CredentialValidationError(CredentialError):
    def __init__(self, field: str, reason: str) -> None:
        super().__init__(f"Invalid credential field '{field}': {reason}", field=field)
        self.field = field
        self.reason = reason


class DiscoveryError(GenAIConnectorError):
    pass


class ModelDiscoveryError(DiscoveryError):
    def __init__(
        self,
        source: str,
        cause: BaseException | str,
        *,
        endpoint: str | None = None,
    ) -> None:
        super().__init__(
            f"Model discovery failed via {source}: {cause}",
            source=source,
            endpoint=endpoint,
        )
        self.source = source
        self.cause = cause


class NoEligibleModelError(DiscoveryError):
    pass


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    retryable: bool
    max_attempts: int = 1
    base_delay_seconds: float = 0.0
    max_delay_seconds: float = 0.0
    exponential: bool = False

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)."""
        if not self.retryable or attempt < 1:
            return 0.0
        if not self.exponential:
            return min(self.base_delay_seconds, self.max_delay_seconds)
        delay = self.base_delay_seconds * (2 ** (attempt - 1))
        return min(delay, self.max_delay_seconds)

    def allows_attempt(self, attempt: int) -> bool:
        return self.retryable and attempt <= self.max_attempts


TERMINAL = RetryPolicy(retryable=False)


class UpstreamRequestError(GenAIConnectorError):
    """Request-time failure reported by the inference proxy or the transport."""

    default_policy: RetryPolicy = TERMINAL

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body_snippet: str = "",
        retry_policy: RetryPolicy | None = None,
        **context: Any,
    ) -> None:
        super().__init__(message, status=status_code, **context)
        self.status_code = status_code
        self.body_snippet = body_snippet
        self.retry_policy = retry_policy or self.default_policy

    @property
    def retryable(self) -> bool:
        return self.retry_policy.retryable


class AuthenticationError(UpstreamRequestError):
    pass


class AuthorizationError(UpstreamRequestError):
    pass


class RateLimitedError(UpstreamRequestError):
    def __init__(
        self,
        message: str,
        *,
        retry_after_seconds: float,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, retry_after_seconds=retry_after_seconds, **kwargs)
        self.retry_after_seconds = retry_after_seconds


class UpstreamUnavailableError(UpstreamRequestError):
    pass


class ContextTooLongError(UpstreamRequestError):
    pass


class RequestRejectedError(UpstreamRequestError):
    pass


class ServerError(UpstreamRequestError):
    pass


class TransportError(UpstreamRequestError):
    def __init__(self, message: str, *, reason: str, **kwargs: Any) -> None:
        super().__init__(message, reason=reason, **kwargs)
        self.reason = reason
