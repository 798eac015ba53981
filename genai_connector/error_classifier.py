from __future__ import annotations

import re
import ssl
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Any

import httpx

from genai_connector.errors import (
    TERMINAL,
    AuthenticationError,
    AuthorizationError,
    ContextTooLongError,
    RateLimitedError,
    RequestRejectedError,
    RetryPolicy,
    ServerError,
    TransportError,
    UpstreamRequestError,
    UpstreamUnavailableError,
)

DEFAULT_RATE_LIMIT_BACKOFF_SECONDS = 30.0
MAX_BODY_SNIPPET_CHARS = 512

RATE_LIMIT_POLICY = RetryPolicy(
    retryable=True,
    max_attempts=3,
    base_delay_seconds=DEFAULT_RATE_LIMIT_BACKOFF_SECONDS,
    max_delay_seconds=120.0,
)
UPSTREAM_UNAVAILABLE_POLICY = RetryPolicy(
    retryable=True,
    max_attempts=4,
    base_delay_seconds=1.0,
    max_delay_seconds=16.0,
    exponential=True,
)
SERVER_ERROR_POLICY = RetryPolicy(
    retryable=True,
    max_attempts=2,
    base_delay_seconds=1.0,
    max_delay_seconds=4.0,
    exponential=True,
)
TRANSPORT_POLICY = RetryPolicy(
    retryable=True,
    max_attempts=3,
    base_delay_seconds=0.5,
    max_delay_seconds=4.0,
    exponential=True,
)

UPSTREAM_UNAVAILABLE_STATUSES = frozenset({502, 503, 504})

CONTEXT_LENGTH_PATTERN = re.compile(
    r"context_length_exceeded"
    r"|maximum context length"
    r"|context length"
    r"|context window"
    r"|too many tokens"
    r"|prompt is too long",
    re.IGNORECASE,
)
_BEARER_PATTERN = re.compile(r"(bearer\s+)[A-Za-z0-9._~+/=-]+", re.IGNORECASE)


class TransportFailure(str, Enum):
    TIMEOUT = "timeout"
    CONNECTION_REFUSED = "connection_refused"
    TLS_HANDSHAKE = "tls_handshake"
    NETWORK = "network"


def sanitize_body_snippet(body: str | bytes | None) -> str:
    if body is None:
        return ""
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    snippet = body.strip()[:MAX_BODY_SNIPPET_CHARS]
    return _BEARER_PATTERN.sub(r"\1<redacted>", snippet)


def parse_retry_after(
    value: str | float | int | None,
    *,
    now: datetime | None = None,
) -> float | None:
    """Parse a Retry-After hint given as delta seconds or an HTTP date."""
    if value is None:
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if value > 0 else None

    text = value.strip()
    if not text:
        return None

    try:
        seconds = float(text)
        return seconds if seconds > 0 else None
    except ValueError:
        pass

    try:
        retry_dt = parsedate_to_datetime(text)
    except (TypeError, ValueError):
        return None
    if retry_dt.tzinfo is None:
        retry_dt = retry_dt.replace(tzinfo=timezone.utc)
    reference = now or datetime.now(timezone.utc)
    delta = (retry_dt - reference).total_seconds()
    return float(delta) if delta > 0 else None


def _classify_transport(
    failure: TransportFailure,
    snippet: str,
    context: dict[str, Any],
) -> TransportError:
    return TransportError(
        f"Transport failure: {failure.value}",
        reason=failure.value,
        body_snippet=snippet,
        retry_policy=TRANSPORT_POLICY,
        **context,
    )


def classify_outcome(
    outcome: int | TransportFailure,
    body_snippet: str | bytes | None = "",
    *,
    retry_after: str | float | int | None = None,
    endpoint: str | None = None,
) -> UpstreamRequestError:
    """Map a failed request outcome onto the error taxonomy.

    The result is returned, not raised, so callers decide whether to retry
    using ``error.retry_policy`` or surface it.
    """
    snippet = sanitize_body_snippet(body_snippet)
    context: dict[str, Any] = {"endpoint": endpoint}

    if isinstance(outcome, TransportFailure):
        return _classify_transport(outcome, snippet, context)

    status = int(outcome)
    if status < 400:
        raise ValueError(f"Status {status} is not a failure outcome")

    common: dict[str, Any] = {
        "status_code": status,
        "body_snippet": snippet,
        **context,
    }
    if status == 401:
        return AuthenticationError(
            "Authentication failed; check the API key", retry_policy=TERMINAL, **common
        )
    if status == 403:
        return AuthorizationError(
            "Access to the AI service is forbidden", retry_policy=TERMINAL, **common
        )
    if status == 429:
        hint = parse_retry_after(retry_after)
        delay = hint if hint is not None else DEFAULT_RATE_LIMIT_BACKOFF_SECONDS
        return RateLimitedError(
            "Rate limited by the AI service",
            retry_after_seconds=delay,
            retry_policy=RATE_LIMIT_POLICY,
            **common,
        )
    if status in UPSTREAM_UNAVAILABLE_STATUSES:
        return UpstreamUnavailableError(
            "AI service upstream is unavailable",
            retry_policy=UPSTREAM_UNAVAILABLE_POLICY,
            **common,
        )
    if status == 400 and CONTEXT_LENGTH_PATTERN.search(snippet):
        return ContextTooLongError(
            "Request exceeds the model context length",
            retry_policy=TERMINAL,
            **common,
        )
    if 400 <= status < 500:
        return RequestRejectedError(
            "Request rejected by the AI service", retry_policy=TERMINAL, **common
        )
    return ServerError(
        "AI service returned a server error",
        retry_policy=SERVER_ERROR_POLICY,
        **common,
    )


def transport_failure_from_exception(exc: BaseException) -> TransportFailure:
    if isinstance(exc, (httpx.TimeoutException, TimeoutError)):
        return TransportFailure.TIMEOUT
    if isinstance(exc, ssl.SSLError) or isinstance(exc.__cause__, ssl.SSLError):
        return TransportFailure.TLS_HANDSHAKE
    message = str(exc).lower()
    if "certificate" in message or "ssl" in message or "handshake" in message:
        return TransportFailure.TLS_HANDSHAKE
    if isinstance(exc, (httpx.ConnectError, ConnectionRefusedError)) or isinstance(
        exc.__cause__, ConnectionRefusedError
    ):
        return TransportFailure.CONNECTION_REFUSED
    return TransportFailure.NETWORK


def _request_url(carrier: httpx.RequestError | httpx.Response) -> str | None:
    # httpx raises RuntimeError when no request is attached.
    try:
        return str(carrier.request.url)
    except RuntimeError:
        return None


def classify_exception(exc: httpx.RequestError | TimeoutError) -> TransportError:
    endpoint = _request_url(exc) if isinstance(exc, httpx.RequestError) else None
    error = _classify_transport(
        transport_failure_from_exception(exc), "", {"endpoint": endpoint}
    )
    error.context["error_type"] = exc.__class__.__name__
    return error


def classify_response(response: httpx.Response) -> UpstreamRequestError:
    return classify_outcome(
        response.status_code,
        response.text,
        retry_after=response.headers.get("retry-after"),
        endpoint=_request_url(response),
    )
