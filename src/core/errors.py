# src/core/errors.py — v1
"""Error taxonomy for the coordination core.

Every error carries a short, human-readable message (shown verbatim to
the user), a stable code, and a retriable flag consumed by the backoff
helper in llm/retry.py.
"""

from __future__ import annotations

GENERIC_USER_MESSAGE = "EasyRead failed. Please try again."


class EasyReadError(Exception):
    """Base class for all errors raised by the coordinator."""

    code: str = "GENERIC"
    retriable: bool = False

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ValidationError(EasyReadError):
    """Empty, oversized or rejected selection. Never retried."""

    code = "VALIDATION"


class NetworkRetryable(EasyReadError):
    """Transport failure while contacting the proxy."""

    code = "NETWORK_RETRYABLE"
    retriable = True


class ProxyRetryable(EasyReadError):
    """Proxy answered 429 or 5xx."""

    code = "PROXY_RETRYABLE"
    retriable = True

    def __init__(
        self, message: str, status_code: int, retry_after_s: float | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retry_after_s = retry_after_s


class ProxyError(EasyReadError):
    """Proxy rejected the call with a non-retriable status."""

    code = "PROXY_ERROR"

    def __init__(self, message: str, status_code: int, detail: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class MalformedOutput(EasyReadError):
    """Model text could not be parsed into the expected JSON shape."""

    code = "BAD_JSON"

    def __init__(self, message: str, raw_text: str = "") -> None:
        super().__init__(message)
        self.raw_text = raw_text


class EmptyOutput(EasyReadError):
    """Model returned no usable text (truncated, refused, or blank)."""

    code = "EMPTY_OUTPUT"

    def __init__(
        self, message: str, reason: str = "", refusal: str = "",
    ) -> None:
        super().__init__(message)
        self.reason = reason
        self.refusal = refusal


def to_user_message(error: BaseException) -> str:
    """Short user-facing message for any exception."""
    if isinstance(error, EasyReadError):
        return error.message
    return GENERIC_USER_MESSAGE
