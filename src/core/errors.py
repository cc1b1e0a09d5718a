# src/core/errors.py — v1
"""Error taxonomy and user-facing error classification.

Every failure that can reach a caller is reduced to an ErrorKind. Only
QUOTA and TRANSIENT feed the rate limiter; the dispatcher retries the
retryable kinds and turns whatever is left into a Rejected outcome carrying
user_message(kind), never a stack trace.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Coarse failure classes shared by dispatcher, pipelines and CLI."""

    AUTH = "auth"
    QUOTA = "quota"
    TRANSIENT = "transient"
    NETWORK = "network"
    IO = "io"
    PARSE = "parse"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


class ParaVaultError(Exception):
    """Base class for all paravault errors."""

    kind: ErrorKind = ErrorKind.UNKNOWN


class AuthError(ParaVaultError):
    """Missing or rejected provider credential."""

    kind = ErrorKind.AUTH


class QuotaError(ParaVaultError):
    """Provider rate limit or quota exceeded (HTTP 429 class)."""

    kind = ErrorKind.QUOTA


class TransientServiceError(ParaVaultError):
    """Provider-side failure expected to clear on retry (HTTP 5xx class)."""

    kind = ErrorKind.TRANSIENT


class NetworkError(ParaVaultError):
    """Connectivity failure before a response was received."""

    kind = ErrorKind.NETWORK


class LocalIOError(ParaVaultError):
    """Local filesystem read or write failure."""

    kind = ErrorKind.IO


class ParseError(ParaVaultError):
    """Classifier response could not be decoded."""

    kind = ErrorKind.PARSE


class UnknownError(ParaVaultError):
    """Anything that does not fit the other kinds."""

    kind = ErrorKind.UNKNOWN


class OperationCancelled(ParaVaultError):
    """A long-running pass observed its cancellation token."""

    kind = ErrorKind.CANCELLED


_RETRYABLE: frozenset[ErrorKind] = frozenset(
    {ErrorKind.QUOTA, ErrorKind.TRANSIENT, ErrorKind.NETWORK}
)

_USER_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.AUTH: "API key is missing or was rejected. Check your provider credentials.",
    ErrorKind.QUOTA: "Provider rate limit reached. Try again in a few minutes.",
    ErrorKind.TRANSIENT: "The classification service is temporarily unavailable.",
    ErrorKind.NETWORK: "Could not reach the classification service. Check your connection.",
    ErrorKind.IO: "The file could not be read or written.",
    ErrorKind.PARSE: "The classification response could not be understood.",
    ErrorKind.CANCELLED: "Processing was cancelled before this file was handled.",
    ErrorKind.UNKNOWN: "An unexpected error occurred while processing this file.",
}


def classify_error(error: BaseException) -> ErrorKind:
    """Map an arbitrary exception to an ErrorKind.

    Checks, in order: our own taxonomy, an HTTP ``status_code`` attribute
    (provider SDK errors carry one), builtin exception types, then message
    patterns.
    """
    if isinstance(error, ParaVaultError):
        return error.kind

    status = getattr(error, "status_code", None)
    if isinstance(status, int):
        kind = _kind_from_status(status)
        if kind is not None:
            return kind

    name = type(error).__name__.lower()
    msg = str(error).lower()

    if "authentication" in name or "permissiondenied" in name:
        return ErrorKind.AUTH
    if "ratelimit" in name:
        return ErrorKind.QUOTA
    if isinstance(error, (TimeoutError, ConnectionError)) or "timeout" in name or "connection" in name:
        return ErrorKind.NETWORK
    if "json" in name or "decode" in name:
        return ErrorKind.PARSE
    if isinstance(error, OSError):
        return ErrorKind.IO

    if any(p in msg for p in ("401", "403", "api key", "unauthorized", "invalid x-api-key")):
        return ErrorKind.AUTH
    if "429" in msg or "rate limit" in msg or "quota" in msg:
        return ErrorKind.QUOTA
    if any(c in msg for c in ("500", "502", "503", "504", "529", "overloaded", "server error")):
        return ErrorKind.TRANSIENT
    if "timed out" in msg or "connection" in msg or "network" in msg:
        return ErrorKind.NETWORK
    if "json" in msg or "parse" in msg or "decode" in msg:
        return ErrorKind.PARSE
    return ErrorKind.UNKNOWN


def _kind_from_status(status: int) -> ErrorKind | None:
    if status in (401, 403):
        return ErrorKind.AUTH
    if status == 429:
        return ErrorKind.QUOTA
    if status >= 500:
        return ErrorKind.TRANSIENT
    return None


def is_retryable(kind: ErrorKind) -> bool:
    """Whether another attempt could plausibly succeed."""
    return kind in _RETRYABLE


def feeds_rate_limiter(kind: ErrorKind) -> bool:
    """Whether a failure of this kind should slow the provider down."""
    return kind in (ErrorKind.QUOTA, ErrorKind.TRANSIENT)


def user_message(kind: ErrorKind) -> str:
    """User-facing description for an error kind."""
    return _USER_MESSAGES[kind]


_ERROR_CLASSES: dict[ErrorKind, type[ParaVaultError]] = {
    ErrorKind.AUTH: AuthError,
    ErrorKind.QUOTA: QuotaError,
    ErrorKind.TRANSIENT: TransientServiceError,
    ErrorKind.NETWORK: NetworkError,
    ErrorKind.IO: LocalIOError,
    ErrorKind.PARSE: ParseError,
    ErrorKind.CANCELLED: OperationCancelled,
    ErrorKind.UNKNOWN: UnknownError,
}


def to_paravault_error(error: BaseException) -> ParaVaultError:
    """Wrap a provider SDK exception in the matching taxonomy class.

    Taxonomy members are returned unchanged. Callers raise the result
    ``from`` the original so the SDK traceback stays attached.
    """
    if isinstance(error, ParaVaultError):
        return error
    kind = classify_error(error)
    return _ERROR_CLASSES[kind](f"{type(error).__name__}: {error}")
