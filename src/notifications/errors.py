from __future__ import annotations

from enum import Enum


INVALID_REGISTRATION_TOKEN = "invalid-registration-token"
REGISTRATION_TOKEN_NOT_REGISTERED = "registration-token-not-registered"
INVALID_ARGUMENT = "invalid-argument"

TERMINAL_TOKEN_CODES = frozenset(
    {
        INVALID_REGISTRATION_TOKEN,
        REGISTRATION_TOKEN_NOT_REGISTERED,
        INVALID_ARGUMENT,
    }
)


class ErrorKind(str, Enum):
    NOT_INITIALIZED = "not_initialized"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    INVALID_TOKEN = "invalid_token"
    TRANSIENT = "transient"
    TIMEOUT = "timeout"
    VALIDATION = "validation"
    PERSISTENCE = "persistence"
    NO_TOKENS = "no_tokens"


class PushError(Exception):
    kind: ErrorKind = ErrorKind.TRANSIENT


class ProviderError(PushError):
    """Failure reported by the push gateway for one send."""

    def __init__(self, code: str, message: str = "") -> None:
        self.code = code
        super().__init__(message or code)

    @property
    def is_token_error(self) -> bool:
        return self.code in TERMINAL_TOKEN_CODES

    @property
    def kind(self) -> ErrorKind:  # type: ignore[override]
        return ErrorKind.INVALID_TOKEN if self.is_token_error else ErrorKind.TRANSIENT


class SendTimeoutError(ProviderError):
    def __init__(self, timeout_seconds: float) -> None:
        super().__init__("timeout", f"Push request timeout after {timeout_seconds:g}s")

    @property
    def kind(self) -> ErrorKind:  # type: ignore[override]
        return ErrorKind.TIMEOUT


class ProviderUnavailableError(PushError):
    kind = ErrorKind.PROVIDER_UNAVAILABLE


class PersistenceError(PushError):
    kind = ErrorKind.PERSISTENCE


class StoreTimeoutError(PersistenceError):
    kind = ErrorKind.TIMEOUT


def is_terminal_token_error(exc: BaseException) -> bool:
    return isinstance(exc, ProviderError) and exc.is_token_error


def error_kind(exc: BaseException) -> ErrorKind:
    if isinstance(exc, PushError):
        return exc.kind
    return ErrorKind.TRANSIENT
