from __future__ import annotations

from enum import StrEnum


class PositionStepsError(Exception):
    """Base class for every error raised while planning or driving steps."""


class ConfigurationError(PositionStepsError):
    pass


class InvalidIntent(PositionStepsError, ValueError):
    pass


class UnsupportedRoute(PositionStepsError):
    def __init__(self, message: str, *, underlying_token: str | None = None, token: str | None = None) -> None:
        super().__init__(message)
        self.underlying_token = underlying_token
        self.token = token


class SignatureRequired(PositionStepsError):
    def __init__(self, token: str) -> None:
        super().__init__(f"{token} permit signature is required")
        self.token = token


class TransactionFailureCategory(StrEnum):
    REVERTED = "reverted"
    TIMEOUT = "timeout"
    REJECTED = "rejected"
    TRANSPORT = "transport"
    UNKNOWN = "unknown"


class TransactionFailed(PositionStepsError):
    def __init__(
        self,
        *,
        step_kind: str,
        category: TransactionFailureCategory,
        transaction_hash: str | None = None,
        message: str | None = None,
    ) -> None:
        detail = message or category.value
        super().__init__(f"{step_kind} transaction failed: {detail}")
        self.step_kind = step_kind
        self.category = category
        self.transaction_hash = transaction_hash


class ChainReadError(PositionStepsError):
    def __init__(
        self,
        message: str,
        *,
        method: str,
        code: int | None = None,
        payload: dict[str, object] | None = None,
    ) -> None:
        super().__init__(message)
        self.method = method
        self.code = code
        self.payload = payload
