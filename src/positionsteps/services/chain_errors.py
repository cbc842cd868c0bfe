from __future__ import annotations

import httpx

from positionsteps.domain.errors import TransactionFailureCategory

_REVERT_MARKERS = ("revert", "execution reverted", "status 0", "out of gas")
_REJECT_MARKERS = ("user rejected", "user denied", "rejected the request")
_USER_REJECTED_CODE = 4001


def classify_confirmation_error(exc: BaseException) -> TransactionFailureCategory:
    if isinstance(exc, httpx.TimeoutException | TimeoutError):
        return TransactionFailureCategory.TIMEOUT
    if isinstance(exc, httpx.TransportError):
        return TransactionFailureCategory.TRANSPORT
    if getattr(exc, "code", None) == _USER_REJECTED_CODE:
        return TransactionFailureCategory.REJECTED

    message = str(exc).casefold()
    if any(marker in message for marker in _REJECT_MARKERS):
        return TransactionFailureCategory.REJECTED
    if any(marker in message for marker in _REVERT_MARKERS):
        return TransactionFailureCategory.REVERTED
    if "timeout" in message or "timed out" in message:
        return TransactionFailureCategory.TIMEOUT
    return TransactionFailureCategory.UNKNOWN
