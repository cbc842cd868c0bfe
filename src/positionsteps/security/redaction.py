from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

REDACTED = "***REDACTED***"

SENSITIVE_KEYS = {
    "SIGNATURE",
    "PRIVATE_KEY",
    "SECRET",
    "PASSWORD",
    "MNEMONIC",
    "AUTHORIZATION",
    "API_KEY",
    "RPC_URL",
}

_SENSITIVE_PARTS = tuple(part.casefold() for part in SENSITIVE_KEYS)
# Signature components are too short to match by substring.
_SENSITIVE_EXACT_KEYS = {"r", "s", "v", "sig", "apikey", "privatekey"}

_PLAIN_SECRET_PATTERNS = (
    re.compile(r"(?im)(authorization\s*[:=]\s*)(bearer\s+)?([^\s,;]+)"),
    re.compile(r"(?im)(private_key\s*[:=]\s*)([^\s,;]+)"),
)
_RPC_KEY_PATH_PATTERN = re.compile(r"(?i)(https?://[^\s/]+/v[23]/)([A-Za-z0-9_-]{8,})")
_QUERY_PARAM_PATTERN = re.compile(r"([?&])(apikey|api_key|key|token)=([^&\s]+)", re.IGNORECASE)


def _is_sensitive_key(key: object) -> bool:
    normalized = str(key).replace("-", "_").casefold()
    if normalized in _SENSITIVE_EXACT_KEYS:
        return True
    return any(part in normalized for part in _SENSITIVE_PARTS)


def _mask_secret(value: str) -> str:
    if not value:
        return REDACTED
    if len(value) > 8:
        return f"{value[:4]}{'*' * (len(value) - 8)}{value[-4:]}"
    if len(value) <= 2:
        return "*" * len(value)
    return f"{'*' * (len(value) - 2)}{value[-2:]}"


def sanitize_mapping(d: Mapping[str, Any]) -> dict[str, Any]:
    sanitized: dict[str, Any] = {}
    for key, value in d.items():
        key_str = str(key)
        if _is_sensitive_key(key_str):
            sanitized[key_str] = _mask_secret(str(value)) if value is not None else REDACTED
            continue
        sanitized[key_str] = redact_data(value)
    return sanitized


def _redact_match(match: re.Match[str]) -> str:
    prefix = match.group(1)
    optional_scheme = ""
    if match.lastindex and match.lastindex >= 3:
        optional_scheme = match.group(2) or ""
    return f"{prefix}{optional_scheme}[REDACTED]"


def sanitize_text(text: str) -> str:
    redacted = str(text)
    for pattern in _PLAIN_SECRET_PATTERNS:
        redacted = pattern.sub(_redact_match, redacted)
    redacted = _RPC_KEY_PATH_PATTERN.sub(lambda m: f"{m.group(1)}{_mask_secret(m.group(2))}", redacted)
    return _QUERY_PARAM_PATTERN.sub(
        lambda m: f"{m.group(1)}{m.group(2)}={_mask_secret(m.group(3))}", redacted
    )


def redact_data(value: Any) -> Any:
    if isinstance(value, Mapping):
        return sanitize_mapping(value)
    if isinstance(value, list):
        return [redact_data(item) for item in value]
    if isinstance(value, tuple):
        return tuple(redact_data(item) for item in value)
    if isinstance(value, str):
        return sanitize_text(value)
    return value
