"""Minimal ABI helpers for the read-only calls the planner issues.

Only static ``address``/``uint256``/``bool`` arguments and ``uint256``/``bool``/
``string`` return values are supported.
"""

from __future__ import annotations

from functools import lru_cache

from Crypto.Hash import keccak

_WORD = 32


@lru_cache(maxsize=64)
def function_selector(signature: str) -> str:
    digest = keccak.new(digest_bits=256)
    digest.update(signature.encode("ascii"))
    return "0x" + digest.hexdigest()[:8]


def encode_address(address: str) -> str:
    raw = address.lower().removeprefix("0x")
    if len(raw) != 40:
        raise ValueError(f"invalid address {address!r}")
    int(raw, 16)
    return raw.rjust(_WORD * 2, "0")


def encode_uint(value: int) -> str:
    if value < 0 or value >= 2**256:
        raise ValueError(f"uint256 out of range: {value}")
    return f"{value:064x}"


def encode_call(signature: str, *args: str | int | bool) -> str:
    words: list[str] = []
    for arg in args:
        if isinstance(arg, bool):
            words.append(encode_uint(int(arg)))
        elif isinstance(arg, int):
            words.append(encode_uint(arg))
        else:
            words.append(encode_address(arg))
    return function_selector(signature) + "".join(words)


def _payload(data: str) -> bytes:
    return bytes.fromhex(data.removeprefix("0x"))


def decode_uint(data: str) -> int:
    payload = _payload(data)
    if len(payload) < _WORD:
        raise ValueError("return data too short for uint256")
    return int.from_bytes(payload[:_WORD], "big")


def decode_bool(data: str) -> bool:
    return decode_uint(data) != 0


def decode_string(data: str) -> str:
    payload = _payload(data)
    if len(payload) < 2 * _WORD:
        raise ValueError("return data too short for string")
    offset = int.from_bytes(payload[:_WORD], "big")
    length = int.from_bytes(payload[offset : offset + _WORD], "big")
    start = offset + _WORD
    if start + length > len(payload):
        raise ValueError("string length exceeds return data")
    return payload[start : start + length].decode("utf-8")
