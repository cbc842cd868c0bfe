from __future__ import annotations

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

ETH_TOKEN = "ETH"
R_TOKEN = "R"


def is_native_token_address(address: str) -> bool:
    return address.lower() == ZERO_ADDRESS
