from __future__ import annotations

from dataclasses import dataclass

from positionsteps.domain.tokens import ZERO_ADDRESS

ZERO_BYTES32 = "0x" + "00" * 32

PERMIT_TYPES: dict[str, list[dict[str, str]]] = {
    "Permit": [
        {"name": "owner", "type": "address"},
        {"name": "spender", "type": "address"},
        {"name": "value", "type": "uint256"},
        {"name": "nonce", "type": "uint256"},
        {"name": "deadline", "type": "uint256"},
    ],
}


@dataclass(frozen=True)
class PermitSignature:
    token: str
    value: int
    deadline: int
    v: int
    r: str
    s: str

    @property
    def is_empty(self) -> bool:
        return self == EMPTY_PERMIT_SIGNATURE

    def covers(self, token_address: str, amount: int) -> bool:
        if self.is_empty:
            return False
        return self.token.lower() == token_address.lower() and self.value >= amount

    def as_call_arg(self) -> tuple[str, int, int, int, str, str]:
        return (self.token, self.value, self.deadline, self.v, self.r, self.s)

    def to_dict(self) -> dict[str, object]:
        return {
            "token": self.token,
            "value": str(self.value),
            "deadline": self.deadline,
            "v": self.v,
            "r": self.r,
            "s": self.s,
        }


EMPTY_PERMIT_SIGNATURE = PermitSignature(
    token=ZERO_ADDRESS,
    value=0,
    deadline=0,
    v=0,
    r=ZERO_BYTES32,
    s=ZERO_BYTES32,
)
