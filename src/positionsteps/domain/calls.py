from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ContractCall:
    """A state-changing contract call; ABI encoding belongs to the chain client."""

    target: str
    method: str
    args: tuple[object, ...] = ()
    value: int = 0
    frontend_tag: str | None = field(default=None, compare=False)

    def describe(self) -> dict[str, object]:
        return {"target": self.target, "method": self.method, "value": str(self.value)}
