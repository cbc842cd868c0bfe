from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from positionsteps.domain.calls import ContractCall


@dataclass(frozen=True)
class Receipt:
    transaction_hash: str
    status: int
    block_number: int | None = None
    gas_used: int | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == 1


@runtime_checkable
class TransactionHandle(Protocol):
    """A broadcast transaction; ``wait`` resolves once it is mined."""

    @property
    def hash(self) -> str: ...

    async def wait(self) -> Receipt: ...


class ChainClient(Protocol):
    async def estimate_gas(self, call: ContractCall, sender: str) -> int: ...

    async def send(self, call: ContractCall, sender: str, gas_limit: int) -> TransactionHandle: ...


class AllowanceReader(Protocol):
    async def get_allowance(self, token_address: str, owner: str, spender: str) -> int: ...


class WhitelistReader(Protocol):
    async def is_delegate_whitelisted(self, position_manager: str, owner: str, delegate: str) -> bool: ...


class AccountInspector(Protocol):
    async def is_externally_owned_account(self, address: str) -> bool: ...


class TokenMetadataReader(Protocol):
    async def token_name(self, token_address: str) -> str: ...

    async def nonces(self, token_address: str, owner: str) -> int: ...


class ChainReader(AllowanceReader, WhitelistReader, AccountInspector, TokenMetadataReader, Protocol):
    """Every read the planner and the permit signer need."""


class TypedDataSigner(Protocol):
    @property
    def address(self) -> str: ...

    async def sign_typed_data(
        self,
        domain: Mapping[str, object],
        types: Mapping[str, Sequence[Mapping[str, str]]],
        values: Mapping[str, object],
    ) -> tuple[int, str, str]:
        """Return the ``(v, r, s)`` components of the EIP-712 signature."""
        ...
