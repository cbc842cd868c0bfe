from __future__ import annotations

import asyncio
import os
from collections.abc import AsyncGenerator

import pytest

from positionsteps.config import Settings
from positionsteps.domain.calls import ContractCall
from positionsteps.domain.network import MAINNET, NetworkConfig
from positionsteps.domain.permit import PermitSignature
from positionsteps.domain.steps import PermitStep, Step
from positionsteps.ports_chain import Receipt
from positionsteps.services.position import PositionManager
from positionsteps.services.savings import SavingsManager

OWNER = "0x1111111111111111111111111111111111111111"
SAVINGS_VAULT = "0x2222222222222222222222222222222222222222"
NOW = 1_700_000_000
SIGNATURE_R = "0x" + "ab" * 32
SIGNATURE_S = "0x" + "cd" * 32


@pytest.fixture(autouse=True)
def isolate_settings_from_host_env(monkeypatch: pytest.MonkeyPatch):
    original_env_file = Settings.model_config.get("env_file")
    Settings.model_config["env_file"] = None

    settings_env_keys: set[str] = set()
    for field in Settings.model_fields.values():
        if isinstance(field.alias, str):
            settings_env_keys.add(field.alias)

    for key in list(os.environ):
        if key in settings_env_keys:
            monkeypatch.delenv(key, raising=False)

    yield

    Settings.model_config["env_file"] = original_env_file


class FakeHandle:
    def __init__(self, transaction_hash: str, *, status: int = 1, error: Exception | None = None) -> None:
        self._hash = transaction_hash
        self.status = status
        self.error = error
        self.waited = False

    @property
    def hash(self) -> str:
        return self._hash

    async def wait(self) -> Receipt:
        self.waited = True
        if self.error is not None:
            raise self.error
        return Receipt(transaction_hash=self._hash, status=self.status, block_number=19_000_000)


class FakeChain:
    def __init__(self, *, gas_estimate: int = 100_000) -> None:
        self.gas_estimate = gas_estimate
        self.sent: list[tuple[ContractCall, str, int]] = []
        self.handles: list[FakeHandle] = []
        self.reverting_methods: set[str] = set()
        self.wait_errors: dict[str, Exception] = {}
        self.send_errors: dict[str, Exception] = {}

    @property
    def sent_methods(self) -> list[str]:
        return [call.method for call, _, _ in self.sent]

    async def estimate_gas(self, call: ContractCall, sender: str) -> int:
        return self.gas_estimate

    async def send(self, call: ContractCall, sender: str, gas_limit: int) -> FakeHandle:
        error = self.send_errors.get(call.method)
        if error is not None:
            raise error
        self.sent.append((call, sender, gas_limit))
        handle = FakeHandle(
            f"0x{len(self.sent):064x}",
            status=0 if call.method in self.reverting_methods else 1,
            error=self.wait_errors.get(call.method),
        )
        self.handles.append(handle)
        return handle


class FakeReader:
    def __init__(
        self,
        *,
        allowances: dict[tuple[str, str], int] | None = None,
        whitelisted: bool = False,
        eoa: bool = True,
        names: dict[str, str] | None = None,
        nonce: int = 0,
    ) -> None:
        self.allowances = {(token.lower(), spender.lower()): value for (token, spender), value in (allowances or {}).items()}
        self.whitelisted = whitelisted
        self.eoa = eoa
        self.names = names or {}
        self.nonce = nonce
        self.calls: list[str] = []

    def set_allowance(self, token: str, spender: str, value: int) -> None:
        self.allowances[(token.lower(), spender.lower())] = value

    async def get_allowance(self, token_address: str, owner: str, spender: str) -> int:
        self.calls.append("get_allowance")
        return self.allowances.get((token_address.lower(), spender.lower()), 0)

    async def is_delegate_whitelisted(self, position_manager: str, owner: str, delegate: str) -> bool:
        self.calls.append("is_delegate_whitelisted")
        return self.whitelisted

    async def is_externally_owned_account(self, address: str) -> bool:
        self.calls.append("is_externally_owned_account")
        return self.eoa

    async def token_name(self, token_address: str) -> str:
        self.calls.append("token_name")
        return self.names.get(token_address.lower(), "Token")

    async def nonces(self, token_address: str, owner: str) -> int:
        self.calls.append("nonces")
        return self.nonce


class FakeSigner:
    def __init__(self, address: str = OWNER) -> None:
        self._address = address
        self.requests: list[dict[str, object]] = []

    @property
    def address(self) -> str:
        return self._address

    async def sign_typed_data(self, domain, types, values) -> tuple[int, str, str]:
        self.requests.append({"domain": dict(domain), "types": types, "values": dict(values)})
        return 27, SIGNATURE_R, SIGNATURE_S


@pytest.fixture
def network() -> NetworkConfig:
    return MAINNET.with_savings_vault(SAVINGS_VAULT)


@pytest.fixture
def fake_chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def fake_reader() -> FakeReader:
    return FakeReader()


@pytest.fixture
def fake_signer() -> FakeSigner:
    return FakeSigner()


@pytest.fixture
def make_position_manager(network, fake_chain, fake_reader, fake_signer):
    def _make(**overrides) -> PositionManager:
        base = {
            "underlying_token": "wstETH",
            "chain": fake_chain,
            "reader": fake_reader,
            "signer": fake_signer,
            "clock": lambda: NOW,
        }
        base.update(overrides)
        return PositionManager(network, **base)

    return _make


@pytest.fixture
def make_savings_manager(network, fake_chain, fake_reader, fake_signer):
    def _make(**overrides) -> SavingsManager:
        base = {
            "chain": fake_chain,
            "reader": fake_reader,
            "signer": fake_signer,
            "clock": lambda: NOW,
        }
        base.update(overrides)
        return SavingsManager(network, **base)

    return _make


async def _collect(steps: AsyncGenerator[Step, PermitSignature | None]) -> list[Step]:
    collected: list[Step] = []
    injected: PermitSignature | None = None
    while True:
        try:
            step = await steps.asend(injected)
        except StopAsyncIteration:
            return collected
        collected.append(step)
        injected = await step.action() if isinstance(step, PermitStep) else None


@pytest.fixture
def collect_steps():
    """Walk a plan without executing transactions; permit steps are signed and fed back."""

    def _collect_sync(steps: AsyncGenerator[Step, PermitSignature | None]) -> list[Step]:
        return asyncio.run(_collect(steps))

    return _collect_sync
