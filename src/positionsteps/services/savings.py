from __future__ import annotations

import time
import uuid
from collections.abc import AsyncGenerator, Callable
from decimal import Decimal
from functools import partial

from positionsteps.domain.amounts import to_base_units
from positionsteps.domain.auth_state import AuthorizationState
from positionsteps.domain.calls import ContractCall
from positionsteps.domain.intent import ApprovalPreference, Intent, require_positive
from positionsteps.domain.network import NetworkConfig
from positionsteps.domain.permit import PermitSignature
from positionsteps.domain.steps import Step
from positionsteps.domain.tokens import R_TOKEN
from positionsteps.logging_context import with_logging_context
from positionsteps.ports_chain import ChainClient, ChainReader, Receipt, TypedDataSigner
from positionsteps.services.driver import StepCallbacks, StepDriver
from positionsteps.services.permit_or_approve import PERMIT_DEADLINE_SHIFT_SECONDS, PermitOrApprove
from positionsteps.services.step_planner import StepPlanner
from positionsteps.services.step_sequencer import StepSequencer, sequence_steps
from positionsteps.services.transactions import TransactionSender


class SavingsManager:
    """Deposits R into, and withdraws R from, the savings vault for one owner."""

    def __init__(
        self,
        network: NetworkConfig,
        *,
        chain: ChainClient,
        reader: ChainReader,
        signer: TypedDataSigner,
        gas_limit_multiplier: Decimal = Decimal("1"),
        frontend_tag: str | None = None,
        approval_type: ApprovalPreference = ApprovalPreference.PERMIT,
        permit_deadline_seconds: int = PERMIT_DEADLINE_SHIFT_SECONDS,
        clock: Callable[[], float] = time.time,
        driver: StepDriver | None = None,
    ) -> None:
        self.planner = StepPlanner(network, reader)
        self.vault = self.planner.savings_vault()
        self.network = network
        self.token = network.token(R_TOKEN)
        self.signer = signer
        self.approval_type = approval_type
        self.sender = TransactionSender(
            chain,
            sender=signer.address,
            gas_limit_multiplier=gas_limit_multiplier,
            frontend_tag=frontend_tag,
        )
        self.authorizations = PermitOrApprove(
            network,
            sender=self.sender,
            signer=signer,
            reader=reader,
            clock=clock,
            permit_deadline_seconds=permit_deadline_seconds,
        )
        self.driver = driver or StepDriver()

    @property
    def owner(self) -> str:
        return self.signer.address

    def plan(
        self,
        intent: Intent,
        auth_state: AuthorizationState | None = None,
    ) -> AsyncGenerator[Step, PermitSignature | None]:
        intent.validate()
        state = auth_state or AuthorizationState()
        return sequence_steps(partial(self._build_sequencer, intent, state))

    async def run(
        self,
        intent: Intent,
        auth_state: AuthorizationState | None = None,
        callbacks: StepCallbacks | None = None,
    ) -> Receipt:
        with with_logging_context(
            plan_id=uuid.uuid4().hex,
            owner=self.owner,
            token=self.token.ticker,
            network=self.network.name,
        ):
            return await self.driver.run(self.plan(intent, auth_state), callbacks)

    async def deposit(
        self,
        amount: Decimal | str | int,
        *,
        approval_type: ApprovalPreference | str | None = None,
        auth_state: AuthorizationState | None = None,
        callbacks: StepCallbacks | None = None,
    ) -> Receipt:
        intent = Intent.savings(require_positive(amount), approval_type=approval_type or self.approval_type)
        return await self.run(intent, auth_state, callbacks)

    async def withdraw(
        self,
        amount: Decimal | str | int,
        *,
        auth_state: AuthorizationState | None = None,
        callbacks: StepCallbacks | None = None,
    ) -> Receipt:
        intent = Intent.savings(require_positive(amount).copy_negate(), approval_type=self.approval_type)
        return await self.run(intent, auth_state, callbacks)

    async def _build_sequencer(self, intent: Intent, auth_state: AuthorizationState) -> StepSequencer:
        plan = await self.planner.plan_savings(intent, owner=self.owner, auth_state=auth_state)
        return StepSequencer(
            plan,
            authorizations=self.authorizations,
            sender=self.sender,
            build_call=partial(self.execute_call, intent),
        )

    def execute_call(
        self,
        intent: Intent,
        permit: PermitSignature,
        _unused: PermitSignature,
    ) -> ContractCall:
        amount_units = to_base_units(intent.primary_amount, self.token.decimals)
        if not intent.is_primary_increase:
            return ContractCall(
                target=self.vault,
                method="withdraw",
                args=(amount_units, self.owner, self.owner),
            )
        if permit.is_empty:
            return ContractCall(target=self.vault, method="deposit", args=(amount_units, self.owner))
        return ContractCall(
            target=self.vault,
            method="depositWithPermit",
            args=(amount_units, self.owner, permit.as_call_arg()),
        )
