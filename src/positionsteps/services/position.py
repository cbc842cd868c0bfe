from __future__ import annotations

import time
import uuid
from collections.abc import AsyncGenerator, Callable
from decimal import Decimal
from functools import partial

from positionsteps.domain.amounts import DECIMAL_PRECISION, to_base_units
from positionsteps.domain.auth_state import AuthorizationState
from positionsteps.domain.calls import ContractCall
from positionsteps.domain.intent import ApprovalPreference, Intent, require_positive
from positionsteps.domain.network import NetworkConfig, RouteKind
from positionsteps.domain.permit import PermitSignature
from positionsteps.domain.steps import Step
from positionsteps.logging_context import with_logging_context
from positionsteps.ports_chain import ChainClient, ChainReader, Receipt, TransactionHandle, TypedDataSigner
from positionsteps.services.driver import StepCallbacks, StepDriver
from positionsteps.services.permit_or_approve import PERMIT_DEADLINE_SHIFT_SECONDS, PermitOrApprove
from positionsteps.services.step_planner import PositionRoute, StepPlanner
from positionsteps.services.step_sequencer import StepSequencer, sequence_steps
from positionsteps.services.transactions import TransactionSender


class PositionManager:
    """Entry point for one owner's position backed by one underlying collateral token.

    ``plan`` returns the raw step sequence for callers that drive it themselves;
    ``run`` and the convenience operations drive it to the final receipt.
    """

    def __init__(
        self,
        network: NetworkConfig,
        *,
        underlying_token: str,
        chain: ChainClient,
        reader: ChainReader,
        signer: TypedDataSigner,
        gas_limit_multiplier: Decimal = Decimal("1"),
        frontend_tag: str | None = None,
        max_fee_percentage: Decimal = Decimal("1"),
        approval_type: ApprovalPreference = ApprovalPreference.PERMIT,
        permit_deadline_seconds: int = PERMIT_DEADLINE_SHIFT_SECONDS,
        clock: Callable[[], float] = time.time,
        driver: StepDriver | None = None,
    ) -> None:
        network.route(underlying_token, underlying_token)
        self.network = network
        self.underlying_token = underlying_token
        self.signer = signer
        self.max_fee_percentage = max_fee_percentage
        self.approval_type = approval_type
        self.planner = StepPlanner(network, reader)
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
        route = self.planner.position_route(intent, self.underlying_token)
        state = auth_state or AuthorizationState()
        return sequence_steps(partial(self._build_sequencer, intent, route, state))

    async def run(
        self,
        intent: Intent,
        auth_state: AuthorizationState | None = None,
        callbacks: StepCallbacks | None = None,
    ) -> Receipt:
        with with_logging_context(
            plan_id=uuid.uuid4().hex,
            owner=self.owner,
            token=self.underlying_token,
            network=self.network.name,
        ):
            return await self.driver.run(self.plan(intent, auth_state), callbacks)

    async def manage(
        self,
        collateral_change: Decimal | str | int,
        debt_change: Decimal | str | int,
        *,
        collateral_token: str | None = None,
        max_fee_percentage: Decimal | None = None,
        approval_type: ApprovalPreference | str | None = None,
        auth_state: AuthorizationState | None = None,
        callbacks: StepCallbacks | None = None,
    ) -> Receipt:
        intent = Intent.manage(
            collateral_change,
            debt_change,
            collateral_token=collateral_token,
            max_fee_percentage=self.max_fee_percentage if max_fee_percentage is None else max_fee_percentage,
            approval_type=approval_type or self.approval_type,
        )
        return await self.run(intent, auth_state, callbacks)

    async def open(
        self,
        collateral_amount: Decimal | str | int,
        debt_amount: Decimal | str | int,
        **options,
    ) -> Receipt:
        collateral = require_positive(collateral_amount, label="Collateral amount")
        debt = require_positive(debt_amount, label="Debt amount")
        return await self.manage(collateral, debt, **options)

    async def close(
        self,
        *,
        collateral_token: str | None = None,
        max_fee_percentage: Decimal | None = None,
        approval_type: ApprovalPreference | str | None = None,
        auth_state: AuthorizationState | None = None,
        callbacks: StepCallbacks | None = None,
    ) -> Receipt:
        intent = Intent.close(
            collateral_token=collateral_token,
            max_fee_percentage=self.max_fee_percentage if max_fee_percentage is None else max_fee_percentage,
            approval_type=approval_type or self.approval_type,
        )
        return await self.run(intent, auth_state, callbacks)

    async def add_collateral(self, amount: Decimal | str | int, **options) -> Receipt:
        return await self.manage(require_positive(amount), Decimal("0"), **options)

    async def withdraw_collateral(self, amount: Decimal | str | int, **options) -> Receipt:
        return await self.manage(require_positive(amount).copy_negate(), Decimal("0"), **options)

    async def borrow(self, amount: Decimal | str | int, **options) -> Receipt:
        return await self.manage(Decimal("0"), require_positive(amount), **options)

    async def repay_debt(self, amount: Decimal | str | int, **options) -> Receipt:
        return await self.manage(Decimal("0"), require_positive(amount).copy_negate(), **options)

    async def whitelist_delegate(self, collateral_token: str) -> TransactionHandle | None:
        route = self.network.route(self.underlying_token, collateral_token)
        if not route.uses_delegate:
            return None
        return await self.sender.send(self.whitelist_call(route.position_manager))

    def whitelist_call(self, delegate: str) -> ContractCall:
        return ContractCall(target=self.network.position_manager, method="whitelistDelegate", args=(delegate, True))

    async def _build_sequencer(
        self,
        intent: Intent,
        route: PositionRoute,
        auth_state: AuthorizationState,
    ) -> StepSequencer:
        plan = await self.planner.plan_position(intent, route=route, owner=self.owner, auth_state=auth_state)
        return StepSequencer(
            plan,
            authorizations=self.authorizations,
            sender=self.sender,
            build_call=partial(self.execute_call, intent, route),
            whitelist_call=self.whitelist_call(route.position_manager) if route.uses_delegate else None,
        )

    def execute_call(
        self,
        intent: Intent,
        route: PositionRoute,
        collateral_permit: PermitSignature,
        debt_permit: PermitSignature,
    ) -> ContractCall:
        collateral_units = to_base_units(intent.primary_amount, route.collateral.decimals)
        debt_units = to_base_units(intent.secondary_amount, route.debt.decimals)
        fee_units = to_base_units(intent.fee_cap, DECIMAL_PRECISION)
        is_collateral_increase = intent.is_primary_increase
        is_debt_increase = intent.is_secondary_increase

        match route.kind:
            case RouteKind.UNDERLYING:
                return ContractCall(
                    target=self.network.position_manager,
                    method="managePosition",
                    args=(
                        route.collateral.address,
                        self.owner,
                        collateral_units,
                        is_collateral_increase,
                        debt_units,
                        is_debt_increase,
                        fee_units,
                        collateral_permit.as_call_arg(),
                    ),
                )
            case RouteKind.WRAPPED_CAPPED | RouteKind.STETH:
                method = "managePositionStETH" if route.kind == RouteKind.STETH else "managePosition"
                return ContractCall(
                    target=route.position_manager,
                    method=method,
                    args=(
                        collateral_units,
                        is_collateral_increase,
                        debt_units,
                        is_debt_increase,
                        fee_units,
                        debt_permit.as_call_arg(),
                    ),
                )
            case RouteKind.ETH:
                return ContractCall(
                    target=route.position_manager,
                    method="managePositionETH",
                    args=(debt_units, is_debt_increase, fee_units, debt_permit.as_call_arg()),
                    value=collateral_units,
                )
        raise ValueError(f"unhandled route kind {route.kind}")
