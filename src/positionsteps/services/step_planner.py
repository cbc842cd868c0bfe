"""Authorization planning for position and savings intents.

The ``decide_*`` functions are pure: given an intent, a route and a fully resolved
``AuthorizationState`` they return the same ``StepPlan`` every time. ``StepPlanner``
is the only place that talks to the chain, and it does so before the first step of
a sequence is produced.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from decimal import Decimal

from positionsteps.domain.amounts import MAX_DECIMAL, from_base_units, to_base_units
from positionsteps.domain.auth_state import AuthorizationState
from positionsteps.domain.errors import ConfigurationError, UnsupportedRoute
from positionsteps.domain.intent import ApprovalPreference, Intent
from positionsteps.domain.network import CollateralRoute, NetworkConfig, RouteKind, TokenConfig
from positionsteps.domain.permit import PermitSignature
from positionsteps.domain.tokens import R_TOKEN
from positionsteps.ports_chain import ChainReader

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthorizationRequirement:
    """One token allowance the terminal call depends on."""

    token: TokenConfig
    amount: Decimal
    spender: str
    required: bool
    allowance: Decimal
    use_permit: bool
    cached_permit: PermitSignature | None = None

    @property
    def amount_units(self) -> int:
        return to_base_units(self.amount, self.token.decimals)

    @property
    def cached_permit_usable(self) -> bool:
        if not self.use_permit or self.cached_permit is None:
            return False
        return self.cached_permit.covers(self.token.address, self.amount_units)

    @property
    def step_needed(self) -> bool:
        return self.required and self.allowance < self.amount and not self.cached_permit_usable


@dataclass(frozen=True)
class StepPlan:
    whitelist_needed: bool
    primary: AuthorizationRequirement | None = None
    secondary: AuthorizationRequirement | None = None
    whitelist_spender: str | None = None

    @property
    def primary_auth_needed(self) -> bool:
        return self.primary is not None and self.primary.step_needed

    @property
    def secondary_auth_needed(self) -> bool:
        return self.secondary is not None and self.secondary.step_needed

    @property
    def total_steps(self) -> int:
        return sum((self.whitelist_needed, self.primary_auth_needed, self.secondary_auth_needed)) + 1

    def describe(self) -> dict[str, object]:
        return {
            "whitelist_needed": self.whitelist_needed,
            "primary_auth_needed": self.primary_auth_needed,
            "secondary_auth_needed": self.secondary_auth_needed,
            "total_steps": self.total_steps,
        }


@dataclass(frozen=True)
class PositionRoute:
    underlying: TokenConfig
    collateral: TokenConfig
    debt: TokenConfig
    route: CollateralRoute

    @property
    def kind(self) -> RouteKind:
        return self.route.kind

    @property
    def position_manager(self) -> str:
        return self.route.position_manager

    @property
    def uses_delegate(self) -> bool:
        return self.route.uses_delegate


def resolve_position_route(network: NetworkConfig, intent: Intent, underlying_token: str) -> PositionRoute:
    collateral_token = intent.authorization_token or underlying_token
    # Debt-only changes never need the delegate: R is burned or minted directly.
    if intent.is_secondary_only:
        collateral_token = underlying_token

    route = network.route(underlying_token, collateral_token)
    if route.kind == RouteKind.ETH and intent.primary_change < 0:
        raise UnsupportedRoute(
            "Withdrawing collateral as ETH is not supported",
            underlying_token=underlying_token,
            token=collateral_token,
        )
    return PositionRoute(
        underlying=network.token(underlying_token),
        collateral=network.token(collateral_token),
        debt=network.token(R_TOKEN),
        route=route,
    )


def _resolved(value: Decimal | bool | None, name: str) -> Decimal | bool:
    if value is None:
        raise ValueError(f"authorization state field {name} is not resolved")
    return value


def decide_position_plan(
    intent: Intent,
    route: PositionRoute,
    state: AuthorizationState,
    *,
    can_use_permit: bool,
) -> StepPlan:
    whitelist_needed = route.uses_delegate and not _resolved(state.delegate_whitelisted, "delegate_whitelisted")

    primary_required = _collateral_allowance_required(intent, route)
    primary = AuthorizationRequirement(
        token=route.collateral,
        amount=intent.primary_amount,
        spender=route.position_manager,
        required=primary_required,
        allowance=_resolved(state.primary_token_allowance, "primary_token_allowance")
        if primary_required
        else MAX_DECIMAL,
        use_permit=can_use_permit and route.collateral.supports_permit,
        cached_permit=state.cached_primary_permit,
    )

    secondary_required = _debt_allowance_required(intent, route)
    secondary = AuthorizationRequirement(
        token=route.debt,
        amount=intent.secondary_amount,
        spender=route.position_manager,
        required=secondary_required,
        allowance=_resolved(state.secondary_token_allowance, "secondary_token_allowance")
        if secondary_required
        else MAX_DECIMAL,
        use_permit=can_use_permit and route.debt.supports_permit,
        cached_permit=state.cached_secondary_permit,
    )

    return StepPlan(
        whitelist_needed=whitelist_needed,
        primary=primary,
        secondary=secondary,
        whitelist_spender=route.position_manager if route.uses_delegate else None,
    )


def decide_savings_plan(
    intent: Intent,
    *,
    token: TokenConfig,
    vault: str,
    state: AuthorizationState,
    can_use_permit: bool,
) -> StepPlan:
    required = intent.is_primary_increase
    primary = AuthorizationRequirement(
        token=token,
        amount=intent.primary_amount,
        spender=vault,
        required=required,
        allowance=_resolved(state.primary_token_allowance, "primary_token_allowance") if required else MAX_DECIMAL,
        use_permit=can_use_permit and token.supports_permit,
        cached_permit=state.cached_primary_permit,
    )
    return StepPlan(whitelist_needed=False, primary=primary)


def _collateral_allowance_required(intent: Intent, route: PositionRoute) -> bool:
    return intent.is_primary_increase and not route.collateral.is_native


def _debt_allowance_required(intent: Intent, route: PositionRoute) -> bool:
    if intent.is_secondary_increase or intent.secondary_change.is_zero():
        return False
    return route.uses_delegate


class StepPlanner:
    """Fills the missing parts of an ``AuthorizationState`` and decides the plan."""

    def __init__(self, network: NetworkConfig, reader: ChainReader) -> None:
        self.network = network
        self.reader = reader

    def position_route(self, intent: Intent, underlying_token: str) -> PositionRoute:
        return resolve_position_route(self.network, intent, underlying_token)

    async def plan_position(
        self,
        intent: Intent,
        *,
        route: PositionRoute,
        owner: str,
        auth_state: AuthorizationState,
    ) -> StepPlan:
        resolved, can_use_permit = await self.resolve_position_state(
            intent, route=route, owner=owner, auth_state=auth_state
        )
        plan = decide_position_plan(intent, route, resolved, can_use_permit=can_use_permit)
        logger.info(
            "plan_built",
            extra={
                "extra": {
                    **plan.describe(),
                    "route": route.kind.value,
                    "underlying_token": route.underlying.ticker,
                    "collateral_token": route.collateral.ticker,
                }
            },
        )
        return plan

    async def plan_savings(self, intent: Intent, *, owner: str, auth_state: AuthorizationState) -> StepPlan:
        vault = self.savings_vault()
        token = self.network.token(R_TOKEN)
        resolved, can_use_permit = await self.resolve_savings_state(
            intent, token=token, vault=vault, owner=owner, auth_state=auth_state
        )
        plan = decide_savings_plan(
            intent, token=token, vault=vault, state=resolved, can_use_permit=can_use_permit
        )
        logger.info("plan_built", extra={"extra": {**plan.describe(), "route": "savings"}})
        return plan

    def savings_vault(self) -> str:
        if not self.network.savings_vault:
            raise ConfigurationError(f"No savings vault is configured for {self.network.name}")
        return self.network.savings_vault

    async def resolve_position_state(
        self,
        intent: Intent,
        *,
        route: PositionRoute,
        owner: str,
        auth_state: AuthorizationState,
    ) -> tuple[AuthorizationState, bool]:
        whitelisted, primary_allowance, secondary_allowance, can_use_permit = await asyncio.gather(
            self._delegate_whitelisted(route, owner, auth_state.delegate_whitelisted),
            self._allowance(
                route.collateral,
                owner,
                route.position_manager,
                known=auth_state.primary_token_allowance,
                required=_collateral_allowance_required(intent, route),
            ),
            self._allowance(
                route.debt,
                owner,
                route.position_manager,
                known=auth_state.secondary_token_allowance,
                required=_debt_allowance_required(intent, route),
            ),
            self._can_use_permit(intent, owner),
        )
        resolved = replace(
            auth_state,
            delegate_whitelisted=whitelisted,
            primary_token_allowance=primary_allowance,
            secondary_token_allowance=secondary_allowance,
        )
        return resolved, can_use_permit

    async def resolve_savings_state(
        self,
        intent: Intent,
        *,
        token: TokenConfig,
        vault: str,
        owner: str,
        auth_state: AuthorizationState,
    ) -> tuple[AuthorizationState, bool]:
        allowance, can_use_permit = await asyncio.gather(
            self._allowance(
                token,
                owner,
                vault,
                known=auth_state.primary_token_allowance,
                required=intent.is_primary_increase,
            ),
            self._can_use_permit(intent, owner),
        )
        return replace(auth_state, primary_token_allowance=allowance), can_use_permit

    async def _delegate_whitelisted(self, route: PositionRoute, owner: str, known: bool | None) -> bool:
        if known is not None:
            return known
        if not route.uses_delegate:
            return True
        return await self.reader.is_delegate_whitelisted(
            self.network.position_manager, owner, route.position_manager
        )

    async def _allowance(
        self,
        token: TokenConfig,
        owner: str,
        spender: str,
        *,
        known: Decimal | None,
        required: bool,
    ) -> Decimal:
        if known is not None:
            return known
        if not required:
            return MAX_DECIMAL
        raw = await self.reader.get_allowance(token.address, owner, spender)
        return from_base_units(raw, token.decimals)

    async def _can_use_permit(self, intent: Intent, owner: str) -> bool:
        if intent.approval_preference != ApprovalPreference.PERMIT:
            return False
        return await self.reader.is_externally_owned_account(owner)
