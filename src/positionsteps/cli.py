from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import uuid
from decimal import Decimal

from positionsteps.adapters.jsonrpc import JsonRpcChainReader
from positionsteps.config import Settings
from positionsteps.domain.auth_state import AuthorizationState
from positionsteps.domain.errors import PositionStepsError
from positionsteps.domain.intent import Intent
from positionsteps.logging_context import with_logging_context
from positionsteps.logging_utils import setup_logging
from positionsteps.ports_chain import ChainReader
from positionsteps.services.step_planner import AuthorizationRequirement, StepPlan, StepPlanner

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="positionsteps",
        description="Plan the authorization and execution steps of a position or savings change.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    position_parser = subparsers.add_parser("plan-position", help="Plan a position change")
    position_parser.add_argument("--owner", required=True, help="Position owner address")
    position_parser.add_argument("--underlying", default="wstETH", help="Underlying collateral token")
    position_parser.add_argument("--collateral-token", default=None, help="Collateral token routed through")
    position_parser.add_argument("--collateral-change", default="0", help="Signed collateral change")
    position_parser.add_argument("--debt-change", default="0", help="Signed debt change")
    position_parser.add_argument("--close", action="store_true", help="Plan closing the position")
    position_parser.add_argument("--approval-type", choices=("permit", "approve"), default=None)
    position_parser.add_argument("--max-fee", default=None, help="Max fee percentage, 0 < x <= 1")

    savings_parser = subparsers.add_parser("plan-savings", help="Plan a savings deposit or withdrawal")
    savings_parser.add_argument("--owner", required=True, help="Savings owner address")
    savings_parser.add_argument("--amount", required=True, help="Positive to deposit, negative to withdraw")
    savings_parser.add_argument("--approval-type", choices=("permit", "approve"), default=None)

    args = parser.parse_args(argv)
    settings = Settings()
    setup_logging(settings.log_level)

    try:
        if args.command == "plan-position":
            payload = asyncio.run(_plan_position(settings, args))
        else:
            payload = asyncio.run(_plan_savings(settings, args))
    except PositionStepsError as exc:
        logger.error("plan_failed", extra={"extra": {"error_type": type(exc).__name__}})
        print(json.dumps({"error": type(exc).__name__, "message": str(exc)}, sort_keys=True))
        return 2

    print(json.dumps(payload, sort_keys=True))
    return 0


def _build_reader(settings: Settings) -> ChainReader:
    rpc_url = settings.rpc_url_value()
    if not rpc_url:
        raise SystemExit("RPC_URL must be set to plan against the chain")
    return JsonRpcChainReader(rpc_url, timeout=settings.rpc_timeout_seconds)


async def _close_reader(reader: ChainReader) -> None:
    close = getattr(reader, "close", None)
    if close is not None:
        await close()


async def _plan_position(settings: Settings, args: argparse.Namespace) -> dict[str, object]:
    network = settings.network_config()
    approval_type = args.approval_type or settings.approval_type
    max_fee = Decimal(args.max_fee) if args.max_fee is not None else settings.max_fee_percentage
    if args.close:
        intent = Intent.close(
            collateral_token=args.collateral_token,
            max_fee_percentage=max_fee,
            approval_type=approval_type,
        )
    else:
        intent = Intent.manage(
            args.collateral_change,
            args.debt_change,
            collateral_token=args.collateral_token,
            max_fee_percentage=max_fee,
            approval_type=approval_type,
        )
    intent.validate()

    reader = _build_reader(settings)
    planner = StepPlanner(network, reader)
    try:
        route = planner.position_route(intent, args.underlying)
        with with_logging_context(plan_id=uuid.uuid4().hex, owner=args.owner, network=network.name):
            plan = await planner.plan_position(
                intent, route=route, owner=args.owner, auth_state=AuthorizationState()
            )
    finally:
        await _close_reader(reader)
    return {
        **plan.describe(),
        "route": route.kind.value,
        "position_manager": route.position_manager,
        "steps": planned_step_kinds(plan),
    }


async def _plan_savings(settings: Settings, args: argparse.Namespace) -> dict[str, object]:
    network = settings.network_config()
    intent = Intent.savings(args.amount, approval_type=args.approval_type or settings.approval_type)
    intent.validate()

    reader = _build_reader(settings)
    planner = StepPlanner(network, reader)
    try:
        with with_logging_context(plan_id=uuid.uuid4().hex, owner=args.owner, network=network.name):
            plan = await planner.plan_savings(intent, owner=args.owner, auth_state=AuthorizationState())
    finally:
        await _close_reader(reader)
    return {**plan.describe(), "vault": network.savings_vault, "steps": planned_step_kinds(plan)}


def _authorization_kind(requirement: AuthorizationRequirement) -> str:
    return "permit" if requirement.use_permit else "approve"


def planned_step_kinds(plan: StepPlan) -> list[str]:
    kinds: list[str] = []
    if plan.whitelist_needed:
        kinds.append("whitelist")
    if plan.primary_auth_needed and plan.primary is not None:
        kinds.append(_authorization_kind(plan.primary))
    if plan.secondary_auth_needed and plan.secondary is not None:
        kinds.append(_authorization_kind(plan.secondary))
    kinds.append("execute")
    return kinds


if __name__ == "__main__":
    sys.exit(main())
