from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest

from positionsteps.domain.errors import InvalidIntent, UnsupportedRoute
from positionsteps.domain.network import MAINNET

OWNER = "0x1111111111111111111111111111111111111111"
BASE_PM = MAINNET.position_manager
PM_STETH = MAINNET.underlying_tokens["wstETH"]["stETH"].position_manager
PM_RETH = MAINNET.underlying_tokens["wcrETH"]["rETH"].position_manager


def test_open_on_underlying_route_calls_base_position_manager(make_position_manager, fake_chain) -> None:
    manager = make_position_manager(approval_type="approve")

    asyncio.run(manager.open("1.5", 3000))

    assert fake_chain.sent_methods == ["approve", "managePosition"]
    approve_call = fake_chain.sent[0][0]
    assert approve_call.args == (BASE_PM, 1_500_000_000_000_000_000)
    execute_call = fake_chain.sent[1][0]
    assert execute_call.target == BASE_PM
    assert execute_call.args[:7] == (
        MAINNET.tokens["wstETH"].address,
        OWNER,
        1_500_000_000_000_000_000,
        True,
        3000 * 10**18,
        True,
        10**18,
    )


@pytest.mark.parametrize(
    ("operation", "args"),
    [
        ("open", (0, 1)),
        ("open", (1, 0)),
        ("add_collateral", (0,)),
        ("withdraw_collateral", ("-1",)),
        ("borrow", (0,)),
        ("repay_debt", (-5,)),
    ],
)
def test_convenience_operations_require_positive_amounts(make_position_manager, fake_chain, operation, args) -> None:
    manager = make_position_manager()

    with pytest.raises(InvalidIntent, match="must be greater than 0"):
        asyncio.run(getattr(manager, operation)(*args))

    assert fake_chain.sent == []


def test_withdraw_collateral_and_repay_debt_are_decreases(make_position_manager, fake_chain) -> None:
    manager = make_position_manager()

    asyncio.run(manager.withdraw_collateral(2))
    asyncio.run(manager.repay_debt(100))

    withdraw_args = fake_chain.sent[0][0].args
    repay_args = fake_chain.sent[1][0].args
    assert withdraw_args[2:6] == (2 * 10**18, False, 0, False)
    assert repay_args[2:6] == (0, False, 100 * 10**18, False)


def test_close_through_steth_delegate_approves_unlimited_r(make_position_manager, fake_chain, fake_reader) -> None:
    fake_reader.whitelisted = True
    manager = make_position_manager(approval_type="approve")

    asyncio.run(manager.close(collateral_token="stETH"))

    assert fake_chain.sent_methods == ["approve", "managePositionStETH"]
    approve_call = fake_chain.sent[0][0]
    assert approve_call.target == MAINNET.tokens["R"].address
    assert approve_call.args == (PM_STETH, 2**256 - 1)
    execute_call = fake_chain.sent[1][0]
    assert execute_call.target == PM_STETH
    assert execute_call.args[:5] == (0, False, 2**256 - 1, False, 10**18)


def test_eth_collateral_is_attached_as_call_value(make_position_manager, fake_chain, fake_reader) -> None:
    fake_reader.whitelisted = True
    manager = make_position_manager()

    asyncio.run(manager.add_collateral("0.25", collateral_token="ETH"))

    assert fake_chain.sent_methods == ["managePositionETH"]
    call = fake_chain.sent[0][0]
    assert call.target == PM_STETH
    assert call.value == 250_000_000_000_000_000
    assert call.args[:3] == (0, False, 10**18)


def test_wrapped_capped_collateral_uses_reth_delegate(make_position_manager, fake_chain, fake_reader) -> None:
    fake_reader.whitelisted = True
    fake_reader.set_allowance(MAINNET.tokens["rETH"].address, PM_RETH, 10**20)
    manager = make_position_manager(underlying_token="wcrETH")

    asyncio.run(manager.open(1, 2000, collateral_token="rETH"))

    assert fake_chain.sent_methods == ["managePosition"]
    call = fake_chain.sent[0][0]
    assert call.target == PM_RETH
    assert call.args[:4] == (10**18, True, 2000 * 10**18, True)


def test_whitelist_delegate(make_position_manager, fake_chain) -> None:
    manager = make_position_manager()

    assert asyncio.run(manager.whitelist_delegate("wstETH")) is None
    handle = asyncio.run(manager.whitelist_delegate("stETH"))

    assert handle is fake_chain.handles[0]
    call = fake_chain.sent[0][0]
    assert (call.target, call.method, call.args) == (BASE_PM, "whitelistDelegate", (PM_STETH, True))


def test_unknown_underlying_token_is_rejected(make_position_manager) -> None:
    with pytest.raises(UnsupportedRoute):
        make_position_manager(underlying_token="rETH")


def test_gas_multiplier_and_frontend_tag_reach_the_chain(make_position_manager, fake_chain) -> None:
    manager = make_position_manager(gas_limit_multiplier=Decimal("1.5"), frontend_tag="ui-1")

    asyncio.run(manager.borrow(1))

    call, _, gas_limit = fake_chain.sent[0]
    assert gas_limit == 150_000
    assert call.frontend_tag == "ui-1"
