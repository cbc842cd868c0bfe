from __future__ import annotations

import asyncio
from decimal import Decimal

import httpx
import pytest

from positionsteps.domain.errors import TransactionFailed, TransactionFailureCategory
from positionsteps.domain.intent import Intent
from positionsteps.domain.steps import ExecuteStep, StepKind
from positionsteps.services.chain_errors import classify_confirmation_error
from positionsteps.services.driver import StepCallbacks, StepDriver


class _Recorder:
    def __init__(self) -> None:
        self.events: list[tuple[str, object, object]] = []

    def callbacks(self) -> StepCallbacks:
        return StepCallbacks(
            on_delegate_whitelisting_start=lambda step: self.events.append(("whitelist_start", step.kind, None)),
            on_delegate_whitelisting_end=lambda step, error: self.events.append(("whitelist_end", step.kind, error)),
            on_approval_start=lambda step: self.events.append(("approval_start", step.kind, None)),
            on_approval_end=lambda step, error: self.events.append(("approval_end", step.kind, error)),
        )


def test_run_drives_every_step_and_returns_execute_receipt(make_position_manager, fake_chain) -> None:
    manager = make_position_manager()
    recorder = _Recorder()
    intent = Intent.manage(1, -100, collateral_token="stETH", approval_type="approve")

    receipt = asyncio.run(manager.run(intent, callbacks=recorder.callbacks()))

    assert fake_chain.sent_methods == ["whitelistDelegate", "approve", "approve", "managePositionStETH"]
    assert all(handle.waited for handle in fake_chain.handles)
    assert receipt.transaction_hash == fake_chain.handles[-1].hash
    assert receipt.succeeded
    assert [event[0] for event in recorder.events] == [
        "whitelist_start",
        "whitelist_end",
        "approval_start",
        "approval_end",
        "approval_start",
        "approval_end",
    ]
    assert all(event[2] is None for event in recorder.events)


def test_permit_signature_is_injected_without_a_transaction(make_position_manager, fake_chain) -> None:
    manager = make_position_manager()
    recorder = _Recorder()

    asyncio.run(manager.run(Intent.manage(1, 1000), callbacks=recorder.callbacks()))

    assert fake_chain.sent_methods == ["managePosition"]
    execute_call = fake_chain.sent[0][0]
    assert execute_call.args[7][1] == 10**18
    assert [event[1] for event in recorder.events] == [StepKind.PERMIT, StepKind.PERMIT]


def test_reverted_approval_reports_to_end_callback_and_stops(make_position_manager, fake_chain) -> None:
    fake_chain.reverting_methods.add("approve")
    manager = make_position_manager()
    recorder = _Recorder()

    with pytest.raises(TransactionFailed) as excinfo:
        asyncio.run(manager.run(Intent.manage(1, 0, approval_type="approve"), callbacks=recorder.callbacks()))

    assert excinfo.value.category is TransactionFailureCategory.REVERTED
    assert excinfo.value.step_kind == "approve"
    assert excinfo.value.transaction_hash == fake_chain.handles[0].hash
    assert recorder.events[-1][0] == "approval_end"
    assert recorder.events[-1][2] is excinfo.value
    assert fake_chain.sent_methods == ["approve"]


def test_confirmation_timeout_is_wrapped_with_cause(make_position_manager, fake_chain) -> None:
    timeout = httpx.ReadTimeout("receipt polling timed out")
    fake_chain.wait_errors["managePosition"] = timeout
    manager = make_position_manager()

    with pytest.raises(TransactionFailed) as excinfo:
        asyncio.run(manager.run(Intent.manage(0, 10)))

    assert excinfo.value.category is TransactionFailureCategory.TIMEOUT
    assert excinfo.value.step_kind == "execute"
    assert excinfo.value.__cause__ is timeout


def test_action_error_is_reraised_unwrapped(make_position_manager, fake_chain) -> None:
    rejected = RuntimeError("user rejected transaction")
    fake_chain.send_errors["whitelistDelegate"] = rejected
    manager = make_position_manager()
    recorder = _Recorder()

    with pytest.raises(RuntimeError) as excinfo:
        asyncio.run(
            manager.run(
                Intent.manage(1, 0, collateral_token="stETH", approval_type="approve"),
                callbacks=recorder.callbacks(),
            )
        )

    assert excinfo.value is rejected
    assert recorder.events == [
        ("whitelist_start", StepKind.WHITELIST, None),
        ("whitelist_end", StepKind.WHITELIST, rejected),
    ]


def test_sequence_without_execute_step_is_an_error() -> None:
    async def _empty():
        if False:
            yield ExecuteStep  # pragma: no cover

    with pytest.raises(RuntimeError, match="without an execute step"):
        asyncio.run(StepDriver().run(_empty()))


@pytest.mark.parametrize(
    ("error", "category"),
    [
        (httpx.ConnectTimeout("slow"), TransactionFailureCategory.TIMEOUT),
        (TimeoutError(), TransactionFailureCategory.TIMEOUT),
        (httpx.ConnectError("down"), TransactionFailureCategory.TRANSPORT),
        (RuntimeError("execution reverted: fee exceeds max"), TransactionFailureCategory.REVERTED),
        (RuntimeError("User denied transaction signature"), TransactionFailureCategory.REJECTED),
        (ValueError("something odd"), TransactionFailureCategory.UNKNOWN),
    ],
)
def test_confirmation_error_classification(error, category) -> None:
    assert classify_confirmation_error(error) is category


def test_fee_cap_is_encoded_in_base_units(make_position_manager, fake_chain) -> None:
    manager = make_position_manager(max_fee_percentage=Decimal("0.05"))

    asyncio.run(manager.borrow(10))

    assert fake_chain.sent[0][0].args[6] == 5 * 10**16
