from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from decimal import Decimal
from enum import StrEnum
from typing import ClassVar

from positionsteps.domain.calls import ContractCall
from positionsteps.domain.permit import PermitSignature
from positionsteps.ports_chain import TransactionHandle

TransactionAction = Callable[[], Awaitable[TransactionHandle]]
SignatureAction = Callable[[], Awaitable[PermitSignature]]


class StepKind(StrEnum):
    WHITELIST = "whitelist"
    PERMIT = "permit"
    APPROVE = "approve"
    EXECUTE = "execute"


@dataclass(frozen=True)
class WhitelistStep:
    kind: ClassVar[StepKind] = StepKind.WHITELIST

    step_number: int
    total_steps: int
    spender: str
    action: TransactionAction = field(repr=False, compare=False)


@dataclass(frozen=True)
class PermitStep:
    kind: ClassVar[StepKind] = StepKind.PERMIT

    step_number: int
    total_steps: int
    token: str
    amount: Decimal
    spender: str
    action: SignatureAction = field(repr=False, compare=False)


@dataclass(frozen=True)
class ApproveStep:
    kind: ClassVar[StepKind] = StepKind.APPROVE

    step_number: int
    total_steps: int
    token: str
    amount: Decimal
    spender: str
    action: TransactionAction = field(repr=False, compare=False)


@dataclass(frozen=True)
class ExecuteStep:
    kind: ClassVar[StepKind] = StepKind.EXECUTE

    step_number: int
    total_steps: int
    call: ContractCall
    action: TransactionAction = field(repr=False, compare=False)


Step = WhitelistStep | PermitStep | ApproveStep | ExecuteStep


def describe_step(step: Step) -> dict[str, object]:
    payload: dict[str, object] = {
        "kind": step.kind.value,
        "step_number": step.step_number,
        "total_steps": step.total_steps,
    }
    match step:
        case WhitelistStep(spender=spender):
            payload["spender"] = spender
        case PermitStep(token=token, amount=amount, spender=spender) | ApproveStep(
            token=token, amount=amount, spender=spender
        ):
            payload.update({"token": token, "amount": str(amount), "spender": spender})
        case ExecuteStep(call=call):
            payload.update(call.describe())
    return payload
