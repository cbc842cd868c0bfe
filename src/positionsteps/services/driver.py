from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, Callable
from dataclasses import dataclass

from positionsteps.domain.errors import PositionStepsError, TransactionFailed, TransactionFailureCategory
from positionsteps.domain.permit import PermitSignature
from positionsteps.domain.steps import ApproveStep, ExecuteStep, PermitStep, Step, WhitelistStep, describe_step
from positionsteps.logging_context import with_logging_context
from positionsteps.ports_chain import Receipt, TransactionHandle
from positionsteps.services.chain_errors import classify_confirmation_error

logger = logging.getLogger(__name__)

AuthorizationStep = PermitStep | ApproveStep


@dataclass(frozen=True)
class StepCallbacks:
    """Optional lifecycle hooks; ``*_end`` receives the error when the step failed."""

    on_delegate_whitelisting_start: Callable[[WhitelistStep], None] | None = None
    on_delegate_whitelisting_end: Callable[[WhitelistStep, BaseException | None], None] | None = None
    on_approval_start: Callable[[AuthorizationStep], None] | None = None
    on_approval_end: Callable[[AuthorizationStep, BaseException | None], None] | None = None


class StepDriver:
    """Runs a step sequence to completion: one step at a time, each confirmed before the next."""

    async def run(
        self,
        steps: AsyncGenerator[Step, PermitSignature | None],
        callbacks: StepCallbacks | None = None,
    ) -> Receipt:
        callbacks = callbacks or StepCallbacks()
        injected: PermitSignature | None = None
        try:
            while True:
                try:
                    step = await steps.asend(injected)
                except StopAsyncIteration:
                    break
                injected = None
                with with_logging_context(step_kind=step.kind.value):
                    logger.info("step_started", extra={"extra": describe_step(step)})
                    match step:
                        case ExecuteStep():
                            receipt = await self._run_with_callbacks(step, None, None)
                            assert isinstance(receipt, Receipt)
                            return receipt
                        case WhitelistStep():
                            await self._run_with_callbacks(
                                step,
                                callbacks.on_delegate_whitelisting_start,
                                callbacks.on_delegate_whitelisting_end,
                            )
                        case ApproveStep():
                            await self._run_with_callbacks(
                                step, callbacks.on_approval_start, callbacks.on_approval_end
                            )
                        case PermitStep():
                            injected = await self._run_with_callbacks(
                                step, callbacks.on_approval_start, callbacks.on_approval_end
                            )
        finally:
            await steps.aclose()
        raise RuntimeError("step sequence ended without an execute step")

    async def _run_with_callbacks(
        self,
        step: Step,
        on_start: Callable[..., None] | None,
        on_end: Callable[..., None] | None,
    ) -> PermitSignature | Receipt:
        if on_start is not None:
            on_start(step)
        try:
            if isinstance(step, PermitStep):
                result: PermitSignature | Receipt = await step.action()
            else:
                result = await self._confirm(step, await step.action())
        except Exception as exc:
            logger.warning(
                "step_failed",
                extra={"extra": {**describe_step(step), "error_type": type(exc).__name__}},
            )
            if on_end is not None:
                on_end(step, exc)
            raise
        if on_end is not None:
            on_end(step, None)
        return result

    async def _confirm(self, step: Step, handle: TransactionHandle) -> Receipt:
        try:
            receipt = await handle.wait()
        except PositionStepsError:
            raise
        except Exception as exc:
            category = classify_confirmation_error(exc)
            raise TransactionFailed(
                step_kind=step.kind.value,
                category=category,
                transaction_hash=handle.hash,
                message=str(exc) or None,
            ) from exc
        if not receipt.succeeded:
            raise TransactionFailed(
                step_kind=step.kind.value,
                category=TransactionFailureCategory.REVERTED,
                transaction_hash=receipt.transaction_hash,
            )
        logger.info(
            "step_confirmed",
            extra={
                "extra": {
                    "step_number": step.step_number,
                    "transaction_hash": receipt.transaction_hash,
                    "block_number": receipt.block_number,
                }
            },
        )
        return receipt
