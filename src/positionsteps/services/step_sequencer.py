"""Cooperative step sequencing.

``StepSequencer.steps`` is a plain generator: callers advance it with ``send``. A
``PermitStep`` must be answered with the ``PermitSignature`` its action produced;
every other step is answered with ``None`` once its transaction is confirmed.
The generator itself never touches the chain.
"""

from __future__ import annotations

import itertools
from collections.abc import AsyncGenerator, Awaitable, Callable, Generator, Iterator
from functools import partial

from positionsteps.domain.calls import ContractCall
from positionsteps.domain.errors import SignatureRequired
from positionsteps.domain.permit import EMPTY_PERMIT_SIGNATURE, PermitSignature
from positionsteps.domain.steps import ExecuteStep, PermitStep, Step, WhitelistStep
from positionsteps.services.permit_or_approve import PermitOrApprove
from positionsteps.services.step_planner import AuthorizationRequirement, StepPlan
from positionsteps.services.transactions import TransactionSender

CallBuilder = Callable[[PermitSignature, PermitSignature], ContractCall]
StepGenerator = Generator[Step, PermitSignature | None, None]


class StepSequencer:
    def __init__(
        self,
        plan: StepPlan,
        *,
        authorizations: PermitOrApprove,
        sender: TransactionSender,
        build_call: CallBuilder,
        whitelist_call: ContractCall | None = None,
    ) -> None:
        if plan.whitelist_needed and whitelist_call is None:
            raise ValueError("plan needs a whitelist step but no whitelist call was given")
        self.plan = plan
        self.authorizations = authorizations
        self.sender = sender
        self.build_call = build_call
        self.whitelist_call = whitelist_call

    def steps(self) -> StepGenerator:
        counter = itertools.count(1)
        if self.plan.whitelist_needed and self.whitelist_call is not None:
            yield from self._whitelist(self.whitelist_call, counter)
        primary_permit = yield from self._authorize(self.plan.primary, counter)
        secondary_permit = yield from self._authorize(self.plan.secondary, counter)

        call = self.build_call(primary_permit, secondary_permit)
        yield ExecuteStep(
            step_number=next(counter),
            total_steps=self.plan.total_steps,
            call=call,
            action=partial(self.sender.send, call),
        )

    def _whitelist(self, call: ContractCall, counter: Iterator[int]) -> StepGenerator:
        yield WhitelistStep(
            step_number=next(counter),
            total_steps=self.plan.total_steps,
            spender=self.plan.whitelist_spender or call.target,
            action=partial(self.sender.send, call),
        )

    def _authorize(
        self,
        requirement: AuthorizationRequirement | None,
        counter: Iterator[int],
    ) -> Generator[Step, PermitSignature | None, PermitSignature]:
        if requirement is None or not requirement.required:
            return EMPTY_PERMIT_SIGNATURE
        if not requirement.step_needed:
            if requirement.cached_permit_usable and requirement.cached_permit is not None:
                return requirement.cached_permit
            return EMPTY_PERMIT_SIGNATURE

        step = self.authorizations.step(
            requirement,
            step_number=next(counter),
            total_steps=self.plan.total_steps,
        )
        signature = yield step
        if isinstance(step, PermitStep):
            if signature is None:
                raise SignatureRequired(requirement.token.ticker)
            return signature
        return EMPTY_PERMIT_SIGNATURE


async def sequence_steps(
    build: Callable[[], Awaitable[StepSequencer]],
) -> AsyncGenerator[Step, PermitSignature | None]:
    """Expose a sequencer as an async generator driven with ``asend``."""

    sequencer = await build()
    steps = sequencer.steps()
    injected: PermitSignature | None = None
    try:
        while True:
            try:
                step = steps.send(injected)
            except StopIteration:
                return
            injected = yield step
    finally:
        steps.close()
