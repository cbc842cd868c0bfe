from __future__ import annotations

import logging
from decimal import Decimal

from positionsteps.domain.amounts import apply_gas_multiplier
from positionsteps.domain.calls import ContractCall
from positionsteps.ports_chain import ChainClient, TransactionHandle

logger = logging.getLogger(__name__)


class TransactionSender:
    """Estimates gas, applies the configured multiplier and broadcasts one call."""

    def __init__(
        self,
        chain: ChainClient,
        *,
        sender: str,
        gas_limit_multiplier: Decimal = Decimal("1"),
        frontend_tag: str | None = None,
    ) -> None:
        if gas_limit_multiplier < 1:
            raise ValueError(f"gas limit multiplier must be >= 1, got {gas_limit_multiplier}")
        self.chain = chain
        self.sender = sender
        self.gas_limit_multiplier = gas_limit_multiplier
        self.frontend_tag = frontend_tag

    def tag(self, call: ContractCall) -> ContractCall:
        if self.frontend_tag is None or call.frontend_tag is not None:
            return call
        return ContractCall(
            target=call.target,
            method=call.method,
            args=call.args,
            value=call.value,
            frontend_tag=self.frontend_tag,
        )

    async def send(self, call: ContractCall) -> TransactionHandle:
        tagged = self.tag(call)
        gas_estimate = await self.chain.estimate_gas(tagged, self.sender)
        gas_limit = apply_gas_multiplier(gas_estimate, self.gas_limit_multiplier)
        handle = await self.chain.send(tagged, self.sender, gas_limit)
        logger.info(
            "transaction_sent",
            extra={
                "extra": {
                    **tagged.describe(),
                    "gas_estimate": gas_estimate,
                    "gas_limit": gas_limit,
                    "transaction_hash": handle.hash,
                }
            },
        )
        return handle
