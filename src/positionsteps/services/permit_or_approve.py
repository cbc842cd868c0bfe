from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from functools import partial

from positionsteps.domain.calls import ContractCall
from positionsteps.domain.network import NetworkConfig
from positionsteps.domain.permit import PERMIT_TYPES, PermitSignature
from positionsteps.domain.steps import ApproveStep, PermitStep
from positionsteps.ports_chain import TokenMetadataReader, TransactionHandle, TypedDataSigner
from positionsteps.services.step_planner import AuthorizationRequirement
from positionsteps.services.transactions import TransactionSender

logger = logging.getLogger(__name__)

PERMIT_DEADLINE_SHIFT_SECONDS = 30 * 60
PERMIT_DOMAIN_VERSION = "1"


class PermitOrApprove:
    """Builds the authorization step for one token: an EIP-2612 permit or an ``approve``."""

    def __init__(
        self,
        network: NetworkConfig,
        *,
        sender: TransactionSender,
        signer: TypedDataSigner,
        reader: TokenMetadataReader,
        clock: Callable[[], float] = time.time,
        permit_deadline_seconds: int = PERMIT_DEADLINE_SHIFT_SECONDS,
    ) -> None:
        if permit_deadline_seconds <= 0:
            raise ValueError("permit deadline must be positive")
        self.network = network
        self.sender = sender
        self.signer = signer
        self.reader = reader
        self.clock = clock
        self.permit_deadline_seconds = permit_deadline_seconds

    def step(
        self,
        requirement: AuthorizationRequirement,
        *,
        step_number: int,
        total_steps: int,
    ) -> PermitStep | ApproveStep:
        if requirement.use_permit:
            return PermitStep(
                step_number=step_number,
                total_steps=total_steps,
                token=requirement.token.ticker,
                amount=requirement.amount,
                spender=requirement.spender,
                action=partial(self.sign_permit, requirement),
            )
        return ApproveStep(
            step_number=step_number,
            total_steps=total_steps,
            token=requirement.token.ticker,
            amount=requirement.amount,
            spender=requirement.spender,
            action=partial(self.approve, requirement),
        )

    async def approve(self, requirement: AuthorizationRequirement) -> TransactionHandle:
        call = ContractCall(
            target=requirement.token.address,
            method="approve",
            args=(requirement.spender, requirement.amount_units),
        )
        return await self.sender.send(call)

    async def sign_permit(self, requirement: AuthorizationRequirement) -> PermitSignature:
        token = requirement.token
        owner = self.signer.address
        name, nonce = await asyncio.gather(
            self.reader.token_name(token.address),
            self.reader.nonces(token.address, owner),
        )
        deadline = int(self.clock()) + self.permit_deadline_seconds
        value = requirement.amount_units
        domain = {
            "name": name,
            "version": PERMIT_DOMAIN_VERSION,
            "chainId": self.network.chain_id,
            "verifyingContract": token.address,
        }
        message = {
            "owner": owner,
            "spender": requirement.spender,
            "value": value,
            "nonce": nonce,
            "deadline": deadline,
        }
        v, r, s = await self.signer.sign_typed_data(domain, PERMIT_TYPES, message)
        signature = PermitSignature(token=token.address, value=value, deadline=deadline, v=v, r=r, s=s)
        logger.info(
            "permit_signed",
            extra={
                "extra": {
                    "token": token.ticker,
                    "spender": requirement.spender,
                    "nonce": nonce,
                    "deadline": deadline,
                    "signature": signature.to_dict(),
                }
            },
        )
        return signature
