from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from positionsteps.domain.permit import PermitSignature


@dataclass(frozen=True)
class AuthorizationState:
    """Caller-supplied snapshot of on-chain authorization; ``None`` fields are fetched.

    The planner never mutates an instance: it resolves the missing fields into a new
    one that lives only for the duration of a single plan.
    """

    delegate_whitelisted: bool | None = None
    primary_token_allowance: Decimal | None = None
    secondary_token_allowance: Decimal | None = None
    cached_primary_permit: PermitSignature | None = None
    cached_secondary_permit: PermitSignature | None = None
