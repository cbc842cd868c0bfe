from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum

from positionsteps.domain.amounts import CLOSE_DEBT_CHANGE, to_decimal
from positionsteps.domain.errors import InvalidIntent
from positionsteps.domain.tokens import R_TOKEN


class ApprovalPreference(StrEnum):
    PERMIT = "permit"
    APPROVE = "approve"


def coerce_approval_preference(value: str | ApprovalPreference | None) -> ApprovalPreference:
    if value is None:
        return ApprovalPreference.PERMIT
    if isinstance(value, ApprovalPreference):
        return value
    try:
        return ApprovalPreference(str(value).strip().lower())
    except ValueError as exc:
        raise InvalidIntent(f"approval type must be 'permit' or 'approve', got {value!r}") from exc


@dataclass(frozen=True)
class Intent:
    """Desired net change of a position (collateral/debt) or of a savings balance.

    ``authorization_token`` is the collateral token routed through; ``None`` means the
    position's underlying token.
    """

    primary_change: Decimal
    secondary_change: Decimal = Decimal("0")
    authorization_token: str | None = None
    fee_cap: Decimal = Decimal("1")
    approval_preference: ApprovalPreference = ApprovalPreference.PERMIT

    @classmethod
    def manage(
        cls,
        collateral_change: Decimal | str | int,
        debt_change: Decimal | str | int,
        *,
        collateral_token: str | None = None,
        max_fee_percentage: Decimal | str | int = Decimal("1"),
        approval_type: str | ApprovalPreference | None = None,
    ) -> Intent:
        return cls(
            primary_change=to_decimal(collateral_change),
            secondary_change=to_decimal(debt_change),
            authorization_token=collateral_token,
            fee_cap=to_decimal(max_fee_percentage),
            approval_preference=coerce_approval_preference(approval_type),
        )

    @classmethod
    def close(
        cls,
        *,
        collateral_token: str | None = None,
        max_fee_percentage: Decimal | str | int = Decimal("1"),
        approval_type: str | ApprovalPreference | None = None,
    ) -> Intent:
        return cls.manage(
            Decimal("0"),
            CLOSE_DEBT_CHANGE,
            collateral_token=collateral_token,
            max_fee_percentage=max_fee_percentage,
            approval_type=approval_type,
        )

    @classmethod
    def savings(
        cls,
        amount: Decimal | str | int,
        *,
        approval_type: str | ApprovalPreference | None = None,
    ) -> Intent:
        return cls(
            primary_change=to_decimal(amount),
            authorization_token=R_TOKEN,
            approval_preference=coerce_approval_preference(approval_type),
        )

    @property
    def is_close(self) -> bool:
        return self.primary_change.is_zero() and self.secondary_change == CLOSE_DEBT_CHANGE

    @property
    def is_primary_increase(self) -> bool:
        return self.primary_change > 0

    @property
    def is_secondary_increase(self) -> bool:
        return self.secondary_change > 0

    @property
    def primary_amount(self) -> Decimal:
        return self.primary_change.copy_abs()

    @property
    def secondary_amount(self) -> Decimal:
        return self.secondary_change.copy_abs()

    @property
    def is_secondary_only(self) -> bool:
        return self.primary_change.is_zero() and not self.is_close

    def validate(self) -> None:
        if self.is_close:
            return
        if self.primary_change.is_zero() and self.secondary_change.is_zero():
            raise InvalidIntent("Collateral and debt change cannot be both zero")
        if not (Decimal("0") < self.fee_cap <= Decimal("1")):
            raise InvalidIntent(f"max fee percentage must be within (0, 1], got {self.fee_cap}")


def require_positive(amount: Decimal | str | int, *, label: str = "Amount") -> Decimal:
    value = to_decimal(amount)
    if value <= 0:
        raise InvalidIntent(f"{label} must be greater than 0")
    return value
