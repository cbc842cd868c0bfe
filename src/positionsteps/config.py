from __future__ import annotations

from decimal import Decimal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from positionsteps.domain.intent import ApprovalPreference
from positionsteps.domain.network import NetworkConfig, get_network_config
from positionsteps.services.permit_or_approve import PERMIT_DEADLINE_SHIFT_SECONDS


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    network: str = Field(default="mainnet", alias="NETWORK")
    savings_vault_address: str | None = Field(default=None, alias="SAVINGS_VAULT_ADDRESS")

    rpc_url: SecretStr | None = Field(default=None, alias="RPC_URL")
    rpc_timeout_seconds: float = Field(default=10.0, alias="RPC_TIMEOUT_SECONDS")

    gas_limit_multiplier: Decimal = Field(default=Decimal("1"), alias="GAS_LIMIT_MULTIPLIER")
    max_fee_percentage: Decimal = Field(default=Decimal("1"), alias="MAX_FEE_PERCENTAGE")
    approval_type: ApprovalPreference = Field(default=ApprovalPreference.PERMIT, alias="APPROVAL_TYPE")
    permit_deadline_seconds: int = Field(
        default=PERMIT_DEADLINE_SHIFT_SECONDS, alias="PERMIT_DEADLINE_SECONDS"
    )
    frontend_tag: str | None = Field(default=None, alias="FRONTEND_TAG")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @field_validator("network", mode="before")
    def normalize_network(cls, value: object) -> str:
        return str(value).strip().lower()

    @field_validator("savings_vault_address", "rpc_url", "frontend_tag", mode="before")
    def blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("approval_type", mode="before")
    def normalize_approval_type(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("rpc_timeout_seconds")
    def validate_rpc_timeout_seconds(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("RPC_TIMEOUT_SECONDS must be > 0")
        return value

    @field_validator("gas_limit_multiplier")
    def validate_gas_limit_multiplier(cls, value: Decimal) -> Decimal:
        if value < 1:
            raise ValueError("GAS_LIMIT_MULTIPLIER must be >= 1")
        return value

    @field_validator("max_fee_percentage")
    def validate_max_fee_percentage(cls, value: Decimal) -> Decimal:
        if not (Decimal("0") < value <= Decimal("1")):
            raise ValueError("MAX_FEE_PERCENTAGE must be within (0, 1]")
        return value

    @field_validator("permit_deadline_seconds")
    def validate_permit_deadline_seconds(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("PERMIT_DEADLINE_SECONDS must be > 0")
        return value

    def network_config(self) -> NetworkConfig:
        return get_network_config(self.network).with_savings_vault(self.savings_vault_address)

    def rpc_url_value(self) -> str | None:
        return self.rpc_url.get_secret_value() if self.rpc_url is not None else None
