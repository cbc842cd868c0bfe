from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from positionsteps.domain.errors import ConfigurationError, UnsupportedRoute
from positionsteps.domain.tokens import ETH_TOKEN, R_TOKEN, ZERO_ADDRESS, is_native_token_address


class RouteKind(StrEnum):
    UNDERLYING = "underlying"
    WRAPPED_CAPPED = "wrapped_capped"
    STETH = "steth"
    ETH = "eth"


class TokenConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    ticker: str
    address: str
    decimals: int = Field(default=18, ge=0, le=36)
    supports_permit: bool = False

    @property
    def is_native(self) -> bool:
        return is_native_token_address(self.address)


class CollateralRoute(BaseModel):
    """How a collateral token reaches the position of one underlying token."""

    model_config = ConfigDict(frozen=True)

    kind: RouteKind
    position_manager: str

    @property
    def uses_delegate(self) -> bool:
        return self.kind != RouteKind.UNDERLYING


class NetworkConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    chain_id: int
    position_manager: str
    tokens: dict[str, TokenConfig]
    underlying_tokens: dict[str, dict[str, CollateralRoute]]
    savings_vault: str | None = None

    def token(self, ticker: str) -> TokenConfig:
        config = self.tokens.get(ticker)
        if config is None:
            raise UnsupportedRoute(f"Token {ticker} is not configured for {self.name}", token=ticker)
        return config

    def route(self, underlying_token: str, collateral_token: str) -> CollateralRoute:
        routes = self.underlying_tokens.get(underlying_token)
        if routes is None:
            raise UnsupportedRoute(
                f"Underlying collateral token {underlying_token} is not supported on {self.name}",
                underlying_token=underlying_token,
                token=collateral_token,
            )
        route = routes.get(collateral_token)
        if route is None:
            raise UnsupportedRoute(
                f"Underlying collateral token {underlying_token} does not support collateral token "
                f"{collateral_token}",
                underlying_token=underlying_token,
                token=collateral_token,
            )
        return route

    def with_savings_vault(self, address: str | None) -> NetworkConfig:
        if not address:
            return self
        return self.model_copy(update={"savings_vault": address})


_POSITION_MANAGER = "0x5f59b322eb3e16a0c78846195af1f588b77403fc"
_POSITION_MANAGER_STETH = "0x839d6833cee34ffab6fa9057b39f02bd3091a1d6"
_POSITION_MANAGER_RETH = "0x29f8abb4cab4bbb56f617d9a3c0f62d33758e74e"

MAINNET = NetworkConfig(
    name="mainnet",
    chain_id=1,
    position_manager=_POSITION_MANAGER,
    tokens={
        ETH_TOKEN: TokenConfig(ticker=ETH_TOKEN, address=ZERO_ADDRESS),
        "stETH": TokenConfig(ticker="stETH", address="0xae7ab96520de3a18e5e111b5eaab095312d7fe84"),
        "wstETH": TokenConfig(
            ticker="wstETH",
            address="0x7f39c581f595b53c5cb19bd0b3f8da6c935e2ca0",
            supports_permit=True,
        ),
        "rETH": TokenConfig(ticker="rETH", address="0xae78736cd615f374d3085123a210448e74fc6393"),
        "wcrETH": TokenConfig(
            ticker="wcrETH",
            address="0xb69e35fb4a157028b92f42655090b984609ae598",
            supports_permit=True,
        ),
        R_TOKEN: TokenConfig(
            ticker=R_TOKEN,
            address="0x183015a9ba6ff60230fdeadc3f43b3d788b13e21",
            supports_permit=True,
        ),
    },
    underlying_tokens={
        "wstETH": {
            "wstETH": CollateralRoute(kind=RouteKind.UNDERLYING, position_manager=_POSITION_MANAGER),
            "stETH": CollateralRoute(kind=RouteKind.STETH, position_manager=_POSITION_MANAGER_STETH),
            ETH_TOKEN: CollateralRoute(kind=RouteKind.ETH, position_manager=_POSITION_MANAGER_STETH),
        },
        "wcrETH": {
            "wcrETH": CollateralRoute(kind=RouteKind.UNDERLYING, position_manager=_POSITION_MANAGER),
            "rETH": CollateralRoute(kind=RouteKind.WRAPPED_CAPPED, position_manager=_POSITION_MANAGER_RETH),
        },
    },
)

NETWORKS: dict[str, NetworkConfig] = {MAINNET.name: MAINNET}


def get_network_config(name: str) -> NetworkConfig:
    try:
        return NETWORKS[name]
    except KeyError as exc:
        raise ConfigurationError(f"Network {name} is not supported") from exc
