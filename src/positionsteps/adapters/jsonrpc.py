from __future__ import annotations

import itertools
import logging
from typing import Any

import httpx

from positionsteps.adapters.abi import decode_bool, decode_string, decode_uint, encode_call
from positionsteps.domain.errors import ChainReadError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0
_EMPTY_CODE = {"0x", "0x0", ""}


class JsonRpcChainReader:
    """Read side of the chain over Ethereum JSON-RPC: allowances, whitelist, code, metadata."""

    def __init__(
        self,
        rpc_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        block: str = "latest",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.rpc_url = rpc_url
        self.block = block
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))
        self._ids = itertools.count(1)

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> JsonRpcChainReader:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def request(self, method: str, params: list[Any]) -> Any:
        body = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            response = await self._client.post(self.rpc_url, json=body)
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            raise ChainReadError(str(exc) or type(exc).__name__, method=method) from exc

        if response.status_code >= 400:
            raise ChainReadError(f"HTTP {response.status_code} from RPC endpoint", method=method)

        try:
            payload = response.json()
        except ValueError as exc:
            raise ChainReadError("RPC response is not valid JSON", method=method) from exc
        if not isinstance(payload, dict):
            raise ChainReadError("RPC payload must be an object", method=method)

        error = payload.get("error")
        if error is not None:
            error_payload = error if isinstance(error, dict) else {"message": str(error)}
            code = error_payload.get("code")
            raise ChainReadError(
                str(error_payload.get("message") or "RPC error"),
                method=method,
                code=code if isinstance(code, int) else None,
                payload=error_payload,
            )
        if "result" not in payload:
            raise ChainReadError("RPC payload has no result", method=method)
        logger.debug("rpc_call", extra={"extra": {"method": method}})
        return payload["result"]

    async def call(self, to: str, data: str) -> str:
        result = await self.request("eth_call", [{"to": to, "data": data}, self.block])
        if not isinstance(result, str):
            raise ChainReadError("eth_call result must be a hex string", method="eth_call")
        return result

    async def get_allowance(self, token_address: str, owner: str, spender: str) -> int:
        data = encode_call("allowance(address,address)", owner, spender)
        return self._decode(decode_uint, await self.call(token_address, data), "allowance")

    async def is_delegate_whitelisted(self, position_manager: str, owner: str, delegate: str) -> bool:
        data = encode_call("isDelegateWhitelisted(address,address)", owner, delegate)
        return self._decode(decode_bool, await self.call(position_manager, data), "isDelegateWhitelisted")

    async def is_externally_owned_account(self, address: str) -> bool:
        code = await self.request("eth_getCode", [address, self.block])
        return str(code).lower() in _EMPTY_CODE

    async def token_name(self, token_address: str) -> str:
        return self._decode(decode_string, await self.call(token_address, encode_call("name()")), "name")

    async def nonces(self, token_address: str, owner: str) -> int:
        data = encode_call("nonces(address)", owner)
        return self._decode(decode_uint, await self.call(token_address, data), "nonces")

    @staticmethod
    def _decode(decoder, data: str, method: str):
        try:
            return decoder(data)
        except ValueError as exc:
            raise ChainReadError(f"cannot decode {method} result: {exc}", method=method) from exc
