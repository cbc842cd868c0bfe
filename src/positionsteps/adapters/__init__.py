from .abi import decode_bool, decode_string, decode_uint, encode_call, function_selector
from .jsonrpc import JsonRpcChainReader

__all__ = [
    "JsonRpcChainReader",
    "decode_bool",
    "decode_string",
    "decode_uint",
    "encode_call",
    "function_selector",
]
