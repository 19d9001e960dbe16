"""
Chain reader implementations.
"""

from onchain_adapters.providers.json_rpc import JsonRpcChainReader

__all__ = [
    "JsonRpcChainReader",
]
