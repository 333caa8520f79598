"""Contract ABIs shipped with zapbridge."""

import functools
import json
from importlib import resources
from typing import Any, Dict, List, Sequence, Tuple

from web3 import Web3


@functools.lru_cache(maxsize=None)
def load_contract_abi(filename: str) -> List[Any]:
    """Load an ABI JSON file from the contracts package."""
    with resources.files(__package__).joinpath(filename).open("r", encoding="utf-8") as fh:
        return json.load(fh)


@functools.lru_cache(maxsize=None)
def _abi_codec(filename: str):
    return Web3().eth.contract(abi=load_contract_abi(filename))


def encode_function_call(filename: str, function_name: str, args: Sequence[Any]) -> str:
    """Return ``0x``-prefixed calldata for ``function_name(*args)``."""
    return _abi_codec(filename).encode_abi(function_name, args=list(args))


def decode_function_call(filename: str, calldata: str) -> Tuple[str, Dict[str, Any]]:
    """Decode calldata produced for an ABI in this package."""
    function, params = _abi_codec(filename).decode_function_input(calldata)
    return function.fn_name, dict(params)


__all__ = ["decode_function_call", "encode_function_call", "load_contract_abi"]
