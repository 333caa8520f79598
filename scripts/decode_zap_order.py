#!/usr/bin/env python3
"""Decode zap router ``executeOrder`` calldata using the shared ABI bundle."""

import sys

from zapbridge.contracts import decode_function_call

ORDER_FIELDS = ("inputs", "outputs", "relay", "user", "recipient")
STEP_FIELDS = ("target", "value", "data", "tokens")


def _fields(value, names):
    # Structs decode as dicts or as plain tuples depending on the web3 version.
    if isinstance(value, dict):
        return [value[name] for name in names]
    return list(value)


def decode_call(calldata: str) -> None:
    """Print the order and every route step of ``calldata``."""
    data = calldata if calldata.startswith("0x") else f"0x{calldata}"
    name, params = decode_function_call("zap_router.json", data)

    print(f"Function: {name}")
    inputs, outputs, relay, user, recipient = _fields(params["_order"], ORDER_FIELDS)
    print(f"user: {user}")
    print(f"recipient: {recipient}")
    for item in inputs:
        token, amount = _fields(item, ("token", "amount"))
        print(f"input:  {token} {amount}")
    for item in outputs:
        token, minimum = _fields(item, ("token", "minOutputAmount"))
        print(f"output: {token} min={minimum}")
    target, value, relay_data = _fields(relay, ("target", "value", "data"))
    print(f"relay: {target} value={value} data=0x{relay_data.hex()}")
    for idx, step in enumerate(params["_route"], start=1):
        target, value, step_data, patches = _fields(step, STEP_FIELDS)
        print(f"step {idx}: target={target} value={value} bytes={len(step_data)}")
        for patch in patches:
            token, index = _fields(patch, ("token", "index"))
            print(f"    patch {token} @ {index}")


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("usage: decode_zap_order.py <calldata>")
        sys.exit(1)
    decode_call(sys.argv[1])
