"""Utility helpers shared across zapbridge core modules."""

from __future__ import annotations

import logging
import re
import time
from typing import Callable, Optional, Tuple, Type, TypeVar

from web3 import Web3

from zapbridge.core.errors import PollTimeoutError, ServiceUnavailableError, TransientServiceError, WrongNetworkError

T = TypeVar("T")

_TX_HASH_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")


def get_logger(name: str = "zapbridge") -> logging.Logger:
    """Return a configured logger that prints to stdout."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
    return logger


LOGGER = get_logger("zapbridge.poll")


def ensure_web3_connected(web3: Web3, *, expected_chain_id: Optional[int] = None, label: str = "RPC endpoint") -> None:
    """Fail fast when ``web3`` cannot reach its node or reports another chain."""
    if not web3.is_connected():
        raise ServiceUnavailableError(f"Failed to connect to {label}")
    if expected_chain_id is not None:
        actual = web3.eth.chain_id
        if actual != expected_chain_id:
            raise WrongNetworkError(expected_chain_id, actual)


def hex_to_bytes(data: str) -> bytes:
    """Convert a hex string (with or without ``0x``) to bytes."""
    data = data[2:] if data.startswith("0x") else data
    return bytes.fromhex(data)


def ensure_hex_prefix(value: str) -> str:
    return value if value.startswith("0x") else f"0x{value}"


def is_transaction_hash(value: object) -> bool:
    return isinstance(value, str) and bool(_TX_HASH_RE.match(value))


def address_to_bytes32(address: str) -> str:
    """Left-pad a 20-byte address to a 32-byte word (CCTP ``mintRecipient``)."""
    return "0x" + address[2:].lower().rjust(64, "0")


def bytes32_to_address(value: str) -> str:
    """Inverse of :func:`address_to_bytes32`; drops the 12 leading zero bytes."""
    raw = value[2:] if value.startswith("0x") else value
    if len(raw) != 64:
        raise ValueError(f"Expected a 32-byte hex word, got {len(raw) // 2} bytes")
    if int(raw[:24], 16) != 0:
        raise ValueError("bytes32 value does not hold a left-padded address")
    return "0x" + raw[24:]


def deadline_from_now(seconds: int, *, clock: Callable[[], float] = time.time) -> int:
    return int(clock()) + seconds


def poll_until(
    fetch: Callable[[], T],
    predicate: Callable[[T], bool],
    *,
    max_attempts: int,
    delay: float,
    description: str,
    sleep: Callable[[float], None] = time.sleep,
    retry_on: Tuple[Type[BaseException], ...] = (TransientServiceError,),
) -> T:
    """Call ``fetch`` until ``predicate`` accepts its result or the budget runs out.

    Exceptions listed in ``retry_on`` (``TransientServiceError`` by default) count
    as a failed attempt and are retried; anything else propagates immediately.
    The delay is fixed and is not slept after the final attempt. Exhaustion raises
    ``PollTimeoutError`` carrying the attempt count and the last result (or error).
    """
    if max_attempts <= 0:
        raise ValueError("max_attempts must be positive")

    last_result: object = None
    for attempt in range(1, max_attempts + 1):
        try:
            result = fetch()
        except retry_on as exc:
            LOGGER.warning("%s: attempt %s/%s failed: %s", description, attempt, max_attempts, exc)
            last_result = exc
        else:
            if predicate(result):
                return result
            last_result = result
            LOGGER.debug("%s: attempt %s/%s not ready", description, attempt, max_attempts)
        if attempt < max_attempts:
            sleep(delay)

    raise PollTimeoutError(
        f"{description}: gave up after {max_attempts} attempts (last result: {last_result!r})",
        attempts=max_attempts,
        last_result=last_result,
    )


__all__ = [
    "address_to_bytes32",
    "bytes32_to_address",
    "deadline_from_now",
    "ensure_hex_prefix",
    "ensure_web3_connected",
    "get_logger",
    "hex_to_bytes",
    "is_transaction_hash",
    "poll_until",
]
