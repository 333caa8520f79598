"""Atomic call batch submission and transaction hash resolution (EIP-5792)."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from web3 import Web3

from zapbridge.core.errors import CapabilityError, PollTimeoutError
from zapbridge.core.utils import get_logger, is_transaction_hash, poll_until

LOGGER = get_logger("zapbridge.batch")

DEFAULT_STATUS_MAX_ATTEMPTS = 60
DEFAULT_STATUS_DELAY = 2.0

# Numeric status codes from EIP-5792 ``wallet_getCallsStatus``.
_PENDING_CODES = range(100, 200)
_SUCCESS_CODES = range(200, 300)


@dataclass(frozen=True)
class Call:
    """One call of a batch."""

    to: str
    data: str
    value: int = 0

    def to_rpc(self) -> Dict[str, str]:
        return {"to": Web3.to_checksum_address(self.to), "data": self.data, "value": hex(self.value)}


@dataclass(frozen=True)
class CallReceipt:
    transaction_hash: str
    block_number: Optional[int] = None


@dataclass(frozen=True)
class CallsStatus:
    """Normalised ``wallet_getCallsStatus`` result."""

    status: str
    receipts: List[CallReceipt] = field(default_factory=list)
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False)

    @property
    def transaction_hash(self) -> Optional[str]:
        return self.receipts[0].transaction_hash if self.receipts else None


def _normalise_status(value: Any) -> str:
    if isinstance(value, int):
        if value in _PENDING_CODES:
            return "pending"
        if value in _SUCCESS_CODES:
            return "success"
        return "failed"
    text = str(value or "").lower()
    if text in ("success", "confirmed"):
        return "success"
    if text in ("pending", ""):
        return "pending"
    return "failed"


def _to_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    return int(value)


def parse_calls_status(payload: Mapping[str, Any]) -> CallsStatus:
    receipts = []
    for receipt in payload.get("receipts") or []:
        tx_hash = receipt.get("transactionHash")
        if tx_hash:
            receipts.append(CallReceipt(transaction_hash=tx_hash, block_number=_to_int(receipt.get("blockNumber"))))
    return CallsStatus(status=_normalise_status(payload.get("status")), receipts=receipts, raw=dict(payload))


def supports_atomic(capabilities: Mapping[str, Any], chain_id: int) -> bool:
    """True when ``capabilities`` advertise atomic batching for ``chain_id``.

    Wallets key capabilities by decimal or hex chain id, and report ``atomic``
    either as a boolean or as ``{"status": "supported" | "ready"}``.
    """
    if not capabilities:
        return False
    chain_caps = capabilities.get(str(chain_id)) or capabilities.get(hex(chain_id))
    if not chain_caps:
        return False
    atomic = chain_caps.get("atomic")
    if isinstance(atomic, Mapping):
        return atomic.get("status") in ("supported", "ready")
    return atomic is True


class BatchSubmissionDriver:
    """Turns a wallet's asynchronous batch id into a transaction hash."""

    def __init__(
        self,
        wallet: Any,
        *,
        max_attempts: int = DEFAULT_STATUS_MAX_ATTEMPTS,
        delay: float = DEFAULT_STATUS_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.wallet = wallet
        self.max_attempts = max_attempts
        self.delay = delay
        self.sleep = sleep

    def ensure_atomic_support(self, address: str, chain_id: int) -> None:
        capabilities = self.wallet.get_capabilities(address, chain_id)
        if not supports_atomic(capabilities, chain_id):
            raise CapabilityError(f"EIP-5792 atomic batching not supported on chain {chain_id}")

    def submit(self, address: str, chain_id: int, calls: Sequence[Call]) -> str:
        if not calls:
            raise ValueError("Refusing to submit an empty batch")
        LOGGER.info("Submitting batch of %s calls on chain %s", len(calls), chain_id)
        batch_id = self.wallet.send_calls(address, chain_id, [call.to_rpc() for call in calls])
        LOGGER.info("Batch accepted with id %s", batch_id)
        return batch_id

    def resolve_transaction_hash(self, batch_id: str) -> str:
        """Return the batch's transaction hash, polling the status endpoint if needed."""
        if is_transaction_hash(batch_id):
            return batch_id

        LOGGER.info("Waiting for transaction hash of batch %s", batch_id)
        try:
            status = poll_until(
                lambda: parse_calls_status(self.wallet.get_calls_status(batch_id)),
                # Receipts are authoritative: a receipt wins whatever the reported status.
                lambda result: bool(result.receipts),
                max_attempts=self.max_attempts,
                delay=self.delay,
                description=f"calls status for batch {batch_id}",
                sleep=self.sleep,
            )
        except PollTimeoutError as exc:
            last = exc.last_result
            payload = dict(last.raw) if isinstance(last, CallsStatus) else last
            raise PollTimeoutError(
                f"No receipts found in calls status after {exc.attempts} attempts. Status: {payload}",
                attempts=exc.attempts,
                last_result=last,
            ) from exc
        return status.transaction_hash


__all__ = [
    "BatchSubmissionDriver",
    "Call",
    "CallReceipt",
    "CallsStatus",
    "parse_calls_status",
    "supports_atomic",
]
