"""Exception hierarchy for bridge, swap and batch failures."""

from __future__ import annotations

from typing import Any, Optional, Sequence


class ZapError(Exception):
    """Base class for zapbridge failures."""


class ValidationError(ZapError, ValueError):
    """Preflight check failed; nothing was submitted."""


class WrongNetworkError(ValidationError):
    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Wrong network! Expected chain ID {expected}, but connected to {actual}")
        self.expected = expected
        self.actual = actual


class InsufficientBalanceError(ValidationError):
    def __init__(self, token: str, required: int, available: int) -> None:
        super().__init__(f"Insufficient balance of {token}. Need {required} but only have {available}")
        self.token = token
        self.required = required
        self.available = available


class CapabilityError(ValidationError):
    """The wallet does not advertise atomic batching for the chain."""


class TransientServiceError(ZapError, ConnectionError):
    """An external HTTP service failed or has not caught up yet."""


class ServiceUnavailableError(TransientServiceError):
    """Network failure or malformed response; safe to retry."""


class SwapQuoteError(TransientServiceError):
    """The aggregator rejected the request or returned an incomplete payload."""


class AttestationError(TransientServiceError):
    """The attestation service returned an error response."""


class UnexpectedStatusError(AttestationError):
    def __init__(self, status: Any) -> None:
        super().__init__(f"Unexpected message status: {status or 'unknown'}")
        self.status = status


class PollTimeoutError(ZapError, TimeoutError):
    """A polling loop ran out of attempts."""

    def __init__(self, message: str, *, attempts: int, last_result: Any = None) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.last_result = last_result


class OnChainRevertError(ZapError):
    """A confirmed transaction reverted."""

    def __init__(self, message: str, *, transaction_hash: Optional[str] = None, receipt: Any = None) -> None:
        super().__init__(message)
        self.transaction_hash = transaction_hash
        self.receipt = receipt


class WalletRpcError(ZapError):
    """JSON-RPC error returned by the wallet endpoint."""

    def __init__(self, method: str, code: Optional[int], message: str, data: Any = None) -> None:
        super().__init__(f"{method} failed ({code}): {message}")
        self.method = method
        self.code = code
        self.data = data


class HandoffError(ZapError):
    """A later leg failed after an earlier leg was already confirmed on chain."""

    def __init__(self, message: str, *, completed_legs: Sequence[Any] = ()) -> None:
        super().__init__(message)
        self.completed_legs = list(completed_legs)


__all__ = [
    "AttestationError",
    "CapabilityError",
    "HandoffError",
    "InsufficientBalanceError",
    "OnChainRevertError",
    "PollTimeoutError",
    "ServiceUnavailableError",
    "SwapQuoteError",
    "TransientServiceError",
    "UnexpectedStatusError",
    "ValidationError",
    "WalletRpcError",
    "WrongNetworkError",
    "ZapError",
]
