"""Core domain logic for zapbridge."""

from .attestation import AttestationClient, AttestationRecord
from .batch import BatchSubmissionDriver, Call, CallsStatus
from .bridge import BridgeCalls, BridgeIntent, build_bridge_calls, build_mint_call
from .orchestrator import DepositOrchestrator, LegState, OperationContext, WithdrawalOrchestrator
from .quotes import SwapBuild, SwapQuoteClient
from .wallet import RpcWallet
from .zap import ChainRoute, TokenPatch, ZapOrder, build_deposit_zap, build_withdrawal_zap

__all__ = [
    "AttestationClient",
    "AttestationRecord",
    "BatchSubmissionDriver",
    "BridgeCalls",
    "BridgeIntent",
    "Call",
    "CallsStatus",
    "ChainRoute",
    "DepositOrchestrator",
    "LegState",
    "OperationContext",
    "RpcWallet",
    "SwapBuild",
    "SwapQuoteClient",
    "TokenPatch",
    "WithdrawalOrchestrator",
    "ZapOrder",
    "build_bridge_calls",
    "build_deposit_zap",
    "build_mint_call",
    "build_withdrawal_zap",
]
