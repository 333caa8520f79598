"""CCTP V2 burn-and-mint call construction."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from web3 import Web3

from zapbridge.config import ZapConfig
from zapbridge.contracts import encode_function_call
from zapbridge.core.batch import Call
from zapbridge.core.utils import address_to_bytes32, ensure_hex_prefix, get_logger, hex_to_bytes

LOGGER = get_logger("zapbridge.bridge")

DEFAULT_MAX_FEE = 500
FAST_FINALITY_THRESHOLD = 1000
FINALIZED_FINALITY_THRESHOLD = 2000

# bytes32(0) lets any address call receiveMessage on the destination chain.
ZERO_BYTES32 = "0x" + "00" * 32


@dataclass(frozen=True)
class BridgeIntent:
    """One burn on ``source_chain`` to be minted on ``destination_chain``."""

    source_chain: str
    destination_chain: str
    amount: int
    recipient: str
    max_fee: int = DEFAULT_MAX_FEE
    min_finality_threshold: int = FAST_FINALITY_THRESHOLD


@dataclass(frozen=True)
class BridgeCalls:
    """Approval and ``depositForBurn`` calls for the source chain."""

    approval_call: Call
    bridge_call: Call
    burn_token: str
    amount: int
    destination_domain: int
    token_messenger: str


def build_bridge_calls(config: ZapConfig, intent: BridgeIntent) -> BridgeCalls:
    """Build ``approve(tokenMessenger, amount)`` and ``depositForBurn`` for ``intent``."""
    source = config.chain(intent.source_chain)
    destination = config.chain(intent.destination_chain)

    approval_data = encode_function_call(
        "erc20.json",
        "approve",
        [source.token_messenger, intent.amount],
    )
    burn_data = encode_function_call(
        "token_messenger_v2.json",
        "depositForBurn",
        [
            intent.amount,
            destination.cctp_domain,
            hex_to_bytes(address_to_bytes32(intent.recipient)),
            source.usdc_address,
            hex_to_bytes(ZERO_BYTES32),
            intent.max_fee,
            intent.min_finality_threshold,
        ],
    )

    LOGGER.info(
        "Prepared CCTP burn %s -> %s amount=%s recipient=%s maxFee=%s minFinality=%s",
        source.key,
        destination.key,
        intent.amount,
        intent.recipient,
        intent.max_fee,
        intent.min_finality_threshold,
    )

    return BridgeCalls(
        approval_call=Call(to=source.usdc_address, data=approval_data, value=0),
        bridge_call=Call(to=source.token_messenger, data=burn_data, value=0),
        burn_token=source.usdc_address,
        amount=intent.amount,
        destination_domain=destination.cctp_domain,
        token_messenger=source.token_messenger,
    )


def bridge_intent_for(
    config: ZapConfig,
    *,
    source_chain: str,
    destination_chain: str,
    amount: int,
    recipient: str,
    max_fee: Optional[int] = None,
    min_finality_threshold: Optional[int] = None,
) -> BridgeIntent:
    """Build a ``BridgeIntent`` falling back to the configured fee and finality."""
    return BridgeIntent(
        source_chain=source_chain,
        destination_chain=destination_chain,
        amount=amount,
        recipient=Web3.to_checksum_address(recipient),
        max_fee=config.defaults.bridge_max_fee if max_fee is None else max_fee,
        min_finality_threshold=(
            config.defaults.min_finality_threshold if min_finality_threshold is None else min_finality_threshold
        ),
    )


def build_mint_call(config: ZapConfig, chain: str, message: str, attestation: str) -> Call:
    """``receiveMessage(message, attestation)`` on ``chain``'s MessageTransmitter."""
    destination = config.chain(chain)
    data = encode_function_call(
        "message_transmitter_v2.json",
        "receiveMessage",
        [hex_to_bytes(ensure_hex_prefix(message)), hex_to_bytes(ensure_hex_prefix(attestation))],
    )
    return Call(to=destination.message_transmitter, data=data, value=0)


__all__ = [
    "BridgeCalls",
    "BridgeIntent",
    "DEFAULT_MAX_FEE",
    "FAST_FINALITY_THRESHOLD",
    "FINALIZED_FINALITY_THRESHOLD",
    "ZERO_BYTES32",
    "bridge_intent_for",
    "build_bridge_calls",
    "build_mint_call",
]
