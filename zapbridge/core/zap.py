"""Zap router orders: typed routes, token patches and per-vault builders.

A zap order is executed by the router in one transaction: order inputs are
pulled from ``user``, the route steps run in order, and every token listed in
``outputs`` is swept to ``recipient``. A step reads a balance produced by an
earlier step only through a :class:`TokenPatch`:

* ``offset == -1``: approve the token to the step target; calldata untouched.
* ``offset >= 0``: overwrite the 32-byte word at ``offset`` with the router's
  live balance of the token before calling the target.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from web3 import Web3

from zapbridge.config import (
    ZERO_ADDRESS,
    LpNonUsdcVault,
    LpUsdcVault,
    LpVault,
    SingleAssetVault,
    Vault,
)
from zapbridge.contracts import encode_function_call
from zapbridge.core.amounts import split_amount
from zapbridge.core.batch import Call
from zapbridge.core.bridge import BridgeCalls
from zapbridge.core.quotes import SwapBuild, SwapQuoteClient
from zapbridge.core.utils import get_logger, hex_to_bytes

LOGGER = get_logger("zapbridge.zap")

APPROVE_ONLY = -1
SELECTOR_SIZE = 4
WORD_SIZE = 32

# Placeholder words written into LP router calldata so the patch offsets can be
# located in the real encoding.
_SENTINEL_A = int("aa" * 31 + "a1", 16)
_SENTINEL_B = int("bb" * 31 + "b2", 16)


def word_offset(arg_index: int) -> int:
    """Byte offset of the ``arg_index``-th static argument word."""
    return SELECTOR_SIZE + WORD_SIZE * arg_index


def locate_word_offset(calldata: str, sentinel: int) -> int:
    """Byte offset of the word equal to ``sentinel`` in ``calldata``."""
    data = hex_to_bytes(calldata)
    needle = sentinel.to_bytes(WORD_SIZE, "big")
    for offset in range(SELECTOR_SIZE, len(data) - WORD_SIZE + 1, WORD_SIZE):
        if data[offset:offset + WORD_SIZE] == needle:
            return offset
    raise ValueError(f"Sentinel {hex(sentinel)} not found in calldata")


def _replace_word(calldata: str, offset: int, value: int) -> str:
    data = bytearray(hex_to_bytes(calldata))
    data[offset:offset + WORD_SIZE] = value.to_bytes(WORD_SIZE, "big")
    return "0x" + data.hex()


@dataclass(frozen=True)
class TokenPatch:
    token: str
    offset: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "token", Web3.to_checksum_address(self.token))
        if self.offset < APPROVE_ONLY:
            raise ValueError(f"Invalid patch offset {self.offset}")

    @property
    def approve_only(self) -> bool:
        return self.offset == APPROVE_ONLY

    def as_abi_tuple(self) -> Tuple[str, int]:
        return (self.token, self.offset)


@dataclass(frozen=True)
class ChainRoute:
    """One step of a zap route."""

    target: str
    value: int
    calldata: str
    token_patches: Tuple[TokenPatch, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "target", Web3.to_checksum_address(self.target))
        object.__setattr__(self, "token_patches", tuple(self.token_patches))
        if self.value < 0:
            raise ValueError("Route step value must be non-negative")
        size = len(hex_to_bytes(self.calldata))
        for patch in self.token_patches:
            if patch.approve_only:
                continue
            if patch.offset < SELECTOR_SIZE or (patch.offset - SELECTOR_SIZE) % WORD_SIZE:
                raise ValueError(
                    f"Patch offset {patch.offset} for {patch.token} is not an argument word boundary"
                )
            if patch.offset + WORD_SIZE > size:
                raise ValueError(
                    f"Patch offset {patch.offset} for {patch.token} exceeds calldata length {size}"
                )

    def as_abi_tuple(self) -> tuple:
        return (
            self.target,
            self.value,
            hex_to_bytes(self.calldata),
            [patch.as_abi_tuple() for patch in self.token_patches],
        )


@dataclass(frozen=True)
class OrderInput:
    token: str
    amount: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "token", Web3.to_checksum_address(self.token))


@dataclass(frozen=True)
class OrderOutput:
    token: str
    min_output_amount: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "token", Web3.to_checksum_address(self.token))


@dataclass(frozen=True)
class Relay:
    target: str = ZERO_ADDRESS
    value: int = 0
    calldata: str = "0x"

    @property
    def is_noop(self) -> bool:
        return int(self.target, 16) == 0 and self.value == 0 and self.calldata in ("", "0x")


NO_RELAY = Relay()


@dataclass(frozen=True)
class ZapOrder:
    inputs: Tuple[OrderInput, ...]
    outputs: Tuple[OrderOutput, ...]
    user: str
    recipient: str
    relay: Relay = NO_RELAY

    def __post_init__(self) -> None:
        object.__setattr__(self, "inputs", tuple(self.inputs))
        object.__setattr__(self, "outputs", tuple(self.outputs))
        object.__setattr__(self, "user", Web3.to_checksum_address(self.user))
        object.__setattr__(self, "recipient", Web3.to_checksum_address(self.recipient))

    def input_amount(self, token: str) -> Optional[int]:
        for order_input in self.inputs:
            if order_input.token.lower() == token.lower():
                return order_input.amount
        return None

    def as_abi_tuple(self) -> tuple:
        return (
            [(item.token, item.amount) for item in self.inputs],
            [(item.token, item.min_output_amount) for item in self.outputs],
            (Web3.to_checksum_address(self.relay.target), self.relay.value, hex_to_bytes(self.relay.calldata)),
            self.user,
            self.recipient,
        )


@dataclass(frozen=True)
class ZapPlan:
    """An order, its route and the ``executeOrder`` call for the router."""

    order: ZapOrder
    route: Tuple[ChainRoute, ...]
    call: Call
    swaps: Tuple[SwapBuild, ...] = ()
    notes: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class PlannedApproval:
    token: str
    spender: str
    amount: Optional[int]
    """Static order input amount; ``None`` means the router's live balance."""


def encode_execute_order(order: ZapOrder, route: Sequence[ChainRoute]) -> str:
    return encode_function_call(
        "zap_router.json",
        "executeOrder",
        [order.as_abi_tuple(), [step.as_abi_tuple() for step in route]],
    )


def apply_token_patches(step: ChainRoute, balances: Mapping[str, int]) -> bytes:
    """Calldata the router sends for ``step`` given its live token ``balances``."""
    data = bytearray(hex_to_bytes(step.calldata))
    lookup = {token.lower(): amount for token, amount in balances.items()}
    for patch in step.token_patches:
        if patch.approve_only:
            continue
        amount = lookup[patch.token.lower()]
        data[patch.offset:patch.offset + WORD_SIZE] = amount.to_bytes(WORD_SIZE, "big")
    return bytes(data)


def planned_approvals(order: ZapOrder, route: Sequence[ChainRoute]) -> List[PlannedApproval]:
    """Approvals the router grants while executing ``route``.

    Approve-only patches of an order input use the order's static amount; every
    other patch approves whatever the router holds at that point.
    """
    approvals = []
    for step in route:
        for patch in step.token_patches:
            amount = order.input_amount(patch.token) if patch.approve_only else None
            approvals.append(PlannedApproval(token=patch.token, spender=step.target, amount=amount))
    return approvals


def _dedupe_outputs(tokens: Sequence[str]) -> List[OrderOutput]:
    seen = set()
    outputs = []
    for token in tokens:
        key = token.lower()
        if key in seen:
            continue
        seen.add(key)
        outputs.append(OrderOutput(token=token, min_output_amount=0))
    return outputs


def _swap_step(swap: SwapBuild, token_in: str) -> ChainRoute:
    return ChainRoute(
        target=swap.router_address,
        value=swap.value,
        calldata=swap.calldata,
        token_patches=(TokenPatch(token_in, APPROVE_ONLY),),
    )


def _vault_deposit_step(vault_address: str, asset: str, recipient: str) -> ChainRoute:
    # assets=0 is overwritten with the router's live asset balance.
    data = encode_function_call("erc4626_vault.json", "deposit", [0, Web3.to_checksum_address(recipient)])
    return ChainRoute(
        target=vault_address,
        value=0,
        calldata=data,
        token_patches=(TokenPatch(asset, word_offset(0)),),
    )


def _add_liquidity_step(vault: LpVault, deadline: int) -> ChainRoute:
    data = encode_function_call(
        "lp_router.json",
        "addLiquidity",
        [vault.token_a, vault.token_b, vault.stable, _SENTINEL_A, _SENTINEL_B, 0, 0, vault.zap_router, deadline],
    )
    offset_a = locate_word_offset(data, _SENTINEL_A)
    offset_b = locate_word_offset(data, _SENTINEL_B)
    data = _replace_word(_replace_word(data, offset_a, 0), offset_b, 0)
    return ChainRoute(
        target=vault.lp_router,
        value=0,
        calldata=data,
        token_patches=(TokenPatch(vault.token_a, offset_a), TokenPatch(vault.token_b, offset_b)),
    )


def _remove_liquidity_step(vault: LpVault, deadline: int) -> ChainRoute:
    data = encode_function_call(
        "lp_router.json",
        "removeLiquidity",
        [vault.token_a, vault.token_b, vault.stable, _SENTINEL_A, 0, 0, vault.zap_router, deadline],
    )
    offset = locate_word_offset(data, _SENTINEL_A)
    return ChainRoute(
        target=vault.lp_router,
        value=0,
        calldata=_replace_word(data, offset, 0),
        token_patches=(TokenPatch(vault.lp_token, offset),),
    )


def _finish(order: ZapOrder, route: List[ChainRoute], zap_router: str, swaps: List[SwapBuild], **notes: int) -> ZapPlan:
    data = encode_execute_order(order, route)
    return ZapPlan(
        order=order,
        route=tuple(route),
        call=Call(to=zap_router, data=data, value=sum(step.value for step in route)),
        swaps=tuple(swaps),
        notes=dict(notes),
    )


def build_deposit_zap(
    *,
    vault: Vault,
    amount: int,
    recipient: str,
    quote_client: SwapQuoteClient,
    deadline: int,
    swap_deadline: Optional[int] = None,
    slippage_bps: int = 50,
) -> ZapPlan:
    """Swap ``amount`` of the vault chain's USDC into the vault asset and deposit it.

    The deposit amount is patched from the router's live balance, so whatever the
    swaps actually produced is deposited.
    """
    if amount <= 0:
        raise ValueError("Deposit amount must be positive")

    usdc = vault.input_token
    router = vault.zap_router
    swaps: List[SwapBuild] = []
    route: List[ChainRoute] = []

    def swap(token_out: str, amount_in: int) -> None:
        build = quote_client.build_swap(
            token_in=usdc,
            token_out=token_out,
            amount_in=amount_in,
            executor_address=router,
            chain_tag=vault.aggregator_chain,
            slippage_bps=slippage_bps,
            deadline_seconds=swap_deadline if swap_deadline is not None else deadline,
        )
        swaps.append(build)
        route.append(_swap_step(build, usdc))

    if isinstance(vault, SingleAssetVault):
        asset = vault.asset_token
        if asset.lower() != usdc.lower():
            swap(asset, amount)
        intermediate = [asset]
    elif isinstance(vault, LpUsdcVault):
        half, _ = split_amount(amount)
        swap(vault.other_token, half)
        route.append(_add_liquidity_step(vault, deadline))
        asset = vault.lp_token
        intermediate = [vault.token_a, vault.token_b, asset]
    elif isinstance(vault, LpNonUsdcVault):
        first, second = split_amount(amount)
        swap(vault.token_a, first)
        swap(vault.token_b, second)
        route.append(_add_liquidity_step(vault, deadline))
        asset = vault.lp_token
        intermediate = [vault.token_a, vault.token_b, asset]
    else:
        raise TypeError(f"Unsupported vault type: {type(vault).__name__}")

    route.append(_vault_deposit_step(vault.vault_address, asset, recipient))

    order = ZapOrder(
        inputs=(OrderInput(usdc, amount),),
        outputs=tuple(_dedupe_outputs([vault.vault_address, *intermediate, usdc])),
        user=recipient,
        recipient=recipient,
    )
    LOGGER.info("Built deposit zap for vault %s: %s steps, input %s", vault.id, len(route), amount)
    return _finish(order, route, router, swaps)


def build_withdrawal_zap(
    *,
    vault: Vault,
    shares: int,
    recipient: str,
    swap_amounts: Mapping[str, int],
    quote_client: SwapQuoteClient,
    deadline: int,
    swap_deadline: Optional[int] = None,
    bridge: Optional[BridgeCalls] = None,
    slippage_bps: int = 50,
) -> ZapPlan:
    """Redeem ``shares`` and swap the proceeds back to USDC, optionally burning it for CCTP.

    ``swap_amounts`` maps every non-USDC token the redeem produces to the static
    amount to swap. Aggregator calldata cannot be patched, so these are
    margin-shaved estimates. The burn amount inside ``bridge`` is static too.
    """
    if shares <= 0:
        raise ValueError("Shares to redeem must be positive")

    usdc = vault.input_token
    router = vault.zap_router
    swaps: List[SwapBuild] = []

    redeem_data = encode_function_call("erc4626_vault.json", "redeem", [shares, router, router])
    route: List[ChainRoute] = [
        ChainRoute(
            target=vault.vault_address,
            value=0,
            calldata=redeem_data,
            token_patches=(TokenPatch(vault.vault_address, APPROVE_ONLY),),
        )
    ]

    if isinstance(vault, SingleAssetVault):
        to_swap = [vault.asset_token] if vault.asset_token.lower() != usdc.lower() else []
        intermediate = [vault.asset_token]
    elif isinstance(vault, LpUsdcVault):
        route.append(_remove_liquidity_step(vault, deadline))
        to_swap = [vault.other_token]
        intermediate = [vault.lp_token, vault.token_a, vault.token_b]
    elif isinstance(vault, LpNonUsdcVault):
        route.append(_remove_liquidity_step(vault, deadline))
        to_swap = [vault.token_a, vault.token_b]
        intermediate = [vault.lp_token, vault.token_a, vault.token_b]
    else:
        raise TypeError(f"Unsupported vault type: {type(vault).__name__}")

    lookup = {token.lower(): amount for token, amount in swap_amounts.items()}
    for token in to_swap:
        amount_in = lookup.get(token.lower())
        if not amount_in:
            raise ValueError(f"No swap amount estimated for {token}")
        build = quote_client.build_swap(
            token_in=token,
            token_out=usdc,
            amount_in=amount_in,
            executor_address=router,
            chain_tag=vault.aggregator_chain,
            slippage_bps=slippage_bps,
            deadline_seconds=swap_deadline if swap_deadline is not None else deadline,
        )
        swaps.append(build)
        route.append(_swap_step(build, token))

    if bridge is not None:
        route.append(
            ChainRoute(
                target=bridge.approval_call.to,
                value=bridge.approval_call.value,
                calldata=bridge.approval_call.data,
            )
        )
        route.append(
            ChainRoute(
                target=bridge.bridge_call.to,
                value=bridge.bridge_call.value,
                calldata=bridge.bridge_call.data,
                token_patches=(TokenPatch(usdc, APPROVE_ONLY),),
            )
        )

    order = ZapOrder(
        inputs=(OrderInput(vault.vault_address, shares),),
        outputs=tuple(_dedupe_outputs([*intermediate, usdc])),
        user=recipient,
        recipient=recipient,
    )
    LOGGER.info(
        "Built withdrawal zap for vault %s: %s steps, shares %s, bridging=%s",
        vault.id,
        len(route),
        shares,
        bridge is not None,
    )
    notes = {"burn_amount": bridge.amount} if bridge is not None else {}
    return _finish(order, route, router, swaps, **notes)


__all__ = [
    "APPROVE_ONLY",
    "ChainRoute",
    "NO_RELAY",
    "OrderInput",
    "OrderOutput",
    "PlannedApproval",
    "Relay",
    "TokenPatch",
    "ZapOrder",
    "ZapPlan",
    "apply_token_patches",
    "build_deposit_zap",
    "build_withdrawal_zap",
    "encode_execute_order",
    "locate_word_offset",
    "planned_approvals",
    "word_offset",
]
