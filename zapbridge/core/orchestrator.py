"""Deposit and withdrawal flows: network checks, batch legs and the CCTP handoff."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from web3 import Web3

from zapbridge.config import ChainConfig, LpVault, SingleAssetVault, Vault, ZapConfig
from zapbridge.contracts import encode_function_call
from zapbridge.core.amounts import apply_swap_safety_margin, bps_of
from zapbridge.core.attestation import AttestationClient, AttestationRecord
from zapbridge.core.batch import BatchSubmissionDriver, Call
from zapbridge.core.bridge import BridgeCalls, bridge_intent_for, build_bridge_calls, build_mint_call
from zapbridge.core.errors import HandoffError, InsufficientBalanceError, WrongNetworkError
from zapbridge.core.quotes import SwapQuoteClient
from zapbridge.core.tokens import ChainReader
from zapbridge.core.utils import deadline_from_now, ensure_web3_connected, get_logger
from zapbridge.core.zap import ZapPlan, build_deposit_zap, build_withdrawal_zap, planned_approvals

LOGGER = get_logger("zapbridge.orchestrator")


class LegState(str, Enum):
    IDLE = "idle"
    NETWORK_CHECK = "network_check"
    BALANCE_CHECK = "balance_check"
    ROUTE_BUILD = "route_build"
    APPROVAL_CHECK = "approval_check"
    CAPABILITY_CHECK = "capability_check"
    SUBMIT = "submit"
    RESOLVE_TX_HASH = "resolve_tx_hash"
    CONFIRM = "confirm"
    CROSS_CHAIN_HANDOFF = "cross_chain_handoff"
    DONE = "done"
    NETWORK_RESTORE = "network_restore"


class OperationContext:
    """State shared by every leg of one deposit or withdrawal.

    ``handoff_pending`` is raised when the first leg of a bridged operation is
    submitted and cleared once the last leg finishes (or fails). While it is
    set, chain-changed notifications come from the flow itself and must not
    trigger a reload.
    """

    def __init__(self, operation: str) -> None:
        self.operation = operation
        self.handoff_pending = False
        self.history: List[Tuple[str, LegState]] = []

    def enter(self, leg: str, state: LegState) -> None:
        self.history.append((leg, state))
        LOGGER.debug("%s/%s -> %s", self.operation, leg, state.value)

    def states(self, leg: str) -> List[LegState]:
        return [state for name, state in self.history if name == leg]

    def should_suppress_network_reload(self) -> bool:
        return self.handoff_pending


@dataclass
class LegResult:
    name: str
    chain: str
    calls: List[Call] = field(default_factory=list)
    batch_id: Optional[str] = None
    transaction_hash: Optional[str] = None
    explorer_url: Optional[str] = None


@dataclass
class OperationResult:
    operation: str
    vault_id: str
    account: str
    amount: int
    dry_run: bool = False
    legs: List[LegResult] = field(default_factory=list)
    plan: Optional[ZapPlan] = None
    network_restore_error: Optional[str] = None

    @property
    def transaction_hashes(self) -> List[str]:
        return [leg.transaction_hash for leg in self.legs if leg.transaction_hash]


def connect_reader(
    chain: ChainConfig,
    *,
    web3_factory: Callable[[str], Web3] = lambda url: Web3(Web3.HTTPProvider(url)),
) -> ChainReader:
    """Open a reader on ``chain``; an unreachable or mismatched RPC fails before any leg is built."""
    web3 = web3_factory(chain.ensure_rpc_url())
    ensure_web3_connected(web3, expected_chain_id=chain.chain_id, label=f"{chain.name} RPC")
    return ChainReader(web3)


def approve_call(token: str, spender: str, amount: int) -> Call:
    return Call(to=token, data=encode_function_call("erc20.json", "approve", [Web3.to_checksum_address(spender), amount]))


class _Orchestrator:
    operation = "operation"

    def __init__(
        self,
        config: ZapConfig,
        wallet: Any,
        *,
        quote_client: Optional[SwapQuoteClient] = None,
        attestation_client: Optional[AttestationClient] = None,
        reader_factory: Callable[[ChainConfig], ChainReader] = connect_reader,
        driver: Optional[BatchSubmissionDriver] = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
        dry_run: bool = False,
    ) -> None:
        defaults = config.defaults
        self.config = config
        self.wallet = wallet
        self.quote_client = quote_client or SwapQuoteClient(
            config.api_urls.aggregator_base,
            client_id=defaults.client_id,
            timeout=defaults.api_timeout,
            clock=clock,
        )
        self.attestation_client = attestation_client or AttestationClient(
            config.api_urls.attestation_base,
            timeout=defaults.api_timeout,
            sleep=sleep,
        )
        self.driver = driver or BatchSubmissionDriver(
            wallet,
            max_attempts=defaults.calls_status_max_retries,
            delay=defaults.calls_status_retry_delay,
            sleep=sleep,
        )
        self.reader_factory = reader_factory
        self.clock = clock
        self.dry_run = dry_run
        self._readers: Dict[str, ChainReader] = {}
        self.context: Optional[OperationContext] = None

    def reader(self, chain: ChainConfig) -> ChainReader:
        if chain.key not in self._readers:
            self._readers[chain.key] = self.reader_factory(chain)
        return self._readers[chain.key]

    def _deadline(self) -> int:
        return deadline_from_now(self.config.defaults.order_deadline_seconds, clock=self.clock)

    def _switch_network(self, ctx: OperationContext, leg: str, chain: ChainConfig) -> None:
        ctx.enter(leg, LegState.NETWORK_CHECK)
        self.wallet.switch_chain(chain)
        actual = self.wallet.chain_id()
        if actual != chain.chain_id:
            raise WrongNetworkError(chain.chain_id, actual)

    def _with_allowance(
        self,
        ctx: OperationContext,
        leg: str,
        reader: ChainReader,
        *,
        token: str,
        owner: str,
        spender: str,
        amount: int,
    ) -> List[Call]:
        ctx.enter(leg, LegState.APPROVAL_CHECK)
        allowance = reader.allowance_of(token, owner, spender)
        if allowance >= amount:
            return []
        LOGGER.info("Allowance of %s for %s is %s, approving %s", token, spender, allowance, amount)
        return [approve_call(token, spender, amount)]

    def _run_leg(
        self,
        ctx: OperationContext,
        leg: LegResult,
        chain: ChainConfig,
        account: str,
        *,
        starts_handoff: bool = False,
    ) -> LegResult:
        ctx.enter(leg.name, LegState.CAPABILITY_CHECK)
        self.driver.ensure_atomic_support(account, chain.chain_id)
        if self.dry_run:
            self._log_calls(leg)
            ctx.enter(leg.name, LegState.DONE)
            return leg

        ctx.enter(leg.name, LegState.SUBMIT)
        if starts_handoff:
            ctx.handoff_pending = True
        leg.batch_id = self.driver.submit(account, chain.chain_id, leg.calls)

        ctx.enter(leg.name, LegState.RESOLVE_TX_HASH)
        leg.transaction_hash = self.driver.resolve_transaction_hash(leg.batch_id)
        leg.explorer_url = chain.explorer_tx_url(leg.transaction_hash)

        ctx.enter(leg.name, LegState.CONFIRM)
        receipt = self.reader(chain).wait_for_receipt(leg.transaction_hash)
        LOGGER.info(
            "%s leg confirmed on %s in block %s: %s",
            leg.name,
            chain.name,
            receipt["blockNumber"],
            leg.explorer_url or leg.transaction_hash,
        )
        ctx.enter(leg.name, LegState.DONE)
        return leg

    def _await_attestation(self, ctx: OperationContext, leg: LegResult, source: ChainConfig) -> AttestationRecord:
        ctx.enter(leg.name, LegState.CROSS_CHAIN_HANDOFF)
        defaults = self.config.defaults
        return self.attestation_client.retrieve_attestation(
            leg.transaction_hash,
            source.cctp_domain,
            max_retries=defaults.attestation_max_retries,
            retry_delay=defaults.attestation_retry_delay,
        )

    def _restore_network(self, ctx: OperationContext, result: OperationResult) -> None:
        ctx.enter("restore", LegState.NETWORK_RESTORE)
        try:
            self.wallet.switch_chain(self.config.home)
        except Exception as exc:
            LOGGER.warning("Could not switch back to %s: %s", self.config.home.name, exc)
            result.network_restore_error = str(exc)

    def _handoff_failed(self, result: OperationResult, exc: Exception) -> HandoffError:
        first = result.legs[0]
        LOGGER.error(
            "%s failed after %s leg confirmed (%s): %s",
            self.operation,
            first.name,
            first.transaction_hash,
            exc,
        )
        return HandoffError(
            f"{self.operation} leg failed after {first.name} transaction {first.transaction_hash} "
            f"was confirmed: {exc}",
            completed_legs=[leg for leg in result.legs if leg.transaction_hash],
        )

    @staticmethod
    def _log_calls(leg: LegResult) -> None:
        LOGGER.info("Dry run: %s leg on %s with %s calls", leg.name, leg.chain, len(leg.calls))
        for idx, call in enumerate(leg.calls, start=1):
            LOGGER.info("  call %s: to=%s value=%s data=%s", idx, call.to, call.value, call.data)

    @staticmethod
    def _log_plan(plan: ZapPlan) -> None:
        LOGGER.info(
            "Zap order: inputs=%s outputs=%s",
            [(item.token, item.amount) for item in plan.order.inputs],
            [item.token for item in plan.order.outputs],
        )
        for idx, step in enumerate(plan.route, start=1):
            LOGGER.info(
                "  step %s: target=%s value=%s patches=%s",
                idx,
                step.target,
                step.value,
                [(patch.token, patch.offset) for patch in step.token_patches],
            )
        for approval in planned_approvals(plan.order, plan.route):
            LOGGER.info(
                "  router approves %s to %s for %s",
                approval.token,
                approval.spender,
                "live balance" if approval.amount is None else approval.amount,
            )


class DepositOrchestrator(_Orchestrator):
    """USDC on the home chain -> (bridge) -> swap -> vault deposit."""

    operation = "deposit"

    def run(self, vault_id: str, amount: int) -> OperationResult:
        if amount <= 0:
            raise ValueError("Deposit amount must be positive")
        vault = self.config.vault(vault_id)
        home = self.config.home
        destination = self.config.chain(vault.chain)
        bridged = destination.key != home.key

        ctx = self.context = OperationContext(self.operation)
        ctx.enter("source" if bridged else "destination", LegState.IDLE)
        account = self.wallet.request_accounts()
        result = OperationResult(self.operation, vault.id, account, amount, dry_run=self.dry_run)
        LOGGER.info(
            "Depositing %s USDC units from %s into %s on %s",
            amount,
            home.name,
            vault.id,
            destination.name,
        )

        try:
            if not bridged:
                result.legs.append(self._destination_leg(ctx, vault, destination, account, amount, result))
                return result

            source_leg = self._source_leg(ctx, home, destination, account, amount)
            result.legs.append(source_leg)
            if self.dry_run:
                result.legs.append(self._destination_leg(ctx, vault, destination, account, amount, result))
                return result

            try:
                record = self._await_attestation(ctx, source_leg, home)
                result.legs.append(
                    self._destination_leg(ctx, vault, destination, account, amount, result, attestation=record)
                )
            except Exception as exc:
                raise self._handoff_failed(result, exc) from exc
            return result
        finally:
            ctx.handoff_pending = False
            self._restore_network(ctx, result)

    def _source_leg(
        self,
        ctx: OperationContext,
        home: ChainConfig,
        destination: ChainConfig,
        account: str,
        amount: int,
    ) -> LegResult:
        leg = LegResult(name="source", chain=home.key)
        self._switch_network(ctx, leg.name, home)
        reader = self.reader(home)

        ctx.enter(leg.name, LegState.BALANCE_CHECK)
        balance = reader.balance_of(home.usdc_address, account)
        if balance < amount:
            raise InsufficientBalanceError(home.usdc_address, amount, balance)

        ctx.enter(leg.name, LegState.ROUTE_BUILD)
        bridge = build_bridge_calls(
            self.config,
            bridge_intent_for(
                self.config,
                source_chain=home.key,
                destination_chain=destination.key,
                amount=amount,
                recipient=account,
            ),
        )
        # The tokenMessenger approval is unconditional; only tokenManager allowances are checked.
        leg.calls = [bridge.approval_call, bridge.bridge_call]
        return self._run_leg(ctx, leg, home, account, starts_handoff=True)

    def _destination_leg(
        self,
        ctx: OperationContext,
        vault: Vault,
        destination: ChainConfig,
        account: str,
        amount: int,
        result: OperationResult,
        *,
        attestation: Optional[AttestationRecord] = None,
    ) -> LegResult:
        leg = LegResult(name="destination", chain=destination.key)
        bridged = destination.key != self.config.home_chain
        # A dry run never gets the mint, so the wallet stays on the source chain.
        if not (self.dry_run and bridged):
            self._switch_network(ctx, leg.name, destination)
        reader = self.reader(destination)

        if not bridged:
            ctx.enter(leg.name, LegState.BALANCE_CHECK)
            balance = reader.balance_of(vault.input_token, account)
            if balance < amount:
                raise InsufficientBalanceError(vault.input_token, amount, balance)

        ctx.enter(leg.name, LegState.ROUTE_BUILD)
        calls: List[Call] = []
        if attestation is not None:
            calls.append(build_mint_call(self.config, destination.key, attestation.message, attestation.attestation))
        plan = build_deposit_zap(
            vault=vault,
            amount=amount,
            recipient=account,
            quote_client=self.quote_client,
            deadline=self._deadline(),
            swap_deadline=deadline_from_now(self.config.defaults.swap_deadline_seconds, clock=self.clock),
            slippage_bps=self.config.defaults.slippage_bps,
        )
        result.plan = plan

        token_manager = reader.token_manager_of(vault.zap_router)
        calls.extend(
            self._with_allowance(
                ctx,
                leg.name,
                reader,
                token=vault.input_token,
                owner=account,
                spender=token_manager,
                amount=amount,
            )
        )
        calls.append(plan.call)
        leg.calls = calls
        if self.dry_run:
            self._log_plan(plan)
        return self._run_leg(ctx, leg, destination, account)


@dataclass(frozen=True)
class WithdrawalEstimate:
    """Static amounts baked into a withdrawal route."""

    swap_amounts: Dict[str, int]
    usdc_out: int


class WithdrawalOrchestrator(_Orchestrator):
    """Vault shares -> redeem -> swap to USDC -> (bridge) -> mint on the home chain."""

    operation = "withdrawal"

    def run(self, vault_id: str, shares: Optional[int] = None) -> OperationResult:
        if shares is not None and shares <= 0:
            raise ValueError("Withdrawal shares must be positive")
        vault = self.config.vault(vault_id)
        home = self.config.home
        source = self.config.chain(vault.chain)
        bridged = source.key != home.key

        ctx = self.context = OperationContext(self.operation)
        ctx.enter("withdraw", LegState.IDLE)
        account = self.wallet.request_accounts()
        result = OperationResult(self.operation, vault.id, account, shares or 0, dry_run=self.dry_run)

        try:
            withdraw_leg = self._withdraw_leg(ctx, vault, source, home, account, shares, result, bridged=bridged)
            result.legs.append(withdraw_leg)
            if not bridged or self.dry_run:
                return result

            try:
                record = self._await_attestation(ctx, withdraw_leg, source)
                result.legs.append(self._mint_leg(ctx, home, account, record))
            except Exception as exc:
                raise self._handoff_failed(result, exc) from exc
            return result
        finally:
            ctx.handoff_pending = False
            self._restore_network(ctx, result)

    def estimate(self, vault: Vault, shares: int, reader: ChainReader) -> WithdrawalEstimate:
        """Expected proceeds of redeeming ``shares``, with swap inputs shaved by the safety margin."""
        margin_bps = self.config.defaults.swap_margin_bps
        usdc = vault.input_token
        redeemed = reader.preview_redeem(vault.vault_address, shares)

        if isinstance(vault, SingleAssetVault):
            proceeds = [(vault.asset_token, redeemed)]
        elif isinstance(vault, LpVault):
            amount_a, amount_b = reader.quote_remove_liquidity(
                vault.lp_router, vault.token_a, vault.token_b, vault.stable, redeemed
            )
            proceeds = [(vault.token_a, amount_a), (vault.token_b, amount_b)]
        else:
            raise TypeError(f"Unsupported vault type: {type(vault).__name__}")

        swap_amounts: Dict[str, int] = {}
        usdc_out = 0
        for token, amount in proceeds:
            if token.lower() == usdc.lower():
                usdc_out += amount
                continue
            amount_in = apply_swap_safety_margin(amount, margin_bps)
            swap_amounts[token] = amount_in
            usdc_out += self.quote_client.estimate_swap_output(
                token_in=token,
                token_out=usdc,
                amount_in=amount_in,
                chain_tag=vault.aggregator_chain,
            )
        LOGGER.info("Redeeming %s shares of %s: swaps=%s expected USDC=%s", shares, vault.id, swap_amounts, usdc_out)
        return WithdrawalEstimate(swap_amounts=swap_amounts, usdc_out=usdc_out)

    def _burn_calls(self, source: ChainConfig, home: ChainConfig, account: str, usdc_out: int) -> BridgeCalls:
        burn_amount = usdc_out - bps_of(usdc_out, self.config.defaults.bridge_burn_margin_bps)
        LOGGER.warning(
            "Burn amount %s is a static estimate; the withdrawal reverts if the swaps return less",
            burn_amount,
        )
        return build_bridge_calls(
            self.config,
            bridge_intent_for(
                self.config,
                source_chain=source.key,
                destination_chain=home.key,
                amount=burn_amount,
                recipient=account,
            ),
        )

    def _withdraw_leg(
        self,
        ctx: OperationContext,
        vault: Vault,
        source: ChainConfig,
        home: ChainConfig,
        account: str,
        shares: Optional[int],
        result: OperationResult,
        *,
        bridged: bool,
    ) -> LegResult:
        leg = LegResult(name="withdraw", chain=source.key)
        self._switch_network(ctx, leg.name, source)
        reader = self.reader(source)

        ctx.enter(leg.name, LegState.BALANCE_CHECK)
        balance = reader.balance_of(vault.vault_address, account)
        if shares is None:
            shares = balance
        if shares <= 0 or balance < shares:
            raise InsufficientBalanceError(vault.vault_address, max(shares, 1), balance)
        result.amount = shares

        ctx.enter(leg.name, LegState.ROUTE_BUILD)
        estimate = self.estimate(vault, shares, reader)
        bridge = self._burn_calls(source, home, account, estimate.usdc_out) if bridged else None
        plan = build_withdrawal_zap(
            vault=vault,
            shares=shares,
            recipient=account,
            swap_amounts=estimate.swap_amounts,
            quote_client=self.quote_client,
            deadline=self._deadline(),
            swap_deadline=deadline_from_now(self.config.defaults.swap_deadline_seconds, clock=self.clock),
            bridge=bridge,
            slippage_bps=self.config.defaults.slippage_bps,
        )
        result.plan = plan

        token_manager = reader.token_manager_of(vault.zap_router)
        leg.calls = self._with_allowance(
            ctx,
            leg.name,
            reader,
            token=vault.vault_address,
            owner=account,
            spender=token_manager,
            amount=shares,
        )
        leg.calls.append(plan.call)
        if self.dry_run:
            self._log_plan(plan)
        return self._run_leg(ctx, leg, source, account, starts_handoff=bridged)

    def _mint_leg(self, ctx: OperationContext, home: ChainConfig, account: str, record: AttestationRecord) -> LegResult:
        leg = LegResult(name="mint", chain=home.key)
        self._switch_network(ctx, leg.name, home)
        ctx.enter(leg.name, LegState.ROUTE_BUILD)
        leg.calls = [build_mint_call(self.config, home.key, record.message, record.attestation)]
        return self._run_leg(ctx, leg, home, account)


def log_results(result: OperationResult) -> None:
    for leg in result.legs:
        LOGGER.info(
            "%s %s leg on %s: tx=%s batch=%s",
            result.operation,
            leg.name,
            leg.chain,
            leg.explorer_url or leg.transaction_hash or "-",
            leg.batch_id or "-",
        )


__all__ = [
    "DepositOrchestrator",
    "LegResult",
    "LegState",
    "OperationContext",
    "OperationResult",
    "WithdrawalEstimate",
    "WithdrawalOrchestrator",
    "approve_call",
    "connect_reader",
    "log_results",
]
