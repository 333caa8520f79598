"""CLI entrypoint for vault deposits, withdrawals and attestation lookups."""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from zapbridge.config import ZapConfig, load_config
from zapbridge.core.amounts import to_base_units
from zapbridge.core.attestation import AttestationClient
from zapbridge.core.orchestrator import DepositOrchestrator, WithdrawalOrchestrator, log_results
from zapbridge.core.utils import get_logger
from zapbridge.core.wallet import RpcWallet

LOGGER = get_logger("zapbridge.cli")

load_dotenv()


def _wallet_from_env() -> RpcWallet:
    rpc_url = (os.getenv("WALLET_RPC_URL") or "").strip()
    if not rpc_url:
        raise ValueError("WALLET_RPC_URL environment variable not set")
    return RpcWallet(rpc_url)


def _cmd_deposit(config: ZapConfig, args: argparse.Namespace) -> None:
    amount = to_base_units(args.amount)
    orchestrator = DepositOrchestrator(config, _wallet_from_env(), dry_run=args.dry_run)
    log_results(orchestrator.run(args.vault, amount))


def _cmd_withdraw(config: ZapConfig, args: argparse.Namespace) -> None:
    orchestrator = WithdrawalOrchestrator(config, _wallet_from_env(), dry_run=args.dry_run)
    log_results(orchestrator.run(args.vault, args.shares))


def _cmd_attestation(config: ZapConfig, args: argparse.Namespace) -> None:
    client = AttestationClient(config.api_urls.attestation_base, timeout=config.defaults.api_timeout)
    record = client.retrieve_attestation(
        args.tx,
        args.domain,
        max_retries=config.defaults.attestation_max_retries,
        retry_delay=config.defaults.attestation_retry_delay,
    )
    print(f"message:     {record.message}")
    print(f"attestation: {record.attestation}")


def _cmd_vaults(config: ZapConfig, args: argparse.Namespace) -> None:
    for vault in config.vaults.values():
        chain = config.chain(vault.chain)
        print(f"{vault.id:<24} {vault.kind:<12} {chain.name:<10} {vault.vault_address}")


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Bridge USDC with CCTP and zap it in or out of vaults")
    parser.add_argument("--config", type=Path, default=None, help="Path to config.json (default: $ZAPBRIDGE_CONFIG)")
    sub = parser.add_subparsers(dest="command", required=True)

    deposit = sub.add_parser("deposit", help="Deposit USDC from the home chain into a vault")
    deposit.add_argument("--vault", required=True, help="Vault id from the config")
    deposit.add_argument("--amount", required=True, help="USDC amount, e.g. 1.5")
    deposit.add_argument("--dry-run", action="store_true", help="Build and log the batches without submitting")
    deposit.set_defaults(handler=_cmd_deposit)

    withdraw = sub.add_parser("withdraw", help="Withdraw from a vault back to USDC on the home chain")
    withdraw.add_argument("--vault", required=True, help="Vault id from the config")
    withdraw.add_argument("--shares", type=int, default=None, help="Shares to redeem (default: whole balance)")
    withdraw.add_argument("--dry-run", action="store_true", help="Build and log the batches without submitting")
    withdraw.set_defaults(handler=_cmd_withdraw)

    attestation = sub.add_parser("attestation", help="Fetch the CCTP attestation for a burn transaction")
    attestation.add_argument("--tx", required=True, help="Burn transaction hash")
    attestation.add_argument("--domain", type=int, required=True, help="CCTP domain of the source chain")
    attestation.set_defaults(handler=_cmd_attestation)

    vaults = sub.add_parser("vaults", help="List configured vaults")
    vaults.set_defaults(handler=_cmd_vaults)
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    args = _parse_args(argv)

    try:
        config = load_config(args.config)
        args.handler(config, args)
    except Exception as exc:
        print(f"\n❌ Error: {exc}")
        sys.exit(1)


if __name__ == "__main__":  # pragma: no cover - CLI entry
    main()
