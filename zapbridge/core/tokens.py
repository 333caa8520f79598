"""Token, vault and router reads on a single chain."""

from __future__ import annotations

from typing import Any, Dict, Tuple

from web3 import Web3
from web3.contract import Contract

from zapbridge.contracts import load_contract_abi
from zapbridge.core.errors import OnChainRevertError

# Entries hold the Web3 instance so its id cannot be reused while cached.
_CONTRACT_CACHE: Dict[Tuple[int, str, str], Tuple[Web3, Contract]] = {}


def get_contract(web3: Web3, address: str, abi_name: str) -> Contract:
    """Return a cached contract instance for ``address`` bound to ``abi_name``."""
    checksum_address = Web3.to_checksum_address(address)
    key = (id(web3), checksum_address, abi_name)
    cached = _CONTRACT_CACHE.get(key)
    if cached is None or cached[0] is not web3:
        cached = (web3, web3.eth.contract(address=checksum_address, abi=load_contract_abi(abi_name)))
        _CONTRACT_CACHE[key] = cached
    return cached[1]


def balance_of(web3: Web3, token_address: str, owner: str) -> int:
    """Fetch the ERC20 (or vault share) balance."""
    contract = get_contract(web3, token_address, "erc20.json")
    return contract.functions.balanceOf(Web3.to_checksum_address(owner)).call()


def allowance_of(web3: Web3, token_address: str, owner: str, spender: str) -> int:
    """Fetch the ERC20 allowance."""
    contract = get_contract(web3, token_address, "erc20.json")
    return contract.functions.allowance(
        Web3.to_checksum_address(owner),
        Web3.to_checksum_address(spender),
    ).call()


def token_manager_of(web3: Web3, zap_router: str) -> str:
    """Address the zap router pulls order inputs through."""
    contract = get_contract(web3, zap_router, "zap_router.json")
    return Web3.to_checksum_address(contract.functions.tokenManager().call())


def preview_redeem(web3: Web3, vault_address: str, shares: int) -> int:
    contract = get_contract(web3, vault_address, "erc4626_vault.json")
    return contract.functions.previewRedeem(shares).call()


def quote_remove_liquidity(
    web3: Web3,
    lp_router: str,
    token_a: str,
    token_b: str,
    stable: bool,
    liquidity: int,
) -> Tuple[int, int]:
    """Amounts of ``token_a``/``token_b`` returned for burning ``liquidity`` LP tokens."""
    contract = get_contract(web3, lp_router, "lp_router.json")
    factory = contract.functions.defaultFactory().call()
    amount_a, amount_b = contract.functions.quoteRemoveLiquidity(
        Web3.to_checksum_address(token_a),
        Web3.to_checksum_address(token_b),
        stable,
        factory,
        liquidity,
    ).call()
    return int(amount_a), int(amount_b)


class ChainReader:
    """Read-only view of one chain, as used by the orchestrators."""

    def __init__(self, web3: Web3) -> None:
        self.web3 = web3

    def balance_of(self, token_address: str, owner: str) -> int:
        return balance_of(self.web3, token_address, owner)

    def allowance_of(self, token_address: str, owner: str, spender: str) -> int:
        return allowance_of(self.web3, token_address, owner, spender)

    def token_manager_of(self, zap_router: str) -> str:
        return token_manager_of(self.web3, zap_router)

    def preview_redeem(self, vault_address: str, shares: int) -> int:
        return preview_redeem(self.web3, vault_address, shares)

    def quote_remove_liquidity(self, lp_router: str, token_a: str, token_b: str, stable: bool, liquidity: int) -> Tuple[int, int]:
        return quote_remove_liquidity(self.web3, lp_router, token_a, token_b, stable, liquidity)

    def wait_for_receipt(self, transaction_hash: str) -> Dict[str, Any]:
        """Block until the transaction is mined; a reverted receipt raises ``OnChainRevertError``."""
        receipt = self.web3.eth.wait_for_transaction_receipt(transaction_hash)
        if receipt["status"] != 1:
            raise OnChainRevertError(
                f"Transaction {transaction_hash} reverted in block {receipt['blockNumber']}",
                transaction_hash=transaction_hash,
                receipt=receipt,
            )
        return receipt


__all__ = [
    "ChainReader",
    "allowance_of",
    "balance_of",
    "get_contract",
    "preview_redeem",
    "quote_remove_liquidity",
    "token_manager_of",
]
