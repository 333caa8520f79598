"""JSON-RPC adapter for an EIP-5792 capable wallet endpoint."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence

from web3 import Web3
from web3.providers import BaseProvider

from zapbridge.config import ChainConfig
from zapbridge.core.errors import WalletRpcError
from zapbridge.core.utils import get_logger

LOGGER = get_logger("zapbridge.wallet")

CALLS_VERSION = "2.0.0"
UNRECOGNIZED_CHAIN_CODE = 4902


class RpcWallet:
    """Talks to the wallet through a web3 provider's raw ``make_request``.

    Signing stays with the wallet; this class only asks it to switch networks,
    report capabilities and execute call batches.
    """

    def __init__(self, rpc_url: Optional[str] = None, *, provider: Optional[BaseProvider] = None) -> None:
        if provider is None:
            if not rpc_url:
                raise ValueError("Either rpc_url or provider is required")
            provider = Web3.HTTPProvider(rpc_url)
        self.provider = provider

    def request(self, method: str, params: Sequence[Any] = ()) -> Any:
        response = self.provider.make_request(method, list(params))
        error = response.get("error")
        if error:
            if isinstance(error, Mapping):
                raise WalletRpcError(method, error.get("code"), str(error.get("message", "")), error.get("data"))
            raise WalletRpcError(method, None, str(error))
        return response.get("result")

    def request_accounts(self) -> str:
        accounts = self.request("eth_requestAccounts")
        if not accounts:
            raise WalletRpcError("eth_requestAccounts", None, "wallet returned no accounts")
        account = Web3.to_checksum_address(accounts[0])
        LOGGER.info("Using wallet account %s", account)
        return account

    def chain_id(self) -> int:
        value = self.request("eth_chainId")
        return int(value, 16) if isinstance(value, str) else int(value)

    def switch_chain(self, chain: ChainConfig) -> None:
        """Switch to ``chain``, registering it with the wallet first if unknown."""
        try:
            self.request("wallet_switchEthereumChain", [{"chainId": hex(chain.chain_id)}])
        except WalletRpcError as exc:
            if exc.code != UNRECOGNIZED_CHAIN_CODE:
                raise
            LOGGER.info("Wallet does not know %s, adding it", chain.name)
            self.request("wallet_addEthereumChain", [chain.add_chain_params()])
        LOGGER.info("Switched wallet to %s (%s)", chain.name, chain.chain_id)

    def get_capabilities(self, address: str, chain_id: int) -> Dict[str, Any]:
        result = self.request("wallet_getCapabilities", [Web3.to_checksum_address(address), [hex(chain_id)]])
        return dict(result or {})

    def send_calls(self, address: str, chain_id: int, calls: List[Dict[str, str]]) -> str:
        result = self.request(
            "wallet_sendCalls",
            [
                {
                    "version": CALLS_VERSION,
                    "from": Web3.to_checksum_address(address),
                    "chainId": hex(chain_id),
                    "atomicRequired": True,
                    "calls": calls,
                }
            ],
        )
        # Older wallets return the id directly instead of ``{"id": ...}``.
        if isinstance(result, Mapping):
            result = result.get("id")
        if not result:
            raise WalletRpcError("wallet_sendCalls", None, "wallet returned no batch id")
        return str(result)

    def get_calls_status(self, batch_id: str) -> Dict[str, Any]:
        return dict(self.request("wallet_getCallsStatus", [batch_id]) or {})


__all__ = ["CALLS_VERSION", "RpcWallet", "UNRECOGNIZED_CHAIN_CODE"]
