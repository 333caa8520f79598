"""
Pytest configuration and fakes for zapbridge tests.
"""
from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

import pytest

from zapbridge.config import load_config
from zapbridge.core.errors import WalletRpcError
from zapbridge.core.quotes import SwapBuild

ACCOUNT = "0x1111111111111111111111111111111111111111"
TOKEN_MANAGER = "0x2222222222222222222222222222222222222222"
KYBER_ROUTER = "0x6131B5fae19EA4f9D964eAc0408E4408b66337b5"

BASE_USDC = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
ETH_USDC = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"
TOKEN_MESSENGER = "0x28b5a0e9C621a5BadaA536219b3a228C8168cf5d"
MESSAGE_TRANSMITTER = "0x81D40F21F12A8F0E3252Bccb954D722d4c464B64"
RUSD = "0x09D4214C03D01F49544C0448DBE3A27f768F2b34"
MORPHO_VAULT = "0xBeEf11eCb698f4B5378685C05A210bdF71093521"
ETH_ZAP_ROUTER = "0x5Cc9400FfB4Da168Cf271e912F589462C3A00d1F"
BASE_ZAP_ROUTER = "0x6F19Da51d488926C007B9eBaa5968291a2eC6a63"
AERO_ROUTER = "0xcF77a3Ba9A5CA399B7c97c74d54e5b1Beb874E43"
WETH = "0x4200000000000000000000000000000000000006"
AERO = "0x940181a94A35A4569E4529A3CDfB74e38FD98631"
LP_VAULT = "0x09139a80454609b69700836a9ee12db4b5dbb15f"
LP_TOKEN = "0xcdac0d6c6c59727a65f871236188350531885c43"
LP_NON_USDC_VAULT = "0x3333333333333333333333333333333333333333"
LP_NON_USDC_TOKEN = "0x4444444444444444444444444444444444444444"

TX_SOURCE = "0x" + "aa" * 32
TX_DEST = "0x" + "bb" * 32

CONFIG_DATA: Dict[str, Any] = {
    "home_chain": "base",
    "chains": {
        "base": {
            "chain_id": 8453,
            "name": "Base",
            "rpc_url": "https://base.invalid",
            "explorer_url": "https://basescan.org",
            "cctp_domain": 6,
            "usdc_address": BASE_USDC,
            "token_messenger": TOKEN_MESSENGER,
            "message_transmitter": MESSAGE_TRANSMITTER,
        },
        "ethereum": {
            "chain_id": 1,
            "name": "Ethereum",
            "rpc_url": "https://eth.invalid",
            "explorer_url": "https://etherscan.io",
            "cctp_domain": 0,
            "usdc_address": ETH_USDC,
            "token_messenger": TOKEN_MESSENGER,
            "message_transmitter": MESSAGE_TRANSMITTER,
        },
    },
    "vaults": [
        {
            "id": "morpho-rusd",
            "chain": "ethereum",
            "type": "single-asset",
            "vault_address": MORPHO_VAULT,
            "zap_router": ETH_ZAP_ROUTER,
            "aggregator_chain": "ethereum",
            "asset_token": RUSD,
        },
        {
            "id": "aero-weth-usdc",
            "chain": "base",
            "type": "lp-usdc",
            "vault_address": LP_VAULT,
            "zap_router": BASE_ZAP_ROUTER,
            "aggregator_chain": "base",
            "token_a": WETH,
            "token_b": BASE_USDC,
            "stable": False,
            "lp_router": AERO_ROUTER,
            "lp_token": LP_TOKEN,
        },
        {
            "id": "aero-weth-aero",
            "chain": "base",
            "type": "lp-non-usdc",
            "vault_address": LP_NON_USDC_VAULT,
            "zap_router": BASE_ZAP_ROUTER,
            "aggregator_chain": "base",
            "token_a": WETH,
            "token_b": AERO,
            "stable": False,
            "lp_router": AERO_ROUTER,
            "lp_token": LP_NON_USDC_TOKEN,
        },
    ],
    "defaults": {"attestation_retry_delay": 0, "calls_status_retry_delay": 0},
    "api_urls": {
        "aggregator_base": "https://aggregator.invalid",
        "attestation_base": "https://iris.invalid",
    },
}


def write_config(tmp_path, data: Optional[Dict[str, Any]] = None):
    path = tmp_path / "config.json"
    path.write_text(json.dumps(data if data is not None else CONFIG_DATA), encoding="utf-8")
    return path


@pytest.fixture
def config(tmp_path, monkeypatch):
    monkeypatch.delenv("BASE_RPC_URL", raising=False)
    monkeypatch.delenv("ETHEREUM_RPC_URL", raising=False)
    return load_config(write_config(tmp_path))


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, text: str = "") -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text
        self.reason = "Not Found" if status_code == 404 else ("OK" if status_code < 400 else "Error")

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload


class NullJsonResponse(FakeResponse):
    """A response whose body is the JSON literal ``null``."""

    def json(self) -> Any:
        return None


class FakeSession:
    """Replays queued responses (or raises queued exceptions) and records each request."""

    def __init__(self, responses: List[Any]) -> None:
        self.responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    def _next(self, **request: Any) -> FakeResponse:
        self.calls.append(request)
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def get(self, url, params=None, headers=None, timeout=None):
        return self._next(method="GET", url=url, params=params, headers=headers, timeout=timeout)

    def post(self, url, json=None, headers=None, timeout=None):
        return self._next(method="POST", url=url, json=json, headers=headers, timeout=timeout)


class FakeWallet:
    def __init__(self, chain_id: int = 8453, *, atomic: bool = True, follow_switch: bool = True) -> None:
        self.current_chain_id = chain_id
        self.atomic = atomic
        self.follow_switch = follow_switch
        self.switches: List[int] = []
        self.fail_switch_numbers: List[int] = []
        self.sent: List[Dict[str, Any]] = []
        self.batch_ids: List[str] = []
        self.statuses: List[Dict[str, Any]] = []
        self.on_send = None

    def request_accounts(self) -> str:
        return ACCOUNT

    def chain_id(self) -> int:
        return self.current_chain_id

    def switch_chain(self, chain) -> None:
        self.switches.append(chain.chain_id)
        if len(self.switches) in self.fail_switch_numbers:
            raise WalletRpcError("wallet_switchEthereumChain", 4001, "User rejected the request")
        if self.follow_switch:
            self.current_chain_id = chain.chain_id

    def get_capabilities(self, address: str, chain_id: int) -> Dict[str, Any]:
        if not self.atomic:
            return {}
        return {hex(chain_id): {"atomic": {"status": "supported"}}}

    def send_calls(self, address: str, chain_id: int, calls: List[Dict[str, str]]) -> str:
        self.sent.append({"address": address, "chain_id": chain_id, "calls": calls})
        if self.on_send is not None:
            self.on_send()
        return self.batch_ids.pop(0)

    def get_calls_status(self, batch_id: str) -> Dict[str, Any]:
        return self.statuses.pop(0)


class FakeReader:
    def __init__(self, *, balances=None, allowances=None, preview=0, removed=(0, 0), receipt_status=1) -> None:
        self.balances = {k.lower(): v for k, v in (balances or {}).items()}
        self.allowances = {k.lower(): v for k, v in (allowances or {}).items()}
        self.preview = preview
        self.removed = removed
        self.receipt_status = receipt_status
        self.receipts: List[str] = []

    def balance_of(self, token, owner):
        return self.balances.get(token.lower(), 0)

    def allowance_of(self, token, owner, spender):
        return self.allowances.get(token.lower(), 0)

    def token_manager_of(self, zap_router):
        return TOKEN_MANAGER

    def preview_redeem(self, vault_address, shares):
        return self.preview

    def quote_remove_liquidity(self, lp_router, token_a, token_b, stable, liquidity):
        return self.removed

    def wait_for_receipt(self, tx_hash):
        from zapbridge.core.errors import OnChainRevertError

        self.receipts.append(tx_hash)
        if self.receipt_status != 1:
            raise OnChainRevertError(f"Transaction {tx_hash} reverted", transaction_hash=tx_hash)
        return {"status": 1, "blockNumber": 123}


class FakeQuoteClient:
    """Returns deterministic swap builds; ``rate`` scales estimated outputs."""

    def __init__(self, rate: float = 1.0) -> None:
        self.rate = rate
        self.builds: List[Dict[str, Any]] = []
        self.estimates: List[Dict[str, Any]] = []

    def build_swap(self, **kwargs) -> SwapBuild:
        self.builds.append(kwargs)
        calldata = "0xe21fd0e9" + kwargs["amount_in"].to_bytes(32, "big").hex()
        return SwapBuild(
            router_address=KYBER_ROUTER,
            calldata=calldata,
            value=0,
            amount_in=kwargs["amount_in"],
            amount_out=int(kwargs["amount_in"] * self.rate),
        )

    def estimate_swap_output(self, **kwargs) -> int:
        self.estimates.append(kwargs)
        return int(kwargs["amount_in"] * self.rate)


@pytest.fixture
def quote_client():
    return FakeQuoteClient()


@pytest.fixture
def sleeps():
    recorded: List[float] = []
    return recorded


@pytest.fixture
def record_sleep(sleeps):
    return sleeps.append
