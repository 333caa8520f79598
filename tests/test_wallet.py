from unittest.mock import MagicMock

import pytest

from zapbridge.core.errors import WalletRpcError
from zapbridge.core.wallet import CALLS_VERSION, RpcWallet

from conftest import ACCOUNT


def _wallet(*responses):
    provider = MagicMock()
    provider.make_request.side_effect = list(responses)
    return RpcWallet(provider=provider), provider


def _methods(provider):
    return [call.args[0] for call in provider.make_request.call_args_list]


def test_requires_url_or_provider():
    with pytest.raises(ValueError):
        RpcWallet()


def test_chain_id_and_accounts():
    wallet, _ = _wallet({"result": "0x2105"}, {"result": [ACCOUNT]})
    assert wallet.chain_id() == 8453
    assert wallet.request_accounts() == ACCOUNT


def test_rpc_error_is_raised():
    wallet, _ = _wallet({"error": {"code": 4001, "message": "User rejected"}})
    with pytest.raises(WalletRpcError) as excinfo:
        wallet.chain_id()
    assert excinfo.value.code == 4001
    assert excinfo.value.method == "eth_chainId"


def test_switch_chain_adds_unknown_chain(config):
    wallet, provider = _wallet({"error": {"code": 4902, "message": "Unrecognized chain"}}, {"result": None})
    chain = config.chain("ethereum")

    wallet.switch_chain(chain)

    assert _methods(provider) == ["wallet_switchEthereumChain", "wallet_addEthereumChain"]
    params = provider.make_request.call_args_list[1].args[1][0]
    assert params["chainId"] == "0x1"
    assert params["chainName"] == "Ethereum"
    assert params["rpcUrls"] == ["https://eth.invalid"]
    assert params["blockExplorerUrls"] == ["https://etherscan.io"]


def test_switch_chain_propagates_other_errors(config):
    wallet, provider = _wallet({"error": {"code": 4001, "message": "User rejected"}})
    with pytest.raises(WalletRpcError):
        wallet.switch_chain(config.chain("base"))
    assert _methods(provider) == ["wallet_switchEthereumChain"]


def test_send_calls_requires_atomic_execution():
    wallet, provider = _wallet({"result": {"id": "batch-1"}})
    calls = [{"to": ACCOUNT, "data": "0x", "value": "0x0"}]

    assert wallet.send_calls(ACCOUNT, 8453, calls) == "batch-1"

    method, params = provider.make_request.call_args.args
    assert method == "wallet_sendCalls"
    assert params[0] == {
        "version": CALLS_VERSION,
        "from": ACCOUNT,
        "chainId": "0x2105",
        "atomicRequired": True,
        "calls": calls,
    }


def test_send_calls_accepts_bare_id():
    wallet, _ = _wallet({"result": "0x" + "ab" * 32})
    assert wallet.send_calls(ACCOUNT, 1, []) == "0x" + "ab" * 32


def test_capabilities_and_status():
    wallet, provider = _wallet({"result": {"0x2105": {"atomic": True}}}, {"result": {"status": 200}})
    assert wallet.get_capabilities(ACCOUNT, 8453) == {"0x2105": {"atomic": True}}
    assert provider.make_request.call_args.args[1] == [ACCOUNT, ["0x2105"]]
    assert wallet.get_calls_status("batch-1") == {"status": 200}
