from dataclasses import replace
from unittest.mock import MagicMock

import pytest

from zapbridge.core.errors import OnChainRevertError, ServiceUnavailableError, WrongNetworkError
from zapbridge.core.orchestrator import connect_reader
from zapbridge.core.tokens import ChainReader

from conftest import ACCOUNT, AERO_ROUTER, BASE_USDC, TOKEN_MANAGER, WETH

FACTORY = "0x420DD381b31aEf6683db6B902084cB0FFECe40Da"


def _reader():
    web3 = MagicMock()
    contract = MagicMock()
    web3.eth.contract.return_value = contract
    return ChainReader(web3), web3, contract.functions


def test_balance_and_allowance():
    reader, web3, functions = _reader()
    functions.balanceOf.return_value.call.return_value = 5
    functions.allowance.return_value.call.return_value = 7

    assert reader.balance_of(BASE_USDC, ACCOUNT) == 5
    assert reader.allowance_of(BASE_USDC, ACCOUNT, TOKEN_MANAGER) == 7
    functions.allowance.assert_called_with(ACCOUNT, TOKEN_MANAGER)


def test_token_manager_is_checksummed():
    reader, _, functions = _reader()
    functions.tokenManager.return_value.call.return_value = TOKEN_MANAGER
    assert reader.token_manager_of(BASE_USDC) == TOKEN_MANAGER


def test_quote_remove_liquidity_uses_default_factory():
    reader, _, functions = _reader()
    functions.defaultFactory.return_value.call.return_value = FACTORY
    functions.quoteRemoveLiquidity.return_value.call.return_value = [10, 20]

    assert reader.quote_remove_liquidity(AERO_ROUTER, WETH, BASE_USDC, False, 99) == (10, 20)
    functions.quoteRemoveLiquidity.assert_called_with(WETH, BASE_USDC, False, FACTORY, 99)


def test_wait_for_receipt_raises_on_revert():
    reader, web3, _ = _reader()
    web3.eth.wait_for_transaction_receipt.return_value = {"status": 0, "blockNumber": 9}
    with pytest.raises(OnChainRevertError) as excinfo:
        reader.wait_for_receipt("0x" + "aa" * 32)
    assert excinfo.value.transaction_hash == "0x" + "aa" * 32

    web3.eth.wait_for_transaction_receipt.return_value = {"status": 1, "blockNumber": 9}
    assert reader.wait_for_receipt("0x" + "aa" * 32)["blockNumber"] == 9


def _node(*, connected=True, chain_id=8453):
    web3 = MagicMock()
    web3.is_connected.return_value = connected
    web3.eth.chain_id = chain_id
    return web3


def test_connect_reader_checks_the_node(config):
    chain = replace(config.chain("base"), rpc_url="http://node.invalid")
    urls = []

    def factory(url):
        urls.append(url)
        return _node()

    assert isinstance(connect_reader(chain, web3_factory=factory), ChainReader)
    assert urls == ["http://node.invalid"]

    with pytest.raises(ServiceUnavailableError, match="Base RPC"):
        connect_reader(chain, web3_factory=lambda url: _node(connected=False))
    with pytest.raises(WrongNetworkError) as excinfo:
        connect_reader(chain, web3_factory=lambda url: _node(chain_id=1))
    assert (excinfo.value.expected, excinfo.value.actual) == (8453, 1)
