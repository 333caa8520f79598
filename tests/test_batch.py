import pytest

from zapbridge.core.batch import BatchSubmissionDriver, Call, parse_calls_status, supports_atomic
from zapbridge.core.errors import CapabilityError, PollTimeoutError

from conftest import ACCOUNT, BASE_USDC, FakeWallet

TX = "0x" + "cd" * 32


@pytest.mark.parametrize(
    "capabilities,expected",
    [
        ({"0x2105": {"atomic": {"status": "supported"}}}, True),
        ({"8453": {"atomic": {"status": "ready"}}}, True),
        ({"0x2105": {"atomic": True}}, True),
        ({"0x2105": {"atomic": {"status": "unsupported"}}}, False),
        ({"0x1": {"atomic": {"status": "supported"}}}, False),
        ({}, False),
    ],
)
def test_supports_atomic(capabilities, expected):
    assert supports_atomic(capabilities, 8453) is expected


def test_parse_calls_status_codes():
    assert parse_calls_status({"status": 100}).status == "pending"
    assert parse_calls_status({"status": 200}).status == "success"
    assert parse_calls_status({"status": 500}).status == "failed"
    assert parse_calls_status({"status": "CONFIRMED"}).status == "success"

    status = parse_calls_status({"status": 200, "receipts": [{"transactionHash": TX, "blockNumber": "0x10"}]})
    assert status.transaction_hash == TX
    assert status.receipts[0].block_number == 16


def test_call_to_rpc():
    rpc = Call(to=BASE_USDC.lower(), data="0x1234", value=10).to_rpc()
    assert rpc == {"to": BASE_USDC, "data": "0x1234", "value": "0xa"}


def test_capability_gate():
    driver = BatchSubmissionDriver(FakeWallet(atomic=False))
    with pytest.raises(CapabilityError):
        driver.ensure_atomic_support(ACCOUNT, 8453)
    BatchSubmissionDriver(FakeWallet()).ensure_atomic_support(ACCOUNT, 8453)


def test_submit_sends_rpc_calls():
    wallet = FakeWallet()
    wallet.batch_ids = ["batch-1"]
    driver = BatchSubmissionDriver(wallet)

    assert driver.submit(ACCOUNT, 8453, [Call(to=BASE_USDC, data="0x01")]) == "batch-1"
    assert wallet.sent[0]["calls"] == [{"to": BASE_USDC, "data": "0x01", "value": "0x0"}]

    with pytest.raises(ValueError):
        driver.submit(ACCOUNT, 8453, [])


def test_transaction_hash_id_is_returned_without_polling(record_sleep, sleeps):
    wallet = FakeWallet()
    driver = BatchSubmissionDriver(wallet, sleep=record_sleep)
    assert driver.resolve_transaction_hash(TX) == TX
    assert sleeps == []


def test_polls_until_a_receipt_appears(record_sleep, sleeps):
    wallet = FakeWallet()
    wallet.statuses = [
        {"status": 100},
        {"status": 100, "receipts": []},
        # a receipt wins even over a failure status
        {"status": 400, "receipts": [{"transactionHash": TX}]},
    ]
    driver = BatchSubmissionDriver(wallet, max_attempts=5, delay=2.0, sleep=record_sleep)

    assert driver.resolve_transaction_hash("batch-1") == TX
    assert sleeps == [2.0, 2.0]


def test_exhaustion_names_attempts_and_status(record_sleep, sleeps):
    wallet = FakeWallet()
    wallet.statuses = [{"status": 100}] * 3
    driver = BatchSubmissionDriver(wallet, max_attempts=3, delay=1.0, sleep=record_sleep)

    with pytest.raises(PollTimeoutError) as excinfo:
        driver.resolve_transaction_hash("batch-1")

    message = str(excinfo.value)
    assert "No receipts found in calls status after 3 attempts" in message
    assert "'status': 100" in message
    assert excinfo.value.attempts == 3
    assert sleeps == [1.0, 1.0]
