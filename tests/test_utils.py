import pytest

from zapbridge.core.errors import PollTimeoutError, ServiceUnavailableError, TransientServiceError
from zapbridge.core.utils import (
    address_to_bytes32,
    bytes32_to_address,
    deadline_from_now,
    ensure_hex_prefix,
    is_transaction_hash,
    poll_until,
)


def test_address_bytes32_round_trip():
    address = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
    word = address_to_bytes32(address)
    assert word == "0x000000000000000000000000833589fcd6edb6e08f4c7c32d4f71b54bda02913"
    assert bytes32_to_address(word) == address.lower()


def test_bytes32_to_address_rejects_dirty_prefix():
    with pytest.raises(ValueError):
        bytes32_to_address("0x" + "01" * 32)
    with pytest.raises(ValueError):
        bytes32_to_address("0x1234")


def test_hex_helpers():
    assert ensure_hex_prefix("abcd") == "0xabcd"
    assert ensure_hex_prefix("0xabcd") == "0xabcd"
    assert is_transaction_hash("0x" + "ab" * 32)
    assert not is_transaction_hash("0x" + "ab" * 31)
    assert not is_transaction_hash("batch-1")
    assert not is_transaction_hash(None)


def test_deadline_from_now_uses_clock():
    assert deadline_from_now(60, clock=lambda: 1000.7) == 1060


def test_poll_until_returns_first_accepted_result(record_sleep, sleeps):
    results = iter(["pending", "pending", "done"])
    value = poll_until(
        lambda: next(results),
        lambda result: result == "done",
        max_attempts=5,
        delay=2.0,
        description="test",
        sleep=record_sleep,
    )
    assert value == "done"
    assert sleeps == [2.0, 2.0]


def test_poll_until_does_not_sleep_after_last_attempt(record_sleep, sleeps):
    with pytest.raises(PollTimeoutError) as excinfo:
        poll_until(
            lambda: "pending",
            lambda result: False,
            max_attempts=3,
            delay=1.0,
            description="never",
            sleep=record_sleep,
        )
    assert excinfo.value.attempts == 3
    assert excinfo.value.last_result == "pending"
    assert sleeps == [1.0, 1.0]


def test_poll_until_retries_transient_errors(record_sleep):
    calls = []

    def fetch():
        calls.append(1)
        if len(calls) < 3:
            raise TransientServiceError("flaky")
        return 42

    assert poll_until(fetch, lambda r: r == 42, max_attempts=3, delay=0, description="x", sleep=record_sleep) == 42


def test_poll_until_propagates_errors_outside_retry_on(record_sleep):
    def fetch():
        raise TransientServiceError("not retried here")

    with pytest.raises(TransientServiceError):
        poll_until(
            fetch,
            lambda r: True,
            max_attempts=5,
            delay=0,
            description="x",
            sleep=record_sleep,
            retry_on=(ServiceUnavailableError,),
        )


def test_poll_until_requires_attempts():
    with pytest.raises(ValueError):
        poll_until(lambda: 1, lambda r: True, max_attempts=0, delay=0, description="x")
