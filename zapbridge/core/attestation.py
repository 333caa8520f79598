"""Circle IRIS attestation polling for CCTP V2 messages."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

import requests

from zapbridge.core.errors import AttestationError, ServiceUnavailableError, UnexpectedStatusError
from zapbridge.core.utils import ensure_hex_prefix, get_logger, poll_until

LOGGER = get_logger("zapbridge.attestation")

DEFAULT_MAX_RETRIES = 60
DEFAULT_RETRY_DELAY = 5.0

_NOT_FOUND = "not_found"


@dataclass(frozen=True)
class AttestationRecord:
    """Signed CCTP message ready for ``receiveMessage``."""

    message: str
    attestation: str


class AttestationClient:
    """Polls ``GET {base}/v2/messages/{domain}?transactionHash=...`` until the message is attested."""

    def __init__(
        self,
        base_url: str,
        *,
        session: Optional[requests.Session] = None,
        timeout: int = 30,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.sleep = sleep

    def messages_url(self, source_domain: int) -> str:
        return f"{self.base_url}/v2/messages/{source_domain}"

    def _fetch(self, url: str, transaction_hash: str) -> Dict[str, Any]:
        try:
            response = self.session.get(url, params={"transactionHash": transaction_hash}, timeout=self.timeout)
        except requests.RequestException as exc:
            raise ServiceUnavailableError(f"Failed to reach attestation service at {url}: {exc}") from exc

        if response.status_code == 404:
            return {"status": _NOT_FOUND}
        if not response.ok:
            # Not retried: only 404 means "not indexed yet".
            raise AttestationError(f"API returned status {response.status_code}: {response.reason}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise ServiceUnavailableError(f"Attestation service returned malformed JSON: {exc}") from exc

        if not isinstance(payload, Mapping):
            raise ServiceUnavailableError(f"Attestation service returned malformed body: {type(payload).__name__}")
        messages = payload.get("messages") or []
        if not isinstance(messages, list):
            raise ServiceUnavailableError(f"Attestation service returned malformed messages: {type(messages).__name__}")
        if not messages:
            return {"status": "pending"}

        entry = messages[0]
        if not isinstance(entry, Mapping):
            raise ServiceUnavailableError(f"Attestation service returned malformed message: {type(entry).__name__}")
        status = entry.get("status")
        if status == "complete":
            if not entry.get("message") or not entry.get("attestation"):
                raise AttestationError("Message or attestation missing from API response")
            return entry
        if status == "pending":
            return entry
        raise UnexpectedStatusError(status)

    def retrieve_attestation(
        self,
        transaction_hash: str,
        source_domain: int,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
    ) -> AttestationRecord:
        """Block until the burn in ``transaction_hash`` is attested.

        The worst case wait is ``max_retries * retry_delay`` (five minutes with the
        defaults). Raises ``PollTimeoutError`` when the budget is exhausted.
        """
        tx_hash = ensure_hex_prefix(transaction_hash)
        url = self.messages_url(source_domain)
        LOGGER.info("Retrieving attestation for %s on domain %s", tx_hash, source_domain)

        entry = poll_until(
            lambda: self._fetch(url, tx_hash),
            lambda result: result.get("status") == "complete",
            max_attempts=max_retries,
            delay=retry_delay,
            description=f"attestation for {tx_hash}",
            sleep=self.sleep,
            retry_on=(ServiceUnavailableError,),
        )

        LOGGER.info("Attestation retrieved for %s", tx_hash)
        return AttestationRecord(
            message=ensure_hex_prefix(entry["message"]),
            attestation=ensure_hex_prefix(entry["attestation"]),
        )


__all__ = ["AttestationClient", "AttestationRecord", "DEFAULT_MAX_RETRIES", "DEFAULT_RETRY_DELAY"]
