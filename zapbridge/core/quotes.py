"""KyberSwap aggregator quoting: route lookup and calldata build."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

import requests
from web3 import Web3

from zapbridge.core.errors import SwapQuoteError
from zapbridge.core.utils import get_logger

LOGGER = get_logger("zapbridge.quotes")

DEFAULT_SLIPPAGE_BPS = 50
DEFAULT_DEADLINE_SECONDS = 20 * 60


@dataclass(frozen=True)
class SwapBuild:
    """Encoded aggregator swap, to be executed by the zap router."""

    router_address: str
    calldata: str
    value: int
    amount_in: int
    amount_out: Optional[int] = None


def _error_message(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, Mapping) and payload.get("message"):
        return str(payload["message"])
    return response.text or response.reason or str(response.status_code)


def _data_section(payload: Any, label: str) -> Mapping[str, Any]:
    if not isinstance(payload, Mapping):
        raise SwapQuoteError(f"{label}: malformed response body {type(payload).__name__}")
    data = payload.get("data") or {}
    if not isinstance(data, Mapping):
        raise SwapQuoteError(f"{label}: malformed data section {type(data).__name__}")
    return data


class SwapQuoteClient:
    """Client for ``{base}/{chain}/api/v1/routes`` and ``/route/build``.

    No retries happen here; the caller owns the retry policy.
    """

    def __init__(
        self,
        aggregator_base: str,
        *,
        client_id: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: int = 30,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.aggregator_base = aggregator_base.rstrip("/")
        self.client_id = client_id
        self.session = session or requests.Session()
        self.timeout = timeout
        self.clock = clock

    def api_url(self, chain_tag: str) -> str:
        return f"{self.aggregator_base}/{chain_tag}/api/v1"

    def _headers(self) -> Dict[str, str]:
        return {"x-client-id": self.client_id} if self.client_id else {}

    def _request_route(self, *, token_in: str, token_out: str, amount_in: int, chain_tag: str) -> Mapping[str, Any]:
        url = f"{self.api_url(chain_tag)}/routes"
        params = {
            "tokenIn": Web3.to_checksum_address(token_in),
            "tokenOut": Web3.to_checksum_address(token_out),
            "amountIn": str(amount_in),
        }
        try:
            response = self.session.get(url, params=params, headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as exc:
            raise SwapQuoteError(f"Failed to fetch Kyber route from {url}: {exc}") from exc

        if not response.ok:
            raise SwapQuoteError(f"Kyber route: {_error_message(response)}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise SwapQuoteError("Kyber route: invalid JSON response") from exc
        return _data_section(payload, "Kyber route")

    def estimate_swap_output(self, *, token_in: str, token_out: str, amount_in: int, chain_tag: str) -> int:
        """Expected ``token_out`` amount for ``amount_in`` without building calldata."""
        data = self._request_route(token_in=token_in, token_out=token_out, amount_in=amount_in, chain_tag=chain_tag)
        route_summary = data.get("routeSummary")
        if not isinstance(route_summary, Mapping) or not route_summary:
            raise SwapQuoteError("Kyber route missing routeSummary")
        amount_out = route_summary.get("amountOut")
        if amount_out in (None, ""):
            raise SwapQuoteError(
                f"Kyber route missing amountOut in routeSummary. Available fields: {sorted(route_summary)}"
            )
        return int(str(amount_out))

    def build_swap(
        self,
        *,
        token_in: str,
        token_out: str,
        amount_in: int,
        executor_address: str,
        chain_tag: str,
        slippage_bps: int = DEFAULT_SLIPPAGE_BPS,
        deadline_seconds: Optional[int] = None,
    ) -> SwapBuild:
        """Route ``amount_in`` of ``token_in`` to ``token_out`` with ``executor_address`` as sender and recipient.

        ``deadline_seconds`` is an absolute unix timestamp; it defaults to twenty
        minutes from now.
        """
        data = self._request_route(token_in=token_in, token_out=token_out, amount_in=amount_in, chain_tag=chain_tag)
        route_summary = data.get("routeSummary")
        router_address = data.get("routerAddress")
        if not isinstance(route_summary, Mapping) or not route_summary or not router_address:
            raise SwapQuoteError("Kyber route missing routeSummary/routerAddress")

        deadline = deadline_seconds if deadline_seconds is not None else int(self.clock()) + DEFAULT_DEADLINE_SECONDS
        executor = Web3.to_checksum_address(executor_address)
        body = {
            "routeSummary": route_summary,
            "sender": executor,
            "recipient": executor,
            "slippageTolerance": slippage_bps,
            "deadline": deadline,
            "enableGasEstimation": False,
            "source": self.client_id or "zapbridge",
        }
        url = f"{self.api_url(chain_tag)}/route/build"
        headers = {"content-type": "application/json", **self._headers()}
        try:
            response = self.session.post(url, json=body, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            raise SwapQuoteError(f"Failed to build Kyber route at {url}: {exc}") from exc

        if not response.ok:
            raise SwapQuoteError(f"Kyber build: {_error_message(response)}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise SwapQuoteError("Kyber build returned invalid JSON") from exc

        build = _data_section(payload, "Kyber build")
        calldata = build.get("data")
        if not calldata:
            raise SwapQuoteError("Kyber build returned no calldata")

        amount_out = route_summary.get("amountOut")
        result = SwapBuild(
            router_address=Web3.to_checksum_address(router_address),
            calldata=calldata,
            value=int(str(build.get("transactionValue") or "0"), 0),
            amount_in=amount_in,
            amount_out=int(str(amount_out)) if amount_out not in (None, "") else None,
        )
        LOGGER.info(
            "Built Kyber swap %s -> %s amountIn=%s expectedOut=%s router=%s",
            token_in,
            token_out,
            amount_in,
            result.amount_out,
            result.router_address,
        )
        return result


__all__ = ["DEFAULT_DEADLINE_SECONDS", "DEFAULT_SLIPPAGE_BPS", "SwapBuild", "SwapQuoteClient"]
