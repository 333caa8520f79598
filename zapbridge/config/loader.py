"""Config loader for zapbridge."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, MutableMapping, Optional, Union

from web3 import Web3

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

VAULT_TYPES = ("single-asset", "lp-usdc", "lp-non-usdc")


class ConfigError(ValueError):
    """Raised when configuration data is invalid or missing."""


def _require_keys(data: Mapping[str, Any], keys: Iterable[str], context: str) -> None:
    missing = [key for key in keys if key not in data]
    if missing:
        raise ConfigError(f"{context} missing required keys: {', '.join(missing)}")


def _to_checksum(value: str, *, field_name: str) -> str:
    try:
        return Web3.to_checksum_address(value)
    except Exception as exc:  # web3 raises ValueError for malformed inputs
        raise ConfigError(f"Invalid address for {field_name}: {value}") from exc


@dataclass(frozen=True)
class ChainConfig:
    """Configuration for one network and its CCTP deployment."""

    key: str
    chain_id: int
    name: str
    cctp_domain: int
    usdc_address: str
    token_messenger: str
    message_transmitter: str
    rpc_url: Optional[str] = None
    explorer_url: Optional[str] = None
    native_symbol: str = "ETH"

    def ensure_rpc_url(self) -> str:
        """Return the RPC URL or raise if it is missing."""
        if not self.rpc_url:
            raise ConfigError(f"RPC URL required for chain {self.key} but not configured")
        return self.rpc_url

    def explorer_tx_url(self, tx_hash: str) -> Optional[str]:
        if not self.explorer_url:
            return None
        return f"{self.explorer_url.rstrip('/')}/tx/{tx_hash}"

    def add_chain_params(self) -> Dict[str, Any]:
        """Parameters for ``wallet_addEthereumChain``."""
        params: Dict[str, Any] = {
            "chainId": hex(self.chain_id),
            "chainName": self.name,
            "nativeCurrency": {"name": "Ether", "symbol": self.native_symbol, "decimals": 18},
            "rpcUrls": [self.rpc_url] if self.rpc_url else [],
        }
        if self.explorer_url:
            params["blockExplorerUrls"] = [self.explorer_url]
        return params


@dataclass(frozen=True)
class VaultDescriptor:
    """Fields shared by every vault variant."""

    id: str
    chain: str
    vault_address: str
    zap_router: str
    aggregator_chain: str
    input_token: str


@dataclass(frozen=True)
class SingleAssetVault(VaultDescriptor):
    """ERC-4626 vault accepting a single underlying asset."""

    asset_token: str = ZERO_ADDRESS

    @property
    def kind(self) -> str:
        return "single-asset"


@dataclass(frozen=True)
class LpVault(VaultDescriptor):
    """Vault whose asset is a two-sided AMM LP token."""

    token_a: str = ZERO_ADDRESS
    token_b: str = ZERO_ADDRESS
    stable: bool = False
    lp_router: str = ZERO_ADDRESS
    lp_token: str = ZERO_ADDRESS

    @property
    def pair(self) -> List[str]:
        return [self.token_a, self.token_b]


@dataclass(frozen=True)
class LpUsdcVault(LpVault):
    """LP vault where one side of the pair is the chain's USDC."""

    @property
    def kind(self) -> str:
        return "lp-usdc"

    @property
    def other_token(self) -> str:
        return self.token_b if self.token_a.lower() == self.input_token.lower() else self.token_a


@dataclass(frozen=True)
class LpNonUsdcVault(LpVault):
    """LP vault whose pair does not contain USDC."""

    @property
    def kind(self) -> str:
        return "lp-non-usdc"


Vault = Union[SingleAssetVault, LpUsdcVault, LpNonUsdcVault]


@dataclass(frozen=True)
class DefaultsConfig:
    """Default operational parameters."""

    slippage_bps: int = 50
    swap_margin_bps: int = 200
    bridge_burn_margin_bps: int = 0
    swap_deadline_seconds: int = 20 * 60
    order_deadline_seconds: int = 2 * 3600
    bridge_max_fee: int = 500
    min_finality_threshold: int = 1000
    attestation_max_retries: int = 60
    attestation_retry_delay: float = 5.0
    calls_status_max_retries: int = 60
    calls_status_retry_delay: float = 2.0
    api_timeout: int = 30
    client_id: str = "zapbridge"


@dataclass(frozen=True)
class ApiUrlsConfig:
    """HTTP services used by the builders."""

    aggregator_base: str
    attestation_base: str


@dataclass(frozen=True)
class ZapConfig:
    """Typed wrapper around the zapbridge configuration."""

    home_chain: str
    chains: Mapping[str, ChainConfig]
    vaults: Mapping[str, Vault]
    defaults: DefaultsConfig
    api_urls: ApiUrlsConfig

    @property
    def home(self) -> ChainConfig:
        return self.chains[self.home_chain]

    def chain(self, key: str) -> ChainConfig:
        try:
            return self.chains[key]
        except KeyError as exc:
            raise ConfigError(f"Unknown chain: {key}") from exc

    def vault(self, vault_id: str) -> Vault:
        try:
            return self.vaults[vault_id]
        except KeyError as exc:
            raise ConfigError(f"Unknown vault: {vault_id}") from exc


def _load_json(path: Path) -> MutableMapping[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as fh:
            return json.load(fh)
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Config file contains invalid JSON: {path}") from exc


def _parse_chain(key: str, data: Mapping[str, Any]) -> ChainConfig:
    _require_keys(
        data,
        ["chain_id", "name", "cctp_domain", "usdc_address", "token_messenger", "message_transmitter"],
        f"chain {key}",
    )
    rpc_url = os.getenv(f"{key.upper()}_RPC_URL") or data.get("rpc_url")
    return ChainConfig(
        key=key,
        chain_id=int(data["chain_id"]),
        name=str(data["name"]),
        cctp_domain=int(data["cctp_domain"]),
        usdc_address=_to_checksum(data["usdc_address"], field_name=f"{key} usdc_address"),
        token_messenger=_to_checksum(data["token_messenger"], field_name=f"{key} token_messenger"),
        message_transmitter=_to_checksum(data["message_transmitter"], field_name=f"{key} message_transmitter"),
        rpc_url=str(rpc_url) if rpc_url else None,
        explorer_url=data.get("explorer_url"),
        native_symbol=str(data.get("native_symbol", "ETH")),
    )


def _parse_vault(data: Mapping[str, Any], chains: Mapping[str, ChainConfig]) -> Vault:
    _require_keys(data, ["id", "chain", "type", "vault_address", "zap_router", "aggregator_chain"], "vault")
    vault_id = str(data["id"])
    chain_key = str(data["chain"])
    if chain_key not in chains:
        raise ConfigError(f"vault {vault_id} references unknown chain {chain_key}")
    vault_type = data["type"]
    if vault_type not in VAULT_TYPES:
        raise ConfigError(f"vault {vault_id} has unsupported type {vault_type!r}")

    common = dict(
        id=vault_id,
        chain=chain_key,
        vault_address=_to_checksum(data["vault_address"], field_name=f"vault {vault_id} vault_address"),
        zap_router=_to_checksum(data["zap_router"], field_name=f"vault {vault_id} zap_router"),
        aggregator_chain=str(data["aggregator_chain"]),
        input_token=chains[chain_key].usdc_address,
    )

    if vault_type == "single-asset":
        _require_keys(data, ["asset_token"], f"vault {vault_id}")
        return SingleAssetVault(
            asset_token=_to_checksum(data["asset_token"], field_name=f"vault {vault_id} asset_token"),
            **common,
        )

    _require_keys(data, ["token_a", "token_b", "stable", "lp_router", "lp_token"], f"vault {vault_id}")
    lp_fields = dict(
        token_a=_to_checksum(data["token_a"], field_name=f"vault {vault_id} token_a"),
        token_b=_to_checksum(data["token_b"], field_name=f"vault {vault_id} token_b"),
        stable=bool(data["stable"]),
        lp_router=_to_checksum(data["lp_router"], field_name=f"vault {vault_id} lp_router"),
        lp_token=_to_checksum(data["lp_token"], field_name=f"vault {vault_id} lp_token"),
    )
    usdc_sides = [token for token in (lp_fields["token_a"], lp_fields["token_b"]) if token == common["input_token"]]
    if vault_type == "lp-usdc":
        if len(usdc_sides) != 1:
            raise ConfigError(f"vault {vault_id} is lp-usdc but its pair does not contain USDC exactly once")
        return LpUsdcVault(**common, **lp_fields)
    if usdc_sides:
        raise ConfigError(f"vault {vault_id} is lp-non-usdc but its pair contains USDC")
    return LpNonUsdcVault(**common, **lp_fields)


def _parse_defaults(data: Mapping[str, Any]) -> DefaultsConfig:
    base = DefaultsConfig()
    values = {name: type(getattr(base, name))(data[name]) for name in base.__dataclass_fields__ if name in data}
    defaults = DefaultsConfig(**values)
    for name in ("slippage_bps", "swap_margin_bps", "bridge_burn_margin_bps"):
        bps = getattr(defaults, name)
        if bps < 0 or bps >= 10_000:
            raise ConfigError(f"defaults.{name} must be between 0 and 10000")
    if defaults.min_finality_threshold not in (1000, 2000):
        raise ConfigError("defaults.min_finality_threshold must be 1000 (fast) or 2000 (finalized)")
    for name in ("attestation_max_retries", "calls_status_max_retries", "api_timeout"):
        if getattr(defaults, name) <= 0:
            raise ConfigError(f"defaults.{name} must be positive")
    return defaults


def load_config(config_path: Optional[Path] = None) -> ZapConfig:
    """Load and validate zapbridge configuration data."""
    config_path = config_path or Path(os.getenv("ZAPBRIDGE_CONFIG", "config.json"))
    data = _load_json(config_path)

    _require_keys(data, ["home_chain", "chains", "vaults", "api_urls"], "config")

    chains = {key: _parse_chain(key, value) for key, value in data["chains"].items()}
    home_chain = str(data["home_chain"])
    if home_chain not in chains:
        raise ConfigError(f"home_chain {home_chain} is not listed under chains")

    vaults: Dict[str, Vault] = {}
    for vault_data in data["vaults"]:
        vault = _parse_vault(vault_data, chains)
        if vault.id in vaults:
            raise ConfigError(f"duplicate vault id {vault.id}")
        vaults[vault.id] = vault

    api_urls = data["api_urls"]
    _require_keys(api_urls, ["aggregator_base", "attestation_base"], "api_urls")
    api_config = ApiUrlsConfig(
        aggregator_base=str(api_urls["aggregator_base"]),
        attestation_base=str(api_urls["attestation_base"]),
    )

    return ZapConfig(
        home_chain=home_chain,
        chains=chains,
        vaults=vaults,
        defaults=_parse_defaults(data.get("defaults", {})),
        api_urls=api_config,
    )


__all__ = [
    "ApiUrlsConfig",
    "ChainConfig",
    "ConfigError",
    "DefaultsConfig",
    "LpNonUsdcVault",
    "LpUsdcVault",
    "LpVault",
    "SingleAssetVault",
    "Vault",
    "VaultDescriptor",
    "ZERO_ADDRESS",
    "ZapConfig",
    "load_config",
]
