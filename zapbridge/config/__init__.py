"""Configuration utilities for zapbridge."""

from .loader import (
    ApiUrlsConfig,
    ChainConfig,
    ConfigError,
    DefaultsConfig,
    LpNonUsdcVault,
    LpUsdcVault,
    LpVault,
    SingleAssetVault,
    Vault,
    VaultDescriptor,
    ZERO_ADDRESS,
    ZapConfig,
    load_config,
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
