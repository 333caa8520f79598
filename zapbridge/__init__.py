"""Cross-chain USDC bridge, swap and vault zaps packed into atomic call batches."""

from importlib import metadata


def __getattr__(name: str) -> str:
    """Expose the package version via ``zapbridge.__version__``."""
    if name == "__version__":
        try:
            return metadata.version("zapbridge")
        except metadata.PackageNotFoundError:
            return "0.0.0"
    raise AttributeError(name)


__all__ = ["__version__"]
