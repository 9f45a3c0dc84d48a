"""ova-deployer package."""

__all__ = [
    "cli",
    "config",
    "constants",
    "exceptions",
    "iso",
    "manifest",
    "models",
    "ova",
    "ovf",
    "ovftool",
    "pipeline",
    "seed",
    "utils",
]
