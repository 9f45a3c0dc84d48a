"""Custom exceptions for ova-deployer."""


class DeployError(RuntimeError):
    """Raised on unrecoverable configuration or runtime errors."""


class ConfigError(DeployError):
    """Missing or unknown command-line parameters."""


class SeedError(DeployError):
    """A cloud-init seed template lacks a field that must be rewritten."""


class StageError(DeployError):
    """A pipeline stage failed; carries the stage name."""

    def __init__(self, stage: str, message: str) -> None:
        super().__init__(f"[{stage}] {message}")
        self.stage = stage
        self.reason = message
