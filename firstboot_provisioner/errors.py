from __future__ import annotations


class ProvisionError(RuntimeError):
    """Base error for the provisioner."""


class FatalPreconditionError(ProvisionError):
    """A command every operation depends on is missing from the host."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = list(missing)
        super().__init__("Required command(s) not found: " + ", ".join(self.missing))


class ManifestError(ProvisionError):
    """A packaged manifest is malformed."""
