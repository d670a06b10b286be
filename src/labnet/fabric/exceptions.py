"""Fabric provisioning and baseline exception classes."""


class FabricError(Exception):
    """Base exception for fabric reconciliation."""

    pass


class BaselineExistsError(FabricError):
    """A baseline is already captured and must not be overwritten."""

    def __init__(self, location: str):
        self.location = location
        super().__init__(f"Baseline already captured at {location}")


class BaselineMissingError(FabricError):
    """No complete baseline is available."""

    def __init__(self, location: str):
        self.location = location
        super().__init__(f"No complete baseline at {location}")


class ProvisioningError(FabricError):
    """A fatal create failed during apply."""

    def __init__(self, kind: str, identity: str, reason: str):
        self.kind = kind
        self.identity = identity
        self.reason = reason
        super().__init__(f"Failed to create {kind} '{identity}': {reason}")
