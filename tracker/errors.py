"""
Error taxonomy for the E-Waste Tracker.

Every failure surfaced by the impact model, the ledger adapter and the
reconciliation service is a TrackerError subclass, so the HTTP layer can map
them onto status codes in one place.
"""

from typing import Optional


class TrackerError(Exception):
    """Base class for all tracker failures."""


class ValidationError(TrackerError):
    """Bad input shape or range. Raised before any ledger call is attempted."""


class InvalidDeviceType(ValidationError):
    """Device type is not one of the known ledger enum values."""

    def __init__(self, device_type):
        self.device_type = device_type
        super().__init__(f"Invalid device type: {device_type!r}")


class NotFound(TrackerError):
    """Requested id is absent from the relevant store."""


class LedgerCallFailed(TrackerError):
    """A ledger read or write failed (network, timeout, revert)."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        detail = f"Ledger call '{operation}' failed"
        if cause is not None:
            detail = f"{detail}: {cause}"
        super().__init__(detail)


class IdentifierResolutionFailed(TrackerError):
    """
    Registration was submitted but the new device id could not be learned.

    The write may have succeeded on-chain, so callers must not treat this as
    a plain failure and retry blindly.
    """

    def __init__(self, cause: Optional[BaseException] = None):
        self.cause = cause
        detail = "Could not resolve the id of the registered device"
        if cause is not None:
            detail = f"{detail}: {cause}"
        super().__init__(detail)
