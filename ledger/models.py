"""
On-chain data models for the E-Waste Tracker.
Provides the enums and dataclasses returned by ledger/adapter.py.
"""

from dataclasses import dataclass
from enum import Enum


class DeviceType(str, Enum):
    LAPTOP = "Laptop"
    PHONE = "Phone"
    TV = "TV"


class DeviceStatus(str, Enum):
    DISPOSED = "Disposed"      # initial status set by registerDevice
    COLLECTED = "Collected"
    RECYCLED = "Recycled"      # terminal


INITIAL_STATUS = DeviceStatus.DISPOSED
TERMINAL_STATUS = DeviceStatus.RECYCLED
UPDATABLE_STATUSES = (DeviceStatus.COLLECTED, DeviceStatus.RECYCLED)


@dataclass
class DeviceRecord:
    """A device as stored by the EWasteTracker contract."""
    id: int
    device_type: str
    status: str
    owner: str
    registered_at: int   # unix seconds
    last_updated: int    # unix seconds

    def __str__(self) -> str:
        return f"Device #{self.id} {self.device_type} [{self.status}] owner={self.owner}"

    @property
    def is_recycled(self) -> bool:
        return self.status == TERMINAL_STATUS.value

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "deviceType": self.device_type,
            "status": self.status,
            "registeredBy": self.owner,
            "registeredAt": self.registered_at,
            "lastUpdated": self.last_updated,
        }


@dataclass
class RegistrationReceipt:
    """Outcome of a confirmed registerDevice transaction."""
    device_id: int
    tx_hash: str
    resolved_via: str   # "event" or "counter"

    def __str__(self) -> str:
        return f"Registered device #{self.device_id} tx={self.tx_hash} via {self.resolved_via}"
