"""
Local read/write models for the reconciliation service.

DeviceMetadata and TimelineEntry are persisted by the record store;
DeviceView, DashboardStats and the result types are what the service
hands back to callers. All to_dict() outputs use the camelCase keys the
HTTP API and the data-store.json file share.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from impact.calculator import ImpactSnapshot
from ledger.models import DeviceRecord


@dataclass(frozen=True)
class DeviceMetadata:
    """Off-chain attributes captured at registration."""
    device_id: int
    weight: float               # kg
    location: str
    transport_distance_km: float

    def to_dict(self) -> dict:
        return {
            "deviceId": self.device_id,
            "weight": self.weight,
            "location": self.location,
            "transportDistanceKm": self.transport_distance_km,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DeviceMetadata":
        return cls(
            device_id=int(data["deviceId"]),
            weight=float(data["weight"]),
            location=str(data["location"]),
            transport_distance_km=float(data["transportDistanceKm"]),
        )


@dataclass(frozen=True)
class TimelineEntry:
    status: str
    timestamp: int                      # epoch milliseconds
    confirmation_ref: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "timestamp": self.timestamp,
            "transactionHash": self.confirmation_ref,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TimelineEntry":
        return cls(
            status=str(data["status"]),
            timestamp=int(data["timestamp"]),
            confirmation_ref=data.get("transactionHash"),
        )


@dataclass
class DeviceView:
    """Everything known about one device: ledger record merged with local data."""
    record: DeviceRecord
    metadata: Optional[DeviceMetadata] = None
    projected_impact: Optional[ImpactSnapshot] = None
    verified_impact: Optional[ImpactSnapshot] = None
    timeline: List[TimelineEntry] = field(default_factory=list)
    metadata_missing: bool = False

    def __str__(self) -> str:
        suffix = " (metadata missing)" if self.metadata_missing else ""
        return f"{self.record}{suffix}"

    def to_dict(self) -> dict:
        device = self.record.to_dict()
        if self.metadata is not None:
            device.update({
                "weight": self.metadata.weight,
                "location": self.metadata.location,
                "transportDistance": self.metadata.transport_distance_km,
            })
        return {
            "device": device,
            "projectedImpact": self.projected_impact.to_dict() if self.projected_impact else None,
            "verifiedImpact": self.verified_impact.to_dict() if self.verified_impact else None,
            "timeline": [e.to_dict() for e in self.timeline],
            "metadataMissing": self.metadata_missing,
        }


@dataclass
class RegistrationResult:
    device_id: int
    confirmation_ref: str
    projected_impact: ImpactSnapshot

    def to_dict(self) -> dict:
        return {
            "deviceId": self.device_id,
            "transactionHash": self.confirmation_ref,
            "projectedImpact": self.projected_impact.to_dict(),
        }


@dataclass
class StatusUpdateResult:
    device_id: int
    new_status: str
    confirmation_ref: str
    verified_impact: Optional[ImpactSnapshot] = None

    def to_dict(self) -> dict:
        return {
            "deviceId": self.device_id,
            "newStatus": self.new_status,
            "transactionHash": self.confirmation_ref,
            "verifiedImpact": self.verified_impact.to_dict() if self.verified_impact else None,
        }


@dataclass
class DashboardStats:
    total_devices: int = 0
    total_co2_saved_kg: float = 0.0
    total_toxic_waste_prevented_kg: float = 0.0
    average_sustainability_score: int = 0
    devices_by_status: Dict[str, int] = field(
        default_factory=lambda: {"disposed": 0, "collected": 0, "recycled": 0}
    )

    def to_dict(self) -> dict:
        return {
            "totalDevices": self.total_devices,
            "totalCO2Saved": self.total_co2_saved_kg,
            "totalToxicWastePrevented": self.total_toxic_waste_prevented_kg,
            "averageSustainabilityScore": self.average_sustainability_score,
            "devicesByStatus": dict(self.devices_by_status),
        }


@dataclass
class DeviceListing:
    devices: List[DeviceView]
    total: int

    def to_dict(self) -> dict:
        return {
            "devices": [v.to_dict() for v in self.devices],
            "total": self.total,
        }


@dataclass
class HealthReport:
    healthy: bool
    balance: Optional[str] = None
    total_devices: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        if not self.healthy:
            return {"status": "unhealthy", "error": self.error}
        return {
            "status": "healthy",
            "blockchain": {
                "connected": True,
                "balance": f"{self.balance} MATIC",
                "totalDevices": self.total_devices,
            },
        }
