"""
Reconciliation & Aggregation Service.

DeviceTracker combines the ledger adapter (authoritative device identity and
status) with the local record store (metadata, impact snapshots, timelines)
and the impact calculator. Collaborators are passed in, never looked up
globally, so tests can substitute a fake ledger.

Ordering rules:
  - registration writes nothing locally until the ledger has confirmed
  - local writes happen in the order metadata, projected impact, timeline
  - a verified snapshot is only created for a device recycled on-chain
"""

import logging
import math
import time
from typing import Callable, List, Optional

from impact.calculator import (
    ImpactSnapshot,
    calculate_projected_impact,
    calculate_verified_impact,
    estimate_impact,
    estimate_transport_distance,
)
from ledger.models import (
    INITIAL_STATUS,
    TERMINAL_STATUS,
    UPDATABLE_STATUSES,
    DeviceRecord,
    DeviceStatus,
    DeviceType,
)
from tracker.aggregation import summarize
from tracker.errors import InvalidDeviceType, NotFound, TrackerError, ValidationError
from tracker.models import (
    DashboardStats,
    DeviceListing,
    DeviceMetadata,
    DeviceView,
    HealthReport,
    RegistrationResult,
    StatusUpdateResult,
    TimelineEntry,
)

logger = logging.getLogger(__name__)


def _epoch_millis() -> int:
    return int(time.time() * 1000)


def _parse_device_type(device_type) -> DeviceType:
    try:
        return DeviceType(device_type)
    except ValueError:
        raise InvalidDeviceType(device_type) from None


def _require_positive_weight(weight) -> float:
    if not isinstance(weight, (int, float)) or isinstance(weight, bool):
        raise ValidationError(f"Weight must be a number, got {weight!r}")
    if math.isnan(weight) or math.isinf(weight) or weight <= 0:
        raise ValidationError("Weight must be greater than 0")
    return float(weight)


class DeviceTracker:

    def __init__(self, ledger, store, clock: Callable[[], int] = _epoch_millis):
        self.ledger = ledger
        self.store = store
        self._clock = clock

    # ── writes ───────────────────────────────────────────────────────────────

    def register_device(self, device_type, weight, location: str) -> RegistrationResult:
        """
        Register a device on the ledger and record its local satellite data.

        Args:
            device_type: 'Laptop', 'Phone' or 'TV'.
            weight: Device weight in kg, must be > 0.
            location: Free-text pickup location, used to estimate distance.

        Returns:
            RegistrationResult with the new id, transaction hash and the
            projected impact snapshot.

        Raises:
            ValidationError: On bad input (no ledger call is made).
            LedgerCallFailed: If the transaction fails; nothing is stored.
            IdentifierResolutionFailed: If the id cannot be learned.
        """
        dtype = _parse_device_type(device_type)
        weight_kg = _require_positive_weight(weight)
        if not isinstance(location, str) or not location.strip():
            raise ValidationError("Location is required")

        distance = estimate_transport_distance(location)

        receipt = self.ledger.register_device(dtype.value)
        device_id = receipt.device_id

        # The ledger just assigned this id, so anything stored under it is stale
        # (old deployment's data file, or a counter-fallback race).
        if self.store.has_records(device_id):
            logger.error("Device %d already has local records, discarding them before registering %s",
                         device_id, receipt.tx_hash)
            self.store.discard_device(device_id)

        self.store.store_metadata(DeviceMetadata(
            device_id=device_id,
            weight=weight_kg,
            location=location,
            transport_distance_km=distance,
        ))
        projected = self.store.store_projected_impact(
            calculate_projected_impact(device_id, dtype, weight_kg, distance)
        )
        self.store.append_timeline_entry(device_id, TimelineEntry(
            status=INITIAL_STATUS.value,
            timestamp=self._clock(),
            confirmation_ref=receipt.tx_hash,
        ))

        logger.info("Device %d registered: %s %.2fkg at %r (%s)",
                    device_id, dtype.value, weight_kg, location, receipt.tx_hash)
        return RegistrationResult(
            device_id=device_id,
            confirmation_ref=receipt.tx_hash,
            projected_impact=projected,
        )

    def update_status(self, device_id: int, new_status) -> StatusUpdateResult:
        """
        Move a device to Collected or Recycled.

        On Recycled the current on-chain record is re-read for the
        authoritative device type and a verified impact snapshot is stored.

        Raises:
            ValidationError: If new_status is not Collected or Recycled.
            NotFound: If no local metadata exists for device_id.
            LedgerCallFailed: If the ledger update or the follow-up read fails.
        """
        try:
            status = DeviceStatus(new_status)
        except ValueError:
            status = None
        if status not in UPDATABLE_STATUSES:
            allowed = ", ".join(s.value for s in UPDATABLE_STATUSES)
            raise ValidationError(f"Invalid status {new_status!r}. Must be one of: {allowed}")

        metadata = self.store.get_metadata(device_id)
        if metadata is None:
            raise NotFound(f"Device {device_id} not found in metadata store")

        tx_hash = self.ledger.update_status(device_id, status.value)

        self.store.append_timeline_entry(device_id, TimelineEntry(
            status=status.value,
            timestamp=self._clock(),
            confirmation_ref=tx_hash,
        ))

        verified = None
        if status == TERMINAL_STATUS:
            record = self.ledger.get_device(device_id)
            verified = self.store.store_verified_impact(calculate_verified_impact(
                device_id, record.device_type, metadata.weight, metadata.transport_distance_km,
            ))
            logger.info("Device %d recycled, impact verified: %s", device_id, verified)

        return StatusUpdateResult(
            device_id=device_id,
            new_status=status.value,
            confirmation_ref=tx_hash,
            verified_impact=verified,
        )

    # ── reads ────────────────────────────────────────────────────────────────

    def _ensure_verified(self, record: DeviceRecord, metadata: Optional[DeviceMetadata]) -> Optional[ImpactSnapshot]:
        """
        Return the verified snapshot, recomputing it for a recycled device
        whose snapshot was never written (store reset, or a failure after
        the ledger confirmed the update).
        """
        existing = self.store.get_verified_impact(record.id)
        if existing is not None or not record.is_recycled:
            return existing
        if metadata is None:
            logger.warning("Device %d is recycled but has no metadata, impact unknown", record.id)
            return None

        try:
            snapshot = calculate_verified_impact(
                record.id, record.device_type, metadata.weight, metadata.transport_distance_km,
            )
        except ValidationError as e:
            logger.warning("Cannot recompute verified impact for device %d: %s", record.id, e)
            return None

        logger.warning("Device %d was missing its verified impact, recomputed", record.id)
        return self.store.store_verified_impact(snapshot)

    def get_device_view(self, device_id: int) -> DeviceView:
        """
        Merge the on-chain record with everything stored locally.

        A device known to the ledger but not to the local store is returned
        with metadata_missing set instead of failing.
        """
        record = self.ledger.get_device(device_id)
        metadata = self.store.get_metadata(device_id)
        if metadata is None:
            logger.warning("Device %d has no local metadata, returning ledger data only", device_id)
            return DeviceView(record=record, metadata_missing=True)

        return DeviceView(
            record=record,
            metadata=metadata,
            projected_impact=self.store.get_projected_impact(device_id),
            verified_impact=self._ensure_verified(record, metadata),
            timeline=self.store.get_timeline(device_id),
        )

    def estimate_impact(self, device_type, weight, transport_distance) -> ImpactSnapshot:
        """Projection without registration. Nothing is persisted."""
        _parse_device_type(device_type)
        weight_kg = _require_positive_weight(weight)
        return estimate_impact(device_type, weight_kg, transport_distance)

    def list_devices(self) -> DeviceListing:
        total = self.ledger.get_total_devices()
        views: List[DeviceView] = []
        for device_id in range(1, total + 1):
            try:
                views.append(self.get_device_view(device_id))
            except TrackerError as e:
                logger.warning("Could not fetch device %d: %s", device_id, e)
        return DeviceListing(devices=views, total=total)

    def get_dashboard_stats(self) -> DashboardStats:
        total = self.ledger.get_total_devices()
        records: List[DeviceRecord] = []
        for device_id in range(1, total + 1):
            try:
                record = self.ledger.get_device(device_id)
            except TrackerError as e:
                logger.warning("Could not fetch device %d: %s", device_id, e)
                continue
            self._ensure_verified(record, self.store.get_metadata(device_id))
            records.append(record)

        stats = summarize(records, self.store.get_verified_impact)
        logger.info("Dashboard: %d/%d devices fetched, %d recycled",
                    stats.total_devices, total, stats.devices_by_status["recycled"])
        return stats

    def health(self) -> HealthReport:
        try:
            balance = self.ledger.get_balance()
            total = self.ledger.get_total_devices()
        except TrackerError as e:
            logger.error("Health check failed: %s", e)
            return HealthReport(healthy=False, error=str(e))
        return HealthReport(healthy=True, balance=balance, total_devices=total)
