"""
Fleet-wide dashboard aggregation.

Folds a list of on-chain device records together with the locally stored
verified impact snapshots. Only recycled devices contribute to the impact
totals and the average score.
"""

import logging
from typing import Callable, Iterable, Optional

from impact.calculator import ImpactSnapshot, round_half_up
from ledger.models import DeviceRecord, DeviceStatus
from tracker.models import DashboardStats

logger = logging.getLogger(__name__)

VerifiedLookup = Callable[[int], Optional[ImpactSnapshot]]


def summarize(records: Iterable[DeviceRecord], verified_lookup: VerifiedLookup) -> DashboardStats:
    """
    Aggregate device records into dashboard statistics.

    Args:
        records: Device records fetched from the ledger.
        verified_lookup: Returns the verified snapshot for a device id, or None.

    Returns:
        DashboardStats. A recycled device without a verified snapshot is
        counted as recycled but contributes zero impact.
    """
    stats = DashboardStats()
    total_co2 = 0.0
    total_toxic = 0.0
    total_score = 0
    recycled = 0

    for record in records:
        stats.total_devices += 1
        status = record.status.lower()
        if status in stats.devices_by_status:
            stats.devices_by_status[status] += 1
        else:
            logger.warning("Device %d has unknown status %r", record.id, record.status)

        if status != DeviceStatus.RECYCLED.value.lower():
            continue

        recycled += 1
        verified = verified_lookup(record.id)
        if verified is None:
            logger.warning("Device %d is recycled but has no verified impact", record.id)
            continue
        total_co2 += verified.co2_saved_kg
        total_toxic += verified.toxic_waste_prevented_kg
        total_score += verified.sustainability_score

    stats.total_co2_saved_kg = round(total_co2, 2)
    stats.total_toxic_waste_prevented_kg = round(total_toxic, 2)
    stats.average_sustainability_score = round_half_up(total_score / recycled) if recycled else 0
    return stats
