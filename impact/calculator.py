"""
Environmental Impact Calculator.

Translates device attributes (type, weight, transport distance) into the
CO2 saved, toxic waste prevented and a 0-100 sustainability score.
Pure functions only. No I/O, no hidden state.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ledger.models import DeviceType
from tracker.errors import InvalidDeviceType, ValidationError

logger = logging.getLogger(__name__)

# kg CO2 saved by recycling one reference-weight unit
EMISSION_FACTORS = {
    DeviceType.LAPTOP: 280.0,
    DeviceType.PHONE: 70.0,
    DeviceType.TV: 400.0,
}

# Reference weight (kg) the emission factor is quoted for
AVERAGE_WEIGHTS = {
    DeviceType.LAPTOP: 2.5,
    DeviceType.PHONE: 0.2,
    DeviceType.TV: 15.0,
}

# Share of the device weight that is hazardous material
TOXIC_FRACTIONS = {
    DeviceType.LAPTOP: 0.15,
    DeviceType.PHONE: 0.12,
    DeviceType.TV: 0.20,
}

TRANSPORT_EMISSION_FACTOR = 0.0001   # kg CO2 per kg per km

CO2_SCORE_CEILING = 500.0     # kg CO2 that earns the full CO2 contribution
CO2_SCORE_MAX = 60.0
TOXIC_SCORE_CEILING = 5.0     # kg toxic waste that earns the full toxic contribution
TOXIC_SCORE_MAX = 25.0
DISTANCE_THRESHOLD_KM = 50.0  # below: bonus, above: penalty
DISTANCE_PENALTY_SPAN_KM = 200.0
DISTANCE_SCORE_MAX = 15.0

# Keyword groups in precedence order: first matching group wins
DISTANCE_KEYWORDS = [
    (("city", "downtown", "urban", "central"), 15.0),
    (("suburb", "residential", "neighborhood"), 35.0),
    (("rural", "countryside", "village", "remote"), 80.0),
]
DEFAULT_TRANSPORT_DISTANCE_KM = 30.0


class ImpactKind(str, Enum):
    PROJECTED = "projected"
    VERIFIED = "verified"


@dataclass(frozen=True)
class ImpactFigures:
    """Raw output of derive_impact, not yet bound to a device."""
    co2_saved_kg: float
    toxic_waste_prevented_kg: float
    sustainability_score: int


@dataclass(frozen=True)
class ImpactSnapshot:
    """Impact figures for one device, tagged projected or verified."""
    device_id: Optional[int]
    co2_saved_kg: float
    toxic_waste_prevented_kg: float
    sustainability_score: int
    kind: ImpactKind

    def __str__(self) -> str:
        return (
            f"[{self.kind.value}] device={self.device_id} "
            f"co2={self.co2_saved_kg:.2f}kg toxic={self.toxic_waste_prevented_kg:.2f}kg "
            f"score={self.sustainability_score}"
        )

    def to_dict(self) -> dict:
        return {
            "deviceId": self.device_id,
            "co2SavedKg": self.co2_saved_kg,
            "toxicWastePreventedKg": self.toxic_waste_prevented_kg,
            "sustainabilityScore": self.sustainability_score,
            "kind": self.kind.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ImpactSnapshot":
        return cls(
            device_id=data.get("deviceId"),
            co2_saved_kg=float(data["co2SavedKg"]),
            toxic_waste_prevented_kg=float(data["toxicWastePreventedKg"]),
            sustainability_score=int(data["sustainabilityScore"]),
            kind=ImpactKind(data["kind"]),
        )


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _coerce_device_type(device_type) -> DeviceType:
    if isinstance(device_type, DeviceType):
        return device_type
    try:
        return DeviceType(device_type)
    except ValueError:
        raise InvalidDeviceType(device_type) from None


def _require_non_negative(name: str, value) -> float:
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        raise ValidationError(f"{name} must be a number, got {value!r}")
    if math.isnan(value) or math.isinf(value) or value < 0:
        raise ValidationError(f"{name} must be a finite non-negative number, got {value!r}")
    return float(value)


def _compute_score(co2_saved: float, toxic_waste: float, distance_km: float) -> int:
    """
    Combine the three contributions into a 0-100 score.

    CO2 counts for up to 60 points, toxic waste for up to 25, and the
    transport distance adds a bonus of up to 15 below the threshold or
    subtracts a penalty of up to 15 above it.
    """
    score = 0.0

    if co2_saved > 0:
        score += min(CO2_SCORE_MAX, co2_saved / CO2_SCORE_CEILING * CO2_SCORE_MAX)

    score += min(TOXIC_SCORE_MAX, toxic_waste / TOXIC_SCORE_CEILING * TOXIC_SCORE_MAX)

    if distance_km > DISTANCE_THRESHOLD_KM:
        excess = distance_km - DISTANCE_THRESHOLD_KM
        score -= min(DISTANCE_SCORE_MAX, excess / DISTANCE_PENALTY_SPAN_KM * DISTANCE_SCORE_MAX)
    else:
        shortfall = DISTANCE_THRESHOLD_KM - distance_km
        score += min(DISTANCE_SCORE_MAX, shortfall / DISTANCE_THRESHOLD_KM * DISTANCE_SCORE_MAX)

    return round_half_up(max(0.0, min(100.0, score)))


def derive_impact(device_type, weight_kg: float, transport_distance_km: float) -> ImpactFigures:
    """
    Derive the environmental impact of recycling one device.

    Args:
        device_type: DeviceType or its string value ('Laptop', 'Phone', 'TV').
        weight_kg: Device weight in kilograms.
        transport_distance_km: Distance to the recycling facility.

    Returns:
        ImpactFigures with floats rounded to 2 decimals and an integer score.

    Raises:
        InvalidDeviceType: If device_type is not a known type.
        ValidationError: If weight or distance is negative or not finite.
    """
    dtype = _coerce_device_type(device_type)
    weight = _require_non_negative("weight_kg", weight_kg)
    distance = _require_non_negative("transport_distance_km", transport_distance_km)

    adjusted_co2 = EMISSION_FACTORS[dtype] * (weight / AVERAGE_WEIGHTS[dtype])
    transport_emissions = weight * distance * TRANSPORT_EMISSION_FACTOR
    net_co2 = max(0.0, adjusted_co2 - transport_emissions)

    toxic_waste = weight * TOXIC_FRACTIONS[dtype]

    score = _compute_score(net_co2, toxic_waste, distance)

    return ImpactFigures(
        co2_saved_kg=round(net_co2, 2),
        toxic_waste_prevented_kg=round(toxic_waste, 2),
        sustainability_score=score,
    )


def estimate_transport_distance(location: str) -> float:
    """
    Guess the transport distance (km) from a free-text location.

    Urban keywords beat suburban ones, suburban beat rural, and anything
    without a keyword falls back to a medium distance.
    """
    text = (location or "").lower()
    for keywords, distance in DISTANCE_KEYWORDS:
        if any(k in text for k in keywords):
            return distance
    return DEFAULT_TRANSPORT_DISTANCE_KM


def _snapshot(device_id: Optional[int], figures: ImpactFigures, kind: ImpactKind) -> ImpactSnapshot:
    return ImpactSnapshot(
        device_id=device_id,
        co2_saved_kg=figures.co2_saved_kg,
        toxic_waste_prevented_kg=figures.toxic_waste_prevented_kg,
        sustainability_score=figures.sustainability_score,
        kind=kind,
    )


def estimate_impact(device_type, weight_kg: float, transport_distance_km: float) -> ImpactSnapshot:
    """Projection for a device that has not been registered yet."""
    figures = derive_impact(device_type, weight_kg, transport_distance_km)
    return _snapshot(None, figures, ImpactKind.PROJECTED)


def calculate_projected_impact(
    device_id: int,
    device_type,
    weight_kg: float,
    transport_distance_km: float,
) -> ImpactSnapshot:
    figures = derive_impact(device_type, weight_kg, transport_distance_km)
    snapshot = _snapshot(device_id, figures, ImpactKind.PROJECTED)
    logger.debug("Projected impact: %s", snapshot)
    return snapshot


def calculate_verified_impact(
    device_id: int,
    device_type,
    weight_kg: float,
    transport_distance_km: float,
) -> ImpactSnapshot:
    figures = derive_impact(device_type, weight_kg, transport_distance_km)
    snapshot = _snapshot(device_id, figures, ImpactKind.VERIFIED)
    logger.info("Verified impact: %s", snapshot)
    return snapshot
