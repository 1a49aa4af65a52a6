"""
Impact estimation route — pure projection, nothing is written.
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from api.deps import get_tracker, to_http_error
from tracker.errors import TrackerError
from tracker.service import DeviceTracker

router = APIRouter()


class EstimateImpactRequest(BaseModel):
    deviceType: str
    weight: float
    transportDistance: float  # km


@router.post("/estimate-impact")
def estimate_impact(body: EstimateImpactRequest, tracker: DeviceTracker = Depends(get_tracker)):
    try:
        impact = tracker.estimate_impact(body.deviceType, body.weight, body.transportDistance)
    except TrackerError as e:
        raise to_http_error(e) from e
    return {"success": True, "impact": impact.to_dict()}
