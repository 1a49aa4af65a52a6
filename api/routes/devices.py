"""
Device lifecycle routes — register, update status, get and list devices.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from api.deps import get_tracker, to_http_error
from tracker.errors import TrackerError
from tracker.service import DeviceTracker

logger = logging.getLogger(__name__)

router = APIRouter()


class RegisterDeviceRequest(BaseModel):
    deviceType: str           # Laptop | Phone | TV
    weight: float             # kg
    location: str


class UpdateStatusRequest(BaseModel):
    deviceId: int
    newStatus: str            # Collected | Recycled


@router.post("/register-device")
def register_device(body: RegisterDeviceRequest, tracker: DeviceTracker = Depends(get_tracker)):
    """Register a device on-chain and store its weight, location and projected impact."""
    try:
        result = tracker.register_device(body.deviceType, body.weight, body.location)
    except TrackerError as e:
        logger.error("register-device failed: %s", e)
        raise to_http_error(e) from e
    return {"success": True, **result.to_dict()}


@router.post("/update-status")
def update_status(body: UpdateStatusRequest, tracker: DeviceTracker = Depends(get_tracker)):
    """Move a device to Collected or Recycled. Recycling also verifies its impact."""
    try:
        result = tracker.update_status(body.deviceId, body.newStatus)
    except TrackerError as e:
        logger.error("update-status failed: %s", e)
        raise to_http_error(e) from e
    return {"success": True, **result.to_dict()}


@router.get("/device/{device_id}")
def get_device(device_id: int, tracker: DeviceTracker = Depends(get_tracker)):
    if device_id < 1:
        raise HTTPException(status_code=400, detail="Invalid device ID")
    try:
        view = tracker.get_device_view(device_id)
    except TrackerError as e:
        raise to_http_error(e) from e
    return {"success": True, **view.to_dict()}


@router.get("/devices")
def list_devices(tracker: DeviceTracker = Depends(get_tracker)):
    try:
        listing = tracker.list_devices()
    except TrackerError as e:
        raise to_http_error(e) from e
    return {"success": True, **listing.to_dict()}
