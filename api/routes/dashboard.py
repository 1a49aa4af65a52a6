"""
Dashboard and health routes.
"""
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from api.deps import get_tracker, to_http_error
from tracker.errors import TrackerError
from tracker.service import DeviceTracker

router = APIRouter()


@router.get("/dashboard")
def dashboard(tracker: DeviceTracker = Depends(get_tracker)):
    """Fleet statistics: counts per status and verified impact totals."""
    try:
        stats = tracker.get_dashboard_stats()
    except TrackerError as e:
        raise to_http_error(e) from e
    return {"success": True, "stats": stats.to_dict()}


@router.get("/health")
def health(tracker: DeviceTracker = Depends(get_tracker)):
    report = tracker.health()
    if not report.healthy:
        return JSONResponse(status_code=503, content={"success": False, **report.to_dict()})
    return {"success": True, **report.to_dict()}
