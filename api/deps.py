"""
Shared route dependencies: the DeviceTracker instance and error mapping.
"""
import logging

from fastapi import HTTPException, Request

from tracker.errors import (
    IdentifierResolutionFailed,
    LedgerCallFailed,
    NotFound,
    TrackerError,
    ValidationError,
)
from tracker.service import DeviceTracker

logger = logging.getLogger(__name__)


def get_tracker(request: Request) -> DeviceTracker:
    tracker = getattr(request.app.state, "tracker", None)
    if tracker is None:
        raise HTTPException(status_code=503, detail="Ledger connection not initialised")
    return tracker


def to_http_error(e: TrackerError) -> HTTPException:
    """Map a tracker error onto the matching HTTP status."""
    if isinstance(e, ValidationError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, NotFound):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, IdentifierResolutionFailed):
        return HTTPException(
            status_code=502,
            detail=f"{e}. The transaction may have been recorded on-chain; check before retrying.",
        )
    if isinstance(e, LedgerCallFailed):
        return HTTPException(status_code=502, detail=str(e))
    logger.error("Unmapped tracker error: %s", e)
    return HTTPException(status_code=500, detail=str(e))
