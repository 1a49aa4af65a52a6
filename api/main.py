"""
E-Waste Tracker — FastAPI Application Entry Point
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from api.routes import dashboard, devices, impact
from ledger.adapter import LedgerAdapter
from tracker.record_store import RecordStore
from tracker.service import DeviceTracker
from tracker.settings import load_settings

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

settings = load_settings()


def build_tracker() -> DeviceTracker:
    """Wire the ledger adapter and the record store into one service."""
    store = RecordStore(settings.data_store_path)
    ledger = LedgerAdapter.from_settings(settings)
    return DeviceTracker(ledger, store)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("E-Waste Tracker API starting up, connecting to %s", settings.rpc_url)
    try:
        app.state.tracker = build_tracker()
    except Exception as e:
        logger.error("Tracker initialisation failed: %s", e)
        raise
    yield
    app.state.tracker.ledger.close()
    logger.info("E-Waste Tracker API shutting down")


app = FastAPI(
    title="E-Waste Tracker API",
    description="Device lifecycle and environmental impact tracking on an EVM ledger",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url, "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(devices.router,   prefix="/api", tags=["Devices"])
app.include_router(impact.router,    prefix="/api", tags=["Impact"])
app.include_router(dashboard.router, prefix="/api", tags=["Dashboard"])


@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info("%s %s", request.method, request.url.path)
    return await call_next(request)


@app.get("/")
def root():
    return {
        "service": "ewaste-tracker-api",
        "version": "1.0.0",
        "endpoints": {
            "health": "GET /api/health",
            "registerDevice": "POST /api/register-device",
            "updateStatus": "POST /api/update-status",
            "getDevice": "GET /api/device/{id}",
            "listDevices": "GET /api/devices",
            "estimateImpact": "POST /api/estimate-impact",
            "dashboard": "GET /api/dashboard",
        },
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("api.main:app", host="0.0.0.0", port=settings.port)
