# meter_ingest/main.py

from __future__ import annotations

import logging

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from meter_ingest.core.config import settings
from meter_ingest.core.database import MongoConnector, MongoStatus
from meter_ingest.api import readings
from meter_ingest.models.reading import ReadingRepository

logger = logging.getLogger(__name__)

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

app = FastAPI(
    title="Energy Meter Ingest API",
    version="1.0.0",
    description="Ingest and query energy-meter readings",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
)

app.state.connector = MongoConnector(settings)

# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------

@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled exception on {request.method} {request.url}")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "details": str(exc)},
    )

# ---------------------------------------------------------------------------
# CORS (fixed policy, no credentials)
# ---------------------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
)

# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
app.include_router(readings.router, tags=["readings"])

# ---------------------------------------------------------------------------
# Startup / Shutdown
# ---------------------------------------------------------------------------
@app.on_event("startup")
async def on_startup():
    logger.info("Starting Energy Meter Ingest API...")
    connector: MongoConnector = app.state.connector

    if await connector.connect():
        try:
            await ReadingRepository(connector.get_collection()).ensure_indexes()
            logger.info("Reading indexes ensured")
        except Exception as e:
            logger.warning(f"Could not create reading indexes: {e}")

    logger.info(f"Startup complete. ENV={settings.ENVIRONMENT}")


@app.on_event("shutdown")
async def on_shutdown():
    try:
        await app.state.connector.close()
    except Exception as e:
        logger.warning(f"Mongo close failed: {e}")
    logger.info("Shutdown complete")

# ---------------------------------------------------------------------------
# Root / Health
# ---------------------------------------------------------------------------
def get_mongo_status(request: Request) -> MongoStatus:
    return request.app.state.connector.status


@app.get("/")
async def root(status: MongoStatus = Depends(get_mongo_status)):
    return {
        "message": "Welcome, your app is working well",
        "mongodb": status.snapshot(),
    }
