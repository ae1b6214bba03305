# meter_ingest/api/readings.py

import json
import logging
import re
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from meter_ingest.core.database import DatabaseNotReady, MongoConnector
from meter_ingest.models.reading import (
    DEFAULT_LIMIT,
    EnergyReadingIn,
    ReadingRepository,
    ReadingValidationError,
    serialize_reading,
)

router = APIRouter()
logger = logging.getLogger(__name__)

LEADING_INT = re.compile(r"\s*[+-]?\d+")


def get_repository(request: Request) -> Optional[ReadingRepository]:
    """None until the connector has a client; routes answer 500 in that case."""
    connector: MongoConnector = request.app.state.connector
    if connector.db is None:
        return None
    return ReadingRepository(connector.get_collection())


def _require(repo: Optional[ReadingRepository]) -> ReadingRepository:
    if repo is None:
        raise DatabaseNotReady("Database not initialized")
    return repo


def _coerce_limit(raw: Optional[str]) -> int:
    """Leading integer of the value ("2.5" -> 2, "10abc" -> 10), else the default."""
    if raw is None:
        return DEFAULT_LIMIT
    match = LEADING_INT.match(str(raw))
    if not match:
        return DEFAULT_LIMIT
    limit = int(match.group(0))
    return limit if limit > 0 else DEFAULT_LIMIT


def _parse_date(raw: str) -> datetime:
    value = datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


@router.post("/", status_code=201)
async def create_reading(
    request: Request,
    repo: Optional[ReadingRepository] = Depends(get_repository),
):
    """Store one energy-meter reading. Only the fields sent are stored."""
    try:
        raw = await request.body()
        try:
            body = json.loads(raw) if raw else {}
        except ValueError as e:
            raise ReadingValidationError([f"body: Invalid JSON ({e})"]) from e

        reading = EnergyReadingIn.parse_body(body).to_reading()
        stored = await _require(repo).insert(reading)
    except ReadingValidationError as e:
        logger.warning(f"Rejected energy reading: {e.details}")
        return JSONResponse(
            status_code=400,
            content={"error": "Validation failed", "details": e.details},
        )
    except Exception as e:
        logger.exception("Failed to save energy reading")
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to save energy reading", "details": str(e)},
        )

    data = serialize_reading(stored)
    response = {
        "message": "Energy reading saved successfully",
        "data": data,
        "insertedId": data["_id"],
        "timestamp": data["timestamp"],
    }
    if reading.power is not None and reading.powerFactor is not None:
        response["apparentPower"] = reading.apparent_power()

    logger.info(f"Saved energy reading {data['_id']} (device={reading.deviceId})")
    return JSONResponse(status_code=201, content=response)


@router.get("/readings")
async def list_readings(
    deviceId: Optional[str] = None,
    startDate: Optional[str] = None,
    endDate: Optional[str] = None,
    limit: Optional[str] = None,
    repo: Optional[ReadingRepository] = Depends(get_repository),
):
    """Most recent readings first, optionally filtered by device and date range."""
    try:
        start = _parse_date(startDate) if startDate else None
        end = _parse_date(endDate) if endDate else None
        docs = await _require(repo).find_readings(
            device_id=deviceId,
            start=start,
            end=end,
            limit=_coerce_limit(limit),
        )
    except Exception as e:
        logger.exception("Failed to fetch energy readings")
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to fetch energy readings", "details": str(e)},
        )

    return {
        "message": "Energy readings retrieved successfully",
        "count": len(docs),
        "data": [serialize_reading(d) for d in docs],
    }
