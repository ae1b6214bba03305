# meter_ingest/models/reading.py

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pymongo import ASCENDING, DESCENDING

# request field -> stored field
FIELD_MAP = {
    "vol": "voltage",
    "current": "current",
    "power": "power",
    "energy": "energy",
    "frequency": "frequency",
    "pf": "powerFactor",
    "deviceId": "deviceId",
    "location": "location",
}

DEFAULT_LIMIT = 50


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def apparent_power(power: Optional[float], power_factor: Optional[float]) -> Optional[float]:
    """Apparent power = real power / |power factor|. None when undefined."""
    if power is None or power_factor is None or power_factor == 0:
        return None
    return power / abs(power_factor)


class ReadingValidationError(ValueError):
    def __init__(self, details: List[str]):
        super().__init__("; ".join(details))
        self.details = details

    @classmethod
    def from_pydantic(cls, exc: ValidationError) -> "ReadingValidationError":
        details = []
        for err in exc.errors():
            loc = err.get("loc") or ()
            field = str(loc[0]) if loc else "body"
            details.append(f"{FIELD_MAP.get(field, field)}: {err.get('msg')}")
        return cls(details)


class EnergyReading(BaseModel):
    """One stored telemetry sample. Unset fields never reach the document."""

    model_config = ConfigDict(coerce_numbers_to_str=True, allow_inf_nan=False)

    voltage: Optional[float] = None
    current: Optional[float] = None
    power: Optional[float] = None
    energy: Optional[float] = None
    frequency: Optional[float] = None
    powerFactor: Optional[float] = None
    deviceId: Optional[str] = None
    location: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utcnow)

    def apparent_power(self) -> Optional[float]:
        return apparent_power(self.power, self.powerFactor)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class EnergyReadingIn(BaseModel):
    """POST body. Short names (vol, pf) as sent by the meters."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True, allow_inf_nan=False)

    vol: Optional[float] = None
    current: Optional[float] = None
    power: Optional[float] = None
    energy: Optional[float] = None
    frequency: Optional[float] = None
    pf: Optional[float] = None
    deviceId: Optional[str] = None
    location: Optional[str] = None

    @classmethod
    def parse_body(cls, body: Any) -> "EnergyReadingIn":
        if not isinstance(body, dict):
            raise ReadingValidationError(["body: Input should be a JSON object"])
        try:
            return cls.model_validate(body)
        except ValidationError as e:
            raise ReadingValidationError.from_pydantic(e) from e

    def to_reading(self) -> EnergyReading:
        present = self.model_dump(exclude_none=True)
        return EnergyReading(**{FIELD_MAP[k]: v for k, v in present.items()})


def serialize_reading(doc: Dict[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key, value in doc.items():
        if isinstance(value, ObjectId):
            out[key] = str(value)
        elif isinstance(value, datetime):
            out[key] = value.isoformat()
        else:
            out[key] = value
    return out


class ReadingRepository:
    """Reads and writes EnergyReading documents in one Mongo collection."""

    def __init__(self, collection):
        self.collection = collection

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("timestamp", DESCENDING)])
        await self.collection.create_index([("deviceId", ASCENDING), ("timestamp", DESCENDING)])

    async def insert(self, reading: EnergyReading) -> Dict[str, Any]:
        doc = reading.to_document()
        now = _utcnow()
        doc["createdAt"] = now
        doc["updatedAt"] = now
        result = await self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        return doc

    async def get_readings_in_range(
        self,
        start: datetime,
        end: datetime,
        device_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        query: Dict[str, Any] = {"timestamp": {"$gte": start, "$lte": end}}
        if device_id:
            query["deviceId"] = device_id
        cursor = self.collection.find(query).sort("timestamp", DESCENDING)
        return await cursor.to_list(length=None)

    async def find_readings(
        self,
        device_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = DEFAULT_LIMIT,
    ) -> List[Dict[str, Any]]:
        query: Dict[str, Any] = {}
        if device_id:
            query["deviceId"] = device_id
        if start or end:
            ts: Dict[str, Any] = {}
            if start:
                ts["$gte"] = start
            if end:
                ts["$lte"] = end
            query["timestamp"] = ts

        cursor = self.collection.find(query).sort("timestamp", DESCENDING).limit(limit)
        return await cursor.to_list(length=limit)
