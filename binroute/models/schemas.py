from __future__ import annotations

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

ReadingStatus = Literal["NORMAL", "OFFLINE", "BLOCKED"]
PredictionStatus = Literal["NOT_ENOUGH_DATA", "OFFLINE", "BLOCKED", "VALID", "ERROR"]
RoutePointType = Literal["START", "COLLECTION_POINT", "END"]
SelectionReason = Literal["CRITICAL_LEVEL", "PREDICTED_OVERFLOW"]
SkipReason = Literal["BLOCKED_SENSOR", "OFFLINE_NO_DATA", "NOT_FULL_ENOUGH"]


def as_utc(value: datetime) -> datetime:
    # Naive timestamps are taken as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class Reading(BaseModel):
    model_config = ConfigDict(frozen=True)

    fill_percent: float = Field(ge=0, le=100)
    recorded_at: datetime
    status: ReadingStatus = "NORMAL"

    @field_validator("recorded_at")
    @classmethod
    def _normalize_recorded_at(cls, value: datetime) -> datetime:
        return as_utc(value)


class GeoPoint(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class BinSnapshot(BaseModel):
    bin_id: str
    latitude: float
    longitude: float
    current_fill_percent: float
    status: ReadingStatus = "NORMAL"
    area_name: str | None = None
    readings: list[Reading] = Field(default_factory=list)


class PredictionResult(BaseModel):
    bin_id: str
    current_fill: float = 0.0
    fill_rate_per_hour: float = 0.0
    predicted_overflow_at: datetime | None = None
    prediction_status: PredictionStatus = "NOT_ENOUGH_DATA"


class RoutePoint(BaseModel):
    type: RoutePointType
    name: str
    latitude: float
    longitude: float
    reason: SelectionReason | None = None
    fill: float | None = None


class RouteMeta(BaseModel):
    total_stops: int
    bins_collected: int
    bins_skipped: int


class RouteResult(BaseModel):
    route_points: list[RoutePoint]
    meta: RouteMeta


class BinRecord(BaseModel):
    bin_id: str
    area_id: str
    area_name: str | None = None
    latitude: float
    longitude: float
    current_fill_percent: float = 0.0
    status: ReadingStatus = "NORMAL"
    lid_status: str | None = None
    lid_angle: float | None = None
    last_updated: datetime | None = None


class ReadingUpdate(BaseModel):
    bin_id: str
    fill_percent: float = Field(ge=0, le=100)
    status: ReadingStatus = "NORMAL"
    lid_status: str | None = None
    lid_angle: float | None = None


class PredictRequest(BaseModel):
    bin_id: str
    readings: list[Reading] = Field(default_factory=list)


class RouteRequest(BaseModel):
    start: GeoPoint
    bins: list[BinSnapshot] = Field(default_factory=list)
