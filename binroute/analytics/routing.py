from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import numpy as np

from binroute.analytics.predictions import OverflowPredictor, Predictor
from binroute.config import RoutePolicy
from binroute.models.schemas import (
    BinSnapshot,
    GeoPoint,
    RouteMeta,
    RoutePoint,
    RouteResult,
    SelectionReason,
    SkipReason,
    as_utc,
)

LOGGER = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two coordinates in kilometers."""
    distances = distances_from(lat1, lon1, np.array([lat2]), np.array([lon2]))
    return float(distances[0])


def distances_from(lat: float, lon: float, lats: np.ndarray, lons: np.ndarray) -> np.ndarray:
    """Haversine distances in kilometers from one point to many."""
    phi1 = np.radians(lat)
    phi2 = np.radians(lats)
    dphi = phi2 - phi1
    dlambda = np.radians(lons) - np.radians(lon)

    a = np.sin(dphi / 2) ** 2 + np.cos(phi1) * np.cos(phi2) * np.sin(dlambda / 2) ** 2
    a = np.clip(a, 0.0, 1.0)
    c = 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def route_distance_km(route: RouteResult) -> float:
    points = route.route_points
    total = 0.0
    for prev, curr in zip(points, points[1:], strict=False):
        total += haversine_km(prev.latitude, prev.longitude, curr.latitude, curr.longitude)
    return total


@dataclass(frozen=True, slots=True)
class SelectedBin:
    bin: BinSnapshot
    reason: SelectionReason


@dataclass(frozen=True, slots=True)
class SkippedBin:
    bin_id: str
    reason: SkipReason


def _coerce_start(start: GeoPoint | Mapping[str, Any]) -> GeoPoint:
    if isinstance(start, GeoPoint):
        return start
    return GeoPoint(latitude=float(start["latitude"]), longitude=float(start["longitude"]))


def _collection_name(snapshot: BinSnapshot) -> str:
    return snapshot.area_name or f"Bin #{snapshot.bin_id[:4]}"


class RouteEngine:
    """Select bins due for collection and order them into a single-vehicle route.

    Triage uses the injected predictor; ordering is a greedy nearest-neighbor
    walk over straight-line distance that ends at the disposal station.
    """

    def __init__(self, policy: RoutePolicy | None = None, predictor: Predictor | None = None) -> None:
        self.policy = policy or RoutePolicy()
        self.predictor: Predictor = predictor or OverflowPredictor()

    def triage(
        self,
        bins: Sequence[BinSnapshot],
        *,
        now: datetime | None = None,
    ) -> tuple[list[SelectedBin], list[SkippedBin]]:
        now = as_utc(now) if now is not None else datetime.now(tz=UTC)
        next_cycle = now + timedelta(hours=self.policy.collection_horizon_hours)

        selected: list[SelectedBin] = []
        skipped: list[SkippedBin] = []

        for snapshot in bins:
            if snapshot.status == "BLOCKED":
                skipped.append(SkippedBin(snapshot.bin_id, "BLOCKED_SENSOR"))
                continue
            if snapshot.status == "OFFLINE":
                skipped.append(SkippedBin(snapshot.bin_id, "OFFLINE_NO_DATA"))
                continue

            prediction = self.predictor.predict(snapshot.bin_id, snapshot.readings, now=now)
            predicted_at = prediction.predicted_overflow_at

            if snapshot.current_fill_percent >= self.policy.critical_fill_percent:
                selected.append(SelectedBin(snapshot, "CRITICAL_LEVEL"))
            elif predicted_at is not None and as_utc(predicted_at) <= next_cycle:
                selected.append(SelectedBin(snapshot, "PREDICTED_OVERFLOW"))
            else:
                skipped.append(SkippedBin(snapshot.bin_id, "NOT_FULL_ENOUGH"))

        for item in selected:
            LOGGER.debug("Collecting %s: %s", item.bin.bin_id, item.reason)
        for item in skipped:
            LOGGER.debug("Skipping %s: %s", item.bin_id, item.reason)

        return selected, skipped

    def order_stops(self, start: GeoPoint, selected: Sequence[SelectedBin]) -> list[SelectedBin]:
        """Greedy nearest-neighbor ordering from `start`.

        Each step picks the closest unvisited bin. On an exact distance tie
        the bin that came first in `selected` wins (argmin returns the first
        minimum); this is stable but not otherwise meaningful.
        """
        remaining = list(selected)
        ordered: list[SelectedBin] = []
        current_lat, current_lon = start.latitude, start.longitude

        while remaining:
            lats = np.array([item.bin.latitude for item in remaining], dtype=float)
            lons = np.array([item.bin.longitude for item in remaining], dtype=float)
            nearest_idx = int(np.argmin(distances_from(current_lat, current_lon, lats, lons)))

            nearest = remaining.pop(nearest_idx)
            ordered.append(nearest)
            current_lat, current_lon = nearest.bin.latitude, nearest.bin.longitude

        return ordered

    def generate_route(
        self,
        start: GeoPoint | Mapping[str, Any],
        bins: Sequence[BinSnapshot],
        *,
        now: datetime | None = None,
    ) -> RouteResult:
        origin = _coerce_start(start)
        selected, skipped = self.triage(bins, now=now)

        route_points = [
            RoutePoint(
                type="START",
                name=self.policy.start_name,
                latitude=origin.latitude,
                longitude=origin.longitude,
            )
        ]
        for item in self.order_stops(origin, selected):
            route_points.append(
                RoutePoint(
                    type="COLLECTION_POINT",
                    name=_collection_name(item.bin),
                    latitude=item.bin.latitude,
                    longitude=item.bin.longitude,
                    reason=item.reason,
                    fill=item.bin.current_fill_percent,
                )
            )

        station = self.policy.station
        route_points.append(
            RoutePoint(
                type="END",
                name=station.name,
                latitude=station.latitude,
                longitude=station.longitude,
            )
        )

        LOGGER.info(
            "Route generated: %d bins collected, %d skipped",
            len(selected),
            len(skipped),
        )

        return RouteResult(
            route_points=route_points,
            meta=RouteMeta(
                total_stops=len(route_points),
                bins_collected=len(selected),
                bins_skipped=len(skipped),
            ),
        )


def generate_route(
    start: GeoPoint | Mapping[str, Any],
    bins: Sequence[BinSnapshot],
    *,
    policy: RoutePolicy | None = None,
    predictor: Predictor | None = None,
    now: datetime | None = None,
) -> RouteResult:
    return RouteEngine(policy, predictor).generate_route(start, bins, now=now)
