from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from binroute.models.schemas import (
    BinRecord,
    GeoPoint,
    PredictionResult,
    PredictRequest,
    ReadingUpdate,
    RouteRequest,
    RouteResult,
)
from binroute.models.store import BinNotFoundError

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


@router.get("/bins", response_model=list[BinRecord])
async def list_bins(request: Request, area_id: str | None = Query(default=None)) -> list[BinRecord]:
    return request.app.state.store.list_bins(area_id=area_id)


@router.get("/bins/all", response_model=list[BinRecord])
async def list_all_bins(request: Request) -> list[BinRecord]:
    return request.app.state.store.list_bins()


@router.post("/bins/update")
async def update_bin(request: Request, payload: ReadingUpdate) -> dict[str, Any]:
    store = request.app.state.store
    try:
        record = store.record_reading(payload)
    except BinNotFoundError:
        raise HTTPException(status_code=404, detail="Bin not found") from None

    LOGGER.info("Updated bin %s... fill=%.1f%% status=%s", payload.bin_id[:4], payload.fill_percent, payload.status)
    return {"message": "Data Synced", "bin": record.model_dump(mode="json")}


@router.get("/settings")
async def get_settings(request: Request) -> dict[str, Any]:
    config = request.app.state.config
    return {
        "prediction": asdict(config.prediction),
        "routing": asdict(config.routing),
        "service": asdict(config.service),
    }


@router.get("/bins/predict", response_model=PredictionResult)
async def predict_bin(request: Request, bin_id: str = Query(...)) -> Any:
    store = request.app.state.store
    predictor = request.app.state.predictor
    try:
        history = store.get_history(bin_id, limit=request.app.state.config.service.history_limit)
    except BinNotFoundError:
        history = []
    except Exception:
        LOGGER.exception("Prediction failed for %s", bin_id)
        return JSONResponse(
            status_code=500,
            content={"error": "Prediction Failed", "bin_id": bin_id, "prediction_status": "ERROR"},
        )
    return predictor.predict(bin_id, history)


@router.post("/predict", response_model=PredictionResult)
async def predict_readings(request: Request, payload: PredictRequest) -> PredictionResult:
    return request.app.state.predictor.predict(payload.bin_id, payload.readings)


@router.get("/bins/optimized-route", response_model=RouteResult)
async def optimized_route(
    request: Request,
    area_id: str | None = Query(default=None),
    latitude: float | None = Query(default=None, ge=-90, le=90),
    longitude: float | None = Query(default=None, ge=-180, le=180),
) -> Any:
    store = request.app.state.store
    service = request.app.state.config.service
    try:
        bins = store.snapshots(area_id=area_id)
        if latitude is not None and longitude is not None:
            start = GeoPoint(latitude=latitude, longitude=longitude)
        elif bins:
            start = GeoPoint(latitude=bins[0].latitude, longitude=bins[0].longitude)
        else:
            start = GeoPoint(
                latitude=service.default_start_latitude,
                longitude=service.default_start_longitude,
            )
        return request.app.state.route_engine.generate_route(start, bins)
    except Exception as exc:
        LOGGER.exception("Routing failed for area %s", area_id)
        return JSONResponse(status_code=500, content={"error": f"Routing Failed: {exc}"})


@router.post("/routes/generate", response_model=RouteResult)
async def generate_route(request: Request, payload: RouteRequest) -> RouteResult:
    return request.app.state.route_engine.generate_route(payload.start, payload.bins)
