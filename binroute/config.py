from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


@dataclass(slots=True)
class BinDefinition:
    id: str
    area_id: str
    area_name: str | None
    latitude: float
    longitude: float
    initial_fill_percent: float = 0.0


@dataclass(slots=True)
class PredictionPolicy:
    min_readings: int = 2
    freshness_window_hours: float = 48.0
    max_prediction_hours: float = 168.0
    jump_threshold_percent: float = 30.0
    jump_window_hours: float = 1.0

    def __post_init__(self) -> None:
        if self.min_readings < 2:
            raise ValueError("min_readings must be >= 2")
        if self.freshness_window_hours <= 0:
            raise ValueError("freshness_window_hours must be > 0")
        if self.max_prediction_hours <= 0:
            raise ValueError("max_prediction_hours must be > 0")
        if not (0.0 <= self.jump_threshold_percent <= 100.0):
            raise ValueError("jump_threshold_percent must be in [0, 100]")
        if self.jump_window_hours < 0:
            raise ValueError("jump_window_hours must be >= 0")


@dataclass(slots=True)
class StationConfig:
    name: str = "Dump Yard (Station)"
    latitude: float = 15.456
    longitude: float = 73.830


@dataclass(slots=True)
class RoutePolicy:
    critical_fill_percent: float = 80.0
    collection_horizon_hours: float = 24.0
    station: StationConfig = field(default_factory=StationConfig)
    start_name: str = "Driver Location"

    def __post_init__(self) -> None:
        if not (0.0 <= self.critical_fill_percent <= 100.0):
            raise ValueError("critical_fill_percent must be in [0, 100]")
        if self.collection_horizon_hours < 0:
            raise ValueError("collection_horizon_hours must be >= 0")


@dataclass(slots=True)
class ServiceConfig:
    history_limit: int = 10
    default_start_latitude: float = 15.458
    default_start_longitude: float = 73.834


@dataclass(slots=True)
class AppConfig:
    bins: list[BinDefinition]
    prediction: PredictionPolicy
    routing: RoutePolicy
    service: ServiceConfig


class ConfigError(RuntimeError):
    pass


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected mapping in {path}")
    return data


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key, {})
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"`{key}` must be a dictionary")
    return value


def _resolve_config_dir() -> Path:
    env_dir = os.getenv("BINROUTE_CONFIG_DIR")
    if env_dir:
        return Path(env_dir).expanduser().resolve()
    return (Path(__file__).resolve().parents[1] / "config").resolve()


def _parse_bins(raw_areas: list[dict[str, Any]]) -> list[BinDefinition]:
    bins: list[BinDefinition] = []
    seen: set[str] = set()
    for area in raw_areas:
        area_id = str(area["id"])
        area_name = area.get("name")
        for item in area.get("bins", []):
            bin_id = str(item["id"])
            if bin_id in seen:
                raise ConfigError(f"Bin `{bin_id}` is defined more than once")
            seen.add(bin_id)
            bins.append(
                BinDefinition(
                    id=bin_id,
                    area_id=area_id,
                    area_name=str(area_name) if area_name is not None else None,
                    latitude=float(item["latitude"]),
                    longitude=float(item["longitude"]),
                    initial_fill_percent=float(item.get("fill_percent", 0.0)),
                )
            )
    return bins


def parse_prediction_policy(raw: dict[str, Any]) -> PredictionPolicy:
    try:
        return PredictionPolicy(
            min_readings=int(raw.get("min_readings", 2)),
            freshness_window_hours=float(raw.get("freshness_window_hours", 48)),
            max_prediction_hours=float(raw.get("max_prediction_hours", 168)),
            jump_threshold_percent=float(raw.get("jump_threshold_percent", 30)),
            jump_window_hours=float(raw.get("jump_window_hours", 1)),
        )
    except ValueError as exc:
        raise ConfigError(f"Invalid prediction policy: {exc}") from exc


def parse_route_policy(raw: dict[str, Any]) -> RoutePolicy:
    station_raw = _section(raw, "station")
    try:
        return RoutePolicy(
            critical_fill_percent=float(raw.get("critical_fill_percent", 80)),
            collection_horizon_hours=float(raw.get("collection_horizon_hours", 24)),
            station=StationConfig(
                name=str(station_raw.get("name", "Dump Yard (Station)")),
                latitude=float(station_raw.get("latitude", 15.456)),
                longitude=float(station_raw.get("longitude", 73.830)),
            ),
            start_name=str(raw.get("start_name", "Driver Location")),
        )
    except ValueError as exc:
        raise ConfigError(f"Invalid routing policy: {exc}") from exc


def load_policies(config_dir: Path | None = None) -> tuple[PredictionPolicy, RoutePolicy]:
    """Load only the engine policies; bins.yaml is not required."""
    directory = config_dir or _resolve_config_dir()
    policy_cfg = _read_yaml(directory / "policy.yaml")
    return (
        parse_prediction_policy(_section(policy_cfg, "prediction")),
        parse_route_policy(_section(policy_cfg, "routing")),
    )


def load_config(config_dir: Path | None = None) -> AppConfig:
    directory = config_dir or _resolve_config_dir()
    if not directory.exists():
        raise ConfigError(f"Config directory not found: {directory}")

    bins_cfg = _read_yaml(directory / "bins.yaml")
    policy_cfg = _read_yaml(directory / "policy.yaml")

    areas_raw = bins_cfg.get("areas", [])
    if not isinstance(areas_raw, list):
        raise ConfigError("`areas` in bins.yaml must be a list")
    try:
        bins = _parse_bins(areas_raw)
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigError(f"Malformed bin definition in bins.yaml: {exc}") from exc
    if not bins:
        raise ConfigError("No bins configured in bins.yaml")

    service_raw = _section(policy_cfg, "service")
    start_raw = _section(service_raw, "default_start")
    try:
        service = ServiceConfig(
            history_limit=int(service_raw.get("history_limit", 10)),
            default_start_latitude=float(start_raw.get("latitude", 15.458)),
            default_start_longitude=float(start_raw.get("longitude", 73.834)),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid service config: {exc}") from exc
    if service.history_limit < 1:
        raise ConfigError("service.history_limit must be >= 1")

    return AppConfig(
        bins=bins,
        prediction=parse_prediction_policy(_section(policy_cfg, "prediction")),
        routing=parse_route_policy(_section(policy_cfg, "routing")),
        service=service,
    )
