from datetime import UTC, datetime, timedelta
from pathlib import Path

from fastapi.testclient import TestClient


def _write_config(tmp_path: Path) -> Path:
    config_dir = tmp_path / "config"
    config_dir.mkdir(parents=True, exist_ok=True)

    (config_dir / "bins.yaml").write_text(
        """
areas:
  - id: market
    name: Test Market
    bins:
      - id: bin-north
        latitude: 15.46
        longitude: 73.83
      - id: bin-south
        latitude: 15.45
        longitude: 73.84
  - id: beach
    name: Test Beach
    bins:
      - id: bin-beach
        latitude: 15.48
        longitude: 73.80
""".strip()
        + "\n",
        encoding="utf-8",
    )

    (config_dir / "policy.yaml").write_text(
        """
routing:
  critical_fill_percent: 80
  collection_horizon_hours: 24
service:
  history_limit: 10
  default_start:
    latitude: 15.458
    longitude: 73.834
""".strip()
        + "\n",
        encoding="utf-8",
    )

    return config_dir


def _client(monkeypatch, tmp_path: Path) -> TestClient:
    monkeypatch.setenv("BINROUTE_CONFIG_DIR", str(_write_config(tmp_path)))

    from binroute.main import app

    return TestClient(app)


def test_health_endpoint(monkeypatch, tmp_path: Path) -> None:
    with _client(monkeypatch, tmp_path) as client:
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


def test_bins_endpoints(monkeypatch, tmp_path: Path) -> None:
    with _client(monkeypatch, tmp_path) as client:
        payload = client.get("/api/bins/all").json()
        assert {row["bin_id"] for row in payload} == {"bin-north", "bin-south", "bin-beach"}

        market = client.get("/api/bins", params={"area_id": "market"}).json()
        assert {row["bin_id"] for row in market} == {"bin-north", "bin-south"}
        assert market[0]["area_name"] == "Test Market"


def test_update_and_predict(monkeypatch, tmp_path: Path) -> None:
    with _client(monkeypatch, tmp_path) as client:
        for fill in (40, 50):
            response = client.post("/api/bins/update", json={"bin_id": "bin-north", "fill_percent": fill})
            assert response.status_code == 200
            assert response.json()["message"] == "Data Synced"

        bins = client.get("/api/bins/all").json()
        assert bins[0]["bin_id"] == "bin-north"
        assert bins[0]["current_fill_percent"] == 50

        response = client.get("/api/bins/predict", params={"bin_id": "bin-north"})
        assert response.status_code == 200
        prediction = response.json()
        assert prediction["bin_id"] == "bin-north"
        assert prediction["current_fill"] == 50
        assert prediction["prediction_status"] == "VALID"


def test_predict_without_history(monkeypatch, tmp_path: Path) -> None:
    with _client(monkeypatch, tmp_path) as client:
        response = client.get("/api/bins/predict", params={"bin_id": "bin-south"})
        assert response.status_code == 200
        assert response.json()["prediction_status"] == "NOT_ENOUGH_DATA"


def test_predict_unknown_bin_is_not_enough_data(monkeypatch, tmp_path: Path) -> None:
    with _client(monkeypatch, tmp_path) as client:
        response = client.get("/api/bins/predict", params={"bin_id": "missing"})
        assert response.status_code == 200
        payload = response.json()
        assert payload["bin_id"] == "missing"
        assert payload["prediction_status"] == "NOT_ENOUGH_DATA"
        assert payload["predicted_overflow_at"] is None


def test_update_unknown_or_invalid(monkeypatch, tmp_path: Path) -> None:
    with _client(monkeypatch, tmp_path) as client:
        response = client.post("/api/bins/update", json={"bin_id": "missing", "fill_percent": 10})
        assert response.status_code == 404

        response = client.post("/api/bins/update", json={"bin_id": "bin-north", "fill_percent": 150})
        assert response.status_code == 422


def test_predict_failure_maps_to_error_status(monkeypatch, tmp_path: Path) -> None:
    with _client(monkeypatch, tmp_path) as client:

        def boom(*args, **kwargs):
            raise RuntimeError("history unavailable")

        monkeypatch.setattr(client.app.state.store, "get_history", boom)
        response = client.get("/api/bins/predict", params={"bin_id": "bin-north"})
        assert response.status_code == 500
        assert response.json()["prediction_status"] == "ERROR"
        assert response.json()["error"] == "Prediction Failed"


def test_predict_supplied_readings(monkeypatch, tmp_path: Path) -> None:
    now = datetime.now(tz=UTC)
    readings = [
        {"fill_percent": 60, "recorded_at": now.isoformat(), "status": "NORMAL"},
        {"fill_percent": 40, "recorded_at": (now - timedelta(hours=2)).isoformat(), "status": "NORMAL"},
    ]
    with _client(monkeypatch, tmp_path) as client:
        response = client.post("/api/predict", json={"bin_id": "adhoc", "readings": readings})
        assert response.status_code == 200
        payload = response.json()
        assert payload["fill_rate_per_hour"] == 10.0
        assert payload["prediction_status"] == "VALID"
        assert payload["predicted_overflow_at"] is not None


def test_generate_route_from_payload(monkeypatch, tmp_path: Path) -> None:
    body = {
        "start": {"latitude": 15.458, "longitude": 73.834},
        "bins": [
            {
                "bin_id": "A",
                "latitude": 15.46,
                "longitude": 73.83,
                "current_fill_percent": 90,
                "status": "NORMAL",
            }
        ],
    }
    with _client(monkeypatch, tmp_path) as client:
        response = client.post("/api/routes/generate", json=body)
        assert response.status_code == 200
        payload = response.json()
        assert [p["type"] for p in payload["route_points"]] == ["START", "COLLECTION_POINT", "END"]
        assert payload["route_points"][1]["reason"] == "CRITICAL_LEVEL"
        assert payload["route_points"][2]["latitude"] == 15.456
        assert payload["meta"] == {"total_stops": 3, "bins_collected": 1, "bins_skipped": 0}


def test_optimized_route_uses_stored_bins(monkeypatch, tmp_path: Path) -> None:
    with _client(monkeypatch, tmp_path) as client:
        client.post("/api/bins/update", json={"bin_id": "bin-south", "fill_percent": 92})
        client.post("/api/bins/update", json={"bin_id": "bin-north", "fill_percent": 12, "status": "BLOCKED"})

        response = client.get("/api/bins/optimized-route", params={"area_id": "market"})
        assert response.status_code == 200
        payload = response.json()

        points = payload["route_points"]
        assert points[0]["type"] == "START"
        assert (points[0]["latitude"], points[0]["longitude"]) == (15.46, 73.83)
        assert points[1]["name"] == "Test Market"
        assert points[1]["fill"] == 92
        assert points[-1]["type"] == "END"
        assert payload["meta"] == {"total_stops": 3, "bins_collected": 1, "bins_skipped": 1}


def test_optimized_route_empty_area(monkeypatch, tmp_path: Path) -> None:
    with _client(monkeypatch, tmp_path) as client:
        payload = client.get("/api/bins/optimized-route", params={"area_id": "nowhere"}).json()
        points = payload["route_points"]
        assert [p["type"] for p in points] == ["START", "END"]
        assert (points[0]["latitude"], points[0]["longitude"]) == (15.458, 73.834)
        assert payload["meta"]["total_stops"] == 2


def test_optimized_route_explicit_start(monkeypatch, tmp_path: Path) -> None:
    with _client(monkeypatch, tmp_path) as client:
        payload = client.get(
            "/api/bins/optimized-route",
            params={"latitude": 15.40, "longitude": 73.90},
        ).json()
        assert (payload["route_points"][0]["latitude"], payload["route_points"][0]["longitude"]) == (15.40, 73.90)
        assert payload["meta"]["bins_skipped"] == 3


def test_settings_endpoint(monkeypatch, tmp_path: Path) -> None:
    with _client(monkeypatch, tmp_path) as client:
        payload = client.get("/api/settings").json()
        assert payload["routing"]["critical_fill_percent"] == 80
        assert payload["routing"]["station"]["name"] == "Dump Yard (Station)"
        assert payload["prediction"]["max_prediction_hours"] == 168
        assert payload["service"]["history_limit"] == 10
