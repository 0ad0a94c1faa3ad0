from __future__ import annotations

from pathlib import Path
import sys

import yaml
from fastapi.testclient import TestClient


ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))


from backend.app.main import app  # noqa: E402


client = TestClient(app)


def _write_configs(tmp_path: Path) -> None:
    (tmp_path / "settings.yaml").write_text(
        yaml.safe_dump({"history_window_days": 90, "safety_stock_ratio": 0.2, "cost_model": "order_value"})
    )
    (tmp_path / "thresholds.yaml").write_text(yaml.safe_dump({"low_confidence_threshold": 0.3}))


def test_configs_get_put(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("CONFIG_DIR", str(tmp_path))
    _write_configs(tmp_path)

    response = client.get("/api/v1/configs/settings")
    assert response.status_code == 200
    assert response.json()["history_window_days"] == 90

    response = client.put(
        "/api/v1/configs/settings",
        json={"safety_stock_ratio": 0.5, "cost_model": "carrying_cost"},
    )
    assert response.status_code == 200
    settings = yaml.safe_load((tmp_path / "settings.yaml").read_text())
    assert settings["safety_stock_ratio"] == 0.5
    assert settings["cost_model"] == "carrying_cost"
    assert settings["history_window_days"] == 90

    response = client.put("/api/v1/configs/thresholds", json={"low_confidence_threshold": 0.4})
    assert response.status_code == 200
    assert client.get("/api/v1/configs/thresholds").json()["low_confidence_threshold"] == 0.4


def test_config_updates_are_validated(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("CONFIG_DIR", str(tmp_path))
    _write_configs(tmp_path)

    assert client.put("/api/v1/configs/settings", json={"cost_model": "magic"}).status_code == 422
    assert client.put("/api/v1/configs/settings", json={"min_history_points": 3}).status_code == 422


def test_missing_config_file(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("CONFIG_DIR", str(tmp_path))

    response = client.get("/api/v1/configs/thresholds")

    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "not_found"


def test_validate_ok(monkeypatch, tmp_path: Path) -> None:
    (tmp_path / "products.csv").write_text(
        "id,owner_id,name,current_stock\np-1,u1,Beans,4\n", encoding="utf-8"
    )
    (tmp_path / "sales.csv").write_text(
        "product_id,quantity,sale_date\np-1,2,2026-10-01T09:00:00Z\n", encoding="utf-8"
    )

    from backend.app.api.v1 import data as data_api

    monkeypatch.setattr(data_api._validation_service, "data_root", str(tmp_path))

    response = client.get("/api/v1/data/validate")
    assert response.status_code == 200
    payload = response.json()
    assert payload["ok"] is True
    assert {c["name"] for c in payload["checks"]} >= {"products_columns_ok", "sales_dates_parse"}


def test_validate_reports_missing_columns(monkeypatch, tmp_path: Path) -> None:
    (tmp_path / "products.csv").write_text("id,name\np-1,Beans\n", encoding="utf-8")

    from backend.app.api.v1 import data as data_api

    monkeypatch.setattr(data_api._validation_service, "data_root", str(tmp_path))

    payload = client.get("/api/v1/data/validate").json()
    assert payload["ok"] is False
    checks = {c["name"]: c for c in payload["checks"]}
    assert checks["file_sales_exists"]["ok"] is False
    assert "owner_id" in checks["products_columns_ok"]["message"]


def test_health_and_metrics() -> None:
    health = client.get("/api/v1/health")
    assert health.status_code == 200
    assert health.json()["status"] == "ok"

    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    assert "http_requests_total" in metrics.text
