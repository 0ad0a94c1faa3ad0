"""Read and update the forecasting/reorder rule files under ``CONFIG_DIR``.

Updates are merged into the existing YAML document and written atomically;
the services pick the new values up on their next request.
"""

from __future__ import annotations

import logging
import os
import tempfile
from typing import Any, Dict, Literal, Optional

import yaml
from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from ..deps import error_payload, get_config_root

LOGGER = logging.getLogger(__name__)

router = APIRouter()

SETTINGS_FILE = "settings.yaml"
THRESHOLDS_FILE = "thresholds.yaml"


class SettingsUpdate(BaseModel):
    history_window_days: Optional[int] = Field(None, ge=7, le=365)
    min_history_points: Optional[int] = Field(None, ge=7, le=365)
    safety_stock_ratio: Optional[float] = Field(None, ge=0.0, le=5.0)
    critical_stock_floor: Optional[int] = Field(None, ge=0)
    default_daily_demand: Optional[float] = Field(None, gt=0.0)
    stockout_buffer_days: Optional[int] = Field(None, ge=0, le=365)
    cost_model: Optional[Literal["order_value", "carrying_cost"]] = None
    carrying_cost_rate: Optional[float] = Field(None, ge=0.0, le=1.0)


class ThresholdsUpdate(BaseModel):
    low_confidence_threshold: Optional[float] = Field(None, ge=0.1, le=0.9)


def _config_path(name: str) -> str:
    return os.path.join(get_config_root(), name)


def _read_document(name: str) -> Dict[str, Any]:
    path = _config_path(name)
    try:
        with open(path, "r", encoding="utf-8") as handle:
            return yaml.safe_load(handle) or {}
    except FileNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=error_payload("not_found", f"{name} not found"),
        ) from exc


def _write_document(path: str, payload: Dict[str, Any]) -> None:
    directory = os.path.dirname(path) or "."
    os.makedirs(directory, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(prefix=".tmp-", suffix=".yaml", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            yaml.safe_dump(payload, handle, sort_keys=False)
        os.replace(tmp_path, path)
    finally:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)


def _merge_document(name: str, updates: BaseModel) -> Dict[str, Any]:
    try:
        current = _read_document(name)
    except HTTPException:
        current = {}

    changes = updates.model_dump(exclude_none=True)
    merged = {**current, **changes}
    if merged == current:
        return current

    try:
        _write_document(_config_path(name), merged)
    except OSError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=error_payload("write_failed", str(exc)),
        ) from exc
    LOGGER.info("Updated %s: %s", name, ", ".join(sorted(changes)))
    return merged


@router.get("/configs/settings")
def get_settings() -> Dict[str, Any]:
    return _read_document(SETTINGS_FILE)


@router.put("/configs/settings")
def put_settings(body: SettingsUpdate) -> Dict[str, Any]:
    return _merge_document(SETTINGS_FILE, body)


@router.get("/configs/thresholds")
def get_thresholds() -> Dict[str, Any]:
    return _read_document(THRESHOLDS_FILE)


@router.put("/configs/thresholds")
def put_thresholds(body: ThresholdsUpdate) -> Dict[str, Any]:
    return _merge_document(THRESHOLDS_FILE, body)
