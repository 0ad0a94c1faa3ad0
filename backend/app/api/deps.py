r"""backend\app\api\deps.py

Shared FastAPI dependencies: the store, the caller identity and the services.
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from ..core.config import get_settings
from ..core.context import CallerContext
from ..services.forecasting_service import ForecastingService
from ..services.reorder_service import ReorderService
from ..services.store import InMemoryStore, InventoryStore

LOGGER = logging.getLogger(__name__)


def error_payload(code: str, message: str) -> dict[str, str]:
    """Return a standardised error payload."""

    return {"error": code, "message": message}


@lru_cache(maxsize=None)
def get_store() -> InventoryStore:
    """Return the process-wide store, seeded from ``DATA_DIR`` when present."""

    data_dir = os.getenv("DATA_DIR", get_settings().data_dir)
    return InMemoryStore.from_csv(data_dir)


def get_config_root() -> str:
    return os.getenv("CONFIG_DIR", get_settings().config_dir)


def get_caller(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_user_name: Optional[str] = Header(None, alias="X-User-Name"),
) -> CallerContext:
    """Resolve the caller from the identity headers set by the auth proxy."""

    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=error_payload("not_authenticated", "X-User-Id header is required."),
        )
    return CallerContext(user_id=user_id, display_name=x_user_name)


def get_forecasting_service(store: InventoryStore = Depends(get_store)) -> ForecastingService:
    return ForecastingService(store, config_root=get_config_root())


def get_reorder_service(store: InventoryStore = Depends(get_store)) -> ReorderService:
    return ReorderService(store, config_root=get_config_root())
