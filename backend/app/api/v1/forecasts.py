"""Routes for demand forecasting."""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...core.context import CallerContext
from ...core.errors import AuthorizationError, ProductNotFoundError
from ...models import schemas
from ...services.forecasting_service import ForecastingService
from ..deps import error_payload, get_caller, get_forecasting_service

LOGGER = logging.getLogger(__name__)

router = APIRouter()

MAX_LIST_LIMIT = 1000


@router.post("/forecasts/generate", response_model=schemas.BatchSummary)
def generate_forecasts(
    caller: CallerContext = Depends(get_caller),
    service: ForecastingService = Depends(get_forecasting_service),
) -> schemas.BatchSummary:
    """Forecast next-day demand for each of the caller's active products."""

    LOGGER.info("Forecast generation requested by user_id=%s", caller.user_id)
    summary = service.generate_forecasts(caller)
    LOGGER.info("Forecast generation finished for user_id=%s: %s", caller.user_id, summary.message)
    return summary


@router.get("/forecasts", response_model=List[schemas.Forecast])
def list_forecasts(
    product_id: Optional[str] = Query(None, description="Restrict to one product"),
    limit: int = Query(50, ge=1, le=MAX_LIST_LIMIT),
    caller: CallerContext = Depends(get_caller),
    service: ForecastingService = Depends(get_forecasting_service),
) -> List[schemas.Forecast]:
    """Return the caller's forecasts, most recent forecast date first."""

    return service.list_forecasts(caller, product_id=product_id, limit=limit)


@router.get("/forecasts/{product_id}/latest", response_model=schemas.Forecast)
def get_latest_forecast(
    product_id: str,
    caller: CallerContext = Depends(get_caller),
    service: ForecastingService = Depends(get_forecasting_service),
) -> schemas.Forecast:
    """Return the latest forecast for one of the caller's products."""

    try:
        forecast = service.latest_forecast(caller, product_id)
    except ProductNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=error_payload("product_not_found", str(exc)),
        ) from exc
    except AuthorizationError as exc:
        LOGGER.warning("User %s denied forecast for product %s", caller.user_id, product_id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=error_payload("forbidden", str(exc)),
        ) from exc

    if forecast is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=error_payload(
                "forecast_not_found",
                f"No forecast has been generated for product '{product_id}' yet.",
            ),
        )
    return forecast
