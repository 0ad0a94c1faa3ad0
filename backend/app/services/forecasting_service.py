r"""backend\app\services\forecasting_service.py

Next-day demand forecasting for the caller's active products.

The model is deliberately small: an ordinary least-squares trend fitted over
the sequence of sales days (gaps between days are invisible to the fit),
scaled by a day-of-week seasonal factor.  Confidence is derived from the
coefficient of variation of the observed daily quantities and clamped to
``[0.1, 0.9]``.

Products with fewer than seven distinct sales days in the trailing window are
skipped rather than forecast.
"""

from __future__ import annotations

import logging
import os
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..core.config import load_rules, load_yaml
from ..core.context import CallerContext
from ..core.errors import AuthorizationError, InsufficientDataError, ProductNotFoundError
from ..core.observability import record_pipeline_item
from ..models.schemas import (
    FORECAST_ALGORITHM,
    BatchSummary,
    DailySalesPoint,
    Forecast,
    ForecastStats,
    Product,
)
from .sales_history import load_daily_sales
from .store import InventoryStore

LOGGER = logging.getLogger(__name__)

MIN_HISTORY_POINTS = 7
CONFIDENCE_FLOOR = 0.1
CONFIDENCE_CEILING = 0.9


# ---------------------------------------------------------------------------
# Helper utilities (kept top-level for straightforward unit testing)


def fit_trend(quantities: Sequence[float]) -> Tuple[float, float]:
    """Return ``(slope, intercept)`` of the least-squares line over ``x = 0..n-1``.

    A zero denominator (fewer than two points) yields a flat line through the
    mean.
    """

    y = np.asarray(quantities, dtype=float)
    n = y.size
    if n == 0:
        raise ValueError("quantities must contain at least one observation")

    x = np.arange(n, dtype=float)
    sum_x = float(x.sum())
    sum_y = float(y.sum())
    sum_xy = float((x * y).sum())
    sum_xx = float((x * x).sum())

    denominator = n * sum_xx - sum_x * sum_x
    slope = (n * sum_xy - sum_x * sum_y) / denominator if denominator != 0 else 0.0
    intercept = (sum_y - slope * sum_x) / n
    return slope, intercept


def weekday_buckets(points: Sequence[DailySalesPoint]) -> Dict[int, List[int]]:
    """Partition observed quantities by weekday (Monday=0 .. Sunday=6)."""

    buckets: Dict[int, List[int]] = defaultdict(list)
    for point in points:
        buckets[point.date.weekday()].append(point.quantity)
    return buckets


def seasonal_factor(points: Sequence[DailySalesPoint], mean: float) -> float:
    """Ratio of the next day's weekday average to the overall mean.

    Returns ``1.0`` when that weekday has no observations or the mean is zero.
    """

    if not points or mean <= 0:
        return 1.0
    target_weekday = (points[-1].date + timedelta(days=1)).weekday()
    observations = weekday_buckets(points).get(target_weekday)
    if not observations:
        return 1.0
    return float(np.mean(observations)) / mean


def confidence_from_variation(quantities: Sequence[float]) -> float:
    """Map the coefficient of variation to a confidence score in ``[0.1, 0.9]``."""

    y = np.asarray(quantities, dtype=float)
    mean = float(y.mean())
    # np.std defaults to the population standard deviation (ddof=0)
    cv = float(np.std(y)) / mean if mean > 0 else 1.0
    return float(min(max(1.0 - cv, CONFIDENCE_FLOOR), CONFIDENCE_CEILING))


def compute_forecast(
    points: Sequence[DailySalesPoint],
    min_points: int = MIN_HISTORY_POINTS,
) -> ForecastStats:
    """Predict next-day demand from an ascending, sparse daily sales series."""

    required = max(int(min_points), MIN_HISTORY_POINTS)
    if len(points) < required:
        raise InsufficientDataError(len(points), required)

    quantities = [float(point.quantity) for point in points]
    mean = float(np.mean(quantities))

    slope, intercept = fit_trend(quantities)
    raw_prediction = intercept + slope * len(quantities)

    factor = seasonal_factor(points, mean)
    predicted = max(0.0, raw_prediction * factor)

    return ForecastStats(
        predicted_demand=round(predicted, 2),
        confidence=confidence_from_variation(quantities),
        seasonal_factor=factor,
        trend_factor=slope,
    )


def tomorrow_local_midnight(now: datetime) -> datetime:
    """Return local midnight of the calendar day after ``now``.

    The UTC offset is resolved for tomorrow's date, so a DST change between
    today and tomorrow is honoured.
    """

    tomorrow = now.astimezone().date() + timedelta(days=1)
    return datetime(tomorrow.year, tomorrow.month, tomorrow.day).astimezone()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _plural(count: int, noun: str = "product") -> str:
    return f"{count} {noun}" + ("" if count == 1 else "s")


def summarize_forecast_run(success: int, errors: int, skipped: int, min_points: int) -> str:
    """Human-readable summary of a forecast batch."""

    skipped_note = (
        f" {_plural(skipped)} skipped for having fewer than {min_points} days of sales history."
        if skipped
        else ""
    )
    if success == 0 and errors == 0 and skipped == 0:
        return "No active products to forecast."
    if success == 0 and errors == 0:
        return (
            f"No forecasts generated: {_plural(skipped)} lack the {min_points} days "
            "of sales history required."
        )
    if errors == 0:
        return f"Forecasts generated for {_plural(success)}." + skipped_note
    if success == 0:
        return f"Forecast generation failed for {_plural(errors)}." + skipped_note
    return (
        f"Forecasts generated for {_plural(success)}; {_plural(errors)} failed."
        + skipped_note
    )


# ---------------------------------------------------------------------------
# Core service implementation


class ForecastingService:
    """Generate and persist next-day forecasts for the caller's products."""

    def __init__(
        self,
        store: InventoryStore,
        config_root: str = "configs",
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        rules = load_rules(config_root)
        thresholds = load_yaml(os.path.join(config_root, "thresholds.yaml"))

        self.store = store
        self.window_days = int(rules.get("history_window_days", 90))
        if self.window_days <= 0:
            raise ValueError("history_window_days must be a positive integer")
        self.min_points = max(int(rules.get("min_history_points", MIN_HISTORY_POINTS)), MIN_HISTORY_POINTS)
        self.low_confidence_threshold = float(thresholds.get("low_confidence_threshold", 0.3))
        self._clock = clock or _utcnow

    # ------------------------------------------------------------------
    def forecast_product(self, product: Product, caller: CallerContext, now: datetime) -> Forecast:
        """Forecast and persist one product; raises ``InsufficientDataError``."""

        history = load_daily_sales(self.store, product.id, now, self.window_days)
        if len(history) < self.min_points:
            raise InsufficientDataError(len(history), self.min_points)

        stats = compute_forecast(history, self.min_points)
        forecast = Forecast(
            product_id=product.id,
            algorithm=FORECAST_ALGORITHM,
            forecast_date=tomorrow_local_midnight(now),
            created_at=now,
            created_by=caller.user_id,
            **stats.model_dump(),
        )
        forecast_id = self.store.save_forecast(forecast)

        if stats.confidence < self.low_confidence_threshold:
            LOGGER.info(
                "Low-confidence forecast for product %s: confidence=%.2f over %d sales days",
                product.id,
                stats.confidence,
                len(history),
            )
        LOGGER.info(
            "Forecast for %s: demand=%.2f confidence=%.2f seasonal=%.3f trend=%.3f",
            product.id,
            stats.predicted_demand,
            stats.confidence,
            stats.seasonal_factor,
            stats.trend_factor,
        )
        return forecast.model_copy(update={"id": forecast_id})

    # ------------------------------------------------------------------
    def generate_forecasts(self, caller: CallerContext) -> BatchSummary:
        """Forecast every active product owned by ``caller``.

        A failure on one product is logged and counted; the batch continues.
        """

        now = self._clock()
        products = self.store.list_active_products(caller.user_id)
        LOGGER.info("Generating forecasts for %d products of user %s", len(products), caller.user_id)

        success_count = 0
        error_count = 0
        skipped_count = 0

        for product in products:
            try:
                self.forecast_product(product, caller, now)
            except InsufficientDataError as exc:
                LOGGER.info("Skipping forecast for product %s: %s", product.id, exc)
                skipped_count += 1
                record_pipeline_item("forecast", "skipped")
            except Exception:
                LOGGER.exception("Error forecasting for product %s", product.id)
                error_count += 1
                record_pipeline_item("forecast", "error")
            else:
                success_count += 1
                record_pipeline_item("forecast", "success")

        return BatchSummary(
            success=error_count == 0 or success_count > 0,
            message=summarize_forecast_run(success_count, error_count, skipped_count, self.min_points),
            success_count=success_count,
            error_count=error_count,
            skipped_count=skipped_count,
        )

    # ------------------------------------------------------------------
    def list_forecasts(
        self,
        caller: CallerContext,
        product_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Forecast]:
        """Return the caller's forecasts, most recent forecast date first."""

        owned = {p.id for p in self.store.list_products(caller.user_id)}
        if product_id is not None:
            owned &= {product_id}

        forecasts = self.store.list_forecasts(owned)
        forecasts.sort(key=lambda f: (f.forecast_date, f.created_at), reverse=True)
        if limit:
            forecasts = forecasts[:limit]
        return forecasts

    # ------------------------------------------------------------------
    def latest_forecast(self, caller: CallerContext, product_id: str) -> Optional[Forecast]:
        """Return the most recent forecast for one of the caller's products."""

        product = self.store.get_product(product_id)
        if product is None:
            raise ProductNotFoundError(f"Product '{product_id}' not found")
        if product.owner_id != caller.user_id:
            raise AuthorizationError(f"Product '{product_id}' does not belong to the caller")
        return self.store.get_latest_forecast(product_id)
