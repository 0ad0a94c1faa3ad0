r"""backend\app\services\sales_history.py

Summarise raw sale events into a sparse daily demand series."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Iterable, List

import pandas as pd

from ..models.schemas import DailySalesPoint, SaleEvent
from .store import InventoryStore

LOGGER = logging.getLogger(__name__)

DEFAULT_WINDOW_DAYS = 90


def aggregate_daily_sales(sales: Iterable[SaleEvent]) -> List[DailySalesPoint]:
    """Group sale events by UTC calendar date and sum the quantities.

    Days without sales are absent from the result rather than zero-valued.
    The output is sorted by date and contains at most one entry per day.
    Naive timestamps are interpreted as UTC.
    """

    frame = pd.DataFrame(
        [{"sale_date": sale.sale_date, "quantity": sale.quantity} for sale in sales],
        columns=["sale_date", "quantity"],
    )
    if frame.empty:
        return []

    frame["day"] = pd.to_datetime(frame["sale_date"], utc=True).dt.normalize()
    daily = frame.groupby("day", sort=True)["quantity"].sum()

    return [
        DailySalesPoint(date=day.to_pydatetime(), quantity=int(quantity))
        for day, quantity in daily.items()
    ]


def load_daily_sales(
    store: InventoryStore,
    product_id: str,
    now: datetime,
    window_days: int = DEFAULT_WINDOW_DAYS,
) -> List[DailySalesPoint]:
    """Return the daily series for ``product_id`` over the trailing window."""

    if window_days <= 0:
        raise ValueError("window_days must be a positive integer")

    since = now - timedelta(days=window_days)
    sales = store.get_sales_history(product_id, since)
    series = aggregate_daily_sales(sales)
    LOGGER.debug(
        "Loaded %d sales (%d sales days) for product %s since %s",
        len(sales),
        len(series),
        product_id,
        since.isoformat(),
    )
    return series
