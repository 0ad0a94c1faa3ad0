r"""backend\app\models\schemas.py

Pydantic models used throughout the API.

These models serve as both request payload validators and response
serialisation schemas.  Using typed models ensures that clients and
servers agree on the structure of the data being exchanged, and that the
store, the forecaster and the reorder rule engine exchange the same records.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

Urgency = Literal["critical", "high", "medium", "low"]
SuggestionStatus = Literal["pending", "approved", "rejected"]

URGENCY_RANK: dict[str, int] = {"critical": 4, "high": 3, "medium": 2, "low": 1}
FORECAST_ALGORITHM = "linear_regression_seasonal"


class Product(BaseModel):
    """Product attributes owned by the external catalogue."""

    id: str
    owner_id: str
    name: str = ""
    sku: Optional[str] = None
    current_stock: int = Field(0, ge=0)
    reorder_point: float = 0
    min_stock_level: float = 0
    max_stock_level: float = 0
    reorder_quantity: int = 0
    unit_cost: float = Field(0.0, ge=0)
    selling_price: float = Field(0.0, ge=0)
    lead_time_days: int = Field(0, ge=0)
    is_active: bool = True


class SaleEvent(BaseModel):
    """A single recorded sale; read-only input to forecasting."""

    product_id: str
    quantity: int = Field(..., gt=0)
    unit_price: float = 0.0
    sale_date: datetime
    channel: str = "in_store"

    @field_validator("sale_date")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class DailySalesPoint(BaseModel):
    """Total quantity sold on one calendar day (UTC midnight)."""

    date: datetime
    quantity: int


class ForecastStats(BaseModel):
    """Output of the demand forecaster for one product."""

    predicted_demand: float = Field(..., ge=0)
    confidence: float = Field(..., ge=0.1, le=0.9)
    seasonal_factor: float = Field(..., ge=0)
    trend_factor: float = Field(..., description="Regression slope per sales day")


class Forecast(ForecastStats):
    """A persisted next-day demand forecast."""

    id: Optional[str] = None
    product_id: str
    algorithm: str = FORECAST_ALGORITHM
    forecast_date: datetime
    created_at: datetime
    created_by: str


class ReorderDecision(BaseModel):
    """Result of evaluating the reorder rule ladder for one product."""

    should_reorder: bool
    suggested_quantity: int = Field(0, ge=0)
    urgency: Urgency = "low"
    reason: str = ""
    estimated_stockout_date: Optional[datetime] = None
    cost_impact: float = Field(0.0, ge=0)
    daily_demand: float
    days_until_stockout: Optional[float] = Field(
        None, description="None when demand is zero and stock never runs out"
    )


class ReorderSuggestion(BaseModel):
    """A reorder suggestion awaiting (or past) a human decision."""

    id: str
    product_id: str
    suggested_quantity: int = Field(..., ge=0)
    urgency: Urgency
    reason: str
    estimated_stockout_date: Optional[datetime] = None
    cost_impact: float = Field(..., ge=0)
    status: SuggestionStatus = "pending"
    created_at: datetime
    updated_at: datetime
    created_by: str
    updated_by: str
    notes: Optional[str] = None


class StockMovement(BaseModel):
    """Audit record for a change to a product's on-hand stock."""

    id: str
    product_id: str
    type: str
    quantity: int
    notes: Optional[str] = None
    reference: Optional[str] = None
    movement_date: datetime
    created_by: str


class BatchSummary(BaseModel):
    """Aggregate outcome of a batch run over the caller's products."""

    success: bool = True
    message: str
    success_count: int = 0
    error_count: int = 0
    skipped_count: int = Field(
        0, description="Products skipped without error (no data / no reorder needed)"
    )
    created_count: Optional[int] = None
    updated_count: Optional[int] = None


class StatusUpdateRequest(BaseModel):
    """Payload for approving or rejecting a reorder suggestion."""

    status: Literal["approved", "rejected"]
    notes: Optional[str] = Field(None, max_length=1000)


class StatusUpdateResult(BaseModel):
    """Outcome of a suggestion status transition."""

    suggestion: ReorderSuggestion
    stock_applied: bool = False
    new_stock: Optional[int] = None
    warnings: List[str] = Field(default_factory=list)
