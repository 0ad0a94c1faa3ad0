"""Generate reorder suggestions from stock levels and the latest demand forecast."""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..core.config import load_rules
from ..core.context import CallerContext
from ..core.errors import (
    AuthorizationError,
    InvalidTransitionError,
    SuggestionNotFoundError,
)
from ..core.observability import record_pipeline_item
from ..models.schemas import (
    URGENCY_RANK,
    BatchSummary,
    Forecast,
    Product,
    ReorderDecision,
    ReorderSuggestion,
    StatusUpdateResult,
    StockMovement,
)
from .store import InventoryStore

LOGGER = logging.getLogger(__name__)

COST_MODELS = ("order_value", "carrying_cost")
REORDER_MOVEMENT_TYPE = "reorder_approved"


# ---------------------------------------------------------------------------
def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves rounded up."""

    return int(math.floor(value + 0.5))


def _format_number(value: float) -> str:
    return f"{value:g}"


def _stockout_date(now: datetime, days_until_stockout: float) -> Optional[datetime]:
    if not math.isfinite(days_until_stockout):
        return None
    try:
        return now + timedelta(days=days_until_stockout)
    except OverflowError:
        return None


def calculate_cost_impact(
    suggested_quantity: int,
    unit_cost: float,
    lead_time_days: float,
    cost_model: str = "order_value",
    carrying_cost_rate: float = 0.25,
) -> float:
    """Return the financial exposure of a suggestion, rounded to cents.

    ``order_value`` prices the order itself.  ``carrying_cost`` estimates the
    cost of holding the ordered units over the lead time at an annual rate.
    """

    if cost_model == "carrying_cost":
        cost = unit_cost * suggested_quantity * carrying_cost_rate / 365.0 * lead_time_days
    else:
        cost = suggested_quantity * unit_cost
    return round(max(cost, 0.0), 2)


def evaluate_reorder(
    product: Product,
    forecast: Optional[Forecast],
    now: datetime,
    *,
    safety_stock_ratio: float = 0.2,
    critical_stock_floor: float = 5,
    default_daily_demand: float = 1.0,
    stockout_buffer_days: float = 2,
    cost_model: str = "order_value",
    carrying_cost_rate: float = 0.25,
) -> ReorderDecision:
    """Walk the reorder rule ladder for one product; the first match wins.

    1. out of stock                          -> critical
    2. below the absolute low-stock floor    -> critical
    3. at or below the reorder point         -> high/medium
    4. projected stockout within lead time + buffer -> medium
    5. otherwise no reorder
    """

    daily_demand = float(default_daily_demand)
    if forecast is not None and forecast.predicted_demand > 0:
        daily_demand = float(forecast.predicted_demand)

    lead_time = float(max(product.lead_time_days, 0))
    current_stock = product.current_stock
    lead_time_demand = daily_demand * lead_time
    safety_stock = safety_stock_ratio * lead_time_demand
    cover_quantity = lead_time_demand + safety_stock
    days_until_stockout = current_stock / daily_demand if daily_demand > 0 else math.inf

    if current_stock <= 0:
        urgency = "critical"
        reason = "Out of stock"
        quantity = max(product.reorder_quantity, cover_quantity)
        stockout_date: Optional[datetime] = now
    elif current_stock < critical_stock_floor:
        urgency = "critical"
        reason = f"Critically low stock (below {_format_number(critical_stock_floor)} units)"
        quantity = max(
            product.reorder_quantity,
            product.max_stock_level - current_stock,
            cover_quantity,
        )
        stockout_date = _stockout_date(now, days_until_stockout)
    elif current_stock <= product.reorder_point:
        urgency = "high" if days_until_stockout <= lead_time else "medium"
        reason = f"Stock below reorder point ({_format_number(product.reorder_point)})"
        quantity = max(product.reorder_quantity, product.max_stock_level - current_stock)
        stockout_date = _stockout_date(now, days_until_stockout)
    elif math.isfinite(days_until_stockout) and days_until_stockout <= lead_time + stockout_buffer_days:
        urgency = "medium"
        reason = (
            f"Projected stockout within lead time + {_format_number(stockout_buffer_days)} days "
            f"({round_half_up(days_until_stockout)} days)"
        )
        quantity = cover_quantity
        stockout_date = _stockout_date(now, days_until_stockout)
    else:
        return ReorderDecision(
            should_reorder=False,
            daily_demand=daily_demand,
            days_until_stockout=days_until_stockout if math.isfinite(days_until_stockout) else None,
        )

    suggested_quantity = max(round_half_up(quantity), 0)
    return ReorderDecision(
        should_reorder=True,
        suggested_quantity=suggested_quantity,
        urgency=urgency,
        reason=reason,
        estimated_stockout_date=stockout_date,
        cost_impact=calculate_cost_impact(
            suggested_quantity,
            product.unit_cost,
            lead_time,
            cost_model=cost_model,
            carrying_cost_rate=carrying_cost_rate,
        ),
        daily_demand=daily_demand,
        days_until_stockout=days_until_stockout if math.isfinite(days_until_stockout) else None,
    )


def summarize_reorder_run(created: int, updated: int, no_action: int, errors: int) -> str:
    """Human-readable summary of a suggestion batch."""

    touched = created + updated
    if touched == 0 and errors == 0:
        if no_action == 0:
            return "No active products to evaluate."
        return f"No reorders needed for {no_action} product(s)."
    counts = f"{created} created, {updated} updated"
    if errors == 0:
        return f"Reorder suggestions generated: {counts}."
    if touched == 0:
        return f"Reorder suggestion generation failed for {errors} product(s)."
    return f"Reorder suggestions generated: {counts}; {errors} product(s) failed."


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
class ReorderService:
    """Rule-based reorder engine and pending-suggestion workflow."""

    def __init__(
        self,
        store: InventoryStore,
        config_root: str = "configs",
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        rules = load_rules(config_root)

        self.store = store
        self.safety_stock_ratio = float(rules["safety_stock_ratio"])
        self.critical_stock_floor = float(rules["critical_stock_floor"])
        self.default_daily_demand = float(rules["default_daily_demand"])
        self.stockout_buffer_days = float(rules["stockout_buffer_days"])
        self.carrying_cost_rate = float(rules["carrying_cost_rate"])
        self.cost_model = str(rules["cost_model"])
        if self.cost_model not in COST_MODELS:
            raise ValueError(
                f"cost_model must be one of {', '.join(COST_MODELS)}; got '{self.cost_model}'"
            )
        self._clock = clock or _utcnow

    # ------------------------------------------------------------------
    def evaluate(
        self, product: Product, forecast: Optional[Forecast], now: datetime
    ) -> ReorderDecision:
        return evaluate_reorder(
            product,
            forecast,
            now,
            safety_stock_ratio=self.safety_stock_ratio,
            critical_stock_floor=self.critical_stock_floor,
            default_daily_demand=self.default_daily_demand,
            stockout_buffer_days=self.stockout_buffer_days,
            cost_model=self.cost_model,
            carrying_cost_rate=self.carrying_cost_rate,
        )

    # ------------------------------------------------------------------
    def suggest_for_product(
        self, product: Product, caller: CallerContext, now: datetime
    ) -> Optional[Tuple[ReorderSuggestion, bool]]:
        """Upsert the pending suggestion for ``product`` when a reorder is due.

        Returns ``None`` when no reorder is needed, otherwise the stored
        suggestion and whether it was newly created.
        """

        forecast = self.store.get_latest_forecast(product.id)
        if forecast is None:
            LOGGER.debug("No forecast for product %s; assuming default daily demand", product.id)

        decision = self.evaluate(product, forecast, now)
        if not decision.should_reorder:
            return None

        fields: Dict[str, Any] = {
            "suggested_quantity": decision.suggested_quantity,
            "urgency": decision.urgency,
            "reason": decision.reason,
            "estimated_stockout_date": decision.estimated_stockout_date,
            "cost_impact": decision.cost_impact,
        }
        suggestion, created = self.store.upsert_reorder_suggestion(
            product.id, fields, caller.user_id, now
        )
        LOGGER.info(
            "Reorder suggestion %s for %s: qty=%d urgency=%s cost=%.2f (%s)",
            "created" if created else "updated",
            product.id,
            decision.suggested_quantity,
            decision.urgency,
            decision.cost_impact,
            decision.reason,
        )
        return suggestion, created

    # ------------------------------------------------------------------
    def generate_suggestions(self, caller: CallerContext) -> BatchSummary:
        """Evaluate every active product owned by ``caller``.

        A failure on one product is logged and counted; the batch continues.
        """

        now = self._clock()
        products = self.store.list_active_products(caller.user_id)
        LOGGER.info(
            "Generating reorder suggestions for %d products of user %s",
            len(products),
            caller.user_id,
        )

        created_count = 0
        updated_count = 0
        no_action_count = 0
        error_count = 0

        for product in products:
            try:
                outcome = self.suggest_for_product(product, caller, now)
            except Exception:
                LOGGER.exception("Error generating reorder suggestion for product %s", product.id)
                error_count += 1
                record_pipeline_item("reorder", "error")
                continue

            if outcome is None:
                no_action_count += 1
                record_pipeline_item("reorder", "no_action")
            elif outcome[1]:
                created_count += 1
                record_pipeline_item("reorder", "created")
            else:
                updated_count += 1
                record_pipeline_item("reorder", "updated")

        success_count = created_count + updated_count
        return BatchSummary(
            success=error_count == 0 or success_count > 0,
            message=summarize_reorder_run(created_count, updated_count, no_action_count, error_count),
            success_count=success_count,
            error_count=error_count,
            skipped_count=no_action_count,
            created_count=created_count,
            updated_count=updated_count,
        )

    # ------------------------------------------------------------------
    def update_status(
        self,
        caller: CallerContext,
        suggestion_id: str,
        status: str,
        notes: Optional[str] = None,
    ) -> StatusUpdateResult:
        """Approve or reject a pending suggestion owned by ``caller``.

        Approval raises the product's stock by the suggested quantity and
        records a stock movement; a non-positive quantity only produces a
        warning.
        """

        if status not in ("approved", "rejected"):
            raise InvalidTransitionError(f"Unsupported target status '{status}'")

        suggestion = self.store.get_suggestion(suggestion_id)
        if suggestion is None:
            raise SuggestionNotFoundError(f"Reorder suggestion '{suggestion_id}' not found")

        product = self.store.get_product(suggestion.product_id)
        if product is None or product.owner_id != caller.user_id:
            raise AuthorizationError("Unauthorized: this suggestion doesn't belong to you")

        if suggestion.status != "pending":
            raise InvalidTransitionError(
                f"Suggestion '{suggestion_id}' is already {suggestion.status}"
            )

        # The store re-checks the pending status under its lock; a concurrent
        # decision surfaces here as InvalidTransitionError.
        now = self._clock()
        updated, new_stock = self.store.transition_pending_suggestion(
            suggestion_id,
            status,
            notes,
            caller.user_id,
            now,
            restock_movement_type=REORDER_MOVEMENT_TYPE if status == "approved" else None,
        )

        warnings: List[str] = []
        stock_applied = new_stock is not None

        if status == "approved" and not stock_applied:
            message = (
                f"Suggestion {suggestion_id} approved with non-positive quantity "
                f"({updated.suggested_quantity}); stock was not changed."
            )
            LOGGER.warning(message)
            warnings.append(message)

        LOGGER.info(
            "Suggestion %s for product %s set to %s by %s (stock_applied=%s)",
            suggestion_id,
            product.id,
            status,
            caller.user_id,
            stock_applied,
        )
        return StatusUpdateResult(
            suggestion=updated,
            stock_applied=stock_applied,
            new_stock=new_stock,
            warnings=warnings,
        )

    # ------------------------------------------------------------------
    def list_suggestions(
        self,
        caller: CallerContext,
        status: Optional[str] = None,
        urgency: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[ReorderSuggestion]:
        """Return the caller's suggestions, most urgent and newest first."""

        owned = [p.id for p in self.store.list_products(caller.user_id)]
        suggestions = self.store.list_suggestions(owned)
        if status:
            suggestions = [s for s in suggestions if s.status == status]
        if urgency:
            suggestions = [s for s in suggestions if s.urgency == urgency]

        suggestions.sort(key=lambda s: s.created_at, reverse=True)
        suggestions.sort(key=lambda s: URGENCY_RANK.get(s.urgency, 0), reverse=True)
        if limit:
            suggestions = suggestions[:limit]
        return suggestions

    # ------------------------------------------------------------------
    def list_stock_movements(
        self,
        caller: CallerContext,
        product_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[StockMovement]:
        """Return the caller's stock-movement audit log, newest first."""

        owned = {p.id for p in self.store.list_products(caller.user_id)}
        if product_id is not None:
            owned &= {product_id}
        movements = self.store.list_stock_movements(owned)
        movements.sort(key=lambda m: m.movement_date, reverse=True)
        if limit:
            movements = movements[:limit]
        return movements
