from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from pathlib import Path
import sys
import threading


ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

import pytest

from backend.app.core.context import CallerContext
from backend.app.core.errors import (
    AuthorizationError,
    InvalidTransitionError,
    SuggestionNotFoundError,
)
from backend.app.models.schemas import Product
from backend.app.services.reorder_service import ReorderService
from backend.app.services.store import InMemoryStore


UTC = timezone.utc
START = datetime(2026, 10, 19, 15, 0, tzinfo=UTC)
CALLER = CallerContext(user_id="u1")


class _Clock:
    """Advances one minute per call so timestamps are distinguishable."""

    def __init__(self, start: datetime = START) -> None:
        self.current = start

    def __call__(self) -> datetime:
        value = self.current
        self.current = value + timedelta(minutes=1)
        return value


def _below_reorder_point(product_id: str = "p-1", owner: str = "u1", **overrides) -> Product:
    fields = dict(
        id=product_id,
        owner_id=owner,
        name=product_id,
        current_stock=12,
        reorder_point=25,
        max_stock_level=60,
        reorder_quantity=50,
        unit_cost=9.5,
        lead_time_days=5,
    )
    fields.update(overrides)
    return Product(**fields)


def _service(store: InMemoryStore, tmp_path: Path) -> ReorderService:
    return ReorderService(store, config_root=str(tmp_path), clock=_Clock())


def test_rerun_updates_the_pending_suggestion_in_place(tmp_path: Path) -> None:
    store = InMemoryStore()
    store.add_product(_below_reorder_point())
    service = _service(store, tmp_path)

    first = service.generate_suggestions(CALLER)
    original = store.get_pending_suggestion("p-1")
    second = service.generate_suggestions(CALLER)
    refreshed = store.get_pending_suggestion("p-1")

    assert (first.created_count, first.updated_count) == (1, 0)
    assert (second.created_count, second.updated_count) == (0, 1)
    assert refreshed.id == original.id
    assert refreshed.created_at == original.created_at
    assert refreshed.updated_at > original.updated_at
    assert len(service.list_suggestions(CALLER)) == 1


def test_new_pending_suggestion_after_decision(tmp_path: Path) -> None:
    store = InMemoryStore()
    store.add_product(_below_reorder_point(max_stock_level=200))
    service = _service(store, tmp_path)

    service.generate_suggestions(CALLER)
    first = store.get_pending_suggestion("p-1")
    service.update_status(CALLER, first.id, "rejected", "supplier closed")
    service.generate_suggestions(CALLER)

    suggestions = service.list_suggestions(CALLER)
    assert len(suggestions) == 2
    assert len(service.list_suggestions(CALLER, status="pending")) == 1
    assert store.get_suggestion(first.id).status == "rejected"


def test_approval_adds_stock_and_records_movement(tmp_path: Path) -> None:
    store = InMemoryStore()
    store.add_product(_below_reorder_point())
    service = _service(store, tmp_path)
    service.generate_suggestions(CALLER)
    pending = store.get_pending_suggestion("p-1")
    assert pending.suggested_quantity == 50

    result = service.update_status(CALLER, pending.id, "approved")

    assert result.stock_applied is True
    assert result.new_stock == 62
    assert result.suggestion.status == "approved"
    assert result.suggestion.updated_by == "u1"
    assert store.get_product("p-1").current_stock == 62

    movements = service.list_stock_movements(CALLER)
    assert len(movements) == 1
    movement = movements[0]
    assert movement.type == "reorder_approved"
    assert movement.quantity == 50
    assert movement.reference == pending.id
    assert movement.created_by == "u1"


def test_rejection_leaves_stock_untouched(tmp_path: Path) -> None:
    store = InMemoryStore()
    store.add_product(_below_reorder_point())
    service = _service(store, tmp_path)
    service.generate_suggestions(CALLER)
    pending = store.get_pending_suggestion("p-1")

    result = service.update_status(CALLER, pending.id, "rejected", "too expensive")

    assert result.stock_applied is False
    assert result.suggestion.notes == "too expensive"
    assert store.get_product("p-1").current_stock == 12
    assert service.list_stock_movements(CALLER) == []


def test_decided_suggestion_cannot_transition_again(tmp_path: Path) -> None:
    store = InMemoryStore()
    store.add_product(_below_reorder_point())
    service = _service(store, tmp_path)
    service.generate_suggestions(CALLER)
    pending = store.get_pending_suggestion("p-1")
    service.update_status(CALLER, pending.id, "approved")

    with pytest.raises(InvalidTransitionError):
        service.update_status(CALLER, pending.id, "rejected")
    assert store.get_product("p-1").current_stock == 62


def test_foreign_suggestion_is_rejected_without_side_effects(tmp_path: Path) -> None:
    store = InMemoryStore()
    store.add_product(_below_reorder_point(owner="u2"))
    service = _service(store, tmp_path)
    service.generate_suggestions(CallerContext(user_id="u2"))
    pending = store.get_pending_suggestion("p-1")

    with pytest.raises(AuthorizationError):
        service.update_status(CALLER, pending.id, "approved")

    assert store.get_suggestion(pending.id).status == "pending"
    assert store.get_product("p-1").current_stock == 12
    assert store.list_stock_movements(["p-1"]) == []


def test_unknown_suggestion(tmp_path: Path) -> None:
    service = _service(InMemoryStore(), tmp_path)

    with pytest.raises(SuggestionNotFoundError):
        service.update_status(CALLER, "nope", "approved")


def test_unsupported_target_status(tmp_path: Path) -> None:
    service = _service(InMemoryStore(), tmp_path)

    with pytest.raises(InvalidTransitionError):
        service.update_status(CALLER, "any", "pending")


def test_zero_quantity_approval_only_warns(tmp_path: Path) -> None:
    store = InMemoryStore()
    store.add_product(_below_reorder_point())
    suggestion, _ = store.upsert_reorder_suggestion(
        "p-1",
        {"suggested_quantity": 0, "urgency": "low", "reason": "manual", "cost_impact": 0.0},
        "u1",
        START,
    )
    service = _service(store, tmp_path)

    result = service.update_status(CALLER, suggestion.id, "approved")

    assert result.suggestion.status == "approved"
    assert result.stock_applied is False
    assert result.warnings and "non-positive quantity" in result.warnings[0]
    assert store.get_product("p-1").current_stock == 12


def test_healthy_products_are_counted_as_no_action(tmp_path: Path) -> None:
    store = InMemoryStore()
    store.add_product(_below_reorder_point("p-ok", current_stock=500, max_stock_level=600))
    store.add_product(_below_reorder_point("p-low"))

    summary = _service(store, tmp_path).generate_suggestions(CALLER)

    assert summary.created_count == 1
    assert summary.skipped_count == 1
    assert store.get_pending_suggestion("p-ok") is None


class _BrokenForecastStore(InMemoryStore):
    def get_latest_forecast(self, product_id):
        if product_id == "p-bad":
            raise RuntimeError("forecast lookup failed")
        return super().get_latest_forecast(product_id)


def test_one_failing_product_does_not_stop_the_batch(tmp_path: Path) -> None:
    store = _BrokenForecastStore()
    store.add_product(_below_reorder_point("p-bad"))
    store.add_product(_below_reorder_point("p-good"))

    summary = _service(store, tmp_path).generate_suggestions(CALLER)

    assert summary.error_count == 1
    assert summary.created_count == 1
    assert summary.success is True
    assert store.get_pending_suggestion("p-good") is not None


def test_listing_orders_by_urgency_then_newest(tmp_path: Path) -> None:
    store = InMemoryStore()
    store.add_product(_below_reorder_point("p-medium-old"))
    store.add_product(_below_reorder_point("p-critical", current_stock=0))
    store.add_product(_below_reorder_point("p-medium-new"))
    store.add_product(_below_reorder_point("p-other", owner="u2", current_stock=0))
    service = _service(store, tmp_path)

    for pid in ("p-medium-old", "p-critical", "p-medium-new"):
        service.suggest_for_product(store.get_product(pid), CALLER, service._clock())

    ordered = [s.product_id for s in service.list_suggestions(CALLER)]
    assert ordered == ["p-critical", "p-medium-new", "p-medium-old"]

    critical_only = service.list_suggestions(CALLER, urgency="critical")
    assert [s.product_id for s in critical_only] == ["p-critical"]
    assert len(service.list_suggestions(CALLER, limit=2)) == 2


class _LockstepStore(InMemoryStore):
    """Holds ``get_product`` callers until two have arrived, while armed."""

    def __init__(self) -> None:
        super().__init__()
        self.armed = False
        self.barrier = threading.Barrier(2, timeout=5)

    def get_product(self, product_id):
        if self.armed:
            self.barrier.wait()
        return super().get_product(product_id)


def test_simultaneous_approvals_add_stock_once(tmp_path: Path) -> None:
    store = _LockstepStore()
    store.add_product(_below_reorder_point())
    service = _service(store, tmp_path)
    service.generate_suggestions(CALLER)
    pending = store.get_pending_suggestion("p-1")

    def _approve(_: int) -> str:
        try:
            service.update_status(CALLER, pending.id, "approved")
        except InvalidTransitionError:
            return "conflict"
        return "approved"

    store.armed = True
    with ThreadPoolExecutor(max_workers=2) as pool:
        outcomes = sorted(pool.map(_approve, range(2)))
    store.armed = False

    assert outcomes == ["approved", "conflict"]
    assert store.get_product("p-1").current_stock == 62
    assert len(service.list_stock_movements(CALLER)) == 1
