r"""backend\app\services\store.py

Storage boundary for products, sales, forecasts, reorder suggestions and
stock movements.

The services only talk to the :class:`InventoryStore` protocol.  The bundled
:class:`InMemoryStore` keeps everything in process memory behind a lock and
can be seeded from ``products.csv`` / ``sales.csv`` files.

Concurrency note: ``upsert_reorder_suggestion`` runs its read-then-patch-or-
insert under the store lock, so concurrent runs for the same product cannot
create two pending suggestions.  Stores backed by a database without such a
guarantee degrade to last-write-wins on the patched fields.
``transition_pending_suggestion`` checks the pending status, writes the new
status and applies the restock in one critical section, so a suggestion is
restocked at most once.
"""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple

import numpy as np
import pandas as pd

from ..core.errors import (
    InvalidTransitionError,
    ProductNotFoundError,
    SuggestionNotFoundError,
)
from ..models.schemas import (
    Forecast,
    Product,
    ReorderSuggestion,
    SaleEvent,
    StockMovement,
    SuggestionStatus,
)
from .io_utils import prefer_parquet, table_exists

LOGGER = logging.getLogger(__name__)

REQUIRED_PRODUCT_COLS = ["id", "owner_id", "current_stock"]
REQUIRED_SALES_COLS = ["product_id", "quantity", "sale_date"]

# Text columns pandas would otherwise infer as numbers (e.g. SKU 1001).
PRODUCT_TEXT_DTYPES = {"id": "string", "owner_id": "string", "name": "string", "sku": "string"}
SALES_TEXT_DTYPES = {"product_id": "string", "channel": "string"}


class InventoryStore(Protocol):
    """Read/write contract the forecasting and reorder services depend on."""

    def list_active_products(self, owner_id: str) -> List[Product]: ...

    def list_products(self, owner_id: str) -> List[Product]: ...

    def get_product(self, product_id: str) -> Optional[Product]: ...

    def get_sales_history(self, product_id: str, since: datetime) -> List[SaleEvent]: ...

    def get_latest_forecast(self, product_id: str) -> Optional[Forecast]: ...

    def get_pending_suggestion(self, product_id: str) -> Optional[ReorderSuggestion]: ...

    def get_suggestion(self, suggestion_id: str) -> Optional[ReorderSuggestion]: ...

    def save_forecast(self, forecast: Forecast) -> str: ...

    def upsert_reorder_suggestion(
        self,
        product_id: str,
        fields: Dict[str, Any],
        actor: str,
        now: datetime,
    ) -> Tuple[ReorderSuggestion, bool]: ...

    def transition_pending_suggestion(
        self,
        suggestion_id: str,
        status: SuggestionStatus,
        notes: Optional[str],
        actor: str,
        now: datetime,
        *,
        restock_movement_type: Optional[str] = None,
    ) -> Tuple[ReorderSuggestion, Optional[int]]: ...

    def patch_product_stock(self, product_id: str, delta: int) -> int: ...

    def record_stock_movement(
        self,
        product_id: str,
        movement_type: str,
        delta: int,
        note: Optional[str] = None,
        *,
        reference: Optional[str] = None,
        actor: str,
        now: datetime,
    ) -> str: ...

    def list_forecasts(self, product_ids: Iterable[str]) -> List[Forecast]: ...

    def list_suggestions(self, product_ids: Iterable[str]) -> List[ReorderSuggestion]: ...

    def list_stock_movements(self, product_ids: Iterable[str]) -> List[StockMovement]: ...


def _new_id() -> str:
    return uuid.uuid4().hex


class InMemoryStore:
    """Thread-safe in-process implementation of :class:`InventoryStore`."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._products: Dict[str, Product] = {}
        self._sales: Dict[str, List[SaleEvent]] = {}
        self._forecasts: Dict[str, Forecast] = {}
        self._suggestions: Dict[str, ReorderSuggestion] = {}
        self._movements: List[StockMovement] = []

    # ------------------------------------------------------------------
    # Seeding helpers (product/sale CRUD lives outside the core)

    def add_product(self, product: Product) -> Product:
        with self._lock:
            self._products[product.id] = product.model_copy()
        return product

    def add_sale(self, sale: SaleEvent) -> None:
        with self._lock:
            self._sales.setdefault(sale.product_id, []).append(sale.model_copy())

    def add_sales(self, sales: Iterable[SaleEvent]) -> None:
        for sale in sales:
            self.add_sale(sale)

    @classmethod
    def from_csv(cls, data_root: str | Path) -> "InMemoryStore":
        """Build a store seeded from ``products.csv`` and ``sales.csv``.

        Missing files leave the corresponding collection empty.
        """

        store = cls()
        root = Path(data_root)
        products_path = root / "products.csv"
        sales_path = root / "sales.csv"

        if table_exists(products_path):
            frame = prefer_parquet(products_path, dtype=PRODUCT_TEXT_DTYPES)
            for record in _records(frame):
                store.add_product(Product.model_validate(record))

        if table_exists(sales_path):
            frame = prefer_parquet(sales_path, dtype=SALES_TEXT_DTYPES)
            frame["sale_date"] = pd.to_datetime(frame["sale_date"], utc=True)
            for record in _records(frame):
                store.add_sale(SaleEvent.model_validate(record))

        LOGGER.info(
            "Seeded store from %s: %d products, %d sales",
            root,
            len(store._products),
            sum(len(v) for v in store._sales.values()),
        )
        return store

    # ------------------------------------------------------------------
    # Reads

    def list_products(self, owner_id: str) -> List[Product]:
        with self._lock:
            return [p.model_copy() for p in self._products.values() if p.owner_id == owner_id]

    def list_active_products(self, owner_id: str) -> List[Product]:
        return [p for p in self.list_products(owner_id) if p.is_active]

    def get_product(self, product_id: str) -> Optional[Product]:
        with self._lock:
            product = self._products.get(product_id)
            return product.model_copy() if product is not None else None

    def get_sales_history(self, product_id: str, since: datetime) -> List[SaleEvent]:
        with self._lock:
            return [
                s.model_copy()
                for s in self._sales.get(product_id, [])
                if s.sale_date >= since
            ]

    def get_latest_forecast(self, product_id: str) -> Optional[Forecast]:
        with self._lock:
            candidates = [f for f in self._forecasts.values() if f.product_id == product_id]
            if not candidates:
                return None
            latest = max(candidates, key=lambda f: (f.forecast_date, f.created_at))
            return latest.model_copy()

    def get_pending_suggestion(self, product_id: str) -> Optional[ReorderSuggestion]:
        with self._lock:
            return self._pending_for(product_id)

    def get_suggestion(self, suggestion_id: str) -> Optional[ReorderSuggestion]:
        with self._lock:
            suggestion = self._suggestions.get(suggestion_id)
            return suggestion.model_copy() if suggestion is not None else None

    def list_forecasts(self, product_ids: Iterable[str]) -> List[Forecast]:
        wanted = set(product_ids)
        with self._lock:
            return [f.model_copy() for f in self._forecasts.values() if f.product_id in wanted]

    def list_suggestions(self, product_ids: Iterable[str]) -> List[ReorderSuggestion]:
        wanted = set(product_ids)
        with self._lock:
            return [s.model_copy() for s in self._suggestions.values() if s.product_id in wanted]

    def list_stock_movements(self, product_ids: Iterable[str]) -> List[StockMovement]:
        wanted = set(product_ids)
        with self._lock:
            return [m.model_copy() for m in self._movements if m.product_id in wanted]

    # ------------------------------------------------------------------
    # Writes

    def save_forecast(self, forecast: Forecast) -> str:
        forecast_id = forecast.id or _new_id()
        with self._lock:
            self._forecasts[forecast_id] = forecast.model_copy(update={"id": forecast_id})
        return forecast_id

    def upsert_reorder_suggestion(
        self,
        product_id: str,
        fields: Dict[str, Any],
        actor: str,
        now: datetime,
    ) -> Tuple[ReorderSuggestion, bool]:
        """Patch the product's pending suggestion in place, or insert one.

        Returns the stored suggestion and whether it was newly created.
        """

        with self._lock:
            existing = self._pending_for(product_id)
            if existing is not None:
                updated = existing.model_copy(
                    update={**fields, "updated_at": now, "updated_by": actor}
                )
                self._suggestions[existing.id] = updated
                return updated.model_copy(), False

            created = ReorderSuggestion(
                id=_new_id(),
                product_id=product_id,
                status="pending",
                created_at=now,
                updated_at=now,
                created_by=actor,
                updated_by=actor,
                **fields,
            )
            self._suggestions[created.id] = created
            return created.model_copy(), True

    def transition_pending_suggestion(
        self,
        suggestion_id: str,
        status: SuggestionStatus,
        notes: Optional[str],
        actor: str,
        now: datetime,
        *,
        restock_movement_type: Optional[str] = None,
    ) -> Tuple[ReorderSuggestion, Optional[int]]:
        """Move a pending suggestion to ``status`` in one critical section.

        With ``restock_movement_type`` set and a positive suggested quantity,
        the product's stock is raised and a movement recorded under the same
        lock.  Returns the updated suggestion and the new stock level (``None``
        when stock was not touched).  Nothing is mutated when a check fails.
        """

        with self._lock:
            suggestion = self._suggestions.get(suggestion_id)
            if suggestion is None:
                raise SuggestionNotFoundError(f"Reorder suggestion '{suggestion_id}' not found")
            if suggestion.status != "pending":
                raise InvalidTransitionError(
                    f"Suggestion '{suggestion_id}' is already {suggestion.status}"
                )

            quantity = suggestion.suggested_quantity
            restock = restock_movement_type is not None and quantity > 0
            if restock and suggestion.product_id not in self._products:
                raise ProductNotFoundError(f"Product '{suggestion.product_id}' not found")

            updated = suggestion.model_copy(
                update={"status": status, "notes": notes, "updated_at": now, "updated_by": actor}
            )
            self._suggestions[suggestion_id] = updated

            new_stock: Optional[int] = None
            if restock:
                new_stock = self.patch_product_stock(suggestion.product_id, quantity)
                self.record_stock_movement(
                    suggestion.product_id,
                    restock_movement_type,
                    quantity,
                    notes or f"Approved reorder suggestion {suggestion_id}",
                    reference=suggestion_id,
                    actor=actor,
                    now=now,
                )
            return updated.model_copy(), new_stock

    def patch_product_stock(self, product_id: str, delta: int) -> int:
        with self._lock:
            product = self._products.get(product_id)
            if product is None:
                raise ProductNotFoundError(f"Product '{product_id}' not found")
            new_stock = max(product.current_stock + int(delta), 0)
            self._products[product_id] = product.model_copy(update={"current_stock": new_stock})
            return new_stock

    def record_stock_movement(
        self,
        product_id: str,
        movement_type: str,
        delta: int,
        note: Optional[str] = None,
        *,
        reference: Optional[str] = None,
        actor: str,
        now: datetime | None = None,
    ) -> str:
        movement = StockMovement(
            id=_new_id(),
            product_id=product_id,
            type=movement_type,
            quantity=int(delta),
            notes=note,
            reference=reference,
            movement_date=now or datetime.now(timezone.utc),
            created_by=actor,
        )
        with self._lock:
            self._movements.append(movement)
        return movement.id

    # ------------------------------------------------------------------
    def _pending_for(self, product_id: str) -> Optional[ReorderSuggestion]:
        for suggestion in self._suggestions.values():
            if suggestion.product_id == product_id and suggestion.status == "pending":
                return suggestion.model_copy()
        return None


def _records(frame: pd.DataFrame) -> List[Dict[str, Any]]:
    """Return row dicts of plain Python values with missing cells dropped."""

    records: List[Dict[str, Any]] = []
    for row in frame.to_dict(orient="records"):
        record: Dict[str, Any] = {}
        for key, value in row.items():
            if pd.isna(value):
                continue
            if isinstance(value, pd.Timestamp):
                value = value.to_pydatetime()
            elif isinstance(value, np.generic):
                value = value.item()
            record[key] = value
        records.append(record)
    return records
