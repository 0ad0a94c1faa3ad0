r"""backend\app\api\v1\catalog.py"""

from __future__ import annotations

import logging
from typing import Dict, List

from fastapi import APIRouter, Depends, Query

from ...core.context import CallerContext
from ...models import schemas
from ...services.store import InventoryStore
from ..deps import get_caller, get_store

LOGGER = logging.getLogger(__name__)
router = APIRouter()


@router.get("/catalog/products")
def get_products(
    include_inactive: bool = Query(False),
    limit: int = Query(200, ge=1, le=1000),
    caller: CallerContext = Depends(get_caller),
    store: InventoryStore = Depends(get_store),
) -> Dict[str, List[schemas.Product]]:
    """Return up to `limit` of the caller's products, sorted by name."""

    if include_inactive:
        products = store.list_products(caller.user_id)
    else:
        products = store.list_active_products(caller.user_id)
    products.sort(key=lambda p: (p.name.lower(), p.id))
    return {"products": products[:limit]}
