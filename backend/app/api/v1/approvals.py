r"""backend\app\api\v1\approvals.py

Endpoints for the manual approval workflow and its stock-movement audit log."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...core.context import CallerContext
from ...core.errors import (
    AuthorizationError,
    InvalidTransitionError,
    ProductNotFoundError,
    SuggestionNotFoundError,
)
from ...models import schemas
from ...services.reorder_service import ReorderService
from ..deps import error_payload, get_caller, get_reorder_service

LOGGER = logging.getLogger(__name__)

router = APIRouter()


@router.patch(
    "/reorder/suggestions/{suggestion_id}/status",
    response_model=schemas.StatusUpdateResult,
)
def update_suggestion_status(
    suggestion_id: str,
    body: schemas.StatusUpdateRequest,
    caller: CallerContext = Depends(get_caller),
    service: ReorderService = Depends(get_reorder_service),
) -> schemas.StatusUpdateResult:
    """Approve or reject a pending suggestion; approval restocks the product."""

    try:
        return service.update_status(caller, suggestion_id, body.status, body.notes)
    except (SuggestionNotFoundError, ProductNotFoundError) as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=error_payload("suggestion_not_found", str(exc)),
        ) from exc
    except AuthorizationError as exc:
        LOGGER.warning(
            "User %s denied status change on suggestion %s", caller.user_id, suggestion_id
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=error_payload("forbidden", str(exc)),
        ) from exc
    except InvalidTransitionError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=error_payload("invalid_transition", str(exc)),
        ) from exc


@router.get("/stock-movements")
def get_stock_movements(
    product_id: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=1000),
    caller: CallerContext = Depends(get_caller),
    service: ReorderService = Depends(get_reorder_service),
) -> Dict[str, List[schemas.StockMovement]]:
    """Return the most recent stock movements for the caller's products."""

    events = service.list_stock_movements(caller, product_id=product_id, limit=limit)
    return {"events": events}
