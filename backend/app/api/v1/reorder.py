r"""backend/app/api/v1/reorder.py

Routes for reorder suggestions."""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ...core.context import CallerContext
from ...models import schemas
from ...services.reorder_service import ReorderService
from ..deps import get_caller, get_reorder_service

LOGGER = logging.getLogger(__name__)

router = APIRouter()


@router.post("/reorder/suggestions/generate", response_model=schemas.BatchSummary)
def generate_suggestions(
    caller: CallerContext = Depends(get_caller),
    service: ReorderService = Depends(get_reorder_service),
) -> schemas.BatchSummary:
    """Create or refresh pending reorder suggestions for the caller's products."""

    LOGGER.info("Reorder suggestion generation requested by user_id=%s", caller.user_id)
    summary = service.generate_suggestions(caller)
    LOGGER.info("Reorder suggestion generation finished for user_id=%s: %s", caller.user_id, summary.message)
    return summary


@router.get("/reorder/suggestions", response_model=List[schemas.ReorderSuggestion])
def list_suggestions(
    status: Optional[schemas.SuggestionStatus] = Query(None),
    urgency: Optional[schemas.Urgency] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    caller: CallerContext = Depends(get_caller),
    service: ReorderService = Depends(get_reorder_service),
) -> List[schemas.ReorderSuggestion]:
    """Return the caller's suggestions ordered by urgency, then newest first."""

    return service.list_suggestions(caller, status=status, urgency=urgency, limit=limit)
