r"""backend\app\api\v1\data.py

Sanity checks for the CSV files used to seed the product/sales store."""

from __future__ import annotations

from fastapi import APIRouter

from ...services.validation_service import ValidationService

router = APIRouter()
_validation_service = ValidationService()


@router.get("/data/validate")
def validate() -> dict:
    return _validation_service.run()
