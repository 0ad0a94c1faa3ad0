r"""backend\app\core\errors.py

Typed failures raised by the forecasting and reorder services.

Batch operations catch these per product and report counts; single-item
operations let them propagate so the API layer can map them to HTTP errors.
"""

from __future__ import annotations


class InsufficientDataError(ValueError):
    """A product has too few distinct sales days to be forecast."""

    def __init__(self, points: int, required: int) -> None:
        super().__init__(
            f"Insufficient data for forecasting: {points} daily points, {required} required"
        )
        self.points = points
        self.required = required


class ProductNotFoundError(LookupError):
    """The referenced product does not exist in the store."""


class SuggestionNotFoundError(LookupError):
    """The referenced reorder suggestion does not exist in the store."""


class AuthorizationError(PermissionError):
    """The caller does not own the product behind the requested resource."""


class InvalidTransitionError(ValueError):
    """The requested status change is not allowed from the current status."""
