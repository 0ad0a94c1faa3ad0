"""Authenticated caller context passed into every core operation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True, slots=True)
class CallerContext:
    """Identity of the user on whose behalf an operation runs.

    Identity is resolved once at the edge (HTTP header, CLI flag, ...) and
    the services only ever see this already-resolved value.
    """

    user_id: str
    display_name: Optional[str] = None
