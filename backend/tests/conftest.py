from __future__ import annotations

import sys
from collections import defaultdict, deque
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from backend.app.core import observability as obs  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_rate_limiter(monkeypatch):
    """Give every test an empty, disabled rate limiter and no API token."""

    monkeypatch.setattr(obs.TokenAndRateLimitMiddleware, "_buckets", defaultdict(deque), raising=False)
    monkeypatch.setattr(obs.TokenAndRateLimitMiddleware, "_per_minute", 0, raising=False)
    monkeypatch.setattr(obs.TokenAndRateLimitMiddleware, "_token", None, raising=False)
