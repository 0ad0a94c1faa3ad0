r"""backend/tests/test_auth_and_rate.py"""

from __future__ import annotations

import sys
from collections import defaultdict, deque
from pathlib import Path

from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from backend.app.main import app  # noqa: E402


def test_auth_and_rate_limit(monkeypatch, tmp_path: Path):
    from backend.app.api.v1 import data as data_api
    from backend.app.core import observability as obs

    monkeypatch.setattr(data_api._validation_service, "data_root", str(tmp_path))
    monkeypatch.setenv("API_TOKEN", "X")
    monkeypatch.setenv("RATE_LIMIT_PER_MIN", "1")
    monkeypatch.setattr(obs.TokenAndRateLimitMiddleware, "_token", "X", raising=False)
    monkeypatch.setattr(obs.TokenAndRateLimitMiddleware, "_per_minute", 1, raising=False)
    monkeypatch.setattr(
        obs.TokenAndRateLimitMiddleware,
        "_buckets",
        defaultdict(deque),
        raising=False,
    )

    client = TestClient(app)

    response = client.get("/api/v1/data/validate")
    assert response.status_code == 401

    authed = client.get("/api/v1/data/validate", headers={"Authorization": "Bearer X"})
    assert authed.status_code != 401

    limited = client.get("/api/v1/data/validate", headers={"Authorization": "Bearer X"})
    assert limited.status_code == 429


def test_health_is_exempt_from_token(monkeypatch):
    from backend.app.core import observability as obs

    monkeypatch.setattr(obs.TokenAndRateLimitMiddleware, "_token", "X", raising=False)

    client = TestClient(app)

    assert client.get("/api/v1/health").status_code == 200
