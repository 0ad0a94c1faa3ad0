r"""backend\app\main.py

Main entrypoint for the FastAPI application.

The API exposes triggers to generate next-day demand forecasts and reorder
suggestions for the caller's products, and to approve or reject pending
suggestions.  A health endpoint is also provided for readiness/liveness
checks.  Configuration is read from environment variables and YAML files in
`configs/`.
"""


from dotenv import load_dotenv
from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse
import os
import logging
from pathlib import Path
from .api.v1 import (
    approvals,
    catalog,
    configs,
    data,
    forecasts,
    health,
    reorder,
)
from .core.observability import TokenAndRateLimitMiddleware, metrics_endpoint

# Load .env from repo root
BASE_DIR = Path(__file__).resolve().parents[2]  # repo root
load_dotenv(BASE_DIR / ".env")

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)


logging.getLogger(__name__).info(
    "Stockpilot starting: data_dir=%s config_dir=%s",
    os.getenv("DATA_DIR", "data"),
    os.getenv("CONFIG_DIR", "configs"),
)

app = FastAPI(title="Stockpilot Inventory API", version="0.1.0")

# Allow cross-origin requests from the dashboard (and others).
origins_env = os.getenv("CORS_ORIGINS", "")
origins = [origin.strip() for origin in origins_env.split(",") if origin.strip()] or ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,  # In production specify your UI domain(s)
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(TokenAndRateLimitMiddleware)

# Include versioned routers
app.include_router(health.router, prefix="/api/v1")
app.include_router(forecasts.router, prefix="/api/v1")
app.include_router(reorder.router, prefix="/api/v1")
app.include_router(approvals.router, prefix="/api/v1")
app.include_router(catalog.router, prefix="/api/v1")
app.include_router(configs.router, prefix="/api/v1")
app.include_router(data.router, prefix="/api/v1")


@app.get("/", include_in_schema=False)
def _root() -> RedirectResponse:
    """Redirect the root path to the interactive docs."""

    return RedirectResponse(url="/docs")


@app.get("/metrics", include_in_schema=False)
async def _metrics() -> Response:
    """Expose Prometheus metrics."""

    return metrics_endpoint()
