"""
PlanTrace API application.

Run with: uvicorn plantrace.main:app --reload
"""

import logging

from fastapi import FastAPI

from .api import detection
from .core.config import get_settings

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Raster floor plan digitizer: rooms, building envelope, walls and openings",
    debug=settings.debug,
)

app.include_router(detection.router, prefix="/api/v1")


@app.get("/")
async def root():
    """Service info."""
    return {"name": settings.app_name, "version": settings.app_version}


@app.get("/health")
async def health():
    return {"status": "ok"}
