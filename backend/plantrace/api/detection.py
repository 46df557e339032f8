"""
Detection API routes.

Provides endpoints for:
- Room detection from a seed click
- Building envelope detection (optionally with spanning walls)
- Detection service status
"""

import shutil
import tempfile
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import cv2
from fastapi import APIRouter, File, HTTPException, Query, UploadFile
from pydantic import BaseModel

from ..core.config import Settings, get_settings
from ..core.rules import BoundingBox, DetectionOptions, FreshDetection, RefinedDetection
from ..services.envelope_detector import SpanningWallRejection, detect_envelope, detect_spanning_walls
from ..services.raster import FITZ_AVAILABLE, RasterImage
from ..services.room_detector import detect_room_at_pixel


router = APIRouter(prefix="/detect", tags=["detection"])


# =============================================================================
# Response Models
# =============================================================================


class DetectionStatusResponse(BaseModel):
    """Response model for detection service status."""
    opencv_version: str
    pdf_rendering_available: bool
    max_upload_mb: int
    default_max_area_cm2: float
    wall_min_thickness_cm: float
    wall_max_thickness_cm: float


class RoomDetectionResponse(BaseModel):
    """Response model for room detection."""
    polygon_px: List[Dict[str, float]]
    polygon_cm: List[Dict[str, float]]
    wall_thicknesses: Dict[str, Any]
    door_gaps: List[Dict[str, Any]]
    pixels_per_cm: float
    processing_time_ms: int


class EnvelopeDetectionResponse(BaseModel):
    """Response model for envelope detection."""
    polygon_px: List[Dict[str, float]]
    wall_thicknesses: Dict[str, Any]
    bbox_px: Dict[str, int]
    building_pixels: int
    spanning_walls: List[Dict[str, Any]]
    rejections: List[Dict[str, Any]]
    processing_time_ms: int


# =============================================================================
# Helpers
# =============================================================================


def _load_upload(file: UploadFile, page_number: int, settings: Settings) -> RasterImage:
    """Decode an uploaded image, or render the requested page of a PDF."""
    if not file.filename:
        raise HTTPException(status_code=400, detail="No filename provided")

    payload = file.file.read()
    if len(payload) > settings.max_upload_mb * 1024 * 1024:
        raise HTTPException(
            status_code=413,
            detail=f"File exceeds {settings.max_upload_mb} MB upload limit",
        )

    try:
        if Path(file.filename).suffix.lower() != ".pdf":
            return RasterImage.from_encoded(payload)

        temp_dir = tempfile.mkdtemp()
        try:
            temp_path = Path(temp_dir) / Path(file.filename).name
            temp_path.write_bytes(payload)
            return RasterImage.from_file(temp_path, page_number, dpi=settings.pdf_render_dpi)
        finally:
            shutil.rmtree(temp_dir, ignore_errors=True)
    except ImportError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _build_options(
    pixels_per_cm: float,
    max_area_cm2: Optional[float],
    min_thickness_cm: Optional[float],
    max_thickness_cm: Optional[float],
    settings: Settings,
    mode=None,
) -> DetectionOptions:
    try:
        return DetectionOptions(
            pixels_per_cm=pixels_per_cm,
            max_area_cm2=max_area_cm2 if max_area_cm2 is not None else settings.default_max_area_cm2,
            min_thickness_cm=min_thickness_cm if min_thickness_cm is not None else settings.wall_min_thickness_cm,
            max_thickness_cm=max_thickness_cm if max_thickness_cm is not None else settings.wall_max_thickness_cm,
            mode=mode or FreshDetection(),
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# =============================================================================
# Status Endpoints
# =============================================================================


@router.get("/status", response_model=DetectionStatusResponse)
async def get_detection_status():
    """Report detection dependencies and default limits."""
    settings = get_settings()
    return DetectionStatusResponse(
        opencv_version=cv2.__version__,
        pdf_rendering_available=FITZ_AVAILABLE,
        max_upload_mb=settings.max_upload_mb,
        default_max_area_cm2=settings.default_max_area_cm2,
        wall_min_thickness_cm=settings.wall_min_thickness_cm,
        wall_max_thickness_cm=settings.wall_max_thickness_cm,
    )


# =============================================================================
# Detection Endpoints
# =============================================================================


@router.post("/room", response_model=RoomDetectionResponse)
async def detect_room(
    file: UploadFile = File(..., description="Floor plan image or PDF"),
    x: int = Query(..., ge=0, description="Seed column (pixels)"),
    y: int = Query(..., ge=0, description="Seed row (pixels)"),
    pixels_per_cm: float = Query(..., gt=0, description="Image scale in pixels per cm"),
    max_area_cm2: Optional[float] = Query(None, gt=0, description="Room area budget"),
    min_thickness_cm: Optional[float] = Query(None, gt=0),
    max_thickness_cm: Optional[float] = Query(None, gt=0),
    page_number: int = Query(1, gt=0, description="Page number for PDFs"),
):
    """
    Detect the room containing the seed pixel.

    **Returns:**
    - Room polygon in pixels and cm
    - Per-edge wall thickness
    - Door openings along the room walls

    Responds 422 when no room is found at the seed.
    """
    settings = get_settings()
    start_time = time.time()

    image = _load_upload(file, page_number, settings)
    options = _build_options(pixels_per_cm, max_area_cm2, min_thickness_cm, max_thickness_cm, settings)

    result = detect_room_at_pixel(image, x, y, options)
    if result is None:
        raise HTTPException(status_code=422, detail=f"No room detected at ({x}, {y})")

    data = result.to_dict()
    return RoomDetectionResponse(
        polygon_px=data["polygon_px"],
        polygon_cm=data["polygon_cm"],
        wall_thicknesses=data["wall_thicknesses"],
        door_gaps=data["door_gaps"],
        pixels_per_cm=data["pixels_per_cm"],
        processing_time_ms=int((time.time() - start_time) * 1000),
    )


@router.post("/envelope", response_model=EnvelopeDetectionResponse)
async def detect_building_envelope(
    file: UploadFile = File(..., description="Floor plan image or PDF"),
    pixels_per_cm: float = Query(..., gt=0, description="Image scale in pixels per cm"),
    spanning_walls: bool = Query(False, description="Also detect interior spanning walls"),
    include_rejections: bool = Query(False, description="Report rejected spanning-wall candidates"),
    min_thickness_cm: Optional[float] = Query(None, gt=0),
    max_thickness_cm: Optional[float] = Query(None, gt=0),
    bbox_x: Optional[int] = Query(None, ge=0, description="Refine within a known envelope box"),
    bbox_y: Optional[int] = Query(None, ge=0),
    bbox_width: Optional[int] = Query(None, gt=0),
    bbox_height: Optional[int] = Query(None, gt=0),
    page_number: int = Query(1, gt=0, description="Page number for PDFs"),
):
    """
    Detect the outer building envelope.

    Pass all four bbox_* parameters to run the refined second pass inside a
    previously detected envelope box.

    Responds 422 when no plausible building is found.
    """
    settings = get_settings()
    start_time = time.time()

    bbox_params = (bbox_x, bbox_y, bbox_width, bbox_height)
    if any(p is not None for p in bbox_params) and any(p is None for p in bbox_params):
        raise HTTPException(status_code=400, detail="bbox_x, bbox_y, bbox_width and bbox_height go together")
    mode = None
    if bbox_x is not None:
        mode = RefinedDetection(BoundingBox(x=bbox_x, y=bbox_y, width=bbox_width, height=bbox_height))

    image = _load_upload(file, page_number, settings)
    options = _build_options(pixels_per_cm, None, min_thickness_cm, max_thickness_cm, settings, mode)

    envelope = detect_envelope(image, options)
    if envelope is None:
        raise HTTPException(status_code=422, detail="No building envelope detected")

    walls = []
    rejections: List[SpanningWallRejection] = []
    if spanning_walls:
        walls = detect_spanning_walls(
            image, envelope.wall_mask, envelope.building_mask, options,
            rejections=rejections if include_rejections else None,
        )

    data = envelope.to_dict()
    return EnvelopeDetectionResponse(
        polygon_px=data["polygon_px"],
        wall_thicknesses=data["wall_thicknesses"],
        bbox_px=data["bbox_px"],
        building_pixels=data["building_pixels"],
        spanning_walls=[w.to_dict() for w in walls],
        rejections=[r.to_dict() for r in rejections],
        processing_time_ms=int((time.time() - start_time) * 1000),
    )
