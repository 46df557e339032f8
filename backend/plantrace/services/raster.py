"""
Raster Image Loading

RGBA pixel buffers consumed by the detection pipeline, plus loaders for image
files, encoded uploads and PDF pages.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union
import logging

import cv2
import numpy as np

logger = logging.getLogger(__name__)

# Optional imports
try:
    import fitz
    FITZ_AVAILABLE = True
except ImportError:
    FITZ_AVAILABLE = False
    logger.warning("PyMuPDF not available - PDF rendering disabled")


@dataclass
class RasterImage:
    """
    RGBA raster of a floor plan.

    data has shape (height, width, 4) and dtype uint8. The detection stages
    never write into it; only preprocessing with in_place=True does.
    """
    width: int
    height: int
    data: "np.ndarray"

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Invalid image dimensions {self.width}x{self.height}")
        if not isinstance(self.data, np.ndarray):
            raise ValueError("Image data must be a numpy array")
        if self.data.shape != (self.height, self.width, 4):
            raise ValueError(
                f"Image buffer shape {self.data.shape} does not match "
                f"{self.width}x{self.height} RGBA"
            )
        if self.data.dtype != np.uint8:
            raise ValueError(f"Image buffer must be uint8, got {self.data.dtype}")

    @classmethod
    def from_rgba_bytes(cls, width: int, height: int, buffer: bytes) -> "RasterImage":
        """Wrap a flat RGBA byte buffer (row-major, 4 bytes per pixel)."""
        expected = width * height * 4
        if width <= 0 or height <= 0 or len(buffer) != expected:
            raise ValueError(
                f"RGBA buffer of {len(buffer)} bytes does not match "
                f"{width}x{height} ({expected} bytes)"
            )
        data = np.frombuffer(buffer, dtype=np.uint8).reshape(height, width, 4).copy()
        return cls(width=width, height=height, data=data)

    @classmethod
    def from_array(cls, array: "np.ndarray") -> "RasterImage":
        """
        Build an image from a gray (H, W), RGB (H, W, 3) or RGBA (H, W, 4)
        uint8 array. Channel order is RGB, not OpenCV's BGR.
        """
        array = np.asarray(array)
        if array.dtype != np.uint8:
            raise ValueError(f"Image array must be uint8, got {array.dtype}")

        if array.ndim == 2:
            rgba = np.empty(array.shape + (4,), dtype=np.uint8)
            rgba[..., 0] = array
            rgba[..., 1] = array
            rgba[..., 2] = array
            rgba[..., 3] = 255
        elif array.ndim == 3 and array.shape[2] == 3:
            rgba = np.empty(array.shape[:2] + (4,), dtype=np.uint8)
            rgba[..., :3] = array
            rgba[..., 3] = 255
        elif array.ndim == 3 and array.shape[2] == 4:
            rgba = array.copy()
        else:
            raise ValueError(f"Unsupported image array shape {array.shape}")

        height, width = rgba.shape[:2]
        return cls(width=width, height=height, data=np.ascontiguousarray(rgba))

    @classmethod
    def from_bgr(cls, img: "np.ndarray") -> "RasterImage":
        """Convert an OpenCV image (gray, BGR or BGRA) to RGBA."""
        if img.ndim == 2:
            return cls.from_array(img)
        if img.shape[2] == 4:
            return cls.from_array(cv2.cvtColor(img, cv2.COLOR_BGRA2RGBA))
        return cls.from_array(cv2.cvtColor(img, cv2.COLOR_BGR2RGB))

    @classmethod
    def from_encoded(cls, payload: bytes) -> "RasterImage":
        """Decode PNG/JPEG/... bytes."""
        buf = np.frombuffer(payload, dtype=np.uint8)
        img = cv2.imdecode(buf, cv2.IMREAD_UNCHANGED)
        if img is None:
            raise ValueError("Could not decode image data")
        if img.dtype != np.uint8:
            img = cv2.convertScaleAbs(img, alpha=255.0 / max(1, int(img.max())))
        return cls.from_bgr(img)

    @classmethod
    def from_file(
        cls,
        file_path: Union[str, Path],
        page_number: Optional[int] = None,
        dpi: int = 150,
    ) -> "RasterImage":
        """
        Load an image file, or render a PDF page.

        Args:
            file_path: Path to image or PDF
            page_number: Page number if PDF (1-indexed)
            dpi: Render DPI for PDF

        Returns:
            RasterImage
        """
        path = Path(file_path)
        if path.suffix.lower() == ".pdf":
            return render_pdf_page(path, page_number or 1, dpi)

        img = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
        if img is None:
            raise ValueError(f"Failed to load image: {path}")
        return cls.from_bgr(img)

    def copy(self) -> "RasterImage":
        return RasterImage(width=self.width, height=self.height, data=self.data.copy())

    @property
    def rgb(self) -> "np.ndarray":
        """View of the colour channels, shape (H, W, 3)."""
        return self.data[..., :3]


def render_pdf_page(
    pdf_path: Union[str, Path],
    page_number: int = 1,
    dpi: int = 150,
) -> RasterImage:
    """
    Render a PDF page to an RGBA raster.

    Args:
        pdf_path: Path to PDF file
        page_number: 1-indexed page number
        dpi: Render resolution

    Returns:
        RasterImage of the page
    """
    if not FITZ_AVAILABLE:
        raise ImportError("PyMuPDF required for PDF rendering")

    doc = fitz.open(str(pdf_path))
    try:
        page_idx = page_number - 1
        if page_idx < 0 or page_idx >= len(doc):
            raise ValueError(f"Invalid page {page_number}")

        zoom = dpi / 72.0
        pix = doc[page_idx].get_pixmap(matrix=fitz.Matrix(zoom, zoom), alpha=False)
        img = np.frombuffer(pix.samples, dtype=np.uint8).reshape(pix.height, pix.width, pix.n)
        if pix.n == 1:
            img = img[..., 0]
        logger.info(f"Rendered page {page_number} at {dpi} DPI: {pix.width}x{pix.height}")
        return RasterImage.from_array(img)
    finally:
        doc.close()
