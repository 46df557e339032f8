"""
Region Extraction

Bounded flood fill from a seed pixel (rooms) and from the image border
(building exterior), plus hole filling for silhouettes.
"""

from dataclasses import dataclass
import logging
import math

import cv2
import numpy as np

logger = logging.getLogger(__name__)


@dataclass
class FloodFillResult:
    """Outcome of a seeded flood fill."""
    filled_mask: "np.ndarray"
    pixel_count: int
    max_pixels: int

    @property
    def exceeded(self) -> bool:
        """True when the fill grew beyond its pixel budget."""
        return self.pixel_count > self.max_pixels

    @property
    def found(self) -> bool:
        return self.pixel_count > 0 and not self.exceeded


def _touches_inner_edge(region: "np.ndarray", x0: int, y0: int, x1: int, y1: int, w: int, h: int) -> bool:
    """True when a filled window pixel lies on a window edge that is not an image edge."""
    if x0 > 0 and region[:, 0].any():
        return True
    if y0 > 0 and region[0, :].any():
        return True
    if x1 < w and region[:, -1].any():
        return True
    if y1 < h and region[-1, :].any():
        return True
    return False


def flood_fill(mask: "np.ndarray", x: int, y: int, max_pixels: int) -> FloodFillResult:
    """
    4-connected fill over open (0) pixels starting at (x, y).

    An out-of-bounds seed or a seed on a wall pixel yields an empty mask and
    pixel_count 0 (the click missed the room).

    The fill runs inside a window around the seed sized from the budget and
    grows the window only while the region reaches its inner edges. Work is
    therefore bounded by the budget, not by the size of the open area: once
    more than max_pixels pixels are filled the fill stops, pixel_count is
    reported as max_pixels + 1 and filled_mask holds the partial fill.
    Callers must treat FloodFillResult.exceeded as a failed detection, not
    a partial room.

    Args:
        mask: Binary mask (1=wall, 0=open); not modified
        x: Seed column
        y: Seed row
        max_pixels: Growth budget

    Returns:
        FloodFillResult with filled_mask (1=filled)
    """
    h, w = mask.shape[:2]
    filled = np.zeros((h, w), dtype=np.uint8)

    if x < 0 or x >= w or y < 0 or y >= h:
        return FloodFillResult(filled_mask=filled, pixel_count=0, max_pixels=max_pixels)
    if mask[y, x] != 0:
        return FloodFillResult(filled_mask=filled, pixel_count=0, max_pixels=max_pixels)

    work = (np.asarray(mask) != 0).astype(np.uint8)
    radius = math.isqrt(max(1, max_pixels)) + 1

    while True:
        x0, y0 = max(0, x - radius), max(0, y - radius)
        x1, y1 = min(w, x + radius + 1), min(h, y + radius + 1)
        window = work[y0:y1, x0:x1].copy()
        ff_mask = np.zeros((y1 - y0 + 2, x1 - x0 + 2), dtype=np.uint8)
        pixel_count, _, _, _ = cv2.floodFill(
            window, ff_mask, (int(x - x0), int(y - y0)), 2, loDiff=0, upDiff=0, flags=4
        )
        region = window == 2

        if pixel_count > max_pixels:
            filled[y0:y1, x0:x1][region] = 1
            logger.debug(f"Flood fill from ({x}, {y}) exceeded budget of {max_pixels} px")
            return FloodFillResult(filled_mask=filled, pixel_count=max_pixels + 1, max_pixels=max_pixels)

        whole_image = x0 == 0 and y0 == 0 and x1 == w and y1 == h
        if whole_image or not _touches_inner_edge(region, x0, y0, x1, y1, w, h):
            filled[y0:y1, x0:x1][region] = 1
            return FloodFillResult(filled_mask=filled, pixel_count=int(pixel_count), max_pixels=max_pixels)

        radius *= 2


def flood_fill_from_border(mask: "np.ndarray") -> "np.ndarray":
    """
    Mark open pixels reachable from the image border.

    All border pixels act as seeds at once, so everything outside the
    building becomes 1 while walls and enclosed interiors stay 0.

    Args:
        mask: Binary mask (1=wall, 0=open)

    Returns:
        Exterior mask (1=exterior, 0=building or wall)
    """
    h, w = mask.shape[:2]
    # A one-pixel open frame links every border pixel to a single seed
    work = np.zeros((h + 2, w + 2), dtype=np.uint8)
    work[1:-1, 1:-1] = (np.asarray(mask) != 0).astype(np.uint8)
    ff_mask = np.zeros((h + 4, w + 4), dtype=np.uint8)
    cv2.floodFill(work, ff_mask, (0, 0), 2, loDiff=0, upDiff=0, flags=4)
    return (work[1:-1, 1:-1] == 2).astype(np.uint8)


def fill_interior_holes(mask: "np.ndarray") -> "np.ndarray":
    """
    Close off enclosed open space, in place.

    Every 0-pixel that cannot be reached from the border becomes 1. Turns a
    wall outline into a solid silhouette, and removes text islands from a
    filled room mask.

    Args:
        mask: Binary mask (modified in place)

    Returns:
        The same mask, for chaining
    """
    exterior = flood_fill_from_border(mask)
    mask[(mask == 0) & (exterior == 0)] = 1
    return mask
