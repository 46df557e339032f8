"""
Morphological Conditioning

Gap sealing and noise removal on binary wall masks (1 = wall, 0 = open).
Radii are passed in pixels; callers derive them from pixels_per_cm so the
behaviour is resolution-independent.
"""

import logging

import cv2
import numpy as np

logger = logging.getLogger(__name__)


def _square_kernel(radius: int) -> "np.ndarray":
    size = 2 * radius + 1
    return cv2.getStructuringElement(cv2.MORPH_RECT, (size, size))


def _as_binary(mask: "np.ndarray") -> "np.ndarray":
    return (np.asarray(mask) != 0).astype(np.uint8)


def morphological_close(mask: "np.ndarray", radius: int) -> "np.ndarray":
    """
    Dilate then erode with a (2r+1)x(2r+1) square.

    Seals gaps up to 2*radius pixels wide (door openings, broken lines)
    without growing solid walls. Never clears a pixel that was wall.

    Args:
        mask: Binary mask (1=wall, 0=open)
        radius: Half-width of the square kernel in pixels

    Returns:
        Closed mask (new array)
    """
    binary = _as_binary(mask)
    if radius <= 0:
        return binary
    return cv2.morphologyEx(binary, cv2.MORPH_CLOSE, _square_kernel(radius))


def morphological_open(mask: "np.ndarray", radius: int) -> "np.ndarray":
    """
    Erode then dilate with a (2r+1)x(2r+1) square.

    Removes wall features thinner than 2*radius+1 (anti-aliasing specks,
    text strokes) while thick walls survive unchanged.
    """
    binary = _as_binary(mask)
    if radius <= 0:
        return binary
    return cv2.morphologyEx(binary, cv2.MORPH_OPEN, _square_kernel(radius))


def morphological_open_rect(mask: "np.ndarray", radius_x: int, radius_y: int) -> "np.ndarray":
    """
    Opening with a (2*radius_x+1) wide, (2*radius_y+1) tall rectangle.

    A long horizontal kernel keeps only features that are both thick and
    elongated horizontally; swap the radii for vertical features.
    """
    binary = _as_binary(mask)
    kernel = cv2.getStructuringElement(
        cv2.MORPH_RECT, (2 * max(0, radius_x) + 1, 2 * max(0, radius_y) + 1)
    )
    return cv2.morphologyEx(binary, cv2.MORPH_OPEN, kernel)


def filter_small_components(mask: "np.ndarray", min_area: int) -> "np.ndarray":
    """
    Drop wall components smaller than min_area pixels.

    Text, arrows and dimension numbers form small islands in the wall mask;
    real walls are large connected structures. Uses 4-connectivity.

    Args:
        mask: Binary mask (1=wall, 0=open)
        min_area: Minimum component size to keep (px)

    Returns:
        Filtered mask (new array)
    """
    binary = _as_binary(mask)
    num_labels, labels, stats, _ = cv2.connectedComponentsWithStats(binary, connectivity=4)

    keep = stats[:, cv2.CC_STAT_AREA] >= min_area
    keep[0] = False  # background label

    removed = int(np.count_nonzero(~keep[1:]))
    if removed:
        logger.debug(f"Removed {removed}/{num_labels - 1} wall components below {min_area} px")

    return keep[labels].astype(np.uint8)
