"""Detection pipeline services."""

from .envelope_detector import EnvelopeResult, SpanningWall, detect_envelope, detect_spanning_walls
from .preprocessing import EnvelopePrior, preprocess_for_room_detection
from .raster import RasterImage
from .room_detector import RoomDetectionResult, detect_room_at_pixel

__all__ = [
    "EnvelopePrior",
    "EnvelopeResult",
    "RasterImage",
    "RoomDetectionResult",
    "SpanningWall",
    "detect_envelope",
    "detect_room_at_pixel",
    "detect_spanning_walls",
    "preprocess_for_room_detection",
]
