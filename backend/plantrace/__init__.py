"""PlanTrace: raster floor plan to vector rooms, envelope and walls."""

__version__ = "0.1.0"
