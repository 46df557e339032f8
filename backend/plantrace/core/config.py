"""
Application settings.

Values are read from the environment (prefix PLANTRACE_) or a local .env file.
Detection heuristics are not configured here; see core/rules.py.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration for the PlanTrace service."""

    model_config = SettingsConfigDict(
        env_prefix="PLANTRACE_",
        env_file=".env",
        extra="ignore",
    )

    app_name: str = "PlanTrace"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"

    # Upload limits
    max_upload_mb: int = 25

    # Detection defaults used by the API when the client omits them
    default_max_area_cm2: float = 500000.0
    wall_min_thickness_cm: float = 5.0
    wall_max_thickness_cm: float = 50.0

    # PDF plans are rasterized at this resolution before detection
    pdf_render_dpi: int = 150


@lru_cache
def get_settings() -> Settings:
    """Return the cached settings instance."""
    return Settings()
