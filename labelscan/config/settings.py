"""
==============================================================================
Label Scan Settings
==============================================================================

Service-wide configuration read once from the environment (or a local .env
file) through Pydantic Settings and cached by get_settings().

Two groups of values live here:

- Server values: bind address, CORS origins, log verbosity.
- Scan defaults: the numbers every capture session starts from before any
  per-session overrides are applied (see ScanConfig.from_settings).

Environment variables win over .env entries, which win over the defaults
declared below. Names are matched case-insensitively.

==============================================================================
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from typing import List, Optional, Tuple

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Module logger
logger = logging.getLogger(__name__)


BARCODE_ENGINES = {"zxingcpp", "pyzbar", "none"}
OCR_ENGINES = {"tesseract", "none"}
KNOWN_ENVIRONMENTS = ("development", "staging", "production")


def parse_thresholds(value: str) -> Tuple[int, ...]:
    """
    Turn "2000,5000,8000,12000" into the four phase start times.

    Raises:
        ValueError: On non-integer entries, a count other than four, or a
            list that is not strictly ascending from zero or above
    """
    try:
        parts = tuple(int(p.strip()) for p in value.split(",") if p.strip())
    except ValueError:
        raise ValueError(f"Phase thresholds must be integers: {value!r}")

    if len(parts) != 4:
        raise ValueError(f"Exactly four phase thresholds are required, got {len(parts)}")
    if any(b <= a for a, b in zip(parts, parts[1:])) or parts[0] < 0:
        raise ValueError(f"Phase thresholds must be ascending and non-negative: {value!r}")
    return parts


def _engine_name(value: str, supported: set, kind: str) -> str:
    name = value.lower().strip()
    if name not in supported:
        raise ValueError(
            f"Unsupported {kind} engine: {value}. "
            f"Choose one of {', '.join(sorted(supported))}"
        )
    return name


class Settings(BaseSettings):
    """
    Environment-backed configuration for the label scan service.

    Scan defaults use the same names as ScanConfig fields so a session
    config can be seeded from them directly.

    Example:
        >>> Settings(_env_file=None).phase_thresholds
        (2000, 5000, 8000, 12000)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        validate_default=True,
    )

    # -------------------------------------------------------------------------
    # Service
    # -------------------------------------------------------------------------
    app_name: str = Field(default="Label Scan API", description="Title shown in logs and docs")
    app_env: str = Field(default="development", description="One of development, staging, production")
    debug: bool = Field(default=False, description="Log at DEBUG and enable auto-reload")

    host: str = Field(default="0.0.0.0", description="Interface uvicorn binds to")
    port: int = Field(default=8000, ge=1, le=65535, description="TCP port uvicorn listens on")
    cors_origins: str = Field(default='["*"]', description="JSON list of origins allowed by CORS")

    # -------------------------------------------------------------------------
    # Capture session defaults
    # -------------------------------------------------------------------------
    min_value_length: int = Field(
        default=5, ge=1, le=64,
        description="Decoded values shorter than this are treated as misses"
    )
    dedupe_window_ms: int = Field(
        default=1200, ge=0, le=60000,
        description="How long a committed value blocks an identical one"
    )
    phase_thresholds_ms: str = Field(
        default="2000,5000,8000,12000",
        description="Elapsed milliseconds at which phases 1 to 4 begin"
    )
    motion_threshold: float = Field(
        default=25.0, gt=0, le=255,
        description="Patch difference above which the camera counts as moving"
    )
    stable_frames_required: int = Field(
        default=3, ge=0, le=120,
        description="Still frames needed before a decode is attempted"
    )
    stability_patch_size: int = Field(
        default=32, ge=4, le=512,
        description="Edge length of the sampled centre patch"
    )
    min_decode_interval_ms: int = Field(
        default=100, ge=0, le=5000,
        description="Debounce between decode attempts"
    )
    ocr_throttle_ms: int = Field(
        default=2000, ge=0, le=60000,
        description="Debounce between OCR submissions"
    )
    ocr_whitelist: str = Field(default="0123456789", description="Characters OCR may return")
    value_pattern: Optional[str] = Field(default=None, description="Regex a value must fully match")
    pipeline_preset: str = Field(default="default", description="Enhancement preset: default or soft")

    # -------------------------------------------------------------------------
    # Engines and uploads
    # -------------------------------------------------------------------------
    primary_engine: str = Field(default="zxingcpp", description="zxingcpp or pyzbar")
    secondary_engine: str = Field(default="pyzbar", description="zxingcpp, pyzbar or none")
    ocr_engine: str = Field(default="tesseract", description="tesseract or none")
    max_upload_mb: int = Field(default=15, ge=1, le=100, description="Upload size cap in megabytes")

    @field_validator("app_env")
    @classmethod
    def validate_app_env(cls, value: str) -> str:
        """Lowercase the environment name, falling back to development."""
        env = value.lower().strip()
        if env not in KNOWN_ENVIRONMENTS:
            logger.warning(f"⚠️ APP_ENV '{value}' not recognised, using 'development'")
            return "development"
        return env

    @field_validator("phase_thresholds_ms")
    @classmethod
    def validate_phase_thresholds(cls, value: str) -> str:
        parse_thresholds(value)
        return value

    @field_validator("primary_engine", "secondary_engine")
    @classmethod
    def validate_barcode_engine(cls, value: str) -> str:
        return _engine_name(value, BARCODE_ENGINES, "barcode")

    @field_validator("ocr_engine")
    @classmethod
    def validate_ocr_engine(cls, value: str) -> str:
        return _engine_name(value, OCR_ENGINES, "OCR")

    @property
    def log_level(self) -> str:
        """Level name used for both logging and uvicorn."""
        return "debug" if self.debug else "info"

    @property
    def phase_thresholds(self) -> Tuple[int, ...]:
        return parse_thresholds(self.phase_thresholds_ms)

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024

    @property
    def cors_origins_list(self) -> List[str]:
        """Decoded CORS origins; anything other than a JSON list means ["*"]."""
        try:
            origins = json.loads(self.cors_origins)
        except json.JSONDecodeError:
            logger.warning(f"⚠️ CORS_ORIGINS is not JSON ({self.cors_origins!r}), allowing all")
            return ["*"]
        return origins if isinstance(origins, list) else ["*"]

    def __repr__(self) -> str:
        return (
            f"Settings(env={self.app_env!r}, engines={self.primary_engine}/"
            f"{self.secondary_engine}/{self.ocr_engine}, "
            f"thresholds={self.phase_thresholds_ms!r}, debug={self.debug})"
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build the Settings once and hand out the same instance afterwards."""
    settings = Settings()
    if settings.debug:
        logger.info(f"⚙️ Loaded {settings!r}")
    return settings
