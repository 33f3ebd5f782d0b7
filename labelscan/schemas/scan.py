"""
==============================================================================
Scan Schemas Module
==============================================================================

Session configuration and request/response schemas for decoding.

Includes:
- ScanMode (fast = barcode fast path only, deep = full escalation)
- ScanConfig, the inputs a capture session is started with
- Reading, decode and preview payloads

==============================================================================
"""

import re
from enum import Enum
from typing import Any, Dict, List, Optional, Pattern, Tuple

from pydantic import BaseModel, Field, field_validator

from labelscan.config.settings import Settings, parse_thresholds


class ScanMode(str, Enum):
    """How far a session may escalate."""
    FAST = "fast"
    DEEP = "deep"


MAX_PHASE = {
    ScanMode.FAST: 0,
    ScanMode.DEEP: 4,
}


# =============================================================================
# SESSION CONFIGURATION
# =============================================================================

class ScanConfig(BaseModel):
    """
    Inputs a capture session is started with.

    Every field has a default matching the application settings, so a
    WebSocket client may override any subset.
    """
    model_config = {"frozen": True}

    mode: ScanMode = Field(default=ScanMode.DEEP)
    min_value_length: int = Field(default=5, ge=1, le=64)
    dedupe_window_ms: int = Field(default=1200, ge=0, le=60000)
    phase_thresholds_ms: Tuple[int, int, int, int] = Field(default=(2000, 5000, 8000, 12000))
    motion_threshold: float = Field(default=25.0, gt=0, le=255)
    stable_frames_required: int = Field(default=3, ge=0, le=120)
    stability_patch_size: int = Field(default=32, ge=4, le=512)
    min_decode_interval_ms: int = Field(default=100, ge=0, le=5000)
    ocr_throttle_ms: int = Field(default=2000, ge=0, le=60000)
    ocr_whitelist: Optional[str] = Field(default="0123456789", max_length=128)
    value_pattern: Optional[str] = Field(default=None, max_length=256)
    preset: str = Field(default="default", max_length=50)

    @field_validator("phase_thresholds_ms", mode="before")
    @classmethod
    def parse_phase_thresholds(cls, v):
        if isinstance(v, str):
            return parse_thresholds(v)
        return v

    @field_validator("phase_thresholds_ms")
    @classmethod
    def validate_ascending(cls, v: Tuple[int, int, int, int]) -> Tuple[int, int, int, int]:
        if v[0] < 0 or any(b <= a for a, b in zip(v, v[1:])):
            raise ValueError("Phase thresholds must be ascending and non-negative")
        return v

    @field_validator("value_pattern")
    @classmethod
    def validate_pattern(cls, v: Optional[str]) -> Optional[str]:
        if not v:
            return None
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"Invalid value pattern: {e}")
        return v

    @property
    def max_phase(self) -> int:
        return MAX_PHASE[self.mode]

    @property
    def compiled_pattern(self) -> Optional[Pattern[str]]:
        return re.compile(self.value_pattern) if self.value_pattern else None

    def accepts(self, value: str) -> bool:
        """Application acceptance predicate (always true without a pattern)."""
        pattern = self.compiled_pattern
        return pattern is None or pattern.fullmatch(value) is not None

    @classmethod
    def from_settings(cls, settings: Settings, **overrides) -> "ScanConfig":
        """Build a config from application settings plus explicit overrides."""
        values = {
            "min_value_length": settings.min_value_length,
            "dedupe_window_ms": settings.dedupe_window_ms,
            "phase_thresholds_ms": settings.phase_thresholds,
            "motion_threshold": settings.motion_threshold,
            "stable_frames_required": settings.stable_frames_required,
            "stability_patch_size": settings.stability_patch_size,
            "min_decode_interval_ms": settings.min_decode_interval_ms,
            "ocr_throttle_ms": settings.ocr_throttle_ms,
            "ocr_whitelist": settings.ocr_whitelist or None,
            "value_pattern": settings.value_pattern,
            "preset": settings.pipeline_preset,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


class ScanConfigOverrides(BaseModel):
    """Optional per-session overrides sent in the WebSocket init message."""
    mode: Optional[ScanMode] = None
    min_value_length: Optional[int] = Field(default=None, ge=1, le=64)
    dedupe_window_ms: Optional[int] = Field(default=None, ge=0, le=60000)
    phase_thresholds_ms: Optional[str] = None
    motion_threshold: Optional[float] = Field(default=None, gt=0, le=255)
    stable_frames_required: Optional[int] = Field(default=None, ge=0, le=120)
    min_decode_interval_ms: Optional[int] = Field(default=None, ge=0, le=5000)
    ocr_throttle_ms: Optional[int] = Field(default=None, ge=0, le=60000)
    value_pattern: Optional[str] = Field(default=None, max_length=256)


# =============================================================================
# GENERIC RESPONSES
# =============================================================================

class SuccessResponse(BaseModel):
    """Success wrapper around an arbitrary payload."""
    success: bool = Field(default=True)
    data: Optional[Any] = Field(default=None)


class MessageResponse(BaseModel):
    """Success with a human-readable message."""
    success: bool = Field(default=True)
    message: str


# =============================================================================
# READINGS
# =============================================================================

class ReadingOut(BaseModel):
    """Committed reading as returned by the API."""
    timestamp: float
    recorded_at: str
    value: str
    source_tag: str
    format: Optional[str] = None


class ManualReadingCreate(BaseModel):
    """Value typed in by an operator."""
    value: str = Field(..., min_length=1, max_length=128)

    @field_validator("value")
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        return v.strip()


class ReadingListResponse(BaseModel):
    """Reading history."""
    success: bool = Field(default=True)
    items: List[ReadingOut]
    total: int = Field(ge=0)


# =============================================================================
# DECODE
# =============================================================================

class DecodeResponse(BaseModel):
    """Outcome of a single-shot image decode."""
    success: bool = Field(default=True)
    value: str
    source_tag: str
    format: Optional[str] = None
    pass_name: str
    committed: bool
    reading: Optional[ReadingOut] = None


class PreviewResponse(BaseModel):
    """Crop and enhanced variants of an uploaded image, as PNG data URLs."""
    success: bool = Field(default=True)
    crop_rect: Dict[str, int]
    skew_angle: float
    crop: str
    variants: Dict[str, str]
