"""
==============================================================================
Schemas Package - Pydantic Models
==============================================================================

Request and response schemas using Pydantic for validation.

This package provides:
- Scan: Session configuration, success wrappers, readings, decode and
  preview payloads

==============================================================================
"""

from .scan import (
    SuccessResponse,
    MessageResponse,
    ScanMode,
    ScanConfig,
    ScanConfigOverrides,
    ReadingOut,
    ManualReadingCreate,
    ReadingListResponse,
    DecodeResponse,
    PreviewResponse,
)

__all__ = [
    "SuccessResponse",
    "MessageResponse",
    "ScanMode",
    "ScanConfig",
    "ScanConfigOverrides",
    "ReadingOut",
    "ManualReadingCreate",
    "ReadingListResponse",
    "DecodeResponse",
    "PreviewResponse",
]
