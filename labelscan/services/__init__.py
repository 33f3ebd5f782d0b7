"""
==============================================================================
Services Package - Business Logic Layer
==============================================================================

Service classes implementing decode and reading operations.

This package provides:
- ScanService: Single-shot decoding, previews and manual entry
- ReadingLog: Shared in-memory result sink

Architecture Pattern: Service Layer
----------------------------------
Services sit between the API endpoints and the scanner core.

    ┌─────────────────┐
    │   API Router    │
    └────────┬────────┘
             │
    ┌────────▼────────┐
    │    Service      │  ← Business Logic
    └────────┬────────┘
             │
    ┌────────▼────────┐
    │  Scanner Core   │  ← Enhancement + decode escalation
    └─────────────────┘

Usage:
------
    from labelscan.services import ScanService, init_reading_log

    service = ScanService(init_reading_log(), ScanConfig())
    attempt, reading = service.decode_upload(image_bytes, engines)

==============================================================================
"""

from .reading_log import ReadingLog, get_reading_log, init_reading_log
from .scan_service import ScanService

__all__ = [
    "ReadingLog",
    "get_reading_log",
    "init_reading_log",
    "ScanService",
]
