"""
==============================================================================
Scanner Package - Decode Escalation
==============================================================================

Turns a stream of frames into deduplicated readings.

Modules:
--------
- session: ScanSession state and Reading records
- stability: Motion gate in front of decoding
- engines: zxing-cpp / pyzbar / pytesseract adapters
- ocr: ROI-constrained OCR fallback
- dedup: Noise and repeat suppression
- orchestrator: Phase escalation state machine and single-shot decode

==============================================================================
"""

from .dedup import Deduplicator, normalize_text
from .engines import (
    DecodeResult,
    EngineError,
    EngineSet,
    EngineUnavailableError,
    PyzbarDecoder,
    TesseractOcr,
    ZXingDecoder,
    build_engines,
)
from .orchestrator import (
    PHASE_HINTS,
    DecodeAttempt,
    DecodeOrchestrator,
    TickOutcome,
    compute_phase,
    decode_static_image,
)
from .session import Reading, ScanSession
from .stability import StabilityGate, frame_diff, sample_center_patch

__all__ = [
    "Deduplicator",
    "normalize_text",
    "DecodeResult",
    "EngineError",
    "EngineSet",
    "EngineUnavailableError",
    "PyzbarDecoder",
    "TesseractOcr",
    "ZXingDecoder",
    "build_engines",
    "PHASE_HINTS",
    "DecodeAttempt",
    "DecodeOrchestrator",
    "TickOutcome",
    "compute_phase",
    "decode_static_image",
    "Reading",
    "ScanSession",
    "StabilityGate",
    "frame_diff",
    "sample_center_patch",
]
