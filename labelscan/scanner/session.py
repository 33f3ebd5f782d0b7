"""
==============================================================================
Scan Session Module
==============================================================================

State owned by one capture session and the readings it produces.

The ``ScanSession`` record is mutated only by the decode loop that owns it.
A fresh record is created on every start with a higher generation number,
which is how late asynchronous results are recognized as stale.

==============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

import numpy as np

from labelscan.imaging.roi import Rectangle


# Source tags recorded on readings
SOURCE_MANUAL = "MANUAL"
SOURCE_OCR = "OCR"


@dataclass
class ScanSession:
    """
    Mutable per-session loop state.

    Attributes:
        generation: Incremented on every start; tags async work
        active: False once the session is stopped
        phase_started_at: Clock time (ms) of the last commit or start
        phase: Escalation phase computed on the last decode tick
        stable_frame_streak: Consecutive low-motion frames
        last_frame_sample: Centre patch of the previous frame
        last_committed_value: Value of the most recent reading
        last_committed_at: Clock time (ms) of the most recent reading
        ocr_busy: True while an OCR call is in flight
        last_ocr_at: Clock time (ms) the last OCR call was started
        last_attempt_at: Clock time (ms) of the last decode attempt
        last_hint_rect: Bounding box of the last barcode localization
    """

    generation: int = 0
    active: bool = False
    phase_started_at: float = 0.0
    phase: int = 0
    stable_frame_streak: int = 0
    last_frame_sample: Optional[np.ndarray] = None
    last_committed_value: Optional[str] = None
    last_committed_at: Optional[float] = None
    ocr_busy: bool = False
    last_ocr_at: Optional[float] = None
    last_attempt_at: Optional[float] = None
    last_hint_rect: Optional[Rectangle] = None


@dataclass(frozen=True)
class Reading:
    """
    One committed decode result.

    Attributes:
        timestamp: Commit time in epoch milliseconds
        value: Normalized decoded text
        source_tag: Engine or pass that produced the value
        format: Symbology reported by the engine, when known
    """

    timestamp: float
    value: str
    source_tag: str
    format: Optional[str] = None

    @property
    def recorded_at(self) -> str:
        """Local wall-clock time as ``YYYY-MM-DD HH:MM:SS``."""
        return datetime.fromtimestamp(self.timestamp / 1000.0).strftime("%Y-%m-%d %H:%M:%S")

    def as_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "recorded_at": self.recorded_at,
            "value": self.value,
            "source_tag": self.source_tag,
            "format": self.format,
        }
