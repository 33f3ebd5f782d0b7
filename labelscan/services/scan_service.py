"""
==============================================================================
Scan Service Module
==============================================================================

Single-shot decoding, preview rendering and manual entry.

This module implements:
- ScanService: Class handling uploads and manual readings
- Upload size and format checks
- Deduplication of uploaded results against the last reading
- Manual entries recorded with the MANUAL source tag

Live camera sessions do not go through this service; they drive a
DecodeOrchestrator directly from the WebSocket handler and share the
same reading log.

==============================================================================
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Tuple

from labelscan.core.exceptions import (
    image_too_large,
    no_decode_result,
    value_rejected,
)
from labelscan.imaging.pipeline import PreprocessResult, get_preset, preprocess_for_scanner
from labelscan.scanner.dedup import Deduplicator
from labelscan.scanner.engines import EngineSet
from labelscan.scanner.orchestrator import DecodeAttempt, decode_static_image, now_ms
from labelscan.scanner.session import SOURCE_MANUAL, Reading
from labelscan.schemas.scan import ScanConfig
from labelscan.services.reading_log import ReadingLog
from labelscan.utils.images import decode_image_bytes
from labelscan.utils.validators import ManualValueValidator


# Module logger
logger = logging.getLogger(__name__)


class ScanService:
    """
    Decode and reading operations backing the REST API.

    Attributes:
        _log: Shared reading log
        _config: Scan configuration (length, window, pattern, preset)
        _max_upload_bytes: Largest accepted upload

    Example:
        >>> service = ScanService(reading_log, ScanConfig())
        >>> attempt, reading = service.decode_upload(png_bytes, engines)
        >>> attempt.value
        '4006381333931'
    """

    def __init__(
        self,
        reading_log: ReadingLog,
        config: ScanConfig,
        max_upload_bytes: int = 15 * 1024 * 1024,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self._log = reading_log
        self._config = config
        self._max_upload_bytes = max_upload_bytes
        self._dedup = Deduplicator(config.min_value_length, config.dedupe_window_ms)
        self._validator = ManualValueValidator(config.min_value_length)
        self._clock = clock or now_ms

    # =========================================================================
    # UPLOADS
    # =========================================================================

    def _load(self, data: bytes):
        if len(data) > self._max_upload_bytes:
            raise image_too_large(self._max_upload_bytes // (1024 * 1024))
        return decode_image_bytes(data)

    def decode_upload(
        self,
        data: bytes,
        engines: EngineSet,
    ) -> Tuple[DecodeAttempt, Optional[Reading]]:
        """
        Decode one uploaded image, trying every variant and engine.

        Args:
            data: Encoded image bytes
            engines: Engines to consult

        Returns:
            Tuple of (attempt, reading). The reading is None when the value
            repeats the last reading within the dedupe window.

        Raises:
            AppException: IMAGE_TOO_LARGE, INVALID_IMAGE or NO_DECODE_RESULT
        """
        rgba = self._load(data)
        logger.debug(f"Decoding upload {rgba.shape[1]}x{rgba.shape[0]}")

        attempt = decode_static_image(rgba, engines, self._config)
        if attempt is None:
            logger.info("🔍 Upload exhausted every pass without a result")
            raise no_decode_result()

        reading = self._record(attempt.value, attempt.source_tag, attempt.format)
        return attempt, reading

    def preview(self, data: bytes) -> PreprocessResult:
        """Run the enhancement pipeline on an upload without decoding."""
        rgba = self._load(data)
        return preprocess_for_scanner(rgba, get_preset(self._config.preset))

    # =========================================================================
    # READINGS
    # =========================================================================

    def _record(self, value: str, source_tag: str, fmt: Optional[str]) -> Optional[Reading]:
        now = self._clock()
        last = self._log.last()
        if last is not None and self._dedup.is_duplicate(value, last.value, last.timestamp, now):
            logger.debug(f"Duplicate upload result {value} not recorded")
            return None

        reading = Reading(timestamp=now, value=value, source_tag=source_tag, format=fmt)
        self._log.append(reading)
        logger.info(f"✅ Reading recorded: {value} ({source_tag})")
        return reading

    def commit_manual(self, value: str) -> Reading:
        """
        Record a value typed in by an operator.

        Raises:
            AppException: VALUE_REJECTED if the value is too short
        """
        is_valid, normalized, error = self._validator.validate(value)
        if not is_valid:
            raise value_rejected(value, error)

        reading = Reading(
            timestamp=self._clock(),
            value=normalized,
            source_tag=SOURCE_MANUAL,
            format=SOURCE_MANUAL,
        )
        self._log.append(reading)
        logger.info(f"✍️ Manual reading recorded: {normalized}")
        return reading

    def list_readings(self) -> List[Reading]:
        return self._log.all()

    def clear_readings(self) -> int:
        return self._log.clear()
