"""
==============================================================================
Decode Orchestrator Module
==============================================================================

Time-based escalation of decode effort for a live frame stream.

Phases (elapsed time since the last commit or session start):
------------------------------------------------------------
    0  fast path: primary decoder on the raw frame
    1  + secondary decoder on the raw frame
    2  + contrast stretch of the working copy, decoders retried
    3  + Otsu binarization, retried; inverted, retried; inversion reverted;
         then the enhanced variant set with the primary decoder
    4  + OCR on a small region, asynchronous and throttled

Each phase adds to the cheaper passes below it. The first pass that
produces an acceptable value ends the tick. A miss and an engine error
are the same thing to the loop.

Concurrency:
-----------
``tick`` is called by a single loop. Only OCR leaves that loop: it runs on
a one-worker executor and reports back through a queue, tagged with the
session generation. Results from an older generation, or delivered after
``stop``, are dropped. While an OCR call is in flight no other OCR call is
started.

Usage:
------
    orchestrator = DecodeOrchestrator(engines, config, sink=reading_log)
    orchestrator.start()
    for frame in frames:
        outcome = orchestrator.tick(frame)
        for reading in outcome.readings:
            ...
    orchestrator.close()

==============================================================================
"""

from __future__ import annotations

import logging
import queue
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Protocol, Sequence, Tuple

import numpy as np

from labelscan.imaging.pipeline import OCR_OPTIMIZED, get_preset, preprocess_for_scanner
from labelscan.imaging.primitives import (
    binarize_inplace,
    histogram_stretch,
    invert_inplace,
    to_grayscale,
)
from labelscan.imaging.roi import Rectangle
from labelscan.schemas.scan import ScanConfig

from .dedup import Deduplicator, normalize_text
from .engines import BarcodeDecoder, EngineSet
from .ocr import ocr_region, run_ocr
from .session import SOURCE_OCR, Reading, ScanSession
from .stability import StabilityGate


# Module logger
logger = logging.getLogger(__name__)


PHASE_STRETCH = (0.05, 0.95)

OCR_FORMAT = "OCR_TEXT"

PHASE_HINTS = {
    0: "Scanning...",
    1: "Focusing...",
    2: "Adjusting contrast...",
    3: "Trying inversion and filters...",
    4: "Trying to read printed digits (OCR)...",
}

# Shown periodically while stuck in the last phase
STALL_HINT = "Try moving closer or further away, or improve the lighting."
STALL_HINT_EVERY = 60


def now_ms() -> float:
    return time.time() * 1000.0


def compute_phase(
    elapsed_ms: float,
    thresholds: Sequence[int] = (2000, 5000, 8000, 12000),
    max_phase: int = 4,
) -> int:
    """
    Map time without success to an escalation phase.

    Args:
        elapsed_ms: Time since the last commit or session start
        thresholds: Boundaries that, once exceeded, start phases 1-4
        max_phase: Highest phase the scan mode allows

    Returns:
        Phase number 0..max_phase
    """
    phase = sum(1 for boundary in thresholds if elapsed_ms > boundary)
    return min(phase, max_phase)


class ReadingSink(Protocol):
    def append(self, reading: Reading) -> None:
        ...


@dataclass(frozen=True)
class DecodeAttempt:
    """A successful pass: what was read, by what, on which buffer."""

    value: str
    source_tag: str
    pass_name: str
    format: Optional[str] = None


@dataclass
class TickOutcome:
    """
    What one tick did.

    Attributes:
        phase: Phase after the tick (0 again after a commit)
        attempted: Whether decode passes ran
        phase_changed: Whether the phase differs from the previous tick
        readings: Readings committed during the tick (OCR results included)
        hint: Status text to show the operator, if any
    """

    phase: int
    attempted: bool = False
    phase_changed: bool = False
    readings: List[Reading] = field(default_factory=list)
    hint: Optional[str] = None


def _try_decoders(
    decoders: Iterable[Optional[BarcodeDecoder]],
    buffer: np.ndarray,
    pass_name: str,
    accept: Callable[[str], bool],
    on_hint: Optional[Callable[[Rectangle], None]] = None,
) -> Optional[DecodeAttempt]:
    for decoder in decoders:
        if decoder is None:
            continue
        try:
            result = decoder.decode(buffer)
        except Exception as e:
            logger.debug(f"{decoder.name} error on {pass_name}: {e}")
            continue
        if result is None:
            continue

        if on_hint is not None:
            rect = result.bounding_rect()
            if rect is not None:
                on_hint(rect)

        value = normalize_text(result.text)
        if accept(value):
            return DecodeAttempt(value, decoder.name, pass_name, result.format or None)
        logger.debug(f"{decoder.name} read rejected value {value!r} on {pass_name}")
    return None


# =============================================================================
# ORCHESTRATOR
# =============================================================================

class DecodeOrchestrator:
    """
    Runs the escalation state machine for one capture stream.

    Attributes:
        engines: Barcode and OCR engines
        config: Session configuration
        session: Current session state (owned by the tick loop)
    """

    def __init__(
        self,
        engines: EngineSet,
        config: Optional[ScanConfig] = None,
        sink: Optional[ReadingSink] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.engines = engines
        self.config = config or ScanConfig()
        self._sink = sink
        self._clock = clock or now_ms

        self._gate = StabilityGate(
            self.config.motion_threshold,
            self.config.stable_frames_required,
            self.config.stability_patch_size,
        )
        self._dedup = Deduplicator(self.config.min_value_length, self.config.dedupe_window_ms)
        self._preset = get_preset(self.config.preset)

        self._ocr_results: "queue.Queue[Tuple[int, Optional[str]]]" = queue.Queue()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._ocr_future: Optional[Future] = None

        self._generation = 0
        self.session = ScanSession()

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self) -> ScanSession:
        """Begin a new session; any work still pending from the old one is stale."""
        previous = self.session
        self._generation += 1
        now = self._clock()

        self.session = ScanSession(
            generation=self._generation,
            active=True,
            phase_started_at=now,
            last_committed_value=previous.last_committed_value,
            last_committed_at=previous.last_committed_at,
        )
        logger.debug(f"Session {self._generation} started")
        return self.session

    def stop(self) -> None:
        self.session.active = False
        logger.debug(f"Session {self.session.generation} stopped")

    def close(self) -> None:
        """Stop and release the OCR worker."""
        self.stop()
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None

    @property
    def is_active(self) -> bool:
        return self.session.active

    def wait_for_ocr(self, timeout: Optional[float] = None) -> None:
        """Block until the last submitted OCR call has finished."""
        if self._ocr_future is not None:
            self._ocr_future.result(timeout=timeout)

    # =========================================================================
    # COMMIT
    # =========================================================================

    def accepts(self, value: str) -> bool:
        return self._dedup.is_acceptable(value) and self.config.accepts(value)

    def commit(self, value: str, source_tag: str, fmt: Optional[str] = None) -> Optional[Reading]:
        """
        Turn a decoded value into a reading, unless it is noise or a repeat.

        A commit resets escalation to phase 0.

        Returns:
            The new Reading, or None if the value was rejected
        """
        s = self.session
        value = normalize_text(value)
        if not self.accepts(value):
            return None

        now = self._clock()
        if self._dedup.is_duplicate(value, s.last_committed_value, s.last_committed_at, now):
            logger.debug(f"Duplicate {value} ignored")
            return None

        reading = Reading(timestamp=now, value=value, source_tag=source_tag, format=fmt)
        s.last_committed_value = value
        s.last_committed_at = now
        s.phase = 0
        s.phase_started_at = now

        if self._sink is not None:
            self._sink.append(reading)

        logger.info(f"✅ Reading committed: {value} ({source_tag})")
        return reading

    # =========================================================================
    # TICK
    # =========================================================================

    def tick(self, frame: np.ndarray) -> TickOutcome:
        """
        Process one frame.

        Args:
            frame: RGBA frame (not modified)

        Returns:
            TickOutcome describing what happened
        """
        s = self.session
        outcome = TickOutcome(phase=s.phase)
        if not s.active:
            return outcome

        previous = s.phase
        now = self._clock()
        outcome.readings.extend(self._drain_ocr())

        if self._gate.observe(s, frame) and self._due(now):
            s.last_attempt_at = now
            outcome.attempted = True
            self._attempt(frame, now, outcome)

        outcome.phase = s.phase
        if s.phase != previous:
            logger.debug(f"Phase {previous} -> {s.phase}")
            outcome.phase_changed = True
            if outcome.hint is None:
                outcome.hint = PHASE_HINTS[s.phase]
        return outcome

    def _due(self, now: float) -> bool:
        last = self.session.last_attempt_at
        return last is None or now - last >= self.config.min_decode_interval_ms

    def _attempt(self, frame: np.ndarray, now: float, outcome: TickOutcome) -> None:
        s = self.session
        s.phase = compute_phase(
            now - s.phase_started_at,
            self.config.phase_thresholds_ms,
            self.config.max_phase,
        )

        attempt = self._run_passes(frame, s.phase)
        if attempt is not None:
            # A duplicate ends the tick without resetting escalation
            reading = self.commit(attempt.value, attempt.source_tag, attempt.format)
            if reading is not None:
                outcome.readings.append(reading)
        elif s.phase >= 4:
            self._submit_ocr(frame, now)
            if s.stable_frame_streak % STALL_HINT_EVERY == 0:
                outcome.hint = STALL_HINT

    def _remember_hint(self, rect: Rectangle) -> None:
        self.session.last_hint_rect = rect

    def _run_passes(self, frame: np.ndarray, phase: int) -> Optional[DecodeAttempt]:
        primary = self.engines.primary
        secondary = self.engines.secondary
        accept = self.accepts
        hint = self._remember_hint

        work = to_grayscale(frame)

        attempt = _try_decoders([primary], work, "raw", accept, hint)
        if attempt or phase < 1:
            return attempt

        attempt = _try_decoders([secondary], work, "raw", accept, hint)
        if attempt or phase < 2:
            return attempt

        work = histogram_stretch(work, *PHASE_STRETCH)
        attempt = _try_decoders([primary, secondary], work, "stretched", accept, hint)
        if attempt or phase < 3:
            return attempt

        binarize_inplace(work)
        attempt = _try_decoders([primary, secondary], work, "binarized", accept, hint)
        if attempt:
            return attempt

        invert_inplace(work)
        attempt = _try_decoders([primary, secondary], work, "inverted", accept, hint)
        invert_inplace(work)
        if attempt:
            return attempt

        prepared = preprocess_for_scanner(frame, self._preset)
        for variant in prepared.variants:
            attempt = _try_decoders([primary], variant.buffer, variant.name, accept)
            if attempt:
                return attempt

        return None

    # =========================================================================
    # OCR
    # =========================================================================

    def _submit_ocr(self, frame: np.ndarray, now: float) -> None:
        s = self.session
        ocr = self.engines.ocr
        if ocr is None or s.ocr_busy:
            return
        if s.last_ocr_at is not None and now - s.last_ocr_at <= self.config.ocr_throttle_ms:
            return

        s.ocr_busy = True
        s.last_ocr_at = now

        height, width = frame.shape[:2]
        region = ocr_region((width, height), s.last_hint_rect)
        gray = to_grayscale(frame)

        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ocr")
        self._ocr_future = self._executor.submit(self._ocr_job, s.generation, gray, region)
        logger.debug(f"OCR submitted on {region.as_dict()}")

    def _ocr_job(self, generation: int, gray: np.ndarray, region: Rectangle) -> None:
        value = None
        try:
            value = run_ocr(
                self.engines.ocr,
                gray,
                region,
                whitelist=self.config.ocr_whitelist,
                min_length=self.config.min_value_length,
                pattern=self.config.compiled_pattern,
            )
        except Exception as e:
            logger.warning(f"OCR failed: {e}")
        finally:
            self._ocr_results.put((generation, value))

    def _drain_ocr(self) -> List[Reading]:
        readings = []
        while True:
            try:
                generation, value = self._ocr_results.get_nowait()
            except queue.Empty:
                break

            if generation != self.session.generation:
                logger.debug(f"Stale OCR result from session {generation} dropped")
                continue

            self.session.ocr_busy = False
            if value and self.session.active:
                reading = self.commit(value, SOURCE_OCR, OCR_FORMAT)
                if reading is not None:
                    readings.append(reading)
        return readings


# =============================================================================
# SINGLE-SHOT DECODE
# =============================================================================

def decode_static_image(
    rgba: np.ndarray,
    engines: EngineSet,
    config: Optional[ScanConfig] = None,
) -> Optional[DecodeAttempt]:
    """
    Try everything on one uploaded image, in priority order.

    Order: the raw image, then every enhanced variant, each with the
    primary and then the secondary decoder; finally OCR on the whole
    ocr-optimized crop.

    Returns:
        The first successful attempt, or None if every pass missed
    """
    config = config or ScanConfig()
    dedup = Deduplicator(config.min_value_length, config.dedupe_window_ms)

    def accept(value: str) -> bool:
        return dedup.is_acceptable(value) and config.accepts(value)

    decoders = engines.decoders

    attempt = _try_decoders(decoders, to_grayscale(rgba), "raw", accept)
    if attempt:
        return attempt

    prepared = preprocess_for_scanner(rgba, get_preset(config.preset))
    for variant in prepared.variants:
        attempt = _try_decoders(decoders, variant.buffer, variant.name, accept)
        if attempt:
            return attempt

    if engines.ocr is None:
        return None

    ocr_buffer = prepared.variant(OCR_OPTIMIZED).buffer
    height, width = ocr_buffer.shape[:2]
    try:
        value = run_ocr(
            engines.ocr,
            ocr_buffer,
            Rectangle(0, 0, width, height),
            whitelist=config.ocr_whitelist,
            min_length=config.min_value_length,
            pattern=config.compiled_pattern,
        )
    except Exception as e:
        logger.warning(f"OCR failed on upload: {e}")
        return None

    if value:
        return DecodeAttempt(value, SOURCE_OCR, OCR_OPTIMIZED, OCR_FORMAT)
    return None
