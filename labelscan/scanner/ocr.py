"""
==============================================================================
OCR Fallback Module
==============================================================================

Reads printed serials when every barcode pass has failed.

OCR is only ever run on a small region, never the whole frame:

1. Region: the last barcode localization box if one is known, else a
   centred box 70% wide and 20% tall sitting 10% below the centre.
2. Margins: a little to each side, a little above and a lot below, since
   serials are usually printed under the bars.
3. Recognition: Otsu-binarized crop first, then the inverted crop.

Recognized text is normalized per token (uppercase, alphanumerics only)
and the longest token that passes the length and pattern checks wins.

==============================================================================
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Pattern, Tuple

import numpy as np

from labelscan.imaging.primitives import binarize_inplace, invert_inplace
from labelscan.imaging.roi import Rectangle, crop

from .engines import EngineError, OcrEngine


# Module logger
logger = logging.getLogger(__name__)


FALLBACK_WIDTH = 0.70
FALLBACK_HEIGHT = 0.20
FALLBACK_OFFSET_Y = 0.10

MARGIN_X = 0.06
MARGIN_TOP = 0.10
MARGIN_BOTTOM = 0.60

_NON_ALNUM = re.compile(r"[^A-Z0-9]")


def ocr_region(frame_size: Tuple[int, int], hint: Optional[Rectangle] = None) -> Rectangle:
    """
    Choose the region OCR should read.

    Args:
        frame_size: (width, height) of the frame
        hint: Barcode localization box from an earlier decode, if any

    Returns:
        Expanded region clamped to the frame
    """
    width, height = frame_size

    if hint is not None:
        box = hint
    else:
        bw = int(width * FALLBACK_WIDTH)
        bh = int(height * FALLBACK_HEIGHT)
        cx = width / 2.0
        cy = height / 2.0 + height * FALLBACK_OFFSET_Y
        box = Rectangle(int(cx - bw / 2.0), int(cy - bh / 2.0), max(1, bw), max(1, bh))

    grown = box.expanded(
        left=int(box.width * MARGIN_X),
        top=int(box.height * MARGIN_TOP),
        right=int(box.width * MARGIN_X),
        bottom=int(box.height * MARGIN_BOTTOM),
    )
    return grown.clamped(width, height)


def normalize_ocr_text(text: str) -> List[str]:
    """Split OCR output into uppercase alphanumeric tokens."""
    tokens = []
    for raw in (text or "").upper().split():
        token = _NON_ALNUM.sub("", raw)
        if token:
            tokens.append(token)
    return tokens


def extract_candidate(
    text: str,
    min_length: int = 5,
    pattern: Optional[Pattern[str]] = None,
) -> Optional[str]:
    """
    Pick the most plausible value out of raw OCR output.

    Args:
        text: Raw recognized text
        min_length: Shortest acceptable token
        pattern: Optional regex every candidate must fully match

    Returns:
        The longest qualifying token (first one on ties) or None
    """
    best: Optional[str] = None
    for token in normalize_ocr_text(text):
        if len(token) < min_length:
            continue
        if pattern is not None and not pattern.fullmatch(token):
            continue
        if best is None or len(token) > len(best):
            best = token
    return best


def _recognize(engine: OcrEngine, buffer: np.ndarray, whitelist: Optional[str]) -> str:
    try:
        return engine.recognize(buffer, whitelist)
    except EngineError as e:
        logger.debug(f"OCR miss: {e}")
        return ""


def run_ocr(
    engine: OcrEngine,
    gray: np.ndarray,
    region: Rectangle,
    whitelist: Optional[str] = None,
    min_length: int = 5,
    pattern: Optional[Pattern[str]] = None,
) -> Optional[str]:
    """
    Read a value from one region of a grayscale frame.

    The crop is binarized at its Otsu threshold and recognized; on no
    match it is inverted and recognized once more.

    Args:
        engine: OCR engine
        gray: Grayscale frame (not modified)
        region: Region to read
        whitelist: Characters the engine may emit
        min_length: Shortest acceptable value
        pattern: Optional acceptance regex

    Returns:
        Best candidate value or None
    """
    patch = crop(gray, region).astype(np.float32)
    if patch.size == 0:
        return None

    binarize_inplace(patch)
    value = extract_candidate(_recognize(engine, patch, whitelist), min_length, pattern)
    if value:
        return value

    invert_inplace(patch)
    return extract_candidate(_recognize(engine, patch, whitelist), min_length, pattern)
