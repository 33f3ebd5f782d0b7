"""
==============================================================================
Decode Engines Module
==============================================================================

Adapters around the external barcode and OCR engines.

Engines:
--------
- ZXingDecoder:  zxing-cpp (preferred primary engine)
- PyzbarDecoder: pyzbar / ZBar (secondary engine, different algorithm)
- TesseractOcr:  pytesseract (single-line OCR on small regions)

Error model:
-----------
- A decoder that finds nothing returns None.
- A decoder call that fails raises EngineError; callers treat it as a miss.
- An engine that cannot be constructed (library or binary missing) raises
  EngineUnavailableError; this is fatal for a session.

Engine libraries are imported when an engine is constructed, so a missing
optional engine only matters if it is configured.

==============================================================================
"""

from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Tuple

import numpy as np

from labelscan.imaging.primitives import to_grayscale, to_uint8
from labelscan.imaging.roi import Rectangle


# Module logger
logger = logging.getLogger(__name__)


# 1-D symbologies found on shipping and product labels
ZXING_FORMATS = ("Code128", "Code39", "EAN13", "EAN8", "ITF", "UPCA", "UPCE", "Codabar")
ZBAR_SYMBOLS = ("CODE128", "CODE39", "EAN13", "EAN8", "I25", "UPCA", "UPCE", "CODABAR")


# =============================================================================
# ERRORS
# =============================================================================

class EngineError(Exception):
    """An engine call failed on a particular buffer."""


class EngineUnavailableError(Exception):
    """An engine could not be constructed."""

    def __init__(self, engine: str, reason: str) -> None:
        self.engine = engine
        self.reason = reason
        super().__init__(f"{engine} unavailable: {reason}")


def _load(module: str, engine: str):
    try:
        return importlib.import_module(module)
    except ImportError as e:
        raise EngineUnavailableError(engine, str(e)) from e


# =============================================================================
# RESULT / PROTOCOLS
# =============================================================================

@dataclass(frozen=True)
class DecodeResult:
    """
    What a barcode engine reports for one symbol.

    Attributes:
        text: Decoded payload
        format: Symbology name
        points: Corner points in buffer coordinates (may be empty)
    """

    text: str
    format: str = ""
    points: Tuple[Tuple[float, float], ...] = field(default_factory=tuple)

    def bounding_rect(self) -> Optional[Rectangle]:
        if not self.points:
            return None
        return Rectangle.from_points(self.points)


class BarcodeDecoder(Protocol):
    name: str

    def decode(self, buffer: np.ndarray) -> Optional[DecodeResult]:
        ...


class OcrEngine(Protocol):
    name: str

    def recognize(self, buffer: np.ndarray, whitelist: Optional[str] = None) -> str:
        ...


def _as_gray_uint8(buffer: np.ndarray) -> np.ndarray:
    # Engines expect 8-bit single channel; RGBA is reduced to its luma
    if buffer.ndim == 3:
        buffer = to_grayscale(buffer)
    return np.ascontiguousarray(to_uint8(buffer))


# =============================================================================
# BARCODE ENGINES
# =============================================================================

class ZXingDecoder:
    """
    zxing-cpp adapter restricted to 1-D label symbologies.

    Example:
        >>> decoder = ZXingDecoder()
        >>> result = decoder.decode(gray)
        >>> result.text if result else None
        '4006381333931'
    """

    name = "zxingcpp"

    def __init__(self) -> None:
        self._zxing = _load("zxingcpp", self.name)

        formats = [
            getattr(self._zxing.BarcodeFormat, f)
            for f in ZXING_FORMATS
            if hasattr(self._zxing.BarcodeFormat, f)
        ]
        self._formats = tuple(formats) or None

        logger.debug(f"ZXing decoder ready ({len(formats)} formats)")

    def decode(self, buffer: np.ndarray) -> Optional[DecodeResult]:
        gray = _as_gray_uint8(buffer)
        kwargs = {"try_rotate": True, "try_downscale": True}
        if self._formats is not None:
            kwargs["formats"] = self._formats

        try:
            results = self._zxing.read_barcodes(gray, **kwargs)
        except Exception as e:
            raise EngineError(f"zxing-cpp failed: {e}") from e

        for r in results:
            if not r.text:
                continue
            pos = r.position
            points = tuple(
                (float(p.x), float(p.y))
                for p in (pos.top_left, pos.top_right, pos.bottom_right, pos.bottom_left)
            )
            fmt = getattr(r.format, "name", str(r.format))
            return DecodeResult(text=r.text, format=fmt, points=points)

        return None


class PyzbarDecoder:
    """pyzbar (ZBar) adapter restricted to 1-D label symbologies."""

    name = "pyzbar"

    def __init__(self) -> None:
        module = _load("pyzbar.pyzbar", self.name)
        self._decode = module.decode
        # Symbol availability depends on the ZBar build
        self._symbols = [
            getattr(module.ZBarSymbol, n)
            for n in ZBAR_SYMBOLS
            if getattr(module.ZBarSymbol, n, None) is not None
        ]
        logger.debug(f"ZBar decoder ready ({len(self._symbols)} symbologies)")

    def decode(self, buffer: np.ndarray) -> Optional[DecodeResult]:
        gray = _as_gray_uint8(buffer)

        try:
            results = self._decode(gray, symbols=self._symbols or None)
        except Exception as e:
            raise EngineError(f"pyzbar failed: {e}") from e

        for r in results:
            text = r.data.decode("utf-8", errors="replace")
            if not text:
                continue
            points = tuple((float(p.x), float(p.y)) for p in (r.polygon or []))
            if not points:
                left, top, width, height = r.rect
                points = (
                    (float(left), float(top)),
                    (float(left + width), float(top + height)),
                )
            return DecodeResult(text=text, format=str(r.type), points=points)

        return None


# =============================================================================
# OCR ENGINE
# =============================================================================

class TesseractOcr:
    """
    pytesseract adapter for single-line text on small crops.

    Attributes:
        psm: Tesseract page segmentation mode (7 = single text line)
    """

    name = "tesseract"

    def __init__(self, psm: int = 7) -> None:
        self._tesseract = _load("pytesseract", self.name)
        self.psm = psm

        try:
            version = self._tesseract.get_tesseract_version()
        except Exception as e:
            raise EngineUnavailableError(self.name, f"tesseract binary not usable: {e}") from e

        logger.debug(f"Tesseract {version} ready")

    def recognize(self, buffer: np.ndarray, whitelist: Optional[str] = None) -> str:
        gray = _as_gray_uint8(buffer)
        config = f"--psm {self.psm}"
        if whitelist:
            config += f" -c tessedit_char_whitelist={whitelist}"

        try:
            return self._tesseract.image_to_string(gray, config=config)
        except Exception as e:
            raise EngineError(f"tesseract failed: {e}") from e


# =============================================================================
# ENGINE SET
# =============================================================================

BARCODE_ENGINE_TYPES = {
    ZXingDecoder.name: ZXingDecoder,
    PyzbarDecoder.name: PyzbarDecoder,
}


@dataclass
class EngineSet:
    """
    The engines one session consults, in priority order.

    Attributes:
        primary: Required barcode engine
        secondary: Optional barcode engine with a different algorithm
        ocr: Optional OCR engine
    """

    primary: BarcodeDecoder
    secondary: Optional[BarcodeDecoder] = None
    ocr: Optional[OcrEngine] = None

    @property
    def decoders(self) -> List[BarcodeDecoder]:
        return [d for d in (self.primary, self.secondary) if d is not None]

    def describe(self) -> dict:
        return {
            "primary": self.primary.name,
            "secondary": self.secondary.name if self.secondary else None,
            "ocr": self.ocr.name if self.ocr else None,
        }


def _optional(factory):
    try:
        return factory()
    except EngineUnavailableError as e:
        logger.warning(f"⚠️ Optional engine disabled: {e}")
        return None


def build_engines(
    primary: str = "zxingcpp",
    secondary: Optional[str] = "pyzbar",
    ocr: Optional[str] = "tesseract",
) -> EngineSet:
    """
    Construct the configured engines.

    The primary engine is required. Secondary and OCR engines that cannot
    be constructed are disabled with a warning.

    Raises:
        EngineUnavailableError: If the primary engine cannot be constructed
    """
    primary_type = BARCODE_ENGINE_TYPES.get(primary)
    if primary_type is None:
        raise EngineUnavailableError(primary, "unknown barcode engine")

    try:
        primary_engine = primary_type()
    except EngineUnavailableError as e:
        logger.error(f"❌ Primary engine failed: {e}")
        raise

    secondary_engine = None
    if secondary and secondary != "none" and secondary != primary:
        secondary_type = BARCODE_ENGINE_TYPES.get(secondary)
        if secondary_type is None:
            logger.warning(f"⚠️ Unknown secondary engine '{secondary}' ignored")
        else:
            secondary_engine = _optional(secondary_type)

    ocr_engine = None
    if ocr == TesseractOcr.name:
        ocr_engine = _optional(TesseractOcr)

    engines = EngineSet(primary_engine, secondary_engine, ocr_engine)
    logger.info(f"🔧 Engines ready: {engines.describe()}")
    return engines
