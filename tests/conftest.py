"""
==============================================================================
Pytest Configuration and Fixtures
==============================================================================

Provides synthetic label images, fake engines, a controllable clock and a
test client with engine and reading-log dependencies overridden.

==============================================================================
"""

import asyncio
import base64
from typing import Dict, Generator, List, Optional

import cv2
import numpy as np
import pytest
from fastapi.testclient import TestClient

from labelscan.core.dependencies import get_engine_manager, get_reading_log
from labelscan.imaging.primitives import gray_to_rgba
from labelscan.main import app
from labelscan.scanner.engines import (
    DecodeResult,
    EngineError,
    EngineSet,
    EngineUnavailableError,
)
from labelscan.services.reading_log import ReadingLog


EAN_VALUE = "4006381333931"


# ============================================================================
# SYNTHETIC IMAGES
# ============================================================================

_EAN_L = {
    "0": "0001101", "1": "0011001", "2": "0010011", "3": "0111101", "4": "0100011",
    "5": "0110001", "6": "0101111", "7": "0111011", "8": "0110111", "9": "0001011",
}
_EAN_G = {
    "0": "0100111", "1": "0110011", "2": "0011011", "3": "0100001", "4": "0011101",
    "5": "0111001", "6": "0000101", "7": "0010001", "8": "0001001", "9": "0010111",
}
_EAN_R = {d: "".join("1" if c == "0" else "0" for c in code) for d, code in _EAN_L.items()}
_EAN_PARITY = {
    "0": "LLLLLL", "1": "LLGLGG", "2": "LLGGLG", "3": "LLGGGL", "4": "LGLLGG",
    "5": "LGGLLG", "6": "LGGGLL", "7": "LGLGLG", "8": "LGLGGL", "9": "LGGLGL",
}


def ean13_modules(digits: str) -> str:
    """Bar pattern of an EAN-13 code as a string of 0 (space) / 1 (bar)."""
    parity = _EAN_PARITY[digits[0]]
    left = "".join(
        (_EAN_L if p == "L" else _EAN_G)[d] for p, d in zip(parity, digits[1:7])
    )
    right = "".join(_EAN_R[d] for d in digits[7:13])
    return "101" + left + "01010" + right + "101"


def render_ean13(
    digits: str = EAN_VALUE,
    module: int = 3,
    height: int = 120,
    quiet: int = 12,
    margin_y: int = 30,
    dark: int = 0,
    light: int = 255,
) -> np.ndarray:
    """Render an EAN-13 symbol as a grayscale uint8 image."""
    pattern = ean13_modules(digits)
    width = (len(pattern) + 2 * quiet) * module
    image = np.full((height + 2 * margin_y, width), light, dtype=np.uint8)

    for i, bit in enumerate(pattern):
        if bit == "1":
            x0 = (quiet + i) * module
            image[margin_y:margin_y + height, x0:x0 + module] = dark
    return image


def stripes(
    size: int = 240,
    x_range=(60, 180),
    y_range=(40, 200),
    bar: int = 6,
    period: int = 12,
) -> np.ndarray:
    """White float image with vertical black bars."""
    image = np.full((size, size), 255.0, dtype=np.float32)
    for x in range(x_range[0], x_range[1], period):
        image[y_range[0]:y_range[1], x:x + bar] = 0.0
    return image


def png_bytes(image: np.ndarray) -> bytes:
    ok, encoded = cv2.imencode(".png", image)
    assert ok
    return encoded.tobytes()


def png_base64(image: np.ndarray) -> str:
    return base64.b64encode(png_bytes(image)).decode("ascii")


@pytest.fixture
def ean_gray() -> np.ndarray:
    """Clean, well-lit, upright EAN-13 label."""
    return render_ean13()


@pytest.fixture
def ean_rgba(ean_gray: np.ndarray) -> np.ndarray:
    return gray_to_rgba(ean_gray)


# ============================================================================
# CLOCK
# ============================================================================

class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start: float = 1_700_000_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ============================================================================
# FAKE ENGINES
# ============================================================================

class ContrastDecoder:
    """
    Decodes only buffers with enough dynamic range.

    Mimics a real engine that fails on washed-out images and succeeds once
    contrast has been restored.
    """

    def __init__(self, name: str = "fake-primary", text: str = EAN_VALUE, min_range: float = 200.0):
        self.name = name
        self.text = text
        self.min_range = min_range
        self.calls = 0

    def decode(self, buffer: np.ndarray) -> Optional[DecodeResult]:
        self.calls += 1
        gray = buffer if buffer.ndim == 2 else buffer[..., 0]
        spread = float(np.percentile(gray, 99) - np.percentile(gray, 1))
        if spread < self.min_range:
            return None
        return DecodeResult(text=self.text, format="EAN13", points=((10.0, 10.0), (50.0, 40.0)))


class NeverDecoder:
    """Never finds anything."""

    def __init__(self, name: str = "never"):
        self.name = name
        self.calls = 0

    def decode(self, buffer: np.ndarray) -> Optional[DecodeResult]:
        self.calls += 1
        return None


class ExplodingDecoder:
    """Fails on every call."""

    def __init__(self, name: str = "exploding", error: Exception = None):
        self.name = name
        self.error = error or EngineError("engine crashed")
        self.calls = 0

    def decode(self, buffer: np.ndarray) -> Optional[DecodeResult]:
        self.calls += 1
        raise self.error


class FakeOcr:
    """Returns scripted texts in order, then the last one forever."""

    def __init__(self, *texts: str, gate=None):
        self.name = "fake-ocr"
        self.texts: List[str] = list(texts) or [""]
        self.gate = gate
        self.calls = 0
        self.whitelists: List[Optional[str]] = []

    def recognize(self, buffer: np.ndarray, whitelist: Optional[str] = None) -> str:
        if self.gate is not None:
            self.gate.wait(5)
        self.whitelists.append(whitelist)
        text = self.texts[min(self.calls, len(self.texts) - 1)]
        self.calls += 1
        return text


class FakeEngineManager:
    """
    Stands in for EngineManager in API tests.

    Counts calls made on the event loop thread, where building real engines
    would block every other connection.
    """

    def __init__(self, engines: Optional[EngineSet] = None, error: Optional[EngineUnavailableError] = None):
        self._engines = engines
        self._error = error
        self.calls = 0
        self.loop_calls = 0

    def get(self) -> EngineSet:
        self.calls += 1
        try:
            asyncio.get_running_loop()
            self.loop_calls += 1
        except RuntimeError:
            pass
        if self._error is not None:
            raise self._error
        return self._engines

    @property
    def is_ready(self) -> bool:
        return self._engines is not None


@pytest.fixture
def fake_engines() -> EngineSet:
    return EngineSet(
        primary=ContrastDecoder("fake-primary"),
        secondary=ContrastDecoder("fake-secondary"),
        ocr=FakeOcr(""),
    )


# ============================================================================
# API FIXTURES
# ============================================================================

@pytest.fixture
def reading_log() -> ReadingLog:
    return ReadingLog()


def _client(manager: FakeEngineManager, reading_log: ReadingLog) -> Generator[TestClient, None, None]:
    app.dependency_overrides[get_engine_manager] = lambda: manager
    app.dependency_overrides[get_reading_log] = lambda: reading_log

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def engine_manager(fake_engines: EngineSet) -> FakeEngineManager:
    return FakeEngineManager(fake_engines)


@pytest.fixture
def client(engine_manager: FakeEngineManager, reading_log: ReadingLog) -> Generator[TestClient, None, None]:
    """Test client backed by fake engines and a fresh reading log."""
    yield from _client(engine_manager, reading_log)


@pytest.fixture
def broken_client(reading_log: ReadingLog) -> Generator[TestClient, None, None]:
    """Test client whose primary engine cannot be constructed."""
    manager = FakeEngineManager(error=EngineUnavailableError("zxingcpp", "No module named 'zxingcpp'"))
    yield from _client(manager, reading_log)


@pytest.fixture
def upload() -> Dict[str, tuple]:
    """Multipart payload holding a clean EAN-13 PNG."""
    return {"file": ("label.png", png_bytes(render_ean13()), "image/png")}
