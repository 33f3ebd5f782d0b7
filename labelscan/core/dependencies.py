"""
==============================================================================
FastAPI Dependencies Module
==============================================================================

Dependency injection for engines, the reading log and services.

This module implements:
- EngineManager: Builds the configured decode engines once, on first use
- FastAPI dependencies for routes and WebSocket handlers

Design Pattern: Dependency Injection
-----------------------------------
FastAPI's dependency injection system is used to:
- Share one engine set across requests
- Translate engine construction failures into 503 responses
- Hand every request the shared reading log
- Build per-request services from settings

Dependency Hierarchy:
--------------------
                    ┌──────────────────┐
                    │  get_settings()  │
                    └────────┬─────────┘
                             │
        ┌────────────────────┼────────────────────┐
        │                    │                    │
┌───────▼────────┐  ┌────────▼────────┐  ┌────────▼───────┐
│get_engine_mgr  │  │ get_scan_config │  │get_reading_log │
└───────┬────────┘  └────────┬────────┘  └────────┬───────┘
        │                    │                    │
┌───────▼────────┐           └─────────┬──────────┘
│  get_engines   │           ┌─────────▼────────┐
└────────────────┘           │ get_scan_service │
                             └──────────────────┘

Usage Examples:
--------------
    @router.post("/decode")
    async def decode(
        engines: EngineSet = Depends(get_engines),
        service: ScanService = Depends(get_scan_service),
    ):
        ...

==============================================================================
"""

from __future__ import annotations

import logging
import threading
from functools import lru_cache
from typing import Optional

from fastapi import Depends

from labelscan.config import Settings, get_settings
from labelscan.core.exceptions import engine_unavailable
from labelscan.scanner.engines import EngineSet, EngineUnavailableError, build_engines
from labelscan.schemas.scan import ScanConfig
from labelscan.services.reading_log import ReadingLog, get_reading_log as get_global_log, init_reading_log
from labelscan.services.scan_service import ScanService


# Module logger
logger = logging.getLogger(__name__)


class EngineManager:
    """
    Lazily builds and caches the configured engine set.

    Construction is attempted on first use and again on later calls after
    a failure, so installing a missing engine does not need a restart.

    Attributes:
        _settings: Application settings naming the engines
        _engines: Cached engine set (None until built)

    Example:
        >>> manager = EngineManager(get_settings())
        >>> engines = manager.get()
        >>> engines.primary.name
        'zxingcpp'
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._engines: Optional[EngineSet] = None
        self._lock = threading.Lock()

    def get(self) -> EngineSet:
        """
        Get the engine set, building it if needed.

        Raises:
            EngineUnavailableError: If the primary engine cannot be built
        """
        with self._lock:
            if self._engines is None:
                self._engines = build_engines(
                    primary=self._settings.primary_engine,
                    secondary=self._settings.secondary_engine,
                    ocr=self._settings.ocr_engine,
                )
            return self._engines

    @property
    def is_ready(self) -> bool:
        return self._engines is not None


# =============================================================================
# FASTAPI DEPENDENCY FUNCTIONS
# =============================================================================

@lru_cache(maxsize=1)
def get_engine_manager() -> EngineManager:
    """Global EngineManager (singleton)."""
    return EngineManager(get_settings())


def get_engines(manager: EngineManager = Depends(get_engine_manager)) -> EngineSet:
    """
    FastAPI dependency providing the engine set.

    Raises:
        AppException: ENGINE_UNAVAILABLE (503) if the primary engine is missing
    """
    try:
        return manager.get()
    except EngineUnavailableError as e:
        raise engine_unavailable(e.engine, e.reason)


def get_reading_log() -> ReadingLog:
    """FastAPI dependency providing the shared reading log."""
    log = get_global_log()
    if log is None:
        log = init_reading_log()
    return log


def get_scan_config(settings: Settings = Depends(get_settings)) -> ScanConfig:
    """Scan configuration built from application settings."""
    return ScanConfig.from_settings(settings)


def get_scan_service(
    reading_log: ReadingLog = Depends(get_reading_log),
    config: ScanConfig = Depends(get_scan_config),
    settings: Settings = Depends(get_settings),
) -> ScanService:
    """FastAPI dependency providing a ScanService."""
    return ScanService(reading_log, config, max_upload_bytes=settings.max_upload_bytes)
