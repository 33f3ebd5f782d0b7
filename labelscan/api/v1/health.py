"""
==============================================================================
Health Endpoints
==============================================================================

Probes for load balancers and a status report listing which decode engines
were loaded. A missing secondary or OCR engine degrades the service; a
missing primary engine makes it not ready.

==============================================================================
"""

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool

from labelscan.core.dependencies import EngineManager, get_engine_manager, get_reading_log
from labelscan.scanner.engines import EngineUnavailableError
from labelscan.services.reading_log import ReadingLog


router = APIRouter(prefix="/health", tags=["Health"])


class HealthController:
    """Builds the status report from the engine manager and reading log."""

    def __init__(self, manager: EngineManager, reading_log: ReadingLog):
        self._manager = manager
        self._log = reading_log

    def engine_status(self) -> tuple:
        """Return (status, described engines, error message or None)."""
        try:
            described = self._manager.get().describe()
        except EngineUnavailableError as e:
            return "unhealthy", {}, str(e)

        optional_missing = described["secondary"] is None or described["ocr"] is None
        return ("degraded" if optional_missing else "healthy"), described, None

    def report(self) -> dict:
        status, engines, error = self.engine_status()
        details = {"engines": engines, "readings": len(self._log)}
        if error:
            details["engine_error"] = error

        return {
            "status": "healthy" if status == "healthy" else "degraded",
            "components": {"api": "healthy", "engines": status},
            "details": details,
        }


@router.get("")
async def health_check(
    manager: EngineManager = Depends(get_engine_manager),
    reading_log: ReadingLog = Depends(get_reading_log),
):
    """Service status with per-engine availability and the reading count."""
    # Building engines may import libraries and run the tesseract binary
    return await run_in_threadpool(HealthController(manager, reading_log).report)


@router.get("/ready")
async def readiness_check(manager: EngineManager = Depends(get_engine_manager)):
    """Ready once the primary barcode engine has been built."""
    try:
        await run_in_threadpool(manager.get)
    except EngineUnavailableError:
        return {"ready": False}
    return {"ready": True}


@router.get("/live")
async def liveness_check():
    return {"alive": True}
