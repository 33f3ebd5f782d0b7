"""
==============================================================================
Live Scan WebSocket
==============================================================================

One capture session per connection: the client streams camera frames and
the server answers with phase changes and committed readings.

Protocol:
---------
1. Client connects to /ws/scan
2. Client sends an init message, optionally with config overrides:
       {"type": "init", "config": {"mode": "deep", "min_value_length": 6}}
3. Server replies {"type": "init", "session": 1, "config": {...}, ...}
4. Client streams frames: {"type": "frame", "frame": "<base64 image>"}
5. Server sends, as they happen:
       {"type": "phase", "phase": 2, "hint": "Adjusting contrast..."}
       {"type": "reading", "reading": {...}}
       {"type": "error", "code": "...", "message": "..."}
6. {"type": "stop"} pauses decoding and is answered with {"type": "stopped"};
   frames sent while stopped get a SESSION_NOT_ACTIVE error
7. {"type": "restart"} starts a fresh session; the connection ends when the
   client closes it

Frames are processed one at a time, in arrival order; each tick runs in
the thread pool so the event loop stays responsive.

==============================================================================
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError

from labelscan.config import Settings, get_settings
from labelscan.core.dependencies import EngineManager, get_engine_manager, get_reading_log
from labelscan.core.exceptions import AppException, session_not_active
from labelscan.scanner.engines import EngineUnavailableError
from labelscan.scanner.orchestrator import PHASE_HINTS, DecodeOrchestrator, TickOutcome
from labelscan.schemas.scan import ScanConfig, ScanConfigOverrides
from labelscan.services.reading_log import ReadingLog
from labelscan.utils.images import decode_base64_image


# Module logger
logger = logging.getLogger(__name__)

router = APIRouter()


class ScannerWebSocketHandler:
    """
    Drives one DecodeOrchestrator from a WebSocket.

    The first message must be init; after that frame, restart and stop
    are accepted until the client goes away.
    """

    def __init__(
        self,
        websocket: WebSocket,
        manager: EngineManager,
        reading_log: ReadingLog,
        settings: Settings,
    ):
        self._websocket = websocket
        self._manager = manager
        self._log = reading_log
        self._settings = settings
        self._orchestrator: Optional[DecodeOrchestrator] = None

    async def send_error(self, message: str, code: str = "ERROR") -> None:
        await self._websocket.send_json({
            "type": "error",
            "code": code,
            "message": message
        })

    async def send_phase(self, phase: int, hint: Optional[str]) -> None:
        await self._websocket.send_json({
            "type": "phase",
            "phase": phase,
            "hint": hint or PHASE_HINTS[phase]
        })

    async def handle_init(self, data: dict) -> bool:
        """Build the session config and engines; False means close the socket."""
        try:
            overrides = ScanConfigOverrides(**(data.get("config") or {}))
            config = ScanConfig.from_settings(self._settings, **overrides.model_dump())
        except (ValidationError, ValueError) as e:
            await self.send_error(f"Invalid scan configuration: {e}", "VALIDATION_ERROR")
            return False

        try:
            engines = await run_in_threadpool(self._manager.get)
        except EngineUnavailableError as e:
            logger.error(f"❌ Cannot start scan session: {e}")
            await self.send_error(str(e), "ENGINE_UNAVAILABLE")
            return False

        self._orchestrator = DecodeOrchestrator(engines, config, sink=self._log)
        session = self._orchestrator.start()

        logger.info(f"Init: mode={config.mode.value}, engines={engines.describe()}")

        await self._websocket.send_json({
            "type": "init",
            "session": session.generation,
            "config": config.model_dump(mode="json"),
            "engines": engines.describe(),
            "hint": PHASE_HINTS[0]
        })

        return True

    async def report(self, outcome: TickOutcome) -> None:
        """Forward a tick's phase change, hint and readings."""
        if outcome.phase_changed or outcome.hint:
            await self.send_phase(outcome.phase, outcome.hint)

        for reading in outcome.readings:
            await self._websocket.send_json({
                "type": "reading",
                "reading": reading.as_dict()
            })

    async def handle_frame(self, data: dict) -> None:
        if not self._orchestrator.is_active:
            exc = session_not_active()
            await self.send_error(exc.message, exc.code)
            return

        try:
            frame = await run_in_threadpool(decode_base64_image, data.get("frame") or "")
        except AppException as e:
            await self.send_error(e.message, e.code)
            return

        outcome = await run_in_threadpool(self._orchestrator.tick, frame)
        await self.report(outcome)

    async def handle_restart(self) -> None:
        """Start a fresh session; pending OCR from the old one is dropped."""
        session = self._orchestrator.start()
        logger.info(f"🔄 Session restarted (generation {session.generation})")
        await self.send_phase(0, PHASE_HINTS[0])

    async def handle_stop(self) -> None:
        """Pause decoding; the socket stays open for a later restart."""
        self._orchestrator.stop()
        logger.info("🛑 Scan stopped by client")
        await self._websocket.send_json({
            "type": "stopped",
            "session": self._orchestrator.session.generation
        })

    async def run(self) -> None:
        await self._websocket.accept()
        logger.info("📷 Scan client connected")

        try:
            if not await self.handle_init(await self._websocket.receive_json()):
                await self._websocket.close()
                return

            while True:
                data = await self._websocket.receive_json()
                message_type = data.get("type")

                if message_type == "frame":
                    await self.handle_frame(data)

                elif message_type == "restart":
                    await self.handle_restart()

                elif message_type == "stop":
                    await self.handle_stop()

                else:
                    await self.send_error(f"Unknown message type: {message_type}", "UNKNOWN_MESSAGE")

        except WebSocketDisconnect:
            logger.info("📷 Scan client disconnected")
        finally:
            if self._orchestrator is not None:
                self._orchestrator.close()
            logger.info("✅ Scan session closed")


@router.websocket("/ws/scan")
async def websocket_scan(
    websocket: WebSocket,
    manager: EngineManager = Depends(get_engine_manager),
    reading_log: ReadingLog = Depends(get_reading_log),
    settings: Settings = Depends(get_settings),
):
    """Live label scanning; see the module docstring for the message protocol."""
    handler = ScannerWebSocketHandler(websocket, manager, reading_log, settings)
    await handler.run()
