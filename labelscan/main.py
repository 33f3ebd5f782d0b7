"""
==============================================================================
Label Scan Service - ASGI Entry Point
==============================================================================

Wires the FastAPI app together:

- /api/v1/...  single-shot decode, enhancement previews, reading history
- /ws/scan     live capture sessions with time-based escalation

Decode engines are built once while the app starts so that a missing
barcode library shows up in the startup log instead of on the first scan.

Run locally with auto-reload:

    uvicorn labelscan.main:app --reload

==============================================================================
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from labelscan.config import Settings, get_settings
from labelscan.core.dependencies import get_engine_manager
from labelscan.core.exceptions import register_exception_handlers
from labelscan.api.router import api_router
from labelscan.scanner.engines import EngineUnavailableError
from labelscan.services.reading_log import init_reading_log
from labelscan.websockets import scanner_router


settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
)

logger = logging.getLogger(__name__)


class Application:
    """
    Owns the FastAPI instance for the label scan service.

    Construction registers CORS, the AppException handlers, the REST and
    WebSocket routers and the "/" summary. Startup creates the shared
    reading log and warms up the decode engines.
    """

    def __init__(self, settings: Settings = None):
        self._settings = settings or get_settings()
        self._app = FastAPI(
            title=self._settings.app_name,
            version="1.0.0",
            description="Label barcode and serial decoding with progressive enhancement",
            lifespan=self._lifespan,
        )
        self._app.add_middleware(
            CORSMiddleware,
            allow_origins=self._settings.cors_origins_list,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
        register_exception_handlers(self._app)
        self._app.include_router(api_router)
        self._app.include_router(scanner_router)
        self._app.add_api_route("/", self._summary, methods=["GET"], include_in_schema=False)

    @property
    def app(self) -> FastAPI:
        return self._app

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        name = self._settings.app_name
        logger.info(f"🚀 {name} starting ({self._settings.app_env})")

        init_reading_log()
        self._warm_up_engines()

        base = f"http://{self._settings.host}:{self._settings.port}"
        logger.info(f"✅ {name} listening on {base} (docs at {base}/docs)")
        yield
        logger.info(f"🛑 {name} stopped")

    def _warm_up_engines(self) -> None:
        try:
            get_engine_manager().get()
        except EngineUnavailableError as e:
            # Decode requests answer 503 until this is fixed
            logger.error(f"❌ Primary decode engine unavailable: {e}")

    async def _summary(self) -> dict:
        return {
            "name": self._settings.app_name,
            "docs": "/docs",
            "health": "/api/v1/health",
            "websocket": "/ws/scan",
        }


application = Application(settings)
app = application.app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "labelscan.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level,
    )
