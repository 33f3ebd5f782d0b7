"""
==============================================================================
Versioned REST Routes
==============================================================================

Everything under /api/v1: health checks, single-shot decoding and the
reading history.

==============================================================================
"""

from fastapi import APIRouter

from labelscan.api.v1 import health, decode, readings


class MainAPIRouter:
    """Mounts each v1 controller module's router under /api/v1."""

    PREFIX = "/api/v1"
    MODULES = (health, decode, readings)

    def __init__(self):
        self._router = APIRouter(prefix=self.PREFIX)
        for module in self.MODULES:
            self._router.include_router(module.router)

    @property
    def router(self) -> APIRouter:
        return self._router


api_router = MainAPIRouter().router
