"""
==============================================================================
WebSocket Package
==============================================================================

Real-time WebSocket handlers for label scanning.

Handlers:
---------
- scanner: Live frame stream driving the decode escalation loop

==============================================================================
"""

from .scanner import router as scanner_router

__all__ = ["scanner_router"]
