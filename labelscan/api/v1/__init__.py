"""
==============================================================================
API v1 Endpoints
==============================================================================

Version 1 of the REST API.

Routers:
--------
- health: Health check endpoints
- decode: Single-shot image decoding and previews
- readings: Reading history and manual entry

==============================================================================
"""

from . import health, decode, readings

__all__ = ["health", "decode", "readings"]
