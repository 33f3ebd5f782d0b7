"""
==============================================================================
Core Package
==============================================================================

Core utilities and infrastructure for the application.

This package provides:
- Custom exception handling with consistent error responses
- Exception factory functions for common error scenarios
- FastAPI dependencies for engines, the reading log and services

Modules:
--------
- exceptions: AppException class and error factory functions
- dependencies: FastAPI dependency injection functions (imported directly,
  since it depends on the service layer which itself raises AppException)

Usage:
------
    from labelscan.core import AppException
    from labelscan.core.dependencies import get_engines, get_scan_service

    # Or use exception factory functions via module
    from labelscan.core import exceptions
    raise exceptions.no_decode_result()

==============================================================================
"""

from .exceptions import (
    AppException,
    register_exception_handlers,
)

__all__ = [
    # Exceptions
    "AppException",
    "register_exception_handlers",
]
