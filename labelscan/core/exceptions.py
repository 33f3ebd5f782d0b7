"""
Label scan errors and their JSON rendering.

Every error that reaches a client is an AppException carrying a stable
code. REST handlers let it propagate to the registered handler; the
WebSocket handler catches it and sends {"type": "error", ...} instead.

Codes in use:

    INVALID_IMAGE        400  upload or frame is not a decodable image
    VALUE_REJECTED       400  manual value failed validation
    SESSION_NOT_ACTIVE   409  frame sent before init or after stop
    IMAGE_TOO_LARGE      413  upload above MAX_UPLOAD_MB
    NO_DECODE_RESULT     422  every pass of a single-shot decode missed
    VALIDATION_ERROR     422  bad session configuration
    ENGINE_UNAVAILABLE   503  primary barcode engine could not be loaded
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class AppException(Exception):
    """
    Error with a machine-readable code and the HTTP status to answer with.

    Usage:
        raise AppException("Image could not be decoded", "INVALID_IMAGE", 400)
        raise AppException("No result", "NO_DECODE_RESULT", 422, {"passes": 7})
    """

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 400,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Body of the error response: success flag plus an error object."""
        error: Dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "timestamp": self.timestamp,
        }
        if self.details:
            error["details"] = self.details
        return {"success": False, "error": error}


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    """Install the AppException handler on a freshly built app."""
    app.add_exception_handler(AppException, app_exception_handler)


# ============================================
# FACTORIES
# ============================================

def engine_unavailable(engine: str, reason: str) -> AppException:
    return AppException(
        f"Decode engine '{engine}' is unavailable",
        "ENGINE_UNAVAILABLE",
        503,
        {"engine": engine, "reason": reason}
    )


def invalid_image(reason: str = "Unsupported or corrupt image") -> AppException:
    return AppException(f"Invalid image: {reason}", "INVALID_IMAGE", 400)


def image_too_large(limit_mb: int) -> AppException:
    return AppException(
        f"Image exceeds the {limit_mb} MB upload limit",
        "IMAGE_TOO_LARGE",
        413,
        {"limit_mb": limit_mb}
    )


def no_decode_result(passes: Optional[int] = None) -> AppException:
    """Every decode pass and the OCR fallback came back empty."""
    return AppException(
        "No barcode or readable serial found in the image",
        "NO_DECODE_RESULT",
        422,
        {"passes": passes} if passes is not None else None
    )


def value_rejected(value: str, reason: str) -> AppException:
    return AppException(
        f"Value rejected: {reason}",
        "VALUE_REJECTED",
        400,
        {"value": value, "reason": reason}
    )


def session_not_active() -> AppException:
    return AppException("Scan session is not active", "SESSION_NOT_ACTIVE", 409)
