"""
ContentGate API Response Utilities
Standardized response format and error handling
"""
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from typing import Any, Dict, List
from datetime import datetime, timezone
import traceback

from .engine.errors import ApprovalEngineError
from .logging_config import api_logger


def _timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


# ============================================================
# SUCCESS RESPONSES
# ============================================================

def success(data: Any = None, message: str = None, meta: Dict = None) -> Dict:
    """Create success response"""
    response = {
        "ok": True,
        "timestamp": _timestamp(),
    }

    if data is not None:
        response["data"] = data

    if message:
        response["message"] = message

    if meta:
        response["meta"] = meta

    return response


def created(data: Any, message: str = "Created successfully") -> Dict:
    """201 Created response"""
    return success(data, message)


def deleted(message: str = "Deleted successfully") -> Dict:
    """200 Deleted response"""
    return success(message=message)


def paginated(items: List, total: int, page: int = 1, per_page: int = 20) -> Dict:
    """Paginated list response"""
    return {
        "ok": True,
        "data": items,
        "pagination": {
            "total": total,
            "page": page,
            "per_page": per_page,
            "total_pages": (total + per_page - 1) // per_page,
            "has_next": page * per_page < total,
            "has_prev": page > 1,
        },
        "timestamp": _timestamp(),
    }


# ============================================================
# ERROR RESPONSES
# ============================================================

class ApiException(HTTPException):
    """Custom API exception with error codes"""

    def __init__(
        self,
        status_code: int,
        message: str,
        error_code: str = None,
        details: Dict = None,
    ):
        self.error_code = error_code or f"ERR_{status_code}"
        self.details = details
        super().__init__(status_code=status_code, detail=message)


def bad_request(message: str, code: str = "BAD_REQUEST", details: Dict = None):
    raise ApiException(400, message, code, details)

def forbidden(message: str = "Access denied"):
    raise ApiException(403, message, "FORBIDDEN")

def not_found(resource: str = "Resource", id: str = None):
    message = f"{resource} not found" if not id else f"{resource} '{id}' not found"
    raise ApiException(404, message, "NOT_FOUND")


def _error_body(message: str, error_code: str, details: Dict = None) -> Dict:
    return {
        "ok": False,
        "error": message,
        "error_code": error_code,
        "details": details,
        "timestamp": _timestamp(),
    }


# ============================================================
# EXCEPTION HANDLERS
# ============================================================

async def engine_error_handler(request: Request, exc: ApprovalEngineError) -> JSONResponse:
    """Render approval engine errors with their own status and error code"""
    log = api_logger.error if exc.status_code >= 500 else api_logger.warning
    log(
        f"Engine Error: {exc.message}",
        status_code=exc.status_code,
        error_code=exc.error_code,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.message, exc.error_code, exc.details),
    )


async def api_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler for API errors"""

    # Handle ApiException
    if isinstance(exc, ApiException):
        api_logger.warning(
            f"API Error: {exc.detail}",
            status_code=exc.status_code,
            error_code=exc.error_code,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.detail, exc.error_code, exc.details),
        )

    # Handle HTTPException
    if isinstance(exc, HTTPException):
        api_logger.warning(
            f"HTTP Error: {exc.detail}",
            status_code=exc.status_code,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.detail, f"HTTP_{exc.status_code}"),
            headers=getattr(exc, "headers", None),
        )

    # Handle unexpected errors
    api_logger.error(
        f"Unexpected error: {exc}",
        error=exc,
        path=request.url.path,
        traceback=traceback.format_exc(),
    )
    return JSONResponse(
        status_code=500,
        content=_error_body("An unexpected error occurred", "INTERNAL_ERROR"),
    )
