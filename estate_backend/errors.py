"""
estate_backend/errors.py

Single error type for every handler plus the response mapping.

Handlers raise ApiError(kind, message, details). The exception handlers
registered in main.create_app() turn it into the error envelope:

    {"success": false, "error": "<message>", "details": [...]}

Request validation failures (pydantic) are mapped field-by-field into
`details` with HTTP 400. Anything else becomes a generic 500.
"""

from __future__ import annotations

import traceback
from enum import Enum
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from estate_backend.config import IS_PROD


class ErrorKind(str, Enum):
    """Closed taxonomy of failures a handler can report."""
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    ENTITLEMENT = "entitlement"
    INTERNAL = "internal"


STATUS_BY_KIND: Dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.AUTHENTICATION: 401,
    ErrorKind.AUTHORIZATION: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.ENTITLEMENT: 403,
    ErrorKind.INTERNAL: 500,
}


class ApiError(HTTPException):
    """
    HTTPException carrying an ErrorKind and optional field details.

    Subclassing HTTPException keeps FastAPI's own dependency machinery
    (which already understands HTTPException) working unchanged.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        details: Optional[List[Dict[str, Any]]] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(status_code=status_code or STATUS_BY_KIND[kind], detail=message)
        self.kind = kind
        self.message = message
        self.details = details


def validation_error(message: str, field: Optional[str] = None) -> ApiError:
    details = [{"field": field, "message": message}] if field else None
    return ApiError(ErrorKind.VALIDATION, message, details)


def not_found(label: str) -> ApiError:
    return ApiError(ErrorKind.NOT_FOUND, f"{label} not found")


def forbidden(message: str = "Access denied") -> ApiError:
    return ApiError(ErrorKind.AUTHORIZATION, message)


def conflict(message: str) -> ApiError:
    return ApiError(ErrorKind.CONFLICT, message)


def error_body(message: str, details: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": False, "error": message}
    if details:
        body["details"] = details
    return body


# ---------------------------------------------------------
# Exception handlers (registered in main.create_app)
# ---------------------------------------------------------
async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc.details))


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(status_code=exc.status_code, content=error_body(message), headers=exc.headers)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path", "form")]
        details.append({"field": ".".join(loc) or None, "message": err.get("msg", "Invalid value")})
    return JSONResponse(status_code=400, content=error_body("Validation failed", details))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    print(f"[ERROR] Unhandled exception on {request.method} {request.url.path}: {type(exc).__name__}: {exc}")
    body = error_body("Internal server error")
    if not IS_PROD:
        body["debug"] = {"type": type(exc).__name__, "message": str(exc), "trace": traceback.format_exc()}
    return JSONResponse(status_code=500, content=body)
