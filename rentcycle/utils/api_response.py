"""Standard JSON envelopes for API and cron endpoints.

Success: ``{"success": true, "data": ..., "message": ...}``
Error:   ``{"success": false, "error": {"code": ..., "message": ..., "details": ...}}``
"""
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional


class ErrorCodes:
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    BAD_REQUEST = "BAD_REQUEST"
    NOT_FOUND = "NOT_FOUND"
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"
    TOO_MANY_REQUESTS = "TOO_MANY_REQUESTS"
    INTERNAL_ERROR = "INTERNAL_ERROR"


_STATUS_BY_CODE = {
    ErrorCodes.UNAUTHORIZED: 401,
    ErrorCodes.FORBIDDEN: 403,
    ErrorCodes.BAD_REQUEST: 400,
    ErrorCodes.NOT_FOUND: 404,
    ErrorCodes.METHOD_NOT_ALLOWED: 405,
    ErrorCodes.TOO_MANY_REQUESTS: 429,
    ErrorCodes.INTERNAL_ERROR: 500,
}
_CODE_BY_STATUS = {status: code for code, status in _STATUS_BY_CODE.items()}


def status_for_code(code: str) -> int:
    return _STATUS_BY_CODE.get(code, 500)


def code_for_status(status: int) -> str:
    if status in _CODE_BY_STATUS:
        return _CODE_BY_STATUS[status]
    return ErrorCodes.BAD_REQUEST if 400 <= status < 500 else ErrorCodes.INTERNAL_ERROR


class ApiError(Exception):
    """Request-level failure rendered into the error envelope by the app handler."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        status: Optional[int] = None,
        details: Any = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status or status_for_code(code)
        self.details = details
        self.headers = dict(headers or {})


def api_success(data: Any = None, *, message: Optional[str] = None, status: int = 200, headers=None):
    body: Dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    return body, status, dict(headers or {})


def api_error(code: str, message: str, *, details: Any = None, status: Optional[int] = None, headers=None):
    error: Dict[str, Any] = {"code": code, "message": message}
    if details is not None:
        error["details"] = details
    return {"success": False, "error": error}, status or status_for_code(code), dict(headers or {})


def internal_error(message: str = "Internal server error"):
    return api_error(ErrorCodes.INTERNAL_ERROR, message)
