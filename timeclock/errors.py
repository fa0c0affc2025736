from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse


class ApiError(Exception):
    def __init__(self, status_code: int, code: str, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message


class EntryValidationError(ApiError):
    """Malformed input: never retried, always rejected synchronously."""

    kind = "validation"

    def __init__(self, code: str, message: str):
        super().__init__(status_code=422, code=code, message=message)


class EntryAuthorizationError(ApiError):
    """Actor lacks the capability, the ownership or the department scope."""

    kind = "authorization"

    def __init__(self, code: str, message: str):
        super().__init__(status_code=403, code=code, message=message)


class EntryStateError(ApiError):
    """The entry's current state blocks the requested action."""

    kind = "state"

    def __init__(self, code: str, message: str):
        super().__init__(status_code=409, code=code, message=message)


class EntryNotFoundError(ApiError):
    kind = "not_found"

    def __init__(self, message: str = "Entry not found."):
        super().__init__(status_code=404, code="ENTRY_NOT_FOUND", message=message)


def get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return str(request_id)
    return "unknown"


def error_response(request: Request, *, status_code: int, code: str, message: str) -> JSONResponse:
    payload = {
        "error": {
            "code": code,
            "message": message,
            "request_id": get_request_id(request),
        }
    }
    return JSONResponse(status_code=status_code, content=payload)
