from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

FUNCTIONS_PREFIX = "/functions/"


class FunctionError(Exception):
    """Failure of a /functions endpoint, rendered as a bare JSON payload.

    The function endpoints answer with ``{"error": ..., "message"?, "details"?}``
    rather than FastAPI's ``{"detail": ...}`` so clients of the old edge
    functions keep working.
    """

    def __init__(self, status_code: int, error: str, message: str | None = None, details: Any = None):
        super().__init__(error)
        self.status_code = status_code
        self.error = error
        self.message = message
        self.details = details

    def to_payload(self) -> dict:
        payload: dict[str, Any] = {"error": self.error}
        if self.message is not None:
            payload["message"] = self.message
        if self.details is not None:
            payload["details"] = self.details
        return payload


async def function_error_handler(request: Request, exc: FunctionError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # only the function endpoints use the {"error"} shape
    if not request.url.path.startswith(FUNCTIONS_PREFIX):
        return await request_validation_exception_handler(request, exc)
    error = FunctionError(
        422,
        "Invalid request body",
        details=jsonable_encoder(exc.errors()),
    )
    return await function_error_handler(request, error)
