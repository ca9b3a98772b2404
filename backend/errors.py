"""Exception handlers mapping the error taxonomy onto HTTP responses.

Every error body has the shape {"message": "..."}, which is what the
client displays.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from solana_stories.errors import (
    GenerationError,
    InitializationError,
    NotFoundError,
    NotInitializedError,
    PersistenceError,
    StoriesError,
    ValidationError,
)

logger = logging.getLogger(__name__)

GENERATION_FAILED = "Failed to generate story"

_STATUS: dict[type[StoriesError], int] = {
    ValidationError: 400,
    NotFoundError: 404,
    InitializationError: 503,
    NotInitializedError: 500,
    GenerationError: 500,
    PersistenceError: 500,
}


def status_for(exc: StoriesError) -> int:
    for cls in type(exc).__mro__:
        if cls in _STATUS:
            return _STATUS[cls]
    return 500


def public_message(exc: StoriesError) -> str:
    """Text shown to the user. Upstream model details stay in the log."""
    if isinstance(exc, GenerationError):
        return GENERATION_FAILED
    if isinstance(exc, InitializationError):
        return "Story service is not ready, please try again later"
    return str(exc)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StoriesError)
    async def stories_error(request: Request, exc: StoriesError):
        status = status_for(exc)
        if status >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc, exc_info=exc)
        return JSONResponse({"message": public_message(exc)}, status_code=status)

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{field}: {first.get('msg', 'invalid request')}" if field else "Invalid request"
        return JSONResponse({"message": message}, status_code=400)

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            {"message": exc.detail}, status_code=exc.status_code, headers=exc.headers,
        )
