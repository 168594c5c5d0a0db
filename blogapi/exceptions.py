"""
Application error taxonomy and the FastAPI handlers that render it.

Services raise subclasses of ``BlogError``; the handlers registered by
``register_exception_handlers`` turn them into ``{"message": ...}`` JSON
bodies with the matching status code.  Anything else escaping a route is
logged with its traceback and answered with a generic 500.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_403_FORBIDDEN,
    HTTP_404_NOT_FOUND,
    HTTP_500_INTERNAL_SERVER_ERROR,
)

logger = logging.getLogger(__name__)


class BlogError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = HTTP_500_INTERNAL_SERVER_ERROR
    default_detail: str = "server error"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class InvalidInputError(BlogError):
    status_code = HTTP_400_BAD_REQUEST
    default_detail = "invalid input"


class UnauthorizedError(BlogError):
    status_code = HTTP_401_UNAUTHORIZED
    default_detail = "unauthorized"


class ForbiddenError(BlogError):
    status_code = HTTP_403_FORBIDDEN
    default_detail = "forbidden"


class NotFoundError(BlogError):
    status_code = HTTP_404_NOT_FOUND
    default_detail = "not found"


class ConflictError(BlogError):
    # Reported as 400 to match the registration contract.
    status_code = HTTP_400_BAD_REQUEST
    default_detail = "already exists"


class UpstreamError(BlogError):
    """The draft generation endpoint failed or answered with garbage."""

    default_detail = "draft generation failed"

    def __init__(self, detail: str | None = None, error: str | None = None) -> None:
        super().__init__(detail)
        self.error = error


class ConfigurationError(BlogError):
    default_detail = "service is not configured"


class InternalError(BlogError):
    default_detail = "server error"


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

async def blog_error_handler(request: Request, exc: BlogError) -> JSONResponse:
    if exc.status_code >= HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    else:
        logger.info("%s %s -> %d: %s", request.method, request.url.path, exc.status_code, exc.detail)

    content = {"message": exc.detail}
    error = getattr(exc, "error", None)
    if error:
        content["error"] = error
    return JSONResponse(content=content, status_code=exc.status_code)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    fields = [".".join(str(p) for p in err.get("loc", ()) if p != "body") for err in errors]
    message = "invalid request: " + ", ".join(f for f in fields if f) if any(fields) else "invalid request"
    return JSONResponse(
        content={"message": message, "errors": [err.get("msg") for err in errors]},
        status_code=HTTP_400_BAD_REQUEST,
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    error = InternalError()
    return JSONResponse(content={"message": error.detail}, status_code=error.status_code)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BlogError, blog_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
