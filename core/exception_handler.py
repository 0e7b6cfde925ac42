import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.exceptions import BaseCustomException
from core.logging.providers import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)


def error_response(status_code: int, message: str, **extra) -> JSONResponse:
    """
    Build the JSON body shared by every error response.

    Parameters
    ----------
    status_code : int
        HTTP status code
    message : str
        Message key or human readable message
    **extra
        Additional fields merged into the body

    Returns
    -------
    JSONResponse
        ``{"status": "error", "message": ...}`` plus ``extra``
    """
    return JSONResponse(
        status_code=status_code,
        content={"status": "error", "message": message, **extra}
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Handler for invalid request bodies and query parameters.

    Every offending field is listed with a dotted path relative to the
    body or query string.
    """
    errors = []
    for error in exc.errors():
        path = [str(part) for part in error["loc"] if part not in ("body", "query")]
        errors.append({"field": ".".join(path) or "body", "message": error["msg"]})

    return error_response(422, "error.validation", errors=errors)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, exc.detail)


async def client_exception_handler(request: Request, exc: BaseCustomException):
    """
    Handler for gateway, node and connection failures.

    Parameters
    ----------
    request : Request
        FastAPI request
    exc : BaseCustomException
        Event pool client error

    Returns
    -------
    JSONResponse
        Error response named after the exception class
    """
    status_code = exc.get_status_code()
    if status_code >= 500:
        logger.warning(f"{request.method} {request.url.path} -> {status_code}: {exc.message} (cause: {exc.cause!r})")
    else:
        logger.info(f"{request.method} {request.url.path} -> {status_code}: {exc.message}")

    return error_response(status_code, exc.message, error=type(exc).__name__)


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"{request.method} {request.url.path} failed", exc_info=exc)
    return error_response(500, "error.internal")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(BaseCustomException, client_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
