from typing import Any, Callable, Coroutine

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.responses import Response

from gatepass.core.exceptions import GatepassError, TransientStoreError

ExceptionHandler = Callable[[Request, Exception], Coroutine[Any, Any, Response]]


async def gatepass_error_handler(request: Request, exc: Exception) -> JSONResponse:
    error = exc if isinstance(exc, GatepassError) else GatepassError(str(exc))
    if isinstance(error, TransientStoreError):
        logger.warning(f"{request.method} {request.url.path} -> transient store failure")
    return JSONResponse(status_code=error.status_code, content={"detail": error.message, "code": error.code})


async def general_500_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.opt(exception=exc).error(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


EXCEPTION_HANDLERS: dict[type[Exception], ExceptionHandler] = {
    GatepassError: gatepass_error_handler,
    Exception: general_500_exception_handler,
}


def register_exception_handlers(app: FastAPI) -> None:
    for exception_class, handler in EXCEPTION_HANDLERS.items():
        app.add_exception_handler(exception_class, handler)
