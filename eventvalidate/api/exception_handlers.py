# eventvalidate/api/exception_handlers.py
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from eventvalidate.core.exceptions import EngineError

logger = logging.getLogger(__name__)


async def engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
    log = logger.warning if exc.status_code < 500 else logger.error
    log(f"{request.method} {request.url.path} -> {exc.status_code} {exc.reason}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_dict()})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(EngineError, engine_error_handler)
