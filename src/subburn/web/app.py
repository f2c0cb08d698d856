from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from subburn.exceptions import (
    DeliveryError,
    EncodeEngineError,
    InputError,
    InvalidTokenError,
    RangeNotSatisfiableError,
    SourceNotFoundError,
    StoreError,
    SubburnError,
)
from subburn.runtime import Runtime, build_runtime
from subburn.utils.logging import get_logger
from subburn.web.routes import router

log = get_logger(__name__)

# Most specific first.
STATUS_CODES: tuple[tuple[type[SubburnError], int], ...] = (
    (SourceNotFoundError, 404),
    (InputError, 400),
    (RangeNotSatisfiableError, 416),
    (InvalidTokenError, 404),
    (DeliveryError, 400),
    (StoreError, 503),
    (EncodeEngineError, 500),
)


def status_for(exc: SubburnError) -> int:
    for exc_type, status in STATUS_CODES:
        if isinstance(exc, exc_type):
            return status
    return 500


async def _handle_subburn_error(_request: Request, exc: SubburnError) -> JSONResponse:
    status = status_for(exc)
    headers = {}
    if isinstance(exc, RangeNotSatisfiableError):
        headers["Content-Range"] = f"bytes */{exc.size}"
    if status >= 500:
        log.error("%s: %s", exc.label(), exc.message)
    return JSONResponse(status_code=status, content={"error": exc.message}, headers=headers)


def create_app(runtime: Runtime | None = None) -> FastAPI:
    """
    Build the FastAPI app.

    Without an explicit runtime one is built from Settings and its worker
    pool is shut down with the app.
    """
    owned = runtime is None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if owned:
            app.state.runtime.close(wait=False)

    app = FastAPI(title="subburn", version="0.1.0", lifespan=lifespan)
    app.state.runtime = runtime or build_runtime()
    app.add_exception_handler(SubburnError, _handle_subburn_error)
    app.include_router(router, prefix="/api")
    return app
