from contextlib import asynccontextmanager
import logging
import time

from fastapi import FastAPI, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.requests import Request

from eventboard.api.router import api_router
from eventboard.core.config import get_settings
from eventboard.core.telemetry import TelemetryRuntime, configure_api_logging, setup_api_telemetry, shutdown_api_telemetry
from eventboard.services.notifications import get_notification_bus
from eventboard.services.repository import get_repository

settings = get_settings()
_telemetry_runtime: TelemetryRuntime | None = None
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    bus = get_notification_bus()
    await bus.start()
    try:
        yield
    finally:
        await bus.stop()
        if _telemetry_runtime is not None:
            shutdown_api_telemetry(app, _telemetry_runtime)
        # Ensure asyncpg pool shuts down on app teardown.
        await get_repository().close()
        get_repository.cache_clear()


configure_api_logging()
app = FastAPI(title=settings.app_name, lifespan=lifespan)
_telemetry_runtime = setup_api_telemetry(app, settings)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    started_at = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started_at) * 1000.0
    logger.info(
        "http request method=%s path=%s status=%s duration_ms=%.2f",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response


@app.exception_handler(RequestValidationError)
async def request_validation_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_errors(exc)},
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    errors = []
    for error in exc.errors():
        errors.append({"loc": list(error.get("loc", ())), "msg": str(error.get("msg", "")), "type": error.get("type")})
    return errors


app.include_router(api_router)
