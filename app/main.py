from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.api import router
from datastore.device_directory import build_default_directory
from logging_config import configure_logging
from models.errors import BadRequest, DomainError, InternalError
from services.devices import build_default_device_service
from services.identity import build_default_identity_provider
from services.ingestion import build_default_ingestion
from services.users import build_default_user_service
from storage.timeseries import build_default_store

logger = logging.getLogger(__name__)

_FACTORIES = (
    build_default_ingestion,
    build_default_device_service,
    build_default_store,
    build_default_directory,
    build_default_user_service,
    build_default_identity_provider,
)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    build_default_ingestion()
    try:
        yield
    finally:
        build_default_store().close()
        if build_default_identity_provider.cache_info().currsize:
            build_default_identity_provider().close()
        for factory in _FACTORIES:
            factory.cache_clear()


async def _domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    server_error = exc.status_code >= 500
    logger.log(
        logging.ERROR if server_error else logging.WARNING,
        "Request failed: %s",
        exc,
        exc_info=exc if server_error else None,
        extra={"status": exc.status_code, "reason": request.url.path},
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


async def _request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    fields = sorted(
        {".".join(str(part) for part in error.get("loc", ())) for error in exc.errors()}
    )
    error = BadRequest().with_msg("failed to validate request").with_details(fields=fields)
    return await _domain_error_handler(request, error)


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error", extra={"reason": request.url.path})
    return JSONResponse(
        status_code=int(InternalError.status_class),
        content={"error": InternalError.description, "message": "", "details": {}},
    )


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Sensor Metrics Collector",
        description="Ingests sensor measurements for the devices each user owns.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_exception_handler(DomainError, _domain_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
    app.include_router(router)
    return app

app = create_app()
