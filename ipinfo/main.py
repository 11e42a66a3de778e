from contextlib import asynccontextmanager
from typing import Optional, Sequence
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import uvicorn

from .api.health import router as health_router
from .api.lookup import router as lookup_router
from .config import API_VERSION, Settings, load_settings, settings_from_env
from .errors import DatabaseOpenError, IPInfoError
from .logging_config import setup_logging
from .middleware import TracingMiddleware
from .service import LookupService, open_service

logger = logging.getLogger("ipinfo")


def create_app(settings: Optional[Settings] = None,
               service: Optional[LookupService] = None) -> FastAPI:
    settings = settings or settings_from_env()

    @asynccontextmanager
    async def lifespan(application: FastAPI):
        if service is not None:
            application.state.service = service
        else:
            try:
                application.state.service = open_service(settings)
            except DatabaseOpenError as e:
                # Never serve without both databases
                logger.critical(f"Cannot start: {e}", extra={"component": "api"})
                raise

        logger.info("IP info API ready", extra={
            "component": "api",
            "mode": settings.mode,
            "language": application.state.service.language,
        })
        try:
            yield
        finally:
            application.state.service.close()
            logger.info("IP info API shutting down", extra={"component": "api"})

    application = FastAPI(
        title="IP info API",
        version=API_VERSION,
        debug=settings.debug,
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )
    application.add_middleware(TracingMiddleware)

    @application.exception_handler(IPInfoError)
    async def ipinfo_error_handler(request: Request, exc: IPInfoError):
        return JSONResponse(status_code=500, content={"error": str(exc)})

    application.include_router(lookup_router)
    application.include_router(health_router)
    return application


# Configure logging at import time for `uvicorn ipinfo.main:app`
_env_settings = settings_from_env()
setup_logging(log_level=_env_settings.log_level)

app = create_app(_env_settings)


def main(argv: Optional[Sequence[str]] = None) -> None:
    settings = load_settings(argv)
    setup_logging(log_level=settings.log_level)
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_config=None,
        access_log=False,
    )


if __name__ == "__main__":
    main()
