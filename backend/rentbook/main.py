# backend/rentbook/main.py
"""
FastAPI application for the rentbook backend.

Run with:
    uvicorn rentbook.main:app --reload
"""

import logging

from fastapi import APIRouter, FastAPI, Request, Response
from fastapi.responses import JSONResponse

from . import __version__
from .core.config import settings
from .core.exceptions import DomainException
from .monitoring.prometheus_metrics import prometheus_metrics
from .routes.v1 import bookings as bookings_v1, orders as orders_v1

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(title="Rentbook API", version=__version__)

    @app.exception_handler(DomainException)
    async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
        http_exc = exc.to_http_exception()
        logger.warning(
            f"{exc.code} on {request.method} {request.url.path}: {exc.message}",
            extra={"code": exc.code},
        )
        return JSONResponse(status_code=http_exc.status_code, content={"detail": http_exc.detail})

    api_v1 = APIRouter(prefix="/api/v1")
    api_v1.include_router(bookings_v1.router, prefix="/bookings")
    api_v1.include_router(orders_v1.router, prefix="/orders")
    app.include_router(api_v1)

    @app.get("/health", tags=["health"])
    def health() -> dict:
        return {"status": "healthy", "environment": settings.environment, "version": __version__}

    @app.get("/metrics", include_in_schema=False)
    def metrics() -> Response:
        return Response(content=prometheus_metrics.get_metrics(), media_type=prometheus_metrics.content_type())

    logger.info(f"Rentbook API configured for {settings.environment}")
    return app


app = create_app()
