"""FastAPI application factory"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from remittance_engine.api.middleware import RequestIDMiddleware, MetricsMiddleware
from remittance_engine.api.v1 import contracts, cycles, exports, reconciliation, scheduler
from remittance_engine.domain.exceptions import (
    DomainException,
    InvalidIdentifierError,
    InvalidTransitionError,
    NotFoundError,
    SettlementPostingError,
    ValidationError,
    WaterfallImbalanceError,
)
from remittance_engine.infrastructure.database.session import SessionLocal
from remittance_engine.infrastructure.observability.logging import setup_logging
from remittance_engine.services.scheduler import RemittanceScheduler
from remittance_engine.config import settings

# Setup structured logging
setup_logging(settings.log_level)

logger = logging.getLogger(__name__)

# Most specific class first; the first match along the exception's MRO wins
ERROR_STATUS_CODES = {
    InvalidIdentifierError: 400,
    ValidationError: 422,
    NotFoundError: 404,
    InvalidTransitionError: 409,
    SettlementPostingError: 503,
    WaterfallImbalanceError: 500,
}


async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    """Render domain errors as {"error": <kind>, "detail": <message>}"""
    status_code = next((ERROR_STATUS_CODES[cls] for cls in type(exc).__mro__ if cls in ERROR_STATUS_CODES), 500)
    log = logger.error if status_code >= 500 else logger.warning
    log(
        f"{type(exc).__name__}: {exc}",
        extra={"request_id": getattr(request.state, "request_id", "unknown"), "path": request.url.path},
    )
    return JSONResponse(status_code=status_code, content={"error": type(exc).__name__, "detail": str(exc)})


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run the daily scheduler in the background when enabled"""
    background_scheduler = None
    if settings.scheduler_enabled:
        background_scheduler = RemittanceScheduler(SessionLocal)
        background_scheduler.start()
    yield
    if background_scheduler is not None:
        background_scheduler.stop()


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Investor Remittance Engine",
        description="Investor remittance cycles, settlement and reconciliation",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(DomainException, domain_exception_handler)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(contracts.router, prefix="/v1", tags=["contracts"])
    app.include_router(cycles.router, prefix="/v1", tags=["cycles"])
    app.include_router(exports.router, prefix="/v1", tags=["exports"])
    app.include_router(reconciliation.router, prefix="/v1", tags=["reconciliation"])
    app.include_router(scheduler.router, prefix="/v1", tags=["scheduler"])

    return app


app = create_app()
