"""FastAPI application initialization and configuration."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.config import settings
from .core.database import close_db, engine, init_db
from .core.exceptions import (
    PricingConfigurationError,
    ProblemDetailsException,
    ValidationError,
    generic_exception_handler,
    problem_details_handler,
)
from .core.middleware import setup_middleware
from .core.observability import (
    SERVICE_NAME,
    SERVICE_VERSION,
    instrument_fastapi,
    instrument_sqlalchemy,
    setup_metrics,
    setup_structured_logging,
    setup_tracing,
)
from .routers import booking, health, hotel, inventory, metrics, payment
from .services.checkout import CheckoutGateway, StripeCheckoutGateway
from .services.pricing import PricingPipeline
from .workers.manager import WorkerManager

# Configure structured logging
setup_structured_logging()

# Configure traditional logging for compatibility
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan context manager.

    Sets up telemetry, creates the schema and runs the expiry sweep while the app serves.
    """
    logger.info(
        "Starting FastAPI application",
        extra={"environment": settings.environment, "debug": settings.debug}
    )

    workers: WorkerManager = app.state.worker_manager
    try:
        setup_tracing()
        setup_metrics()
        instrument_sqlalchemy(engine)

        await init_db()
        logger.info("Database initialized successfully")

        await workers.start_all()
    except Exception:
        logger.exception("Failed to initialize application")
        raise

    logger.info("Application startup complete")

    yield

    logger.info("Shutting down FastAPI application")
    try:
        await workers.stop_all()
        await close_db()
    except Exception:
        logger.exception("Error during application cleanup")

    logger.info("Application shutdown complete")


async def pricing_configuration_handler(request: Request, exc: PricingConfigurationError) -> JSONResponse:
    """Report unusable pricing input supplied with a request as a validation problem."""
    problem = ValidationError(str(exc), instance=str(request.url))
    return await problem_details_handler(request, problem)


def create_app(
    checkout_gateway: Optional[CheckoutGateway] = None,
    pricing_pipeline: Optional[PricingPipeline] = None,
    worker_manager: Optional[WorkerManager] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Collaborators default to the ones built from settings; a bad pricing
    configuration raises PricingConfigurationError here and aborts startup.

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    app = FastAPI(
        title="Hotel Booking API",
        description="RPC-over-HTTP API for hotel room bookings with dynamic pricing, "
                    "time-bound inventory holds and hosted checkout",
        version=SERVICE_VERSION,
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    app.state.pricing_pipeline = pricing_pipeline or PricingPipeline.from_settings(settings)
    app.state.checkout_gateway = checkout_gateway or StripeCheckoutGateway(
        settings.stripe_api_key,
        currency=settings.payment_currency,
        webhook_secret=settings.stripe_webhook_secret,
    )
    app.state.worker_manager = worker_manager or WorkerManager(settings)

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "traceparent", "tracestate"],
    )

    setup_middleware(app, enable_logging=True)
    instrument_fastapi(app)

    app.add_exception_handler(ProblemDetailsException, problem_details_handler)
    app.add_exception_handler(PricingConfigurationError, pricing_configuration_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    @app.get(
        "/health",
        status_code=status.HTTP_200_OK,
        tags=["Health"],
        summary="Health Check",
        response_model=dict,
    )
    async def health_check():
        return {
            "status": "healthy",
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "environment": settings.environment,
        }

    @app.get(
        "/ready",
        status_code=status.HTTP_200_OK,
        tags=["Health"],
        summary="Readiness Check",
        response_model=dict,
    )
    async def readiness_check():
        """Readiness including the state of the background workers."""
        return {
            "status": "ready",
            "service": SERVICE_NAME,
            "workers": app.state.worker_manager.get_worker_status(),
        }

    @app.get(
        "/info",
        status_code=status.HTTP_200_OK,
        tags=["Info"],
        summary="Service Information",
        response_model=dict,
    )
    async def service_info():
        return {
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "environment": settings.environment,
            "hold_window_minutes": settings.hold_window_minutes,
            "inventory_horizon_days": settings.inventory_horizon_days,
            "currency": settings.payment_currency,
            "endpoints": {
                "health": "/health",
                "readiness": "/ready",
                "metrics": "/metrics",
                "docs": "/docs" if settings.debug else None,
            },
        }

    app.include_router(health.router)
    app.include_router(hotel.router)
    app.include_router(inventory.router)
    app.include_router(booking.router)
    app.include_router(payment.router)
    app.include_router(metrics.router)

    logger.info("FastAPI application created and configured")

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "hotel_booking.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
        access_log=True,
    )
