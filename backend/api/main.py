from contextlib import asynccontextmanager
from typing import Optional

import stripe
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from api.v1.routes.router import api_router
from common.core.config import Settings, settings as default_settings
from common.core.constants import Environment
from common.core.exceptions import (
    ConfigurationError,
    NotFoundError,
    ValidationError,
)
from common.core.telemetry import init_telemetry, get_logger
from common.db.session import create_engine, create_session_factory
from packages.billing.exceptions import QuotaExceededError
from packages.billing.providers import get_payment_provider
from packages.billing.providers.payment.interface import PaymentProviderInterface
from packages.billing.tiers import PriceCatalog

logger = get_logger(__name__)


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError):
        logger.error(f"Configuration error on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=503,
            content={"detail": "Billing is not configured for this request"},
        )

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(QuotaExceededError)
    async def quota_exceeded_handler(request: Request, exc: QuotaExceededError):
        return JSONResponse(
            status_code=402,
            content={
                "detail": exc.decision.reason,
                "decision": exc.decision.model_dump(mode="json"),
            },
        )

    @app.exception_handler(stripe.StripeError)
    async def stripe_error_handler(request: Request, exc: stripe.StripeError):
        logger.error(
            f"Stripe error on {request.url.path}: {exc}",
            extra={"stripe_code": exc.code, "http_status": exc.http_status},
        )
        return JSONResponse(
            status_code=502,
            content={
                "detail": "Payment provider error",
                "error_type": type(exc).__name__,
                "code": exc.code,
            },
        )


def create_app(
    settings: Optional[Settings] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    payment_provider: Optional[PaymentProviderInterface] = None,
    price_catalog: Optional[PriceCatalog] = None,
) -> FastAPI:
    """
    Build the application.

    Anything passed in is used as-is; the rest is built from settings when
    the lifespan starts. A missing Stripe secret fails startup.
    """
    settings = settings or default_settings
    init_telemetry(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger.info("Starting application...")
        if app.state.payment_provider is None:
            app.state.payment_provider = get_payment_provider(settings)
        if app.state.price_catalog is None:
            app.state.price_catalog = PriceCatalog.from_settings(settings)
        engine = None
        if app.state.session_factory is None:
            engine = create_engine(settings)
            app.state.session_factory = create_session_factory(engine)
            logger.info("Database engine created")
        yield
        # Shutdown
        logger.info("Shutting down application...")
        if engine is not None:
            await engine.dispose()

    # Only expose OpenAPI docs in local development
    is_local = settings.environment == Environment.LOCAL
    app = FastAPI(
        title=settings.app_name,
        version=settings.api_version,
        lifespan=lifespan,
        docs_url="/docs" if is_local else None,
        redoc_url="/redoc" if is_local else None,
        openapi_url="/openapi.json" if is_local else None,
    )
    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.payment_provider = payment_provider
    app.state.price_catalog = price_catalog

    _register_exception_handlers(app)

    # Instrument FastAPI with OpenTelemetry
    FastAPIInstrumentor.instrument_app(app)

    # Add gzip compression middleware
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers (auth enforced via dependencies at router level)
    app.include_router(api_router, prefix="/api/v1")

    # Internal health endpoint for k8s probes - not under /api/v1
    @app.get("/healthz", include_in_schema=False)
    async def healthz():
        return {"status": "ok"}

    return app


app = create_app()
