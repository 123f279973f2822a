import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from wareworks.api.router import api_router
from wareworks.core.config import Settings, settings as default_settings
from wareworks.jobs.scheduler import start_scheduler
from wareworks.middleware.csrf import CSRFRejected
from wareworks.middleware.logging import RequestLoggingMiddleware
from wareworks.middleware.rate_limit import RateLimitExceeded, RateLimitHeadersMiddleware
from wareworks.middleware.request_context import RequestContextMiddleware
from wareworks.schemas.public import HealthOut
from wareworks.services.container import Services, build_services

logging.basicConfig(level=logging.INFO)
logging.getLogger("apscheduler").setLevel(logging.WARNING)
logging.getLogger("apscheduler.scheduler").setLevel(logging.WARNING)


def create_app(settings: Settings | None = None, services: Services | None = None) -> FastAPI:
    settings = settings or default_settings
    services = services or build_services(settings)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings
    app.state.services = services

    # Added innermost first; the request id is set before the logging middleware runs.
    app.add_middleware(RateLimitHeadersMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", settings.csrf_header_name],
        expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset", "Retry-After"],
    )

    @app.exception_handler(RateLimitExceeded)
    async def _rate_limited(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        return JSONResponse(
            status_code=429,
            content={"success": False, "error": exc.message, "retryAfter": exc.result.retry_after},
            headers=exc.result.headers(),
        )

    @app.exception_handler(CSRFRejected)
    async def _csrf_rejected(request: Request, exc: CSRFRejected) -> JSONResponse:
        return JSONResponse(status_code=403, content={"success": False, "error": exc.error})

    @app.get("/health", response_model=HealthOut)
    async def health_check():
        return {"status": "ok", "environment": settings.environment}

    app.include_router(api_router)

    @app.on_event("startup")
    async def _startup_jobs() -> None:
        services.pdf_filler.verify_templates(strict=settings.environment == "development")
        app.state.scheduler = start_scheduler(services)

    @app.on_event("shutdown")
    async def _shutdown_jobs() -> None:
        scheduler = getattr(app.state, "scheduler", None)
        if scheduler:
            scheduler.shutdown()

    return app


app = create_app()
