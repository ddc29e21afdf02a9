from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from whiteninja import __version__
from whiteninja.api.v1.router import api_router, socket_router
from whiteninja.core.config import settings
from whiteninja.core.exceptions import ValidationError, WhiteNinjaError, error_response
from whiteninja.core.logging_config import logger
from whiteninja.services.build_services import BuildServices, create_build_services


def log_startup_config() -> None:
    """Warn early about a missing API key; builds are rejected until one is set"""
    if not settings.has_valid_api_key:
        logger.warning(
            "[Startup] ANTHROPIC_API_KEY not set or invalid -- "
            "builds will be rejected until a valid key is provided"
        )
    else:
        logger.info("[Startup] ✓ ANTHROPIC_API_KEY is configured")

    logger.info(
        f"[Startup] Limits: max {settings.MAX_CONCURRENT_BUILDS} concurrent builds, "
        f"{settings.MAX_API_CALLS_PER_MINUTE} API calls/min/session"
    )
    logger.info(
        f"[Startup] Session timeout: {settings.SESSION_TIMEOUT_SECONDS // 60} minutes, "
        f"agent timeout: {settings.AGENT_CALL_TIMEOUT_SECONDS:g}s"
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup and shutdown"""
    services: BuildServices = app.state.services

    logger.info("=" * 60)
    logger.info(f"Starting {settings.APP_NAME} v{__version__}...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"WS endpoint: ws://{settings.SERVER_HOST}:{settings.SERVER_PORT}/ws")
    logger.info("=" * 60)

    log_startup_config()

    await services.registry.start_cleanup_task()

    yield

    logger.info(f"Shutting down {settings.APP_NAME}...")
    services.registry.shutdown()


def create_app(services: Optional[BuildServices] = None) -> FastAPI:
    """
    Build the application.

    Args:
        services: Pre-wired services (tests inject a scripted model client);
            a default set is created when None
    """
    app = FastAPI(
        title=settings.APP_NAME,
        description="Multi-agent website builder with live WebSocket progress",
        version=__version__,
        docs_url="/docs",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.services = services or create_build_services()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=settings.CORS_ORIGINS != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition"],
    )

    @app.exception_handler(WhiteNinjaError)
    async def white_ninja_exception_handler(request: Request, exc: WhiteNinjaError):
        logger.warning(f"[API] {request.method} {request.url.path} rejected: {exc.code} {exc.message}")
        headers = None
        if hasattr(exc, "retry_after_seconds"):
            headers = {"Retry-After": str(exc.retry_after_seconds)}
        return JSONResponse(status_code=exc.status_code, content=error_response(exc), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"Invalid request body: {first.get('msg', 'malformed')}"
        if location:
            message = f"Invalid {location}: {first.get('msg', 'malformed')}"
        return JSONResponse(
            status_code=400,
            content=error_response(ValidationError(message, field=location or None)),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Global exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error",
                "message": str(exc) if settings.DEBUG else "An error occurred"
            }
        )

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint"""
        return {
            "message": f"Welcome to {settings.APP_NAME}",
            "version": __version__,
            "websocket": "/ws",
            "health": "/api/health",
            "docs": "/docs",
        }

    app.include_router(api_router, prefix="/api")
    app.include_router(socket_router)
    return app


app = create_app()


def run() -> None:
    import uvicorn
    uvicorn.run(
        "whiteninja.main:app",
        host=settings.SERVER_HOST,
        port=settings.SERVER_PORT,
        reload=settings.DEBUG and settings.ENVIRONMENT == "development",
    )


if __name__ == "__main__":
    run()
