"""
Portfolio Gateway - FastAPI Application

This module implements the FastAPI application that serves the portfolio's
API routes behind the Portfolio Guard security layer.
"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import uvicorn

from ..shared.config import Settings, get_settings
from ..shared.logging_config import get_logger, initialize_logging
from ..shared.security import (
    SecurityHeadersMiddleware,
    SecurityPipelineMiddleware,
    SecurityServices,
    create_security_config,
    create_security_services
)
from .chat_client import ChatClient
from .routers import chat, csrf, debug, security_logs, visits
from .visits import VisitCounter

logger = get_logger(__name__, 'gateway')


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Starts the security layer's background sweeps and tears everything
    down on shutdown.
    """
    settings: Settings = app.state.settings
    if not settings.is_testing():
        initialize_logging(settings.is_production(), settings.log_level.value)
    logger.info("Starting Portfolio Gateway...", operation="startup")

    services: SecurityServices = app.state.security
    services.start()

    try:
        yield
    finally:
        logger.info("Shutting down Portfolio Gateway...", operation="shutdown")

        services.destroy()
        try:
            await app.state.chat_client.close()
        except Exception as e:
            logger.error(f"Error closing chat client: {e}", operation="shutdown")

        logger.info("Portfolio Gateway shutdown completed", operation="shutdown")


def create_app(
    settings: Optional[Settings] = None,
    services: Optional[SecurityServices] = None,
    chat_client: Optional[ChatClient] = None,
    visit_counter: Optional[VisitCounter] = None
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Application settings; read from the environment if omitted
        services: Security services; built from settings if omitted
        chat_client: Upstream chat client; built from settings if omitted
        visit_counter: Visit counter; a fresh one if omitted

    Returns:
        Configured FastAPI application instance
    """
    settings = settings or get_settings()
    if services is None:
        services = create_security_services(create_security_config(settings))

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        docs_url=None if settings.is_production() else "/docs",
        redoc_url=None,
        openapi_url=None if settings.is_production() else "/openapi.json",
        lifespan=lifespan
    )

    app.state.settings = settings
    app.state.security = services
    app.state.chat_client = chat_client or ChatClient(settings.chat)
    app.state.visit_counter = visit_counter or VisitCounter(clock=services.csrf_manager.clock)

    # Last added runs first: headers wrap every response, including rejections
    app.add_middleware(SecurityPipelineMiddleware, services=services)
    app.add_middleware(SecurityHeadersMiddleware, config=services.config)

    app.include_router(chat.router, prefix="/api/chat", tags=["Chat"])
    app.include_router(csrf.router, prefix="/api/csrf/token", tags=["CSRF"])
    app.include_router(security_logs.router, prefix="/api/security/logs", tags=["Security"])
    app.include_router(visits.router, prefix="/api/visits", tags=["Visits"])
    app.include_router(debug.router, prefix="/api/debug/security", tags=["Debug"])

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler for unhandled errors."""
        logger.exception(
            f"Unhandled exception: {exc}",
            operation="unhandled_exception",
            endpoint=request.url.path
        )

        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "An internal server error occurred",
                "status": 500
            }
        )

    return app


def run_server(
    host: str = "0.0.0.0",
    port: int = 8000,
    reload: bool = False
):
    """
    Run the FastAPI server with uvicorn.

    Args:
        host: Host to bind to
        port: Port to bind to
        reload: Enable auto-reload for development
    """
    settings = get_settings()

    uvicorn.run(
        "src.portfolio_gateway.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_config=None,
        access_log=not settings.is_production()
    )


if __name__ == "__main__":
    run_server(reload=get_settings().is_development())
