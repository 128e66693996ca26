"""
FastAPI Relay Application Factory
=================================

Entry point of the multi-domain login relay. The same application is
deployed on every domain of the ring; each deployment keeps its own session
cookie and reads accounts from the shared identity service.

Architecture:
    Browser → Domain A (local login) → /relay/start → Domain B /relay/... → ... → Domain A success page

Routers:
    - /relay/*      : Relay entry point and per-hop login endpoint
    - /health       : Health check endpoint

Environment Variables Required:
    - RELAY_DOMAINS: Ordered trusted domains (e.g., "https://www.a.com,https://www.b.com")
    - RELAY_HASH_SALT: Server secret for relay tokens (identical on every domain)
    - SESSION_SECRET_KEY: Secret for signing the session cookie
    - SESSION_JWT_SECRET: Secret for signing session JWTs
    - IDENTITY_SERVICE_URL / INTERNAL_SHARED_SECRET: Shared account directory
    - LOG_LEVEL: Logging level (default: INFO)

Running the Service:
    Development:
        uvicorn multidomain_login.main:create_app --factory --reload --host 0.0.0.0 --port 8080

    Production:
        uvicorn multidomain_login.main:create_app --factory --host 0.0.0.0 --port 8080 --workers 4
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Callable, Dict, Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from . import __version__
from .config import Settings, get_settings, validate_configuration
from .identity import HttpAccountDirectory
from .relay import LoginEntrySubscriber, LoginEventDispatcher, RelayHooks, relay_router
from .relay.routes import relay_validation_error_handler


# Configure structured JSON logging
def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


def _build_http_directory(settings: Settings) -> Optional[HttpAccountDirectory]:
    base_url = settings.identity_service_url_str
    if not base_url or not settings.INTERNAL_SHARED_SECRET:
        return None
    client = httpx.AsyncClient(base_url=base_url)
    return HttpAccountDirectory(client, settings.INTERNAL_SHARED_SECRET)


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup tasks:
        - Configure logging
        - Validate the relay configuration and log the ring

    Shutdown tasks:
        - Close the identity service HTTP client
    """
    settings: Settings = app.state.settings

    setup_logging(settings.LOG_LEVEL)
    logger = logging.getLogger("multidomain_login.main")

    status = validate_configuration(settings)
    for warning in status["warnings"]:
        logger.warning(warning)
    for error in status["errors"]:
        logger.error(error)

    if app.state.account_directory is None:
        logger.warning("No account directory configured, relay endpoints will answer 503")

    logger.info(
        "Starting multi-domain login relay",
        extra={
            "domains": settings.domains_list,
            "timeout_seconds": settings.RELAY_TIMEOUT_SECONDS,
            "log_level": settings.LOG_LEVEL,
        }
    )

    yield

    logger.info("Shutting down multi-domain login relay")

    directory = app.state.account_directory
    if isinstance(directory, HttpAccountDirectory):
        try:
            await directory.aclose()
            logger.info("Closed identity service client")
        except Exception as e:
            logger.error(f"Error closing identity service client: {e}")


# Create FastAPI application
def create_app(
    settings: Optional[Settings] = None,
    account_directory=None,
    hooks: Optional[RelayHooks] = None,
    clock: Optional[Callable[[], int]] = None,
) -> FastAPI:
    """
    Application factory function.

    Args:
        settings: Settings to use instead of the environment
        account_directory: Account directory; defaults to the HTTP identity
            service when IDENTITY_SERVICE_URL is configured
        hooks: Strategy functions that may rewrite domains and planned URLs
        clock: Unix time source (tests pin it)

    Returns:
        FastAPI: Configured application instance
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Multi-Domain Login Relay",
        description="Carries a login across a ring of trusted domains",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.state.settings = settings
    if account_directory is None:
        account_directory = _build_http_directory(settings)
    app.state.account_directory = account_directory
    app.state.relay_hooks = hooks or RelayHooks()
    app.state.clock = clock

    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.SESSION_SECRET_KEY,
        session_cookie=settings.SESSION_COOKIE_NAME,
        max_age=settings.SESSION_JWT_EXPIRY_MINUTES * 60,
        same_site=settings.SESSION_COOKIE_SAME_SITE,
        https_only=settings.SESSION_COOKIE_SECURE,
    )

    app.include_router(relay_router)
    app.add_exception_handler(RequestValidationError, relay_validation_error_handler)

    # Local logins are sent into the relay once the routes exist
    login_events = LoginEventDispatcher()
    LoginEntrySubscriber(
        entry_path=str(app.url_path_for("relay_start")),
        excluded_routes=settings.excluded_routes_list,
    ).register(login_events)
    app.state.login_events = login_events

    # Health check endpoint
    @app.get("/health", tags=["System"])
    async def health_check() -> Dict[str, str]:
        """
        Health check endpoint.

        Returns:
            dict: Service health information
        """
        return {
            "status": "ok",
            "service": "multidomain-login",
            "version": __version__
        }

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Global exception handler for unhandled errors.

        Logs the error and returns a standardized error response.
        """
        logger = logging.getLogger("multidomain_login.main")
        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__
            },
            exc_info=True
        )

        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
                "detail": str(exc) if settings.LOG_LEVEL == "DEBUG" else None
            }
        )

    return app


if __name__ == "__main__":
    """
    Direct execution entry point.

    Runs the service with: python -m multidomain_login.main
    Using the uvicorn command is recommended for production.
    """
    settings = get_settings()

    uvicorn.run(
        "multidomain_login.main:create_app",
        factory=True,
        host=settings.RELAY_HOST,
        port=settings.RELAY_PORT,
        log_level=settings.LOG_LEVEL.lower()
    )
