# =============================================================================
# Doris Webhook - Main Application
# =============================================================================
"""
Doris Webhook

An HTTP ingestion bridge that accepts video events as JSON and writes
each one to Apache Doris through the BE's Stream Load endpoint, without
going through the FE.

Key Features:
- Synchronous: the caller learns the load outcome in the response
- Pooled: one keep-alive connection pool shared by all requests
- Classified errors: transport, gateway, protocol and rejected loads
  all surface as 502 with a short cause
- Observable: structured logging with structlog
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

import structlog
import uvicorn
from fastapi import FastAPI
from pydantic import ValidationError

from .api import router
from .config import Settings, get_settings, mask_password
from .middleware import AccessLogMiddleware, CorsPolicyMiddleware, RequestTracker
from .services import StreamLoadClient


# =============================================================================
# Logging Configuration
# =============================================================================

def configure_logging(settings: Settings) -> None:
    """
    Configure structured logging with structlog.

    JSON lines when ``LOG_FORMAT=json`` (log collectors), console
    output otherwise.
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level),
        force=True,
    )

    if settings.json_logs:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


# =============================================================================
# Application Factory
# =============================================================================

def create_app(
    settings: Optional[Settings] = None,
    load_client: Optional[StreamLoadClient] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Application settings (read from the environment if None)
        load_client: Stream Load client to use instead of building one

    Returns:
        FastAPI: Configured application instance
    """
    settings = settings or get_settings()
    owns_client = load_client is None
    if load_client is None:
        load_client = StreamLoadClient(settings.credentials(), debug=settings.debug)

    logger = structlog.get_logger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("startup_complete", message="Doris webhook ready to accept requests")
        yield
        logger.info("shutdown_initiated", message="Doris webhook shutting down")
        if owns_client:
            await load_client.aclose()

    app = FastAPI(
        title="Doris Webhook",
        description="Forwards video events to Apache Doris via BE Stream Load.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.load_client = load_client
    app.state.requests = RequestTracker()

    # Last added runs first: access log wraps CORS so preflights are logged too
    app.add_middleware(
        CorsPolicyMiddleware,
        allow_origins=settings.cors_allowed_origin,
        allow_methods=settings.cors_allowed_methods,
        allow_headers=settings.cors_allowed_headers,
        allow_credentials=settings.cors_allow_credentials,
        max_age=settings.cors_max_age,
    )
    app.add_middleware(AccessLogMiddleware, tracker=app.state.requests)

    app.include_router(router)

    credentials = settings.credentials()
    logger.info(
        "doris_config",
        be_http=credentials.be_http,
        database=credentials.database,
        user=credentials.user,
        password=mask_password(credentials.password),
        table=credentials.table,
    )

    return app


# =============================================================================
# Entry Point
# =============================================================================

def run() -> None:
    """
    Run the webhook until SIGINT/SIGTERM.

    Exits 1 on bad configuration, when the listener fails to start, or
    when requests were still running after the shutdown grace period.
    """
    logger = structlog.get_logger(__name__)

    try:
        settings = get_settings()
    except ValidationError as e:
        logger.error("config_error", error=str(e))
        sys.exit(1)

    configure_logging(settings)
    app = create_app(settings)

    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=settings.host,
            port=settings.port,
            timeout_graceful_shutdown=settings.shutdown_timeout,
            timeout_keep_alive=settings.keep_alive_timeout,
            h11_max_incomplete_event_size=settings.max_header_bytes,
            access_log=False,
            log_config=None,
        )
    )

    logger.info(
        "server_starting",
        port=settings.port,
        health_check=f"http://localhost:{settings.port}/health",
    )
    server.run()

    if not server.started:
        logger.error("server_start_failed", host=settings.host, port=settings.port)
        sys.exit(1)

    dropped = app.state.requests.dropped
    if dropped:
        logger.error("server_forced_shutdown", dropped_requests=dropped)
        sys.exit(1)

    logger.info("server_stopped")


if __name__ == "__main__":
    run()
