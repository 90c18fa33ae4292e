"""
FastAPI application factory and configuration.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from marketplace_chat.api import conversations, health, messages, metrics, stream
from marketplace_chat.api.metrics import MetricsMiddleware
from marketplace_chat.core.config import get_settings
from marketplace_chat.core.database import get_engine, init_db
from marketplace_chat.core.errors import register_error_handlers
from marketplace_chat.core.logging import get_logger, setup_logging
from marketplace_chat.core.metrics import metrics as metrics_registry
from marketplace_chat.services.changefeed import ChangeFeed


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger = get_logger(__name__)
    logger.info("Starting application...")

    app.state.engine = get_engine()
    init_db(app.state.engine)
    logger.info("Database initialized")

    metrics_registry.set_startup_time()

    yield

    logger.info("Shutting down application...")
    app.state.change_feed.disconnect()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    setup_logging()
    logger = get_logger(__name__)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Buyer-seller chat for the student marketplace: conversations, read state and live delivery",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # One feed per application; subscriptions and inserts meet here
    app.state.change_feed = ChangeFeed()
    app.state.engine = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(MetricsMiddleware)

    register_error_handlers(app)

    app.include_router(conversations.router)
    app.include_router(messages.router)
    app.include_router(stream.router)
    app.include_router(health.router)
    app.include_router(metrics.router)

    logger.info(
        "Application created",
        extra={
            "extra_data": {
                "app_name": settings.app_name,
                "version": settings.app_version,
                "debug": settings.debug,
            }
        },
    )

    return app


app = create_app()


def run() -> None:
    """Serve the application with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run("marketplace_chat.main:app", host=settings.host, port=settings.port)
