"""FastAPI application factory and configuration.

Main application entry point with lifespan management, middleware,
and router registration.
"""

import logging
import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from askuni.api.chat import router as chat_router
from askuni.api.history import router as history_router
from askuni.api.routes import router as upload_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Manage application startup and shutdown lifecycle.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control to the application while it runs.
    """
    logger.info("Starting AskUni API...")
    yield
    logger.info("Shutting down AskUni API...")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    application = FastAPI(
        title="AskUni API",
        description=(
            "Course assistant API. Streams grounded answers from the knowledge base "
            "as server-sent events, with a blocking fallback endpoint, attachment "
            "uploads, speech-to-text and per-user chat history."
        ),
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    origins = [o.strip() for o in os.getenv("CORS_ORIGIN", "*").split(",") if o.strip()]
    application.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    application.include_router(chat_router)
    application.include_router(upload_router)
    application.include_router(history_router)

    @application.get("/health")
    async def health_check() -> dict[str, str | bool]:
        """Check service health status."""
        return {
            "status": "healthy",
            "service": "askuni",
            "has_api_key": bool(os.getenv("LLM_API_KEY") or os.getenv("OPENAI_API_KEY")),
        }

    return application


app = create_app()
