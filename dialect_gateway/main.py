from __future__ import annotations

from fastapi import FastAPI

from dialect_gateway.core.config import get_settings
from dialect_gateway.core.logging import configure_logging
from dialect_gateway.dependencies import register_exception_handlers
from dialect_gateway.internal import admin
from dialect_gateway.routers import anthropic, gemini, models


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="dialect-gateway",
        version="0.1.0",
        docs_url="/docs",
        redoc_url=None,
    )

    register_exception_handlers(app)

    app.include_router(models.router)
    app.include_router(anthropic.router)
    app.include_router(gemini.router)
    app.include_router(admin.router)

    return app


app = create_app()
