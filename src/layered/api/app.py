"""FastAPI operations application with lifespan and router mounting."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI

from layered.api.routes import admin, health
from layered.core.config import AppSettings
from layered.core.logging import configure_logging
from layered.core.protocols import ICheckpointStore, ILedger
from layered.persistence import create_persistence


def create_app(
    settings: Optional[AppSettings] = None,
    ledger: Optional[ILedger] = None,
    checkpoints: Optional[ICheckpointStore] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Backends not passed in are built from settings when the app starts.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Initialize and tear down application resources."""
        app_settings = settings or AppSettings()
        configure_logging(app_settings.log_level, json=app_settings.log_json)
        app.state.settings = app_settings
        if ledger is None or checkpoints is None:
            built_ledger, _, built_checkpoints = create_persistence(app_settings)
            app.state.ledger = ledger or built_ledger
            app.state.checkpoints = checkpoints or built_checkpoints
        else:
            app.state.ledger = ledger
            app.state.checkpoints = checkpoints
        yield

    app = FastAPI(
        title="Layered Workflow Operations",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(health.router)
    app.include_router(admin.router, prefix="/admin")
    return app
