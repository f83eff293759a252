from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Callable

from fastapi import FastAPI
from sqlalchemy.orm import Session

from sportslot.api.router import api_router
from sportslot.core.config import get_settings
from sportslot.core.logging import configure_logging
from sportslot.services.expiry_service import ExpiryWatcher, protect_on_startup
from sportslot.services.settings_service import PolicyStore

logger = logging.getLogger(__name__)


def create_app(session_factory: Callable[[], Session] | None = None) -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    if session_factory is None:
        from sportslot.db.session import SessionLocal

        session_factory = SessionLocal

    store = PolicyStore(ttl_seconds=settings.settings_cache_ttl_seconds)
    watcher = ExpiryWatcher(session_factory, store, interval_seconds=settings.expiry_watcher_interval_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("%s starting (environment=%s)", settings.app_name, settings.environment)

        if settings.startup_protection_enabled:
            db = session_factory()
            try:
                protect_on_startup(db, store)
            except Exception:
                logger.exception("Startup protection pass failed")
            finally:
                db.close()

        if settings.expiry_watcher_enabled:
            watcher.start()

        yield

        await watcher.stop()
        logger.info("%s shutting down", settings.app_name)

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.policy = store
    app.state.expiry_watcher = watcher
    app.include_router(api_router, prefix=settings.api_prefix)
    return app


app = create_app()
