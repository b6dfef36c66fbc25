# foodshare/main.py
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from foodshare.core.config import Settings, get_settings
from foodshare.core.error_handlers import register_error_handlers
from foodshare.core.errors import StoreUnavailableError
from foodshare.core.observability import setup_logging
from foodshare.deps import build_store
from foodshare.middleware.audit import AuditMiddleware
from foodshare.repos.base import DonationStore
from foodshare.routers import donations as donations_router
from foodshare.routers import stats as stats_router

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, store: Optional[DonationStore] = None) -> FastAPI:
    """Build the API. Settings and store are passed in, never read from module globals."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.log_level, settings.log_format)
        app.state.store = store or build_store(settings)
        ensure_indexes = getattr(app.state.store, "ensure_indexes", None)
        if ensure_indexes is not None:
            try:
                await ensure_indexes()
            except StoreUnavailableError:
                # serve anyway; requests get 503 until the store is reachable
                logger.error("donation store unreachable at startup, indexes not ensured")
        logger.info(f"donation store ready ({type(app.state.store).__name__})")
        yield
        close = getattr(app.state.store, "close", None)
        if close is not None:
            close()

    app = FastAPI(lifespan=lifespan, title="FoodShare API")
    app.state.settings = settings

    app.add_middleware(AuditMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)

    app.include_router(donations_router.router)   # /donations
    app.include_router(stats_router.router)       # /stats

    @app.get("/health")
    def health():
        return {"ok": True}

    return app


app = create_app()
