# backend/device_api/main.py
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from backend.device_api.api.v1.devices import router as devices_router
from backend.device_api.api.v1.users import router as users_router
from backend.device_api.core.config import Settings, get_settings
from backend.device_api.core.logger_config import setup_logging
from backend.device_api.core.security import TokenManager, TokenSettings
from backend.device_api.db.memory_db import MemoryDB
from backend.device_api.db.postgres_db import PostgresDB

logger = logging.getLogger(__name__)


def open_store(settings: Settings):
    """Builds the configured store and makes sure its schema exists."""
    if settings.STORAGE_BACKEND == "memory":
        db = MemoryDB()
    else:
        db = PostgresDB.from_settings(settings)
    db.create_all_tables()
    return db


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings

    # ---------------- Startup ----------------
    setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)
    app.state.db = open_store(settings)
    app.state.token_manager = TokenManager(TokenSettings.from_settings(settings))
    logger.info(f"Store initialized ({settings.STORAGE_BACKEND})")

    yield

    # ---------------- Shutdown ----------------
    try:
        app.state.db.close()
        logger.info("Store closed")
    except Exception as e:
        logger.exception(f"Store close failed: {e}")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    app = FastAPI(
        title="Device Assignment API",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.settings = settings or get_settings()

    # Register API routers
    app.include_router(devices_router)
    app.include_router(users_router)

    @app.get("/health")
    def health():
        return {
            "status": "ok"
        }

    return app
