# backend/device_api/db/connection.py
import psycopg2.extras
from psycopg2.extras import RealDictCursor
from psycopg2.pool import ThreadedConnectionPool

from backend.device_api.core.config import Settings

# uuid.UUID parameters and UUID columns round-trip as uuid.UUID
psycopg2.extras.register_uuid()


def get_pg_pool(settings: Settings) -> ThreadedConnectionPool:
    return ThreadedConnectionPool(
        settings.DB_POOL_MIN,
        settings.DB_POOL_MAX,
        host=settings.DB_HOST,
        port=settings.DB_PORT,
        dbname=settings.DB_NAME,
        user=settings.DB_USER,
        password=settings.DB_PASSWORD,
        sslmode=settings.DB_SSL_MODE,
        cursor_factory=RealDictCursor,
    )
