# backend/device_api/core/config.py
from functools import lru_cache
from typing import Literal, Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

HMAC_ALGORITHMS = ("HS256", "HS384", "HS512")


class Settings(BaseSettings):
    """
    Process-wide configuration read from environment variables (or .env).
    Variable names match the field names.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Server
    SERVER_HOST: str = "0.0.0.0"
    SERVER_PORT: int = 8443
    SERVER_TIMEOUT_KEEP_ALIVE: int = 60

    # Storage
    STORAGE_BACKEND: Literal["postgres", "memory"] = "postgres"
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_USER: str = "postgres"
    DB_PASSWORD: str = ""
    DB_NAME: str = "device_assignment"
    DB_SSL_MODE: str = "prefer"
    DB_POOL_MIN: int = 1
    DB_POOL_MAX: int = 10

    # TLS / mTLS
    TLS_CERT_FILE: Optional[str] = None
    TLS_KEY_FILE: Optional[str] = None
    TLS_CA_FILE: Optional[str] = None
    TLS_REQUIRE_SSL: bool = True
    CLIENT_CERT_HEADER: str = "X-Client-Cert"

    # JWT
    JWT_SECRET_KEY: str
    JWT_EXP_MINUTES: int = 24 * 60
    JWT_ISSUER: str = "device-assignment-api"
    JWT_ALGORITHM: str = "HS256"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    @model_validator(mode="after")
    def _check_required(self):
        if not self.JWT_SECRET_KEY:
            raise ValueError("JWT_SECRET_KEY is required")
        if self.JWT_ALGORITHM not in HMAC_ALGORITHMS:
            raise ValueError(f"JWT_ALGORITHM must be one of {', '.join(HMAC_ALGORITHMS)}")
        if self.JWT_EXP_MINUTES <= 0:
            raise ValueError("JWT_EXP_MINUTES must be positive")
        if self.STORAGE_BACKEND == "postgres" and not self.DB_PASSWORD:
            raise ValueError("DB_PASSWORD is required for the postgres backend")
        if self.DB_POOL_MIN < 1 or self.DB_POOL_MAX < self.DB_POOL_MIN:
            raise ValueError("DB_POOL_MIN/DB_POOL_MAX are inconsistent")
        return self

    def require_tls_files(self) -> None:
        """
        Called by the server runner only; the app itself can run behind a
        TLS-terminating proxy without local certificate files.
        """
        missing = [name for name in ("TLS_CERT_FILE", "TLS_KEY_FILE", "TLS_CA_FILE")
                   if not getattr(self, name)]
        if missing:
            raise ValueError(f"{' and '.join(missing)} required for client certificate verification")


@lru_cache
def get_settings() -> Settings:
    return Settings()
