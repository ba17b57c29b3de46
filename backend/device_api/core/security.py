# backend/device_api/core/security.py
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict

import jwt

from backend.device_api.core.config import HMAC_ALGORITHMS, Settings
from backend.device_api.core.errors import InvalidToken
from backend.device_api.utils.utils import current_datetime_utc

REQUIRED_CLAIMS = ["exp", "iat", "nbf", "iss"]


@dataclass(frozen=True)
class TokenSettings:
    secret_key: str
    issuer: str
    lifetime: timedelta
    algorithm: str = "HS256"

    def __post_init__(self):
        if not self.secret_key:
            raise ValueError("secret_key is required")
        if self.algorithm not in HMAC_ALGORITHMS:
            raise ValueError(f"unsupported signing algorithm: {self.algorithm}")
        if self.lifetime <= timedelta(0):
            raise ValueError("lifetime must be positive")

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenSettings":
        return cls(
            secret_key=settings.JWT_SECRET_KEY,
            issuer=settings.JWT_ISSUER,
            lifetime=timedelta(minutes=settings.JWT_EXP_MINUTES),
            algorithm=settings.JWT_ALGORITHM,
        )


@dataclass(frozen=True)
class TokenClaims:
    user_id: str
    issuer: str
    issued_at: datetime
    expires_at: datetime
    not_before: datetime


def _to_datetime(value: Any, claim: str) -> datetime:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidToken(f"claim '{claim}' must be a numeric date")
    return datetime.fromtimestamp(value, tz=timezone.utc)


class TokenManager:
    """
    Issues and verifies the bearer tokens users present.
    Holds no mutable state: the settings are frozen and the clock is injected
    so token lifetimes can be checked deterministically.
    """

    def __init__(self, settings: TokenSettings,
                 clock: Callable[[], datetime] = current_datetime_utc):
        self._settings = settings
        self._clock = clock

    @property
    def settings(self) -> TokenSettings:
        return self._settings

    def issue_token(self, user_id: str) -> str:
        if not user_id or not user_id.strip():
            raise ValueError("user_id is required")

        now = self._clock()
        payload: Dict[str, Any] = {
            "user_id": user_id,
            "sub": user_id,
            "iss": self._settings.issuer,
            "iat": now,
            "nbf": now,
            "exp": now + self._settings.lifetime,
        }
        token = jwt.encode(payload, self._settings.secret_key, algorithm=self._settings.algorithm)
        # PyJWT returns str in modern versions
        if isinstance(token, bytes):
            token = token.decode("utf-8")
        return token

    def verify_token(self, token: str) -> TokenClaims:
        """
        Signature, algorithm and issuer are checked by PyJWT; time claims are
        checked here against the injected clock. Raises InvalidToken.
        """
        if not token:
            raise InvalidToken("token is missing")

        try:
            payload = jwt.decode(
                token,
                self._settings.secret_key,
                algorithms=[self._settings.algorithm],
                issuer=self._settings.issuer,
                options={
                    "require": REQUIRED_CLAIMS,
                    "verify_exp": False,
                    "verify_nbf": False,
                    "verify_iat": False,
                },
            )
        except jwt.PyJWTError as e:
            raise InvalidToken(f"failed to parse token: {e}") from e

        expires_at = _to_datetime(payload["exp"], "exp")
        not_before = _to_datetime(payload["nbf"], "nbf")
        issued_at = _to_datetime(payload["iat"], "iat")

        now = self._clock()
        if now >= expires_at:
            raise InvalidToken("token has expired")
        if now < not_before:
            raise InvalidToken("token is not yet valid")

        user_id = payload.get("user_id")
        if not isinstance(user_id, str) or not user_id.strip():
            raise InvalidToken("user ID is missing from token")

        return TokenClaims(
            user_id=user_id,
            issuer=payload["iss"],
            issued_at=issued_at,
            expires_at=expires_at,
            not_before=not_before,
        )
