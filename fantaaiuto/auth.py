"""
Password hashing and bearer tokens.
Passwords never stored in plain text. Tokens are stateless: verify() checks
signature and expiry only, user existence is re-checked by the API layer.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from fantaaiuto.config import Settings, settings as default_settings
from fantaaiuto.errors import InvalidToken

# Use pbkdf2_sha256 to avoid bcrypt backend init (passlib's bcrypt runs a 72+ byte test and raises)
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    if not hashed:
        return False
    return pwd_context.verify(plain, hashed)


@dataclass(frozen=True)
class TokenClaims:
    user_id: str
    username: str
    expires_at: datetime


class TokenService:
    """Issues and verifies signed, time-limited bearer tokens."""

    def __init__(self, config: Settings | None = None) -> None:
        cfg = config or default_settings
        self._secret = cfg.jwt_secret_key
        self._algorithm = cfg.jwt_algorithm
        self._expire = timedelta(minutes=cfg.access_token_expire_minutes)

    def issue(self, user_id: str, username: str) -> str:
        expire = datetime.now(timezone.utc) + self._expire
        to_encode: dict[str, Any] = {"sub": user_id, "username": username, "exp": expire}
        return jwt.encode(to_encode, self._secret, algorithm=self._algorithm)

    def verify(self, token: str) -> TokenClaims:
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except JWTError as e:
            raise InvalidToken() from e
        user_id = payload.get("sub")
        if not user_id:
            raise InvalidToken()
        return TokenClaims(
            user_id=user_id,
            username=payload.get("username") or "",
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )
