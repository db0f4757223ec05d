"""
FastAPI dependencies: database connections, current user, league context.

The league id is validated once here and handed to handlers as a typed
LeagueContext; handlers never read the x-league-id header themselves.
"""
from __future__ import annotations

import sqlite3
from typing import Iterator

from fastapi import Depends, Header, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from limits import parse
from limits.storage import MemoryStorage
from limits.strategies import FixedWindowRateLimiter
from slowapi.util import get_remote_address

from fantaaiuto.auth import TokenService
from fantaaiuto.config import Settings
from fantaaiuto.errors import InactiveUser, MissingToken, RateLimited
from fantaaiuto.models import LeagueContext, User
from fantaaiuto.persistence import Database, UserRepository
from fantaaiuto.services import LeagueService

security = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_database(request: Request) -> Database:
    return request.app.state.db


def get_conn(db: Database = Depends(get_database)) -> Iterator[sqlite3.Connection]:
    """One pooled connection per request, returned to the pool afterwards."""
    with db.connection() as conn:
        yield conn


def get_token_service(request: Request) -> TokenService:
    return request.app.state.tokens


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    tokens: TokenService = Depends(get_token_service),
    conn: sqlite3.Connection = Depends(get_conn),
) -> User:
    """
    Resolve the bearer token to an active user.
    The user row is re-read on every request so deactivation takes effect immediately.
    """
    if credentials is None or not credentials.credentials:
        raise MissingToken()
    claims = tokens.verify(credentials.credentials)
    user = UserRepository().get(conn, claims.user_id)
    if user is None or not user.is_active:
        raise InactiveUser()
    return user


def get_league_context(
    x_league_id: str | None = Header(default=None),
    user: User = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_conn),
) -> LeagueContext:
    """Tenant context for header-scoped routes (/players, /participants, /formations)."""
    return LeagueService().context(conn, x_league_id, user)


def get_path_league_context(
    league_id: str,
    user: User = Depends(get_current_user),
    conn: sqlite3.Connection = Depends(get_conn),
) -> LeagueContext:
    """Tenant context for /leagues/{league_id}/... routes."""
    return LeagueService().context(conn, league_id, user)


class AuthRateLimit:
    """
    Fixed-window limit for credential endpoints, keyed by client address.
    One instance per app, so each app's Settings decide the rate.
    """

    def __init__(self, limit: str, enabled: bool = True) -> None:
        self.enabled = enabled
        self._item = parse(limit)
        self._window = FixedWindowRateLimiter(MemoryStorage())

    def hit(self, key: str) -> None:
        if self.enabled and not self._window.hit(self._item, "auth", key):
            raise RateLimited()


def limit_auth_requests(request: Request) -> None:
    request.app.state.auth_rate_limit.hit(get_remote_address(request))
