"""
Accounts: registration, login, profile, deactivation.
Passwords are hashed before they reach the repository.
"""
from __future__ import annotations

import logging
import sqlite3
from typing import Any

from fantaaiuto.auth import hash_password, verify_password
from fantaaiuto.errors import (
    DuplicateResource,
    InactiveUser,
    InvalidCredentials,
    NotFound,
    ValidationError,
)
from fantaaiuto.models import User
from fantaaiuto.persistence import (
    FormationRepository,
    LeagueMemberRepository,
    LeaguePlayerRepository,
    LeagueRepository,
    ParticipantRepository,
    UserRepository,
    transaction,
)

logger = logging.getLogger(__name__)


class UserService:
    def __init__(self) -> None:
        self._user_repo = UserRepository()

    def register(
        self,
        conn: sqlite3.Connection,
        username: str,
        email: str,
        password: str,
        display_name: str | None = None,
    ) -> User:
        email = email.strip().lower()
        with transaction(conn):
            if self._user_repo.exists_username_or_email(conn, username, email):
                raise DuplicateResource("Username or email already exists", code="USER_EXISTS")
            user = self._user_repo.create(
                conn, username, email, hash_password(password), (display_name or "").strip() or username
            )
        logger.info(f"User registered: {username}")
        return user

    def authenticate(self, conn: sqlite3.Connection, login: str, password: str) -> User:
        """Login by username or email; records last_login on success."""
        user = self._user_repo.get_by_login(conn, login.strip())
        if user is None or not verify_password(password, user.password_hash):
            logger.warning(f"Failed login attempt for {login!r}")
            raise InvalidCredentials()
        if not user.is_active:
            raise InactiveUser("Account deactivated")
        with transaction(conn):
            self._user_repo.touch_last_login(conn, user.id)
        logger.info(f"User logged in: {user.username}")
        refreshed = self._user_repo.get(conn, user.id)
        return refreshed or user

    def get(self, conn: sqlite3.Connection, user_id: str) -> User:
        user = self._user_repo.get(conn, user_id)
        if user is None:
            raise NotFound("User not found", code="USER_NOT_FOUND")
        return user

    def update_profile(
        self,
        conn: sqlite3.Connection,
        user: User,
        display_name: str | None = None,
        email: str | None = None,
    ) -> User:
        if display_name is None and email is None:
            raise ValidationError("No fields to update")
        if email is not None:
            email = email.strip().lower()
        with transaction(conn):
            if email is not None and self._user_repo.email_taken_by_other(conn, email, user.id):
                raise DuplicateResource("Email already in use", code="EMAIL_EXISTS")
            self._user_repo.update_profile(
                conn, user.id, display_name.strip() if display_name is not None else None, email
            )
        return self.get(conn, user.id)

    def change_password(
        self, conn: sqlite3.Connection, user: User, current_password: str, new_password: str
    ) -> None:
        if not verify_password(current_password, user.password_hash):
            raise InvalidCredentials("Current password is incorrect")
        with transaction(conn):
            self._user_repo.update_password(conn, user.id, hash_password(new_password))
        logger.info(f"Password changed for {user.username}")

    def deactivate(self, conn: sqlite3.Connection, user: User) -> None:
        """Soft delete. Tokens already issued stop working on the next request."""
        with transaction(conn):
            self._user_repo.set_active(conn, user.id, False)
        logger.info(f"User deactivated: {user.username}")

    def analytics(self, conn: sqlite3.Connection, user: User) -> dict[str, Any]:
        """
        Overview of the user's activity across every league they belong to:
        player counts by flag, participants, formations and budget, totalled
        and per league.
        """
        players = LeaguePlayerRepository()
        participants = ParticipantRepository()
        formations = FormationRepository()
        members = LeagueMemberRepository()

        leagues: list[dict[str, Any]] = []
        for league in LeagueRepository().list_for_user(conn, user.id):
            summary = players.owned_summary(conn, league.id)
            membership = members.get(conn, league.id, user.id)
            budget_used = float(summary["budget_used"])
            leagues.append({
                "leagueId": league.id,
                "name": league.name,
                "gameMode": league.game_mode,
                "role": membership.role if membership else None,
                "ownedPlayers": int(summary["players_owned"]),
                "interestingPlayers": int(summary["interesting"]),
                "removedPlayers": int(summary["removed"]),
                "participantsCount": len(participants.list(conn, league.id)),
                "formationsCount": len(formations.list(conn, league.id)),
                "totalBudget": league.total_budget,
                "budgetUsed": budget_used,
                "budgetRemaining": league.total_budget - budget_used,
            })

        def total(key: str) -> Any:
            return sum(entry[key] for entry in leagues)

        return {
            "counts": {
                "leaguesCount": len(leagues),
                "ownedPlayers": total("ownedPlayers"),
                "interestingPlayers": total("interestingPlayers"),
                "removedPlayers": total("removedPlayers"),
                "participantsCount": total("participantsCount"),
                "formationsCount": total("formationsCount"),
            },
            "budget": {
                "totalBudget": total("totalBudget"),
                "budgetUsed": total("budgetUsed"),
                "budgetRemaining": total("budgetRemaining"),
                "ownedCount": total("ownedPlayers"),
            },
            "leagues": leagues,
        }
