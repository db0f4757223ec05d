"""
League-centric service: creation, membership, ownership transfer, deletion.
Every multi-statement mutation runs inside one transaction so a league never
has members without exactly one master.
"""
from __future__ import annotations

import logging
import secrets
import sqlite3
import string
from pathlib import Path
from typing import Any

from fantaaiuto.errors import (
    AlreadyMember,
    Forbidden,
    InternalError,
    LeagueFull,
    NotFound,
    ValidationError,
)
from fantaaiuto.models import (
    GameMode,
    League,
    LeagueContext,
    LeagueMember,
    LeagueStatus,
    MemberRole,
    User,
)
from fantaaiuto.persistence import (
    FormationImageRepository,
    LeagueMemberRepository,
    LeagueRepository,
    UserRepository,
    transaction,
)

logger = logging.getLogger(__name__)

CODE_LENGTH = 6
_CODE_ALPHABET = string.ascii_uppercase + string.digits
_CODE_ATTEMPTS = 20

DEFAULT_TEAM_NAME = "My Team"
NULLABLE_LEAGUE_FIELDS = ("description",)


def generate_league_code() -> str:
    return "".join(secrets.choice(_CODE_ALPHABET) for _ in range(CODE_LENGTH))


# ---------- LeagueService ----------


class LeagueService:
    """
    Domain logic for leagues: membership rules, single master, cascade delete.
    Persistence is delegated to repositories.
    """

    def __init__(self) -> None:
        self._league_repo = LeagueRepository()
        self._member_repo = LeagueMemberRepository()
        self._user_repo = UserRepository()
        self._image_repo = FormationImageRepository()

    # ---------- Context ----------

    def context(self, conn: sqlite3.Connection, league_id: str | None, user: User) -> LeagueContext:
        """Resolve league_id for user. Forbidden when missing, unknown or not a member."""
        if not league_id:
            raise Forbidden("League id required (x-league-id header)", code="LEAGUE_ID_REQUIRED")
        league = self._league_repo.get(conn, league_id)
        if league is None:
            raise Forbidden()
        membership = self._member_repo.get(conn, league_id, user.id)
        if membership is None:
            raise Forbidden()
        return LeagueContext(league=league, user=user, membership=membership)

    def _with_stats(self, conn: sqlite3.Connection, member: LeagueMember) -> LeagueMember:
        spent, count = self._member_repo.owned_totals(
            conn, member.league_id, [member.team_name, member.username or ""]
        )
        member.budget_used = spent
        member.players_count = count
        return member

    # ---------- Create / read ----------

    def create(
        self,
        conn: sqlite3.Connection,
        owner: User,
        name: str,
        game_mode: str = GameMode.CLASSIC.value,
        total_budget: int = 500,
        max_players_per_team: int = 25,
        max_members: int = 8,
        season: str = "2025-26",
        description: str | None = None,
        team_name: str | None = None,
    ) -> League:
        """Insert league and the owner's master membership atomically."""
        if game_mode not in {m.value for m in GameMode}:
            raise ValidationError(f"Invalid game mode: {game_mode}")
        name = name.strip()
        if not name:
            raise ValidationError("League name is required")
        with transaction(conn):
            code = self._unique_code(conn)
            league = self._league_repo.create(
                conn,
                name=name,
                code=code,
                owner_id=owner.id,
                game_mode=game_mode,
                total_budget=total_budget,
                max_players_per_team=max_players_per_team,
                max_members=max_members,
                season=season,
                description=description,
            )
            self._member_repo.create(
                conn, league.id, owner.id, MemberRole.MASTER.value, team_name or DEFAULT_TEAM_NAME
            )
        logger.info(f"League created: {league.name} ({league.code}) by {owner.username}")
        return league

    def _unique_code(self, conn: sqlite3.Connection) -> str:
        for _ in range(_CODE_ATTEMPTS):
            code = generate_league_code()
            if not self._league_repo.code_exists(conn, code):
                return code
        raise InternalError("Could not generate a unique league code")

    def list_for_user(self, conn: sqlite3.Connection, user: User) -> list[dict[str, Any]]:
        """Leagues the user belongs to, with the caller's role and team stats."""
        out: list[dict[str, Any]] = []
        for league in self._league_repo.list_for_user(conn, user.id):
            membership = self._member_repo.get(conn, league.id, user.id)
            if membership is None:
                continue
            self._with_stats(conn, membership)
            out.append(self.summary(conn, league, membership))
        return out

    def summary(self, conn: sqlite3.Connection, league: League, membership: LeagueMember) -> dict[str, Any]:
        data = league.to_dict()
        data.update({
            "role": membership.role,
            "teamName": membership.team_name,
            "budgetUsed": membership.budget_used,
            "playersCount": membership.players_count,
            "joinedAt": membership.joined_at.isoformat(),
            "membersCount": self._member_repo.count(conn, league.id),
        })
        return data

    def get(self, conn: sqlite3.Connection, ctx: LeagueContext) -> dict[str, Any]:
        membership = self._with_stats(conn, ctx.membership)
        return self.summary(conn, ctx.league, membership)

    def members(self, conn: sqlite3.Connection, ctx: LeagueContext) -> list[LeagueMember]:
        """Master first, then by join time."""
        return [self._with_stats(conn, m) for m in self._member_repo.list_by_league(conn, ctx.league_id)]

    # ---------- Update ----------

    def update(self, conn: sqlite3.Connection, ctx: LeagueContext, changes: dict[str, Any]) -> League:
        ctx.require_owner()
        changes = {
            k: v for k, v in changes.items()
            if k in LeagueRepository.UPDATABLE and (v is not None or k in NULLABLE_LEAGUE_FIELDS)
        }
        if not changes:
            raise ValidationError("No fields to update")
        if "status" in changes and changes["status"] not in {s.value for s in LeagueStatus}:
            raise ValidationError(f"Invalid league status: {changes['status']}")
        with transaction(conn):
            if "max_members" in changes:
                current = self._member_repo.count(conn, ctx.league_id)
                if changes["max_members"] < current:
                    raise ValidationError(
                        f"maxMembers cannot be lower than the current member count ({current})"
                    )
            self._league_repo.update(conn, ctx.league_id, changes)
        logger.info(f"League {ctx.league_id} updated: {sorted(changes)}")
        league = self._league_repo.get(conn, ctx.league_id)
        if league is None:
            raise NotFound("League not found", code="LEAGUE_NOT_FOUND")
        return league

    # ---------- Membership ----------

    def join(
        self, conn: sqlite3.Connection, code: str, user: User, team_name: str | None = None
    ) -> tuple[League, LeagueMember]:
        """
        Join by code. Count check and insert share one write transaction, so
        concurrent joins never push a league past max_members.
        """
        with transaction(conn):
            league = self._league_repo.get_by_code(conn, code.strip().upper())
            if league is None or league.status != LeagueStatus.ACTIVE.value:
                raise NotFound("League not found or not active", code="LEAGUE_NOT_FOUND")
            if self._member_repo.get(conn, league.id, user.id) is not None:
                raise AlreadyMember()
            count = self._member_repo.count(conn, league.id)
            if count >= league.max_members:
                raise LeagueFull()
            # A league emptied by its last member's departure goes to whoever joins next
            role = MemberRole.MASTER.value if count == 0 else MemberRole.MEMBER.value
            member = self._member_repo.create(conn, league.id, user.id, role, team_name or DEFAULT_TEAM_NAME)
            if role == MemberRole.MASTER.value:
                self._league_repo.set_owner(conn, league.id, user.id)
                league.owner_id = user.id
        logger.info(f"User {user.username} joined league {league.code} as {role}")
        return league, member

    def invite_by_username(
        self, conn: sqlite3.Connection, ctx: LeagueContext, username: str, team_name: str | None = None
    ) -> LeagueMember:
        ctx.require_owner()
        with transaction(conn):
            invitee = self._user_repo.get_by_username(conn, username.strip())
            if invitee is None or not invitee.is_active:
                raise NotFound(f"User not found: {username}", code="USER_NOT_FOUND")
            if self._member_repo.get(conn, ctx.league_id, invitee.id) is not None:
                raise AlreadyMember(f"{invitee.username} is already a member of this league")
            if self._member_repo.count(conn, ctx.league_id) >= ctx.league.max_members:
                raise LeagueFull()
            member = self._member_repo.create(
                conn, ctx.league_id, invitee.id, MemberRole.MEMBER.value, team_name or invitee.username
            )
        member.username = invitee.username
        member.email = invitee.email
        logger.info(f"User {invitee.username} invited to league {ctx.league.code} by {ctx.user.username}")
        return member

    def invite_info(self, conn: sqlite3.Connection, code: str) -> dict[str, Any]:
        """Public summary shown before joining."""
        league = self._league_repo.get_by_code(conn, code.strip().upper())
        if league is None or league.status != LeagueStatus.ACTIVE.value:
            raise NotFound("Invalid invite code", code="LEAGUE_NOT_FOUND")
        count = self._member_repo.count(conn, league.id)
        # owner_id still names the last master of an orphaned league
        owner = self._user_repo.get(conn, league.owner_id) if count else None
        return {
            "name": league.name,
            "code": league.code,
            "gameMode": league.game_mode,
            "description": league.description,
            "ownerUsername": owner.username if owner else None,
            "membersCount": count,
            "maxMembers": league.max_members,
            "isFull": count >= league.max_members,
        }

    def leave(self, conn: sqlite3.Connection, league_id: str, user: User) -> dict[str, Any]:
        """
        Remove user's membership. A departing master hands the league to the
        earliest-joined remaining member in the same transaction. The last
        member leaving orphans the league but keeps its data.
        """
        new_owner_id: str | None = None
        with transaction(conn):
            member = self._member_repo.get(conn, league_id, user.id)
            if member is None:
                raise Forbidden()
            self._member_repo.delete(conn, league_id, user.id)
            if member.is_master:
                successor = self._member_repo.longest_tenured(conn, league_id, exclude_user_id=user.id)
                if successor is not None:
                    self._member_repo.set_role(conn, league_id, successor.user_id, MemberRole.MASTER.value)
                    self._league_repo.set_owner(conn, league_id, successor.user_id)
                    new_owner_id = successor.user_id
        if new_owner_id:
            logger.info(f"League {league_id}: ownership transferred from {user.id} to {new_owner_id}")
        logger.info(f"User {user.username} left league {league_id}")
        return {"left": True, "newOwnerId": new_owner_id}

    def remove_member(self, conn: sqlite3.Connection, ctx: LeagueContext, user_id: str) -> None:
        ctx.require_owner()
        if user_id == ctx.user.id:
            raise ValidationError("The league master cannot remove themselves; leave the league instead")
        with transaction(conn):
            if self._member_repo.get(conn, ctx.league_id, user_id) is None:
                raise NotFound("Member not found", code="MEMBER_NOT_FOUND")
            self._member_repo.delete(conn, ctx.league_id, user_id)
        logger.info(f"User {user_id} removed from league {ctx.league_id} by {ctx.user.username}")

    # ---------- Delete ----------

    def delete(self, conn: sqlite3.Connection, ctx: LeagueContext, upload_dir: Path | None = None) -> None:
        """Owner only. Cascades every league-scoped row, then uploaded image files."""
        ctx.require_owner()
        with transaction(conn):
            images = self._image_repo.list(conn, ctx.league_id)
            self._league_repo.delete(conn, ctx.league_id)
        if upload_dir is not None:
            for image in images:
                path = upload_dir / "formations" / image.filename
                path.unlink(missing_ok=True)
        logger.info(f"League deleted: {ctx.league.name} ({ctx.league.code}) by {ctx.user.username}")
