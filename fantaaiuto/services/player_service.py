"""
League-scoped player store: listing, ownership updates, budget stats.
All reads and writes go through the context's league id.
"""
from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from typing import Any

from fantaaiuto.errors import NotFound, ValidationError
from fantaaiuto.models import LeagueContext, LeaguePlayer, PlayerStatus
from fantaaiuto.persistence import LeaguePlayerRepository, MasterPlayerRepository, transaction
from fantaaiuto.roles import role_buckets

logger = logging.getLogger(__name__)

LIST_STATUS_FILTERS = {s.value for s in PlayerStatus} | {"interesting"}

# Fields a client may set on a league player, by attribute name
STATUS_FIELDS = ("status", "interessante", "costo_reale", "prezzo_atteso", "acquistatore", "note")
NULLABLE_FIELDS = ("prezzo_atteso", "acquistatore", "note")


def load_league_player(conn: sqlite3.Connection, league_id: str, master_player_id: str) -> LeaguePlayer:
    player = LeaguePlayerRepository().get(conn, league_id, master_player_id)
    if player is None:
        raise NotFound("Player not found", code="PLAYER_NOT_FOUND")
    return player


def ensure_league_player(conn: sqlite3.Connection, league_id: str, master_player_id: str) -> LeaguePlayer:
    """
    Return the league's overlay row for a catalog player, creating it when the
    league never touched that player. NotFound when the catalog has no such id.
    """
    repo = LeaguePlayerRepository()
    player = repo.get(conn, league_id, master_player_id)
    if player is not None:
        return player
    master = MasterPlayerRepository().get(conn, master_player_id)
    if master is None:
        raise NotFound("Player not found", code="PLAYER_NOT_FOUND")
    repo.create(conn, league_id, master_player_id, prezzo=master.prezzo, fvm=master.fvm)
    return load_league_player(conn, league_id, master_player_id)


class PlayerService:
    def __init__(self) -> None:
        self._player_repo = LeaguePlayerRepository()

    def list_players(
        self,
        conn: sqlite3.Connection,
        ctx: LeagueContext,
        status: str | None = None,
        role: str | None = None,
        search: str | None = None,
    ) -> list[LeaguePlayer]:
        if status and status not in LIST_STATUS_FILTERS:
            raise ValidationError(f"Invalid status filter: {status}")
        return self._player_repo.list(
            conn, ctx.league_id, status=status, role=role or None, search=(search or "").strip() or None
        )

    def update_status(
        self, conn: sqlite3.Connection, ctx: LeagueContext, master_player_id: str, changes: dict[str, Any]
    ) -> LeaguePlayer:
        """
        Apply client changes to one league player. Any status may follow any
        other; acquisition and removal dates are stamped on entering owned or
        removed. Leaving taken_by_other drops the participant link.
        """
        # None clears the nullable text/price fields and is ignored elsewhere
        changes = {
            k: v for k, v in changes.items()
            if k in STATUS_FIELDS and (v is not None or k in NULLABLE_FIELDS)
        }
        if changes.get("status") == "interesting":
            # Older clients flag interest through the status field
            del changes["status"]
            changes["interessante"] = True
        if not changes:
            raise ValidationError("No fields to update")
        status = changes.get("status")
        if status is not None and status not in {s.value for s in PlayerStatus}:
            raise ValidationError(f"Invalid status: {status}")
        with transaction(conn):
            current = ensure_league_player(conn, ctx.league_id, master_player_id)
            fields: dict[str, Any] = {}
            for key in ("costo_reale", "prezzo_atteso", "acquistatore", "note"):
                if key in changes:
                    fields[key] = changes[key]
            if changes.get("interessante") is not None:
                fields["interessante"] = 1 if changes["interessante"] else 0
            if status is not None:
                now = datetime.now(timezone.utc).isoformat()
                fields["status"] = status
                fields["rimosso"] = 1 if status == PlayerStatus.REMOVED.value else 0
                if status == PlayerStatus.OWNED.value and current.status != status:
                    fields["data_acquisto"] = now
                if status == PlayerStatus.REMOVED.value and current.status != status:
                    fields["data_rimozione"] = now
                elif status != PlayerStatus.REMOVED.value:
                    fields["data_rimozione"] = None
                if status != PlayerStatus.TAKEN_BY_OTHER.value and current.participant_id:
                    fields["participant_id"] = None
                    fields["costo_altri"] = 0
                    fields.setdefault("acquistatore", None)
                if status == PlayerStatus.AVAILABLE.value:
                    fields["data_acquisto"] = None
            self._player_repo.update_fields(conn, ctx.league_id, master_player_id, fields)
        if status is not None and status != current.status:
            logger.info(
                f"League {ctx.league_id}: {current.nome} {current.status} -> {status} by {ctx.user.username}"
            )
        return load_league_player(conn, ctx.league_id, master_player_id)

    def stats(self, conn: sqlite3.Connection, ctx: LeagueContext) -> dict[str, Any]:
        league = ctx.league
        summary = self._player_repo.owned_summary(conn, ctx.league_id)
        budget_used = float(summary["budget_used"])
        players_owned = int(summary["players_owned"])

        distribution = {bucket: 0 for bucket in role_buckets(league.game_mode)}
        for classic, mantra in self._player_repo.owned_roles(conn, ctx.league_id):
            keys = mantra if league.game_mode == "Mantra" else [classic]
            for key in keys:
                if key in distribution:
                    distribution[key] += 1

        return {
            "totalBudget": league.total_budget,
            "maxPlayers": league.max_players_per_team,
            "budgetUsed": budget_used,
            "budgetRemaining": league.total_budget - budget_used,
            "playersOwned": players_owned,
            "playersRemaining": max(0, league.max_players_per_team - players_owned),
            "takenByOthers": int(summary["taken_by_others"]),
            "interestingCount": int(summary["interesting"]),
            "totalPlayers": int(summary["total"]),
            "roleDistribution": distribution,
        }
