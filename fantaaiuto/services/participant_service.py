"""
Participants: placeholder competitors who buy players at the auction but
have no account. Assigning a player to one marks it taken_by_other.
"""
from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone

from fantaaiuto.errors import DuplicateResource, NotFound, ValidationError
from fantaaiuto.models import LeagueContext, LeaguePlayer, Participant, PlayerStatus
from fantaaiuto.persistence import LeaguePlayerRepository, ParticipantRepository, transaction
from fantaaiuto.services.player_service import ensure_league_player, load_league_player

logger = logging.getLogger(__name__)


def _clean_name(name: str) -> str:
    name = " ".join(name.split())
    if not name:
        raise ValidationError("Participant name is required")
    return name


class ParticipantService:
    def __init__(self) -> None:
        self._participant_repo = ParticipantRepository()
        self._player_repo = LeaguePlayerRepository()

    def _get(self, conn: sqlite3.Connection, ctx: LeagueContext, participant_id: str) -> Participant:
        participant = self._participant_repo.get(conn, ctx.league_id, participant_id)
        if participant is None:
            raise NotFound("Participant not found", code="PARTICIPANT_NOT_FOUND")
        return participant

    def list(self, conn: sqlite3.Connection, ctx: LeagueContext) -> list[Participant]:
        return self._participant_repo.list(conn, ctx.league_id)

    def create(self, conn: sqlite3.Connection, ctx: LeagueContext, name: str) -> Participant:
        name = _clean_name(name)
        with transaction(conn):
            if self._participant_repo.name_taken(conn, ctx.league_id, name):
                raise DuplicateResource(f"Participant '{name}' already exists", code="PARTICIPANT_EXISTS")
            participant = self._participant_repo.create(conn, ctx.league_id, name)
        logger.info(f"League {ctx.league_id}: participant added {name}")
        return participant

    def rename(self, conn: sqlite3.Connection, ctx: LeagueContext, participant_id: str, name: str) -> Participant:
        name = _clean_name(name)
        with transaction(conn):
            self._get(conn, ctx, participant_id)
            if self._participant_repo.name_taken(conn, ctx.league_id, name, exclude_id=participant_id):
                raise DuplicateResource(f"Participant '{name}' already exists", code="PARTICIPANT_EXISTS")
            self._participant_repo.rename(conn, ctx.league_id, participant_id, name)
            self._player_repo.rename_purchaser(conn, ctx.league_id, participant_id, name)
        return self._get(conn, ctx, participant_id)

    def delete(self, conn: sqlite3.Connection, ctx: LeagueContext, participant_id: str) -> int:
        """Delete and return the participant's players to the pool. Returns how many were released."""
        with transaction(conn):
            participant = self._get(conn, ctx, participant_id)
            released = self._player_repo.release_participant(conn, ctx.league_id, participant_id)
            self._participant_repo.delete(conn, ctx.league_id, participant_id)
        logger.info(f"League {ctx.league_id}: participant {participant.name} deleted, {released} players released")
        return released

    # ---------- Assignment ----------

    def list_players(self, conn: sqlite3.Connection, ctx: LeagueContext, participant_id: str) -> list[LeaguePlayer]:
        self._get(conn, ctx, participant_id)
        return self._player_repo.list_by_participant(conn, ctx.league_id, participant_id)

    def assign(
        self,
        conn: sqlite3.Connection,
        ctx: LeagueContext,
        participant_id: str,
        master_player_id: str,
        costo_altri: float = 0,
    ) -> LeaguePlayer:
        if costo_altri < 0:
            raise ValidationError("costoAltri must be >= 0")
        with transaction(conn):
            participant = self._get(conn, ctx, participant_id)
            ensure_league_player(conn, ctx.league_id, master_player_id)
            self._player_repo.update_fields(conn, ctx.league_id, master_player_id, {
                "status": PlayerStatus.TAKEN_BY_OTHER.value,
                "participant_id": participant.id,
                "costo_altri": costo_altri,
                "acquistatore": participant.name,
                "rimosso": 0,
                "data_acquisto": datetime.now(timezone.utc).isoformat(),
            })
        player = load_league_player(conn, ctx.league_id, master_player_id)
        logger.info(f"League {ctx.league_id}: {player.nome} taken by {participant.name} for {costo_altri}")
        return player

    def unassign(
        self, conn: sqlite3.Connection, ctx: LeagueContext, participant_id: str, master_player_id: str
    ) -> LeaguePlayer:
        with transaction(conn):
            self._get(conn, ctx, participant_id)
            player = self._player_repo.get(conn, ctx.league_id, master_player_id)
            if player is None or player.participant_id != participant_id:
                raise NotFound("Player is not assigned to this participant", code="ASSIGNMENT_NOT_FOUND")
            self._player_repo.update_fields(conn, ctx.league_id, master_player_id, {
                "status": PlayerStatus.AVAILABLE.value,
                "participant_id": None,
                "costo_altri": 0,
                "acquistatore": None,
                "data_acquisto": None,
            })
        return load_league_player(conn, ctx.league_id, master_player_id)
