"""
Data models for the auction tracker.
Domain objects only; no persistence or API logic.

League-centric architecture: users are members of leagues; every league keeps
its own view (status, prices, purchaser) of the shared master player catalog,
plus its own participants and formations.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from fantaaiuto.errors import InsufficientPermissions


class GameMode(str, Enum):
    CLASSIC = "Classic"
    MANTRA = "Mantra"


class LeagueStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"


class MemberRole(str, Enum):
    """Exactly one master per league while it has members."""
    MASTER = "master"
    MEMBER = "member"


class PlayerStatus(str, Enum):
    """No transition rules: any status can be set from any other."""
    AVAILABLE = "available"
    OWNED = "owned"
    REMOVED = "removed"
    TAKEN_BY_OTHER = "taken_by_other"


def _iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt is not None else None


# ---------- User ----------
@dataclass
class User:
    id: str
    username: str
    email: str
    display_name: str
    created_at: datetime
    password_hash: str = ""
    is_active: bool = True
    last_login: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "displayName": self.display_name,
            "createdAt": self.created_at.isoformat(),
            "lastLogin": _iso(self.last_login),
        }


# ---------- League ----------
@dataclass
class League:
    """
    Tenant grouping users competing in one auction.
    owner_id mirrors the single master membership.
    """
    id: str
    name: str
    code: str
    owner_id: str
    game_mode: str
    total_budget: int
    max_players_per_team: int
    max_members: int
    status: str
    season: str
    created_at: datetime
    updated_at: datetime
    description: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "ownerId": self.owner_id,
            "gameMode": self.game_mode,
            "totalBudget": self.total_budget,
            "maxPlayersPerTeam": self.max_players_per_team,
            "maxMembers": self.max_members,
            "status": self.status,
            "season": self.season,
            "description": self.description,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }


# ---------- LeagueMember ----------
@dataclass
class LeagueMember:
    """One user's membership in a league. (league_id, user_id) is unique."""
    id: str
    league_id: str
    user_id: str
    role: str
    team_name: str
    joined_at: datetime
    # Derived, filled by services
    username: str | None = None
    email: str | None = None
    budget_used: float = 0
    players_count: int = 0

    @property
    def is_master(self) -> bool:
        return self.role == MemberRole.MASTER.value

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "leagueId": self.league_id,
            "userId": self.user_id,
            "role": self.role,
            "teamName": self.team_name,
            "budgetUsed": self.budget_used,
            "playersCount": self.players_count,
            "joinedAt": self.joined_at.isoformat(),
            "username": self.username,
            "email": self.email,
        }


# ---------- Master player catalog ----------
@dataclass
class MasterPlayer:
    """League-independent reference data. Immutable once created."""
    id: str
    nome: str
    squadra: str
    ruolo: str
    ruoli_mantra: list[str]
    prezzo: float
    fvm: float
    season: str
    created_at: datetime


# ---------- LeaguePlayer ----------
@dataclass
class LeaguePlayer:
    """
    A league's view of one catalog player. One row per (league, master player).
    Import only touches fvm/prezzo/tier; everything else is user-owned.
    """
    id: str
    league_id: str
    master_player_id: str
    nome: str
    squadra: str
    ruolo: str
    ruoli_mantra: list[str]
    season: str
    status: str = PlayerStatus.AVAILABLE.value
    interessante: bool = False
    rimosso: bool = False
    prezzo: float = 0
    fvm: float = 0
    costo_reale: float = 0
    prezzo_atteso: float | None = None
    costo_altri: float = 0
    acquistatore: str | None = None
    participant_id: str | None = None
    participant_name: str | None = None
    tier: str | None = None
    note: str | None = None
    data_acquisto: datetime | None = None
    data_rimozione: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.master_player_id,
            "leaguePlayerId": self.id,
            "nome": self.nome,
            "squadra": self.squadra,
            "ruolo": self.ruolo,
            "ruoliMantra": list(self.ruoli_mantra),
            "prezzo": self.prezzo,
            "fvm": self.fvm,
            "season": self.season,
            "status": self.status,
            "interessante": self.interessante,
            "rimosso": self.rimosso,
            "costoReale": self.costo_reale,
            "prezzoAtteso": self.prezzo_atteso if self.prezzo_atteso is not None else self.prezzo,
            "costoAltri": self.costo_altri,
            "acquistatore": self.acquistatore,
            "participantId": self.participant_id,
            "proprietario": self.participant_name,
            "tier": self.tier,
            "note": self.note,
            "dataAcquisto": _iso(self.data_acquisto),
            "dataRimozione": _iso(self.data_rimozione),
        }


# ---------- Participant ----------
@dataclass
class Participant:
    """Non-authenticated competitor used to record players bought by others."""
    id: str
    league_id: str
    name: str
    created_at: datetime
    updated_at: datetime
    budget_used: float = 0
    players_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "leagueId": self.league_id,
            "name": self.name,
            "budgetUsed": self.budget_used,
            "playersCount": self.players_count,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }


# ---------- Formation ----------
@dataclass
class Formation:
    id: str
    league_id: str
    name: str
    schema: str
    players: list[str] = field(default_factory=list)
    is_active: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "leagueId": self.league_id,
            "name": self.name,
            "schema": self.schema,
            "players": list(self.players),
            "isActive": self.is_active,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


@dataclass
class FormationImage:
    id: str
    league_id: str
    filename: str
    original_name: str
    file_size: int
    mime_type: str
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "filename": self.filename,
            "originalName": self.original_name,
            "fileSize": self.file_size,
            "mimeType": self.mime_type,
            "createdAt": self.created_at.isoformat(),
            "url": f"/uploads/formations/{self.filename}",
        }


# ---------- Request tenant context ----------
@dataclass(frozen=True)
class LeagueContext:
    """
    A league already verified to include user as a member.
    Built once per request at the API boundary and handed to services.
    """
    league: League
    user: User
    membership: LeagueMember

    @property
    def league_id(self) -> str:
        return self.league.id

    @property
    def is_owner(self) -> bool:
        return self.membership.is_master

    def require_owner(self) -> None:
        if not self.is_owner:
            raise InsufficientPermissions()
