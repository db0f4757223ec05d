"""
Persistence layer for auction-tracker data.
No business logic; only read/write interfaces.
"""
from .db import Database, PoolTimeout, transaction
from .repositories import (
    UserRepository,
    LeagueRepository,
    LeagueMemberRepository,
    MasterPlayerRepository,
    LeaguePlayerRepository,
    ParticipantRepository,
    FormationRepository,
    FormationImageRepository,
)

__all__ = [
    "Database",
    "PoolTimeout",
    "transaction",
    "UserRepository",
    "LeagueRepository",
    "LeagueMemberRepository",
    "MasterPlayerRepository",
    "LeaguePlayerRepository",
    "ParticipantRepository",
    "FormationRepository",
    "FormationImageRepository",
]
