"""
Service layer: league membership rules, player store, participants, formations.
Services own transactions; repositories never commit.
"""
from .league_service import LeagueService, generate_league_code
from .user_service import UserService
from .player_service import PlayerService, ensure_league_player
from .participant_service import ParticipantService
from .formation_service import FormationService

__all__ = [
    "LeagueService",
    "generate_league_code",
    "UserService",
    "PlayerService",
    "ensure_league_player",
    "ParticipantService",
    "FormationService",
]
