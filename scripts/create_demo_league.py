#!/usr/bin/env python3
"""
Demo: register users → create league → import players → record purchases → print stats.
Run from project root: python3 scripts/create_demo_league.py [listone.xlsx]
"""
from __future__ import annotations

import json
import sys
from pathlib import Path

# Ensure project root on path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from fantaaiuto.importer import ImportRow, import_rows
from fantaaiuto.logger import setup_logging
from fantaaiuto.persistence import Database, UserRepository
from fantaaiuto.services import LeagueService, ParticipantService, PlayerService, UserService
from fantaaiuto.spreadsheet import parse_workbook

SAMPLE_ROWS = [
    ImportRow("Mike Maignan", "Milan", "Por", 18, 22, ruolo_classic="P"),
    ImportRow("Yann Sommer", "Inter", "Por", 14, 17, ruolo_classic="P"),
    ImportRow("Alessandro Bastoni", "Inter", "Dc;B", 15, 16, ruolo_classic="D"),
    ImportRow("Federico Dimarco", "Inter", "Dd;E", 20, 18, ruolo_classic="D"),
    ImportRow("Nicolo Barella", "Inter", "M;C", 25, 28, ruolo_classic="C"),
    ImportRow("Christian Pulisic", "Milan", "W;T", 27, 26, ruolo_classic="C"),
    ImportRow("Lautaro Martinez", "Inter", "Pc", 40, 35, ruolo_classic="A"),
    ImportRow("Moise Kean", "Fiorentina", "Pc", 30, 27, ruolo_classic="A"),
]


def _user(conn, service: UserService, username: str):
    existing = UserRepository().get_by_username(conn, username)
    if existing is not None:
        return existing
    user = service.register(conn, username, f"{username}@example.com", "demo-password")
    print(f"Created user: {user.username} (id={user.id})")
    return user


def main() -> None:
    setup_logging("WARNING", log_file=None)
    # Use data/demo.db for demo (distinct from the app database)
    db = Database(PROJECT_ROOT / "data" / "demo.db")
    db.init_schema()

    rows = SAMPLE_ROWS
    if len(sys.argv) > 1:
        rows = parse_workbook(Path(sys.argv[1]).read_bytes())
        print(f"Parsed {len(rows)} rows from {sys.argv[1]}")

    with db.connection() as conn:
        users = UserService()
        alice = _user(conn, users, "alice")
        bob = _user(conn, users, "bob")

        # 1. League owned by alice, bob joins by code
        leagues = LeagueService()
        league = leagues.create(conn, alice, "Demo League", game_mode="Mantra", team_name="Alice United")
        leagues.join(conn, league.code, bob, "Bob FC")
        print(f"Created league: {league.name} (code={league.code})")

        # 2. Import player list
        result = import_rows(conn, league.id, rows, season=league.season)
        print(f"Import: {json.dumps(result.to_dict())}")

        # 3. Auction: alice buys one player, a non-registered rival buys another
        ctx = leagues.context(conn, league.id, alice)
        players = PlayerService().list_players(conn, ctx)
        PlayerService().update_status(conn, ctx, players[0].master_player_id, {
            "status": "owned", "costo_reale": 25, "acquistatore": "Alice United",
        })
        rival = ParticipantService().create(conn, ctx, "Marco")
        ParticipantService().assign(conn, ctx, rival.id, players[-1].master_player_id, costo_altri=41)

        # 4. Report
        print(json.dumps(PlayerService().stats(conn, ctx), indent=2))
        for member in leagues.members(conn, ctx):
            print(f"  {member.role:<6} {member.username:<8} {member.team_name:<14} spent {member.budget_used}")

    db.close()


if __name__ == "__main__":
    main()
