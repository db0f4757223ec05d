"""
Tests for the player import pipeline: validation, normalisation, dedup,
re-import protection of auction data, modes and partial batch failure.
"""
from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

import sys
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from fantaaiuto.importer import (
    ImportMode,
    ImportRow,
    NOT_LISTED_TIER,
    derive_price,
    fvm_tier,
    import_rows,
    normalize_name,
)
from fantaaiuto.persistence import Database, LeaguePlayerRepository, MasterPlayerRepository
from fantaaiuto.roles import ClassicRole, parse_roles
from fantaaiuto.services import LeagueService, PlayerService, UserService


@pytest.fixture
def db_conn(tmp_path):
    database = Database(tmp_path / "import_test.db", pool_size=1)
    database.init_schema()
    with database.connection() as conn:
        yield conn
    database.close()


@pytest.fixture
def ctx(db_conn):
    user = UserService().register(db_conn, "alice", "alice@example.com", "password1")
    service = LeagueService()
    league = service.create(db_conn, user, "L1")
    return service.context(db_conn, league.id, user)


def _rows():
    return [
        ImportRow("Mike Maignan", "Milan", "P", 18, 22),
        ImportRow("Alessandro Bastoni", "Inter", "Dc;B", None, 16),
        ImportRow("Lautaro Martinez", "Inter", "Pc", 40, 35),
    ]


# ---------- Helpers ----------


def test_normalize_name_collapses_whitespace_and_title_cases():
    assert normalize_name("  lautaro   MARTINEZ ") == "Lautaro Martinez"
    assert normalize_name("") == ""
    assert normalize_name(None) == ""


@pytest.mark.parametrize("fvm,expected", [(40, 10.0), (7, 1.0), (1, 1.0), (0, 1.0)])
def test_derive_price(fvm, expected):
    assert derive_price(fvm) == expected


@pytest.mark.parametrize("fvm,tier", [(25, "Top"), (20, "Top"), (12, "Titolari"), (5, "Low cost"), (2, "Jolly"), (1, "Riserve")])
def test_fvm_tier(fvm, tier):
    assert fvm_tier(fvm) == tier


def test_parse_roles_mantra_maps_to_classic():
    parsed = parse_roles("Dc;B")
    assert parsed.classic == ClassicRole.D
    assert parsed.mantra == ("Dc", "B")
    assert parse_roles("W/T").classic == ClassicRole.C
    assert parse_roles("Por").classic == ClassicRole.P
    assert parse_roles("xyz") is None
    # Explicit classic role wins over the Mantra-derived one
    assert parse_roles("T", classic_hint="A").classic == ClassicRole.A


# ---------- Pipeline ----------


def test_import_creates_catalog_and_league_rows(db_conn, ctx):
    result = import_rows(db_conn, ctx.league_id, _rows())
    assert (result.imported, result.updated, result.skipped, result.failed) == (3, 0, 0, 0)
    assert result.total == 3
    assert result.batches == 1

    players = PlayerService().list_players(db_conn, ctx)
    assert len(players) == 3
    assert all(p.status == "available" for p in players)
    bastoni = next(p for p in players if p.nome == "Alessandro Bastoni")
    assert bastoni.ruolo == "D"
    assert bastoni.ruoli_mantra == ["Dc", "B"]
    assert bastoni.prezzo == 4.0  # derived from fvm 16
    assert bastoni.tier == "Titolari"


def test_invalid_rows_are_skipped_not_fatal(db_conn, ctx):
    rows = _rows() + [ImportRow("   ", "Roma", "C"), ImportRow("Nobody", "Roma", "QQ")]
    result = import_rows(db_conn, ctx.league_id, rows)
    assert result.imported == 3
    assert result.skipped == 2
    assert result.total == 5


def test_duplicate_rows_share_one_catalog_entry(db_conn, ctx):
    rows = [ImportRow("mike  maignan", "milan", "P", 18, 22), ImportRow("Mike Maignan", "Milan", "P", 18, 22)]
    result = import_rows(db_conn, ctx.league_id, rows)
    assert result.imported == 1
    assert result.updated == 1
    assert MasterPlayerRepository().count(db_conn) == 1


def test_catalog_is_shared_across_leagues(db_conn, ctx):
    bob = UserService().register(db_conn, "bob", "bob@example.com", "password1")
    other = LeagueService().create(db_conn, bob, "L2")
    import_rows(db_conn, ctx.league_id, _rows())
    import_rows(db_conn, other.id, _rows())
    assert MasterPlayerRepository().count(db_conn) == 3
    assert len(LeaguePlayerRepository().list(db_conn, other.id)) == 3


def test_reimport_preserves_status_and_purchaser(db_conn, ctx):
    import_rows(db_conn, ctx.league_id, _rows())
    service = PlayerService()
    lautaro = next(p for p in service.list_players(db_conn, ctx) if p.nome == "Lautaro Martinez")
    service.update_status(db_conn, ctx, lautaro.master_player_id, {
        "status": "owned", "costo_reale": 55, "acquistatore": "Alice United", "note": "captain",
    })

    rows = _rows()
    rows[2] = ImportRow("Lautaro Martinez", "Inter", "Pc", 42, 37)
    result = import_rows(db_conn, ctx.league_id, rows)
    assert (result.imported, result.updated) == (0, 3)

    after = LeaguePlayerRepository().get(db_conn, ctx.league_id, lautaro.master_player_id)
    assert after.status == "owned"
    assert after.acquistatore == "Alice United"
    assert after.costo_reale == 55
    assert after.note == "captain"
    assert after.fvm == 37
    assert after.prezzo == 42


def test_mode_two_removes_fvm_one_on_insert_only(db_conn, ctx):
    rows = [ImportRow("Riserva Uno", "Lecce", "C", 1, 1), ImportRow("Titolare Due", "Lecce", "C", 10, 12)]
    import_rows(db_conn, ctx.league_id, rows, mode=ImportMode.FVM_TIERS_REMOVE_ONES)
    by_name = {p.nome: p for p in PlayerService().list_players(db_conn, ctx)}
    assert by_name["Riserva Uno"].status == "removed"
    assert by_name["Riserva Uno"].rimosso is True
    assert by_name["Titolare Due"].status == "available"

    # User restores the player; a later import must not remove it again
    PlayerService().update_status(db_conn, ctx, by_name["Riserva Uno"].master_player_id, {"status": "available"})
    import_rows(db_conn, ctx.league_id, rows, mode=ImportMode.FVM_TIERS_REMOVE_ONES)
    restored = LeaguePlayerRepository().get(db_conn, ctx.league_id, by_name["Riserva Uno"].master_player_id)
    assert restored.status == "available"


def test_mode_three_marks_not_listed_tier(db_conn, ctx):
    import_rows(db_conn, ctx.league_id, _rows(), mode=ImportMode.NOT_LISTED)
    assert {p.tier for p in PlayerService().list_players(db_conn, ctx)} == {NOT_LISTED_TIER}


def test_failed_batch_rolls_back_alone(db_conn, ctx, monkeypatch):
    original_create = LeaguePlayerRepository.create

    def flaky_create(self, conn, league_id, master_player_id, prezzo, fvm, tier=None, status="available"):
        if fvm == 99:
            raise sqlite3.OperationalError("disk I/O error")
        return original_create(self, conn, league_id, master_player_id, prezzo, fvm, tier=tier, status=status)

    monkeypatch.setattr(LeaguePlayerRepository, "create", flaky_create)
    rows = [
        ImportRow("Player A", "Como", "C", 5, 10),
        ImportRow("Player B", "Como", "C", 5, 10),
        ImportRow("Player C", "Como", "C", 5, 99),
        ImportRow("Player D", "Como", "C", 5, 10),
        ImportRow("Player E", "Como", "C", 5, 10),
    ]
    result = import_rows(db_conn, ctx.league_id, rows, batch_size=2)

    assert result.batches == 3
    assert result.failed_batches == [2]
    assert result.failed == 2
    assert result.imported == 3
    names = {p.nome for p in PlayerService().list_players(db_conn, ctx)}
    assert names == {"Player A", "Player B", "Player E"}
    # Catalog rows written by the failed batch were rolled back too
    assert MasterPlayerRepository().count(db_conn) == 3
    assert result.to_dict()["failedBatches"] == [2]
