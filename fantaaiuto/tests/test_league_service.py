"""
Tests for league membership rules: single master, transfer on leave,
capacity, permissions and cascade delete.
"""
from __future__ import annotations

import string
from pathlib import Path

import pytest

import sys
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from fantaaiuto.errors import (
    AlreadyMember,
    Forbidden,
    InsufficientPermissions,
    LeagueFull,
    NotFound,
    ValidationError,
)
from fantaaiuto.importer import ImportRow, import_rows
from fantaaiuto.models import MemberRole
from fantaaiuto.persistence import Database, LeagueMemberRepository, LeagueRepository
from fantaaiuto.services import (
    FormationService,
    LeagueService,
    ParticipantService,
    UserService,
)


@pytest.fixture
def db(tmp_path):
    database = Database(tmp_path / "league_test.db", pool_size=2)
    database.init_schema()
    yield database
    database.close()


@pytest.fixture
def db_conn(db):
    with db.connection() as conn:
        yield conn


@pytest.fixture
def league_service():
    return LeagueService()


@pytest.fixture
def users(db_conn):
    service = UserService()
    return {
        name: service.register(db_conn, name, f"{name}@example.com", "password1")
        for name in ("alice", "bob", "carol", "dave")
    }


def test_create_league_adds_owner_as_master(db_conn, league_service, users):
    league = league_service.create(db_conn, users["alice"], "L1", total_budget=500, max_members=8)
    assert len(league.code) == 6
    assert all(c in string.ascii_uppercase + string.digits for c in league.code)
    assert league.owner_id == users["alice"].id
    members = LeagueMemberRepository()
    assert members.count_masters(db_conn, league.id) == 1
    owner = members.get(db_conn, league.id, users["alice"].id)
    assert owner.role == MemberRole.MASTER.value
    assert owner.team_name == "My Team"


def test_create_league_rejects_unknown_game_mode(db_conn, league_service, users):
    with pytest.raises(ValidationError):
        league_service.create(db_conn, users["alice"], "L1", game_mode="Draft")


def test_join_by_code_adds_member(db_conn, league_service, users):
    league = league_service.create(db_conn, users["alice"], "L1")
    joined, member = league_service.join(db_conn, league.code.lower(), users["bob"], "Bob FC")
    assert joined.id == league.id
    assert member.role == MemberRole.MEMBER.value
    assert member.team_name == "Bob FC"
    assert LeagueMemberRepository().count(db_conn, league.id) == 2


def test_join_twice_fails_already_member(db_conn, league_service, users):
    league = league_service.create(db_conn, users["alice"], "L1")
    league_service.join(db_conn, league.code, users["bob"])
    with pytest.raises(AlreadyMember):
        league_service.join(db_conn, league.code, users["bob"])


def test_join_unknown_code_not_found(db_conn, league_service, users):
    with pytest.raises(NotFound):
        league_service.join(db_conn, "ZZZZZZ", users["bob"])


def test_join_full_league_fails_and_count_never_exceeds_max(db_conn, league_service, users):
    league = league_service.create(db_conn, users["alice"], "L1", max_members=2)
    league_service.join(db_conn, league.code, users["bob"])
    with pytest.raises(LeagueFull):
        league_service.join(db_conn, league.code, users["carol"])
    assert LeagueMemberRepository().count(db_conn, league.id) == 2


def test_owner_leave_transfers_to_earliest_joined(db_conn, league_service, users):
    league = league_service.create(db_conn, users["alice"], "L1")
    league_service.join(db_conn, league.code, users["bob"])
    league_service.join(db_conn, league.code, users["carol"])

    result = league_service.leave(db_conn, league.id, users["alice"])

    assert result["newOwnerId"] == users["bob"].id
    members = LeagueMemberRepository()
    assert members.count_masters(db_conn, league.id) == 1
    assert members.get(db_conn, league.id, users["bob"].id).role == MemberRole.MASTER.value
    assert LeagueRepository().get(db_conn, league.id).owner_id == users["bob"].id


def test_member_leave_keeps_master(db_conn, league_service, users):
    league = league_service.create(db_conn, users["alice"], "L1")
    league_service.join(db_conn, league.code, users["bob"])
    result = league_service.leave(db_conn, league.id, users["bob"])
    assert result["newOwnerId"] is None
    assert LeagueMemberRepository().count_masters(db_conn, league.id) == 1
    assert LeagueRepository().get(db_conn, league.id).owner_id == users["alice"].id


def test_last_member_leaving_orphans_league_without_deleting(db_conn, league_service, users):
    league = league_service.create(db_conn, users["alice"], "L1")
    league_service.leave(db_conn, league.id, users["alice"])
    assert LeagueRepository().get(db_conn, league.id) is not None
    assert LeagueMemberRepository().count(db_conn, league.id) == 0
    assert league_service.invite_info(db_conn, league.code)["ownerUsername"] is None

    # Next user to join takes over the orphaned league
    _, member = league_service.join(db_conn, league.code, users["dave"])
    assert member.role == MemberRole.MASTER.value
    assert LeagueRepository().get(db_conn, league.id).owner_id == users["dave"].id
    assert league_service.invite_info(db_conn, league.code)["ownerUsername"] == "dave"


def test_leave_when_not_member_is_forbidden(db_conn, league_service, users):
    league = league_service.create(db_conn, users["alice"], "L1")
    with pytest.raises(Forbidden):
        league_service.leave(db_conn, league.id, users["bob"])


def test_context_rejects_non_member_and_missing_id(db_conn, league_service, users):
    league = league_service.create(db_conn, users["alice"], "L1")
    with pytest.raises(Forbidden):
        league_service.context(db_conn, league.id, users["bob"])
    with pytest.raises(Forbidden):
        league_service.context(db_conn, None, users["alice"])
    with pytest.raises(Forbidden):
        league_service.context(db_conn, "no-such-league", users["alice"])


def test_update_requires_owner(db_conn, league_service, users):
    league = league_service.create(db_conn, users["alice"], "L1")
    league_service.join(db_conn, league.code, users["bob"])
    bob_ctx = league_service.context(db_conn, league.id, users["bob"])
    with pytest.raises(InsufficientPermissions):
        league_service.update(db_conn, bob_ctx, {"name": "Hijacked"})


def test_update_cannot_lower_max_members_below_count(db_conn, league_service, users):
    league = league_service.create(db_conn, users["alice"], "L1", max_members=4)
    league_service.join(db_conn, league.code, users["bob"])
    league_service.join(db_conn, league.code, users["carol"])
    ctx = league_service.context(db_conn, league.id, users["alice"])
    with pytest.raises(ValidationError):
        league_service.update(db_conn, ctx, {"max_members": 2})
    updated = league_service.update(db_conn, ctx, {"max_members": 3, "name": "Renamed"})
    assert updated.max_members == 3
    assert updated.name == "Renamed"


def test_update_can_clear_description(db_conn, league_service, users):
    league = league_service.create(db_conn, users["alice"], "L1", description="Serie A friends")
    ctx = league_service.context(db_conn, league.id, users["alice"])
    assert league_service.update(db_conn, ctx, {"description": None}).description is None
    # A null on a required column is ignored rather than written
    with pytest.raises(ValidationError):
        league_service.update(db_conn, ctx, {"name": None})
    assert LeagueRepository().get(db_conn, league.id).name == "L1"


def test_invite_by_username(db_conn, league_service, users):
    league = league_service.create(db_conn, users["alice"], "L1")
    ctx = league_service.context(db_conn, league.id, users["alice"])
    member = league_service.invite_by_username(db_conn, ctx, "bob")
    assert member.team_name == "bob"
    with pytest.raises(AlreadyMember):
        league_service.invite_by_username(db_conn, ctx, "bob")
    with pytest.raises(NotFound):
        league_service.invite_by_username(db_conn, ctx, "nobody")

    bob_ctx = league_service.context(db_conn, league.id, users["bob"])
    with pytest.raises(InsufficientPermissions):
        league_service.invite_by_username(db_conn, bob_ctx, "carol")


def test_remove_member(db_conn, league_service, users):
    league = league_service.create(db_conn, users["alice"], "L1")
    league_service.join(db_conn, league.code, users["bob"])
    ctx = league_service.context(db_conn, league.id, users["alice"])
    with pytest.raises(ValidationError):
        league_service.remove_member(db_conn, ctx, users["alice"].id)
    league_service.remove_member(db_conn, ctx, users["bob"].id)
    with pytest.raises(Forbidden):
        league_service.context(db_conn, league.id, users["bob"])


def test_invite_info_reports_capacity(db_conn, league_service, users):
    league = league_service.create(db_conn, users["alice"], "L1", max_members=2)
    info = league_service.invite_info(db_conn, league.code)
    assert info["ownerUsername"] == "alice"
    assert info["isFull"] is False
    league_service.join(db_conn, league.code, users["bob"])
    assert league_service.invite_info(db_conn, league.code)["isFull"] is True


def test_member_stats_follow_purchaser(db_conn, league_service, users):
    from fantaaiuto.services import PlayerService

    league = league_service.create(db_conn, users["alice"], "L1", team_name="Alice United")
    ctx = league_service.context(db_conn, league.id, users["alice"])
    import_rows(db_conn, league.id, [ImportRow("Mike Maignan", "Milan", "P", 20, 20)])
    pid = PlayerService().list_players(db_conn, ctx)[0].master_player_id
    PlayerService().update_status(
        db_conn, ctx, pid, {"status": "owned", "costo_reale": 30, "acquistatore": "Alice United"}
    )
    [member] = league_service.members(db_conn, ctx)
    assert member.budget_used == 30
    assert member.players_count == 1


def test_delete_requires_owner_and_cascades(db_conn, league_service, users, tmp_path):
    league = league_service.create(db_conn, users["alice"], "L1")
    league_service.join(db_conn, league.code, users["bob"])
    ctx = league_service.context(db_conn, league.id, users["alice"])
    import_rows(db_conn, league.id, [ImportRow("Nicolo Barella", "Inter", "C", 30, 28)])
    ParticipantService().create(db_conn, ctx, "Marco")
    FormationService().create(db_conn, ctx, "Base", "4-3-3")
    uploads = tmp_path / "uploads"
    image = FormationService().save_image(
        db_conn, ctx, uploads, "lineup.png", b"\x89PNG fake", "image/png", max_bytes=1024
    )
    image_path = uploads / "formations" / image.filename
    assert image_path.exists()

    bob_ctx = league_service.context(db_conn, league.id, users["bob"])
    with pytest.raises(InsufficientPermissions):
        league_service.delete(db_conn, bob_ctx)

    league_service.delete(db_conn, ctx, upload_dir=uploads)

    assert LeagueRepository().get(db_conn, league.id) is None
    for table in ("league_members", "league_players", "participants", "formations", "formation_images"):
        row = db_conn.execute(f"SELECT COUNT(*) AS n FROM {table} WHERE league_id = ?", (league.id,)).fetchone()
        assert row["n"] == 0, table
    assert not image_path.exists()
    # Shared catalog survives
    assert db_conn.execute("SELECT COUNT(*) AS n FROM master_players").fetchone()["n"] == 1
