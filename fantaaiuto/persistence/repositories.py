"""
Repository interfaces for auction-tracker data.
No business logic; only read/write operations.

Writes never commit: callers group them with persistence.db.transaction().
Every method on a league-scoped table takes league_id and filters by it, so
a caller holding the wrong id gets nothing back instead of another league's rows.
"""
from __future__ import annotations

import json
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Any, Iterable

from fantaaiuto.models import (
    Formation,
    FormationImage,
    League,
    LeagueMember,
    LeaguePlayer,
    MasterPlayer,
    Participant,
    PlayerStatus,
    User,
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return str(uuid.uuid4())


def _parse_datetime(s: str | None) -> datetime:
    if s is None:
        raise ValueError("expected datetime string")
    return datetime.fromisoformat(s.replace("Z", "+00:00"))


def _parse_optional(s: str | None) -> datetime | None:
    return _parse_datetime(s) if s else None


def _split_tags(s: str | None) -> list[str]:
    return [t for t in (s or "").split(";") if t]


# ---------- UserRepository ----------


class UserRepository:
    """CRUD for users. Lookups by username/email are exact matches."""

    _COLS = "id, username, email, password_hash, display_name, is_active, last_login, created_at"

    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(
            id=row["id"],
            username=row["username"],
            email=row["email"],
            password_hash=row["password_hash"],
            display_name=row["display_name"],
            is_active=bool(row["is_active"]),
            last_login=_parse_optional(row["last_login"]),
            created_at=_parse_datetime(row["created_at"]),
        )

    def create(
        self,
        conn: sqlite3.Connection,
        username: str,
        email: str,
        password_hash: str,
        display_name: str,
    ) -> User:
        uid = _new_id()
        now = _now()
        conn.execute(
            "INSERT INTO users (id, username, email, password_hash, display_name, is_active, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, 1, ?, ?)",
            (uid, username, email, password_hash, display_name, now, now),
        )
        return User(
            id=uid, username=username, email=email, password_hash=password_hash,
            display_name=display_name, created_at=_parse_datetime(now),
        )

    def get(self, conn: sqlite3.Connection, user_id: str) -> User | None:
        row = conn.execute(f"SELECT {self._COLS} FROM users WHERE id = ?", (user_id,)).fetchone()
        return self._row_to_user(row) if row else None

    def get_by_username(self, conn: sqlite3.Connection, username: str) -> User | None:
        row = conn.execute(f"SELECT {self._COLS} FROM users WHERE username = ?", (username,)).fetchone()
        return self._row_to_user(row) if row else None

    def get_by_login(self, conn: sqlite3.Connection, login: str) -> User | None:
        """Login accepts either username or email."""
        row = conn.execute(
            f"SELECT {self._COLS} FROM users WHERE username = ? OR email = ? ORDER BY username = ? DESC LIMIT 1",
            (login, login.lower(), login),
        ).fetchone()
        return self._row_to_user(row) if row else None

    def exists_username_or_email(self, conn: sqlite3.Connection, username: str, email: str) -> bool:
        row = conn.execute(
            "SELECT 1 FROM users WHERE username = ? OR email = ? LIMIT 1", (username, email)
        ).fetchone()
        return row is not None

    def email_taken_by_other(self, conn: sqlite3.Connection, email: str, user_id: str) -> bool:
        row = conn.execute(
            "SELECT 1 FROM users WHERE email = ? AND id != ? LIMIT 1", (email, user_id)
        ).fetchone()
        return row is not None

    def update_profile(
        self, conn: sqlite3.Connection, user_id: str, display_name: str | None, email: str | None
    ) -> None:
        if display_name is not None:
            conn.execute(
                "UPDATE users SET display_name = ?, updated_at = ? WHERE id = ?", (display_name, _now(), user_id)
            )
        if email is not None:
            conn.execute("UPDATE users SET email = ?, updated_at = ? WHERE id = ?", (email, _now(), user_id))

    def update_password(self, conn: sqlite3.Connection, user_id: str, password_hash: str) -> None:
        conn.execute(
            "UPDATE users SET password_hash = ?, updated_at = ? WHERE id = ?", (password_hash, _now(), user_id)
        )

    def set_active(self, conn: sqlite3.Connection, user_id: str, active: bool) -> None:
        conn.execute(
            "UPDATE users SET is_active = ?, updated_at = ? WHERE id = ?", (1 if active else 0, _now(), user_id)
        )

    def touch_last_login(self, conn: sqlite3.Connection, user_id: str) -> None:
        conn.execute("UPDATE users SET last_login = ? WHERE id = ?", (_now(), user_id))


# ---------- LeagueRepository ----------


class LeagueRepository:
    """CRUD for leagues. No business logic."""

    _COLS = (
        "id, name, code, owner_id, game_mode, total_budget, max_players_per_team, "
        "max_members, status, season, description, created_at, updated_at"
    )
    # Columns settable through update()
    UPDATABLE = ("name", "total_budget", "max_players_per_team", "max_members", "description", "status")

    def _row_to_league(self, r: sqlite3.Row) -> League:
        return League(
            id=r["id"],
            name=r["name"],
            code=r["code"],
            owner_id=r["owner_id"],
            game_mode=r["game_mode"],
            total_budget=r["total_budget"],
            max_players_per_team=r["max_players_per_team"],
            max_members=r["max_members"],
            status=r["status"],
            season=r["season"],
            description=r["description"],
            created_at=_parse_datetime(r["created_at"]),
            updated_at=_parse_datetime(r["updated_at"]),
        )

    def create(
        self,
        conn: sqlite3.Connection,
        name: str,
        code: str,
        owner_id: str,
        game_mode: str,
        total_budget: int,
        max_players_per_team: int,
        max_members: int,
        season: str,
        description: str | None = None,
    ) -> League:
        lid = _new_id()
        now = _now()
        conn.execute(
            "INSERT INTO leagues (id, name, code, owner_id, game_mode, total_budget, max_players_per_team, "
            "max_members, status, season, description, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, 'active', ?, ?, ?, ?)",
            (lid, name, code, owner_id, game_mode, total_budget, max_players_per_team,
             max_members, season, description, now, now),
        )
        return League(
            id=lid, name=name, code=code, owner_id=owner_id, game_mode=game_mode,
            total_budget=total_budget, max_players_per_team=max_players_per_team,
            max_members=max_members, status="active", season=season, description=description,
            created_at=_parse_datetime(now), updated_at=_parse_datetime(now),
        )

    def get(self, conn: sqlite3.Connection, league_id: str) -> League | None:
        row = conn.execute(f"SELECT {self._COLS} FROM leagues WHERE id = ?", (league_id,)).fetchone()
        return self._row_to_league(row) if row else None

    def get_by_code(self, conn: sqlite3.Connection, code: str) -> League | None:
        row = conn.execute(f"SELECT {self._COLS} FROM leagues WHERE code = ?", (code,)).fetchone()
        return self._row_to_league(row) if row else None

    def code_exists(self, conn: sqlite3.Connection, code: str) -> bool:
        return conn.execute("SELECT 1 FROM leagues WHERE code = ?", (code,)).fetchone() is not None

    def list_for_user(self, conn: sqlite3.Connection, user_id: str) -> list[League]:
        rows = conn.execute(
            f"SELECT {', '.join('l.' + c.strip() for c in self._COLS.split(','))} "
            "FROM leagues l JOIN league_members lm ON lm.league_id = l.id "
            "WHERE lm.user_id = ? ORDER BY l.created_at DESC",
            (user_id,),
        ).fetchall()
        return [self._row_to_league(r) for r in rows]

    def update(self, conn: sqlite3.Connection, league_id: str, changes: dict[str, Any]) -> None:
        fields = [k for k in changes if k in self.UPDATABLE]
        if not fields:
            return
        assignments = ", ".join(f"{f} = ?" for f in fields)
        values = [changes[f] for f in fields]
        conn.execute(
            f"UPDATE leagues SET {assignments}, updated_at = ? WHERE id = ?",
            (*values, _now(), league_id),
        )

    def set_owner(self, conn: sqlite3.Connection, league_id: str, owner_id: str) -> None:
        conn.execute(
            "UPDATE leagues SET owner_id = ?, updated_at = ? WHERE id = ?", (owner_id, _now(), league_id)
        )

    def delete(self, conn: sqlite3.Connection, league_id: str) -> None:
        """Delete the league and every league-scoped row."""
        for table in ("league_players", "formation_images", "formations", "participants", "league_members"):
            conn.execute(f"DELETE FROM {table} WHERE league_id = ?", (league_id,))
        conn.execute("DELETE FROM leagues WHERE id = ?", (league_id,))


# ---------- LeagueMemberRepository ----------


class LeagueMemberRepository:
    """CRUD for league_members. One membership per user per league."""

    def _row_to_member(self, r: sqlite3.Row) -> LeagueMember:
        keys = r.keys()
        return LeagueMember(
            id=r["id"],
            league_id=r["league_id"],
            user_id=r["user_id"],
            role=r["role"],
            team_name=r["team_name"],
            joined_at=_parse_datetime(r["joined_at"]),
            username=r["username"] if "username" in keys else None,
            email=r["email"] if "email" in keys else None,
        )

    def create(
        self,
        conn: sqlite3.Connection,
        league_id: str,
        user_id: str,
        role: str,
        team_name: str,
    ) -> LeagueMember:
        mid = _new_id()
        now = _now()
        conn.execute(
            "INSERT INTO league_members (id, league_id, user_id, role, team_name, joined_at) VALUES (?, ?, ?, ?, ?, ?)",
            (mid, league_id, user_id, role, team_name, now),
        )
        return LeagueMember(
            id=mid, league_id=league_id, user_id=user_id, role=role,
            team_name=team_name, joined_at=_parse_datetime(now),
        )

    def get(self, conn: sqlite3.Connection, league_id: str, user_id: str) -> LeagueMember | None:
        row = conn.execute(
            "SELECT lm.id, lm.league_id, lm.user_id, lm.role, lm.team_name, lm.joined_at, u.username, u.email "
            "FROM league_members lm JOIN users u ON u.id = lm.user_id "
            "WHERE lm.league_id = ? AND lm.user_id = ?",
            (league_id, user_id),
        ).fetchone()
        return self._row_to_member(row) if row else None

    def list_by_league(self, conn: sqlite3.Connection, league_id: str) -> list[LeagueMember]:
        """Master first, then by tenure."""
        rows = conn.execute(
            "SELECT lm.id, lm.league_id, lm.user_id, lm.role, lm.team_name, lm.joined_at, u.username, u.email "
            "FROM league_members lm JOIN users u ON u.id = lm.user_id "
            "WHERE lm.league_id = ? "
            "ORDER BY CASE lm.role WHEN 'master' THEN 0 ELSE 1 END, lm.joined_at, lm.rowid",
            (league_id,),
        ).fetchall()
        return [self._row_to_member(r) for r in rows]

    def count(self, conn: sqlite3.Connection, league_id: str) -> int:
        row = conn.execute("SELECT COUNT(*) AS n FROM league_members WHERE league_id = ?", (league_id,)).fetchone()
        return row["n"]

    def count_masters(self, conn: sqlite3.Connection, league_id: str) -> int:
        row = conn.execute(
            "SELECT COUNT(*) AS n FROM league_members WHERE league_id = ? AND role = 'master'", (league_id,)
        ).fetchone()
        return row["n"]

    def longest_tenured(
        self, conn: sqlite3.Connection, league_id: str, exclude_user_id: str
    ) -> LeagueMember | None:
        """Earliest joined member other than exclude_user_id."""
        row = conn.execute(
            "SELECT id, league_id, user_id, role, team_name, joined_at FROM league_members "
            "WHERE league_id = ? AND user_id != ? ORDER BY joined_at, rowid LIMIT 1",
            (league_id, exclude_user_id),
        ).fetchone()
        return self._row_to_member(row) if row else None

    def set_role(self, conn: sqlite3.Connection, league_id: str, user_id: str, role: str) -> None:
        conn.execute(
            "UPDATE league_members SET role = ? WHERE league_id = ? AND user_id = ?", (role, league_id, user_id)
        )

    def delete(self, conn: sqlite3.Connection, league_id: str, user_id: str) -> None:
        conn.execute("DELETE FROM league_members WHERE league_id = ? AND user_id = ?", (league_id, user_id))

    def owned_totals(self, conn: sqlite3.Connection, league_id: str, names: Iterable[str]) -> tuple[float, int]:
        """Budget used and player count of owned league players bought by any of names."""
        keys = [n.lower() for n in names if n]
        if not keys:
            return 0.0, 0
        placeholders = ", ".join("?" for _ in keys)
        row = conn.execute(
            "SELECT COALESCE(SUM(costo_reale), 0) AS spent, COUNT(*) AS n FROM league_players "
            f"WHERE league_id = ? AND status = 'owned' AND LOWER(acquistatore) IN ({placeholders})",
            (league_id, *keys),
        ).fetchone()
        return float(row["spent"]), row["n"]


# ---------- MasterPlayerRepository ----------


class MasterPlayerRepository:
    """Shared catalog. Insert-only: catalog rows are never updated."""

    _COLS = "id, nome, squadra, ruolo, ruoli_mantra, prezzo, fvm, season, created_at"

    def _row_to_player(self, r: sqlite3.Row) -> MasterPlayer:
        return MasterPlayer(
            id=r["id"],
            nome=r["nome"],
            squadra=r["squadra"],
            ruolo=r["ruolo"],
            ruoli_mantra=_split_tags(r["ruoli_mantra"]),
            prezzo=r["prezzo"],
            fvm=r["fvm"],
            season=r["season"],
            created_at=_parse_datetime(r["created_at"]),
        )

    def get(self, conn: sqlite3.Connection, player_id: str) -> MasterPlayer | None:
        row = conn.execute(f"SELECT {self._COLS} FROM master_players WHERE id = ?", (player_id,)).fetchone()
        return self._row_to_player(row) if row else None

    def find(self, conn: sqlite3.Connection, nome: str, squadra: str, season: str) -> MasterPlayer | None:
        row = conn.execute(
            f"SELECT {self._COLS} FROM master_players WHERE nome = ? AND squadra = ? AND season = ?",
            (nome, squadra, season),
        ).fetchone()
        return self._row_to_player(row) if row else None

    def create(
        self,
        conn: sqlite3.Connection,
        nome: str,
        squadra: str,
        ruolo: str,
        ruoli_mantra: list[str],
        prezzo: float,
        fvm: float,
        season: str,
    ) -> MasterPlayer:
        pid = _new_id()
        now = _now()
        conn.execute(
            "INSERT INTO master_players (id, nome, squadra, ruolo, ruoli_mantra, prezzo, fvm, season, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (pid, nome, squadra, ruolo, ";".join(ruoli_mantra), prezzo, fvm, season, now),
        )
        return MasterPlayer(
            id=pid, nome=nome, squadra=squadra, ruolo=ruolo, ruoli_mantra=list(ruoli_mantra),
            prezzo=prezzo, fvm=fvm, season=season, created_at=_parse_datetime(now),
        )

    def count(self, conn: sqlite3.Connection) -> int:
        return conn.execute("SELECT COUNT(*) AS n FROM master_players").fetchone()["n"]


# ---------- LeaguePlayerRepository ----------


class LeaguePlayerRepository:
    """League overlay rows joined with their catalog entry."""

    _SELECT = (
        "SELECT lp.id, lp.league_id, lp.master_player_id, lp.status, lp.interessante, lp.rimosso, "
        "lp.prezzo, lp.fvm, lp.costo_reale, lp.prezzo_atteso, lp.costo_altri, lp.acquistatore, "
        "lp.participant_id, lp.tier, lp.note, lp.data_acquisto, lp.data_rimozione, lp.updated_at, "
        "mp.nome, mp.squadra, mp.ruolo, mp.ruoli_mantra, mp.season, p.name AS participant_name "
        "FROM league_players lp "
        "JOIN master_players mp ON mp.id = lp.master_player_id "
        "LEFT JOIN participants p ON p.id = lp.participant_id AND p.league_id = lp.league_id "
    )
    # Order: classic role P, D, C, A then name
    _ORDER = (
        " ORDER BY CASE mp.ruolo WHEN 'P' THEN 0 WHEN 'D' THEN 1 WHEN 'C' THEN 2 ELSE 3 END, mp.nome"
    )

    def _row_to_player(self, r: sqlite3.Row) -> LeaguePlayer:
        return LeaguePlayer(
            id=r["id"],
            league_id=r["league_id"],
            master_player_id=r["master_player_id"],
            nome=r["nome"],
            squadra=r["squadra"],
            ruolo=r["ruolo"],
            ruoli_mantra=_split_tags(r["ruoli_mantra"]),
            season=r["season"],
            status=r["status"],
            interessante=bool(r["interessante"]),
            rimosso=bool(r["rimosso"]),
            prezzo=r["prezzo"],
            fvm=r["fvm"],
            costo_reale=r["costo_reale"],
            prezzo_atteso=r["prezzo_atteso"],
            costo_altri=r["costo_altri"],
            acquistatore=r["acquistatore"],
            participant_id=r["participant_id"],
            participant_name=r["participant_name"],
            tier=r["tier"],
            note=r["note"],
            data_acquisto=_parse_optional(r["data_acquisto"]),
            data_rimozione=_parse_optional(r["data_rimozione"]),
            updated_at=_parse_optional(r["updated_at"]),
        )

    def get(self, conn: sqlite3.Connection, league_id: str, master_player_id: str) -> LeaguePlayer | None:
        row = conn.execute(
            self._SELECT + "WHERE lp.league_id = ? AND lp.master_player_id = ?",
            (league_id, master_player_id),
        ).fetchone()
        return self._row_to_player(row) if row else None

    def exists(self, conn: sqlite3.Connection, league_id: str, master_player_id: str) -> bool:
        row = conn.execute(
            "SELECT 1 FROM league_players WHERE league_id = ? AND master_player_id = ?",
            (league_id, master_player_id),
        ).fetchone()
        return row is not None

    def existing_ids(self, conn: sqlite3.Connection, league_id: str, master_player_ids: list[str]) -> set[str]:
        if not master_player_ids:
            return set()
        placeholders = ", ".join("?" for _ in master_player_ids)
        rows = conn.execute(
            f"SELECT master_player_id FROM league_players WHERE league_id = ? AND master_player_id IN ({placeholders})",
            (league_id, *master_player_ids),
        ).fetchall()
        return {r["master_player_id"] for r in rows}

    def list(
        self,
        conn: sqlite3.Connection,
        league_id: str,
        status: str | None = None,
        role: str | None = None,
        search: str | None = None,
    ) -> list[LeaguePlayer]:
        where = ["lp.league_id = ?"]
        params: list[Any] = [league_id]
        if status == "interesting":
            where.append("lp.interessante = 1")
        elif status:
            where.append("lp.status = ?")
            params.append(status)
        if role:
            # Classic role or any Mantra tag in the ';'-joined list
            where.append("(mp.ruolo = ? OR ';' || mp.ruoli_mantra || ';' LIKE ?)")
            params.extend([role, f"%;{role};%"])
        if search:
            where.append("(LOWER(mp.nome) LIKE ? OR LOWER(mp.squadra) LIKE ?)")
            term = f"%{search.lower()}%"
            params.extend([term, term])
        rows = conn.execute(self._SELECT + "WHERE " + " AND ".join(where) + self._ORDER, params).fetchall()
        return [self._row_to_player(r) for r in rows]

    def list_by_participant(self, conn: sqlite3.Connection, league_id: str, participant_id: str) -> list[LeaguePlayer]:
        rows = conn.execute(
            self._SELECT + "WHERE lp.league_id = ? AND lp.participant_id = ?" + self._ORDER,
            (league_id, participant_id),
        ).fetchall()
        return [self._row_to_player(r) for r in rows]

    def create(
        self,
        conn: sqlite3.Connection,
        league_id: str,
        master_player_id: str,
        prezzo: float,
        fvm: float,
        tier: str | None = None,
        status: str = PlayerStatus.AVAILABLE.value,
    ) -> str:
        lpid = _new_id()
        now = _now()
        removed = status == PlayerStatus.REMOVED.value
        conn.execute(
            "INSERT INTO league_players (id, league_id, master_player_id, status, rimosso, prezzo, fvm, tier, "
            "data_rimozione, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (lpid, league_id, master_player_id, status, 1 if removed else 0, prezzo, fvm, tier,
             now if removed else None, now, now),
        )
        return lpid

    def update_import_fields(
        self,
        conn: sqlite3.Connection,
        league_id: str,
        master_player_id: str,
        prezzo: float,
        fvm: float,
        tier: str | None,
    ) -> None:
        """Only listing data; ownership columns are left alone."""
        conn.execute(
            "UPDATE league_players SET prezzo = ?, fvm = ?, tier = ?, updated_at = ? "
            "WHERE league_id = ? AND master_player_id = ?",
            (prezzo, fvm, tier, _now(), league_id, master_player_id),
        )

    def update_fields(
        self, conn: sqlite3.Connection, league_id: str, master_player_id: str, fields: dict[str, Any]
    ) -> None:
        if not fields:
            return
        assignments = ", ".join(f"{k} = ?" for k in fields)
        conn.execute(
            f"UPDATE league_players SET {assignments}, updated_at = ? WHERE league_id = ? AND master_player_id = ?",
            (*fields.values(), _now(), league_id, master_player_id),
        )

    def release_participant(self, conn: sqlite3.Connection, league_id: str, participant_id: str) -> int:
        """Return a participant's players to the available pool."""
        cur = conn.execute(
            "UPDATE league_players SET status = 'available', participant_id = NULL, costo_altri = 0, "
            "acquistatore = NULL, data_acquisto = NULL, updated_at = ? "
            "WHERE league_id = ? AND participant_id = ?",
            (_now(), league_id, participant_id),
        )
        return cur.rowcount

    def rename_purchaser(
        self, conn: sqlite3.Connection, league_id: str, participant_id: str, name: str
    ) -> None:
        conn.execute(
            "UPDATE league_players SET acquistatore = ? WHERE league_id = ? AND participant_id = ?",
            (name, league_id, participant_id),
        )

    def owned_summary(self, conn: sqlite3.Connection, league_id: str) -> dict[str, Any]:
        row = conn.execute(
            "SELECT "
            "COALESCE(SUM(CASE WHEN status = 'owned' THEN costo_reale ELSE 0 END), 0) AS budget_used, "
            "COALESCE(SUM(CASE WHEN status = 'owned' THEN 1 ELSE 0 END), 0) AS players_owned, "
            "COALESCE(SUM(CASE WHEN status = 'taken_by_other' THEN 1 ELSE 0 END), 0) AS taken_by_others, "
            "COALESCE(SUM(CASE WHEN interessante = 1 THEN 1 ELSE 0 END), 0) AS interesting, "
            "COALESCE(SUM(CASE WHEN rimosso = 1 THEN 1 ELSE 0 END), 0) AS removed, "
            "COUNT(*) AS total "
            "FROM league_players WHERE league_id = ?",
            (league_id,),
        ).fetchone()
        return dict(row)

    def owned_roles(self, conn: sqlite3.Connection, league_id: str) -> list[tuple[str, list[str]]]:
        """(classic role, mantra tags) of every owned player in the league."""
        rows = conn.execute(
            "SELECT mp.ruolo, mp.ruoli_mantra FROM league_players lp "
            "JOIN master_players mp ON mp.id = lp.master_player_id "
            "WHERE lp.league_id = ? AND lp.status = 'owned'",
            (league_id,),
        ).fetchall()
        return [(r["ruolo"], _split_tags(r["ruoli_mantra"])) for r in rows]


# ---------- ParticipantRepository ----------


class ParticipantRepository:
    """CRUD for participants. Names are unique within a league."""

    _SELECT = (
        "SELECT p.id, p.league_id, p.name, p.created_at, p.updated_at, "
        "COUNT(lp.id) AS players_count, COALESCE(SUM(lp.costo_altri), 0) AS budget_used "
        "FROM participants p "
        "LEFT JOIN league_players lp ON lp.participant_id = p.id AND lp.league_id = p.league_id "
    )

    def _row_to_participant(self, r: sqlite3.Row) -> Participant:
        return Participant(
            id=r["id"],
            league_id=r["league_id"],
            name=r["name"],
            created_at=_parse_datetime(r["created_at"]),
            updated_at=_parse_datetime(r["updated_at"]),
            budget_used=float(r["budget_used"]),
            players_count=r["players_count"],
        )

    def create(self, conn: sqlite3.Connection, league_id: str, name: str) -> Participant:
        pid = _new_id()
        now = _now()
        conn.execute(
            "INSERT INTO participants (id, league_id, name, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
            (pid, league_id, name, now, now),
        )
        return Participant(
            id=pid, league_id=league_id, name=name,
            created_at=_parse_datetime(now), updated_at=_parse_datetime(now),
        )

    def get(self, conn: sqlite3.Connection, league_id: str, participant_id: str) -> Participant | None:
        row = conn.execute(
            self._SELECT + "WHERE p.league_id = ? AND p.id = ? GROUP BY p.id",
            (league_id, participant_id),
        ).fetchone()
        return self._row_to_participant(row) if row else None

    def name_taken(
        self, conn: sqlite3.Connection, league_id: str, name: str, exclude_id: str | None = None
    ) -> bool:
        row = conn.execute(
            "SELECT 1 FROM participants WHERE league_id = ? AND name = ? AND id != ? LIMIT 1",
            (league_id, name, exclude_id or ""),
        ).fetchone()
        return row is not None

    def list(self, conn: sqlite3.Connection, league_id: str) -> list[Participant]:
        rows = conn.execute(
            self._SELECT + "WHERE p.league_id = ? GROUP BY p.id ORDER BY p.name", (league_id,)
        ).fetchall()
        return [self._row_to_participant(r) for r in rows]

    def rename(self, conn: sqlite3.Connection, league_id: str, participant_id: str, name: str) -> None:
        conn.execute(
            "UPDATE participants SET name = ?, updated_at = ? WHERE league_id = ? AND id = ?",
            (name, _now(), league_id, participant_id),
        )

    def delete(self, conn: sqlite3.Connection, league_id: str, participant_id: str) -> None:
        conn.execute("DELETE FROM participants WHERE league_id = ? AND id = ?", (league_id, participant_id))


# ---------- FormationRepository ----------


class FormationRepository:
    """CRUD for formations."""

    _COLS = "id, league_id, name, schema, players, is_active, created_at, updated_at"
    UPDATABLE = ("name", "schema", "players", "is_active")

    def _row_to_formation(self, r: sqlite3.Row) -> Formation:
        return Formation(
            id=r["id"],
            league_id=r["league_id"],
            name=r["name"],
            schema=r["schema"],
            players=json.loads(r["players"] or "[]"),
            is_active=bool(r["is_active"]),
            created_at=_parse_datetime(r["created_at"]),
            updated_at=_parse_datetime(r["updated_at"]),
        )

    def create(
        self, conn: sqlite3.Connection, league_id: str, name: str, schema: str, players: list[str]
    ) -> Formation:
        fid = _new_id()
        now = _now()
        conn.execute(
            "INSERT INTO formations (id, league_id, name, schema, players, is_active, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, 0, ?, ?)",
            (fid, league_id, name, schema, json.dumps(players), now, now),
        )
        return Formation(
            id=fid, league_id=league_id, name=name, schema=schema, players=list(players),
            created_at=_parse_datetime(now), updated_at=_parse_datetime(now),
        )

    def get(self, conn: sqlite3.Connection, league_id: str, formation_id: str) -> Formation | None:
        row = conn.execute(
            f"SELECT {self._COLS} FROM formations WHERE league_id = ? AND id = ?", (league_id, formation_id)
        ).fetchone()
        return self._row_to_formation(row) if row else None

    def list(self, conn: sqlite3.Connection, league_id: str) -> list[Formation]:
        rows = conn.execute(
            f"SELECT {self._COLS} FROM formations WHERE league_id = ? ORDER BY created_at DESC", (league_id,)
        ).fetchall()
        return [self._row_to_formation(r) for r in rows]

    def update(
        self, conn: sqlite3.Connection, league_id: str, formation_id: str, changes: dict[str, Any]
    ) -> None:
        values: dict[str, Any] = {}
        for key in self.UPDATABLE:
            if key not in changes:
                continue
            value = changes[key]
            if key == "players":
                value = json.dumps(value)
            elif key == "is_active":
                value = 1 if value else 0
            values[key] = value
        if not values:
            return
        assignments = ", ".join(f"{k} = ?" for k in values)
        conn.execute(
            f"UPDATE formations SET {assignments}, updated_at = ? WHERE league_id = ? AND id = ?",
            (*values.values(), _now(), league_id, formation_id),
        )

    def deactivate_others(self, conn: sqlite3.Connection, league_id: str, formation_id: str) -> None:
        conn.execute(
            "UPDATE formations SET is_active = 0 WHERE league_id = ? AND id != ?", (league_id, formation_id)
        )

    def delete(self, conn: sqlite3.Connection, league_id: str, formation_id: str) -> None:
        conn.execute("DELETE FROM formations WHERE league_id = ? AND id = ?", (league_id, formation_id))


# ---------- FormationImageRepository ----------


class FormationImageRepository:
    """Metadata of uploaded formation images; files live on disk."""

    _COLS = "id, league_id, filename, original_name, file_size, mime_type, created_at"

    def _row_to_image(self, r: sqlite3.Row) -> FormationImage:
        return FormationImage(
            id=r["id"],
            league_id=r["league_id"],
            filename=r["filename"],
            original_name=r["original_name"],
            file_size=r["file_size"],
            mime_type=r["mime_type"],
            created_at=_parse_datetime(r["created_at"]),
        )

    def create(
        self,
        conn: sqlite3.Connection,
        league_id: str,
        filename: str,
        original_name: str,
        file_size: int,
        mime_type: str,
        image_id: str | None = None,
    ) -> FormationImage:
        iid = image_id or _new_id()
        now = _now()
        conn.execute(
            "INSERT INTO formation_images (id, league_id, filename, original_name, file_size, mime_type, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (iid, league_id, filename, original_name, file_size, mime_type, now),
        )
        return FormationImage(
            id=iid, league_id=league_id, filename=filename, original_name=original_name,
            file_size=file_size, mime_type=mime_type, created_at=_parse_datetime(now),
        )

    def get(self, conn: sqlite3.Connection, league_id: str, image_id: str) -> FormationImage | None:
        row = conn.execute(
            f"SELECT {self._COLS} FROM formation_images WHERE league_id = ? AND id = ?", (league_id, image_id)
        ).fetchone()
        return self._row_to_image(row) if row else None

    def list(self, conn: sqlite3.Connection, league_id: str) -> list[FormationImage]:
        rows = conn.execute(
            f"SELECT {self._COLS} FROM formation_images WHERE league_id = ? ORDER BY created_at DESC",
            (league_id,),
        ).fetchall()
        return [self._row_to_image(r) for r in rows]

    def delete(self, conn: sqlite3.Connection, league_id: str, image_id: str) -> None:
        conn.execute("DELETE FROM formation_images WHERE league_id = ? AND id = ?", (league_id, image_id))
