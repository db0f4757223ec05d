"""
SQLite schema for the auction tracker.
Migration-friendly: each table created with IF NOT EXISTS.
Every league-scoped table carries league_id and is indexed on it.
"""
from __future__ import annotations


def users_schema() -> str:
    return """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        username TEXT NOT NULL UNIQUE,
        email TEXT NOT NULL UNIQUE,
        password_hash TEXT NOT NULL,
        display_name TEXT NOT NULL,
        is_active INTEGER NOT NULL DEFAULT 1,
        last_login TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
    """


def leagues_schema() -> str:
    """status: active | archived. code is the human-readable join code."""
    return """
    CREATE TABLE IF NOT EXISTS leagues (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        code TEXT NOT NULL UNIQUE,
        owner_id TEXT NOT NULL,
        game_mode TEXT NOT NULL DEFAULT 'Classic',
        total_budget INTEGER NOT NULL DEFAULT 500,
        max_players_per_team INTEGER NOT NULL DEFAULT 25,
        max_members INTEGER NOT NULL DEFAULT 8,
        status TEXT NOT NULL DEFAULT 'active',
        season TEXT NOT NULL,
        description TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        FOREIGN KEY (owner_id) REFERENCES users(id)
    );
    CREATE INDEX IF NOT EXISTS ix_leagues_owner ON leagues(owner_id);
    """


def league_members_schema() -> str:
    """role: master | member. One membership per user per league."""
    return """
    CREATE TABLE IF NOT EXISTS league_members (
        id TEXT PRIMARY KEY,
        league_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        role TEXT NOT NULL DEFAULT 'member',
        team_name TEXT NOT NULL,
        joined_at TEXT NOT NULL,
        FOREIGN KEY (league_id) REFERENCES leagues(id) ON DELETE CASCADE,
        FOREIGN KEY (user_id) REFERENCES users(id)
    );
    CREATE UNIQUE INDEX IF NOT EXISTS ix_league_members_league_user ON league_members(league_id, user_id);
    CREATE INDEX IF NOT EXISTS ix_league_members_user ON league_members(user_id);
    """


def master_players_schema() -> str:
    """Shared catalog. ruoli_mantra is a ';'-joined tag list."""
    return """
    CREATE TABLE IF NOT EXISTS master_players (
        id TEXT PRIMARY KEY,
        nome TEXT NOT NULL,
        squadra TEXT NOT NULL DEFAULT '',
        ruolo TEXT NOT NULL,
        ruoli_mantra TEXT NOT NULL DEFAULT '',
        prezzo REAL NOT NULL DEFAULT 0,
        fvm REAL NOT NULL DEFAULT 0,
        season TEXT NOT NULL,
        created_at TEXT NOT NULL
    );
    CREATE UNIQUE INDEX IF NOT EXISTS ix_master_players_identity ON master_players(nome, squadra, season);
    """


def league_players_schema() -> str:
    """status: available | owned | removed | taken_by_other."""
    return """
    CREATE TABLE IF NOT EXISTS league_players (
        id TEXT PRIMARY KEY,
        league_id TEXT NOT NULL,
        master_player_id TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'available',
        interessante INTEGER NOT NULL DEFAULT 0,
        rimosso INTEGER NOT NULL DEFAULT 0,
        prezzo REAL NOT NULL DEFAULT 0,
        fvm REAL NOT NULL DEFAULT 0,
        costo_reale REAL NOT NULL DEFAULT 0,
        prezzo_atteso REAL,
        costo_altri REAL NOT NULL DEFAULT 0,
        acquistatore TEXT,
        participant_id TEXT,
        tier TEXT,
        note TEXT,
        data_acquisto TEXT,
        data_rimozione TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        FOREIGN KEY (league_id) REFERENCES leagues(id) ON DELETE CASCADE,
        FOREIGN KEY (master_player_id) REFERENCES master_players(id),
        FOREIGN KEY (participant_id) REFERENCES participants(id) ON DELETE SET NULL
    );
    CREATE UNIQUE INDEX IF NOT EXISTS ix_league_players_league_master ON league_players(league_id, master_player_id);
    CREATE INDEX IF NOT EXISTS ix_league_players_status ON league_players(league_id, status);
    CREATE INDEX IF NOT EXISTS ix_league_players_participant ON league_players(participant_id);
    """


def participants_schema() -> str:
    return """
    CREATE TABLE IF NOT EXISTS participants (
        id TEXT PRIMARY KEY,
        league_id TEXT NOT NULL,
        name TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        FOREIGN KEY (league_id) REFERENCES leagues(id) ON DELETE CASCADE
    );
    CREATE UNIQUE INDEX IF NOT EXISTS ix_participants_league_name ON participants(league_id, name);
    """


def formations_schema() -> str:
    """players is a JSON array of master player ids."""
    return """
    CREATE TABLE IF NOT EXISTS formations (
        id TEXT PRIMARY KEY,
        league_id TEXT NOT NULL,
        name TEXT NOT NULL,
        schema TEXT NOT NULL,
        players TEXT NOT NULL DEFAULT '[]',
        is_active INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        FOREIGN KEY (league_id) REFERENCES leagues(id) ON DELETE CASCADE
    );
    CREATE INDEX IF NOT EXISTS ix_formations_league ON formations(league_id);
    """


def formation_images_schema() -> str:
    return """
    CREATE TABLE IF NOT EXISTS formation_images (
        id TEXT PRIMARY KEY,
        league_id TEXT NOT NULL,
        filename TEXT NOT NULL UNIQUE,
        original_name TEXT NOT NULL,
        file_size INTEGER NOT NULL,
        mime_type TEXT NOT NULL,
        created_at TEXT NOT NULL,
        FOREIGN KEY (league_id) REFERENCES leagues(id) ON DELETE CASCADE
    );
    CREATE INDEX IF NOT EXISTS ix_formation_images_league ON formation_images(league_id);
    """


def all_schema_sql() -> str:
    """Combine all schema DDL for a single execution. Participants precede league_players (FK target)."""
    return "\n".join([
        users_schema(),
        leagues_schema(),
        league_members_schema(),
        master_players_schema(),
        participants_schema(),
        league_players_schema(),
        formations_schema(),
        formation_images_schema(),
    ])
