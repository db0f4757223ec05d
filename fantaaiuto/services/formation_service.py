"""
Formations and formation images for a league.
The server only checks tenancy of the selected players, not roster legality.
"""
from __future__ import annotations

import logging
import re
import sqlite3
import uuid
from pathlib import Path
from typing import Any

from fantaaiuto.errors import NotFound, ValidationError
from fantaaiuto.models import Formation, FormationImage, LeagueContext
from fantaaiuto.persistence import (
    FormationImageRepository,
    FormationRepository,
    LeaguePlayerRepository,
    transaction,
)

logger = logging.getLogger(__name__)

SCHEMA_PATTERN = re.compile(r"^\d-\d-\d(-\d)?$")

IMAGE_TYPES: dict[str, str] = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
}


def images_dir(upload_dir: str | Path) -> Path:
    return Path(upload_dir) / "formations"


class FormationService:
    def __init__(self) -> None:
        self._formation_repo = FormationRepository()
        self._image_repo = FormationImageRepository()
        self._player_repo = LeaguePlayerRepository()

    def _get(self, conn: sqlite3.Connection, ctx: LeagueContext, formation_id: str) -> Formation:
        formation = self._formation_repo.get(conn, ctx.league_id, formation_id)
        if formation is None:
            raise NotFound("Formation not found", code="FORMATION_NOT_FOUND")
        return formation

    def _check_schema(self, schema: str) -> str:
        schema = schema.strip()
        if not SCHEMA_PATTERN.match(schema):
            raise ValidationError(f"Invalid formation schema: {schema!r} (expected e.g. 4-3-3)")
        return schema

    def _check_players(self, conn: sqlite3.Connection, ctx: LeagueContext, players: list[str]) -> list[str]:
        unique = list(dict.fromkeys(players))
        known = self._player_repo.existing_ids(conn, ctx.league_id, unique)
        missing = [p for p in unique if p not in known]
        if missing:
            raise ValidationError(f"Players not in this league: {', '.join(missing)}")
        return unique

    def list(self, conn: sqlite3.Connection, ctx: LeagueContext) -> list[Formation]:
        return self._formation_repo.list(conn, ctx.league_id)

    def create(
        self,
        conn: sqlite3.Connection,
        ctx: LeagueContext,
        name: str,
        schema: str,
        players: list[str] | None = None,
        is_active: bool = False,
    ) -> Formation:
        schema = self._check_schema(schema)
        with transaction(conn):
            selected = self._check_players(conn, ctx, players or [])
            formation = self._formation_repo.create(conn, ctx.league_id, name.strip(), schema, selected)
            if is_active:
                self._formation_repo.update(conn, ctx.league_id, formation.id, {"is_active": True})
                self._formation_repo.deactivate_others(conn, ctx.league_id, formation.id)
        return self._get(conn, ctx, formation.id)

    def update(
        self, conn: sqlite3.Connection, ctx: LeagueContext, formation_id: str, changes: dict[str, Any]
    ) -> Formation:
        changes = {k: v for k, v in changes.items() if k in FormationRepository.UPDATABLE and v is not None}
        if not changes:
            raise ValidationError("No fields to update")
        if "schema" in changes:
            changes["schema"] = self._check_schema(changes["schema"])
        if "name" in changes:
            changes["name"] = changes["name"].strip()
        with transaction(conn):
            self._get(conn, ctx, formation_id)
            if "players" in changes:
                changes["players"] = self._check_players(conn, ctx, changes["players"])
            self._formation_repo.update(conn, ctx.league_id, formation_id, changes)
            if changes.get("is_active"):
                self._formation_repo.deactivate_others(conn, ctx.league_id, formation_id)
        return self._get(conn, ctx, formation_id)

    def delete(self, conn: sqlite3.Connection, ctx: LeagueContext, formation_id: str) -> None:
        with transaction(conn):
            self._get(conn, ctx, formation_id)
            self._formation_repo.delete(conn, ctx.league_id, formation_id)

    # ---------- Images ----------

    def list_images(self, conn: sqlite3.Connection, ctx: LeagueContext) -> list[FormationImage]:
        return self._image_repo.list(conn, ctx.league_id)

    def save_image(
        self,
        conn: sqlite3.Connection,
        ctx: LeagueContext,
        upload_dir: str | Path,
        original_name: str,
        content: bytes,
        mime_type: str,
        max_bytes: int,
    ) -> FormationImage:
        """Write the file under upload_dir/formations and record it. The file is removed if the insert fails."""
        ext = IMAGE_TYPES.get((mime_type or "").lower())
        if ext is None:
            raise ValidationError("Only image files are allowed (jpeg, png, gif, webp)", code="INVALID_FILE_TYPE")
        if not content:
            raise ValidationError("Empty file", code="EMPTY_FILE")
        if len(content) > max_bytes:
            raise ValidationError(f"File too large (max {max_bytes} bytes)", code="FILE_TOO_LARGE")
        image_id = str(uuid.uuid4())
        filename = f"{image_id}{ext}"
        target_dir = images_dir(upload_dir)
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / filename
        path.write_bytes(content)
        try:
            with transaction(conn):
                image = self._image_repo.create(
                    conn, ctx.league_id, filename, Path(original_name or filename).name,
                    len(content), mime_type.lower(), image_id=image_id,
                )
        except Exception:
            path.unlink(missing_ok=True)
            raise
        logger.info(f"League {ctx.league_id}: formation image uploaded {filename} ({len(content)} bytes)")
        return image

    def delete_image(
        self, conn: sqlite3.Connection, ctx: LeagueContext, upload_dir: str | Path, image_id: str
    ) -> None:
        with transaction(conn):
            image = self._image_repo.get(conn, ctx.league_id, image_id)
            if image is None:
                raise NotFound("Image not found", code="IMAGE_NOT_FOUND")
            self._image_repo.delete(conn, ctx.league_id, image_id)
        (images_dir(upload_dir) / image.filename).unlink(missing_ok=True)
