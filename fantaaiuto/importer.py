"""
Player list import: raw spreadsheet rows -> shared catalog + league overlay.

Rows are validated and normalised first, then written in fixed-size batches,
one transaction per batch. A failing batch is rolled back on its own; batches
already committed stay committed and the result reports partial success.

Re-importing never touches what users recorded during the auction (status,
purchaser, prices paid, notes): only fvm, list price and tier are refreshed.
"""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Iterable

from fantaaiuto.logger import log_execution
from fantaaiuto.models import PlayerStatus
from fantaaiuto.persistence import LeaguePlayerRepository, MasterPlayerRepository, transaction
from fantaaiuto.roles import parse_roles

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100
MAX_BATCH_SIZE = 500

NOT_LISTED_TIER = "Non inseriti"


class ImportMode(IntEnum):
    FVM_TIERS = 1
    FVM_TIERS_REMOVE_ONES = 2
    NOT_LISTED = 3
    NOT_LISTED_REMOVE_ONES = 4

    @property
    def removes_fvm_one(self) -> bool:
        return self in (ImportMode.FVM_TIERS_REMOVE_ONES, ImportMode.NOT_LISTED_REMOVE_ONES)

    @property
    def uses_fvm_tiers(self) -> bool:
        return self in (ImportMode.FVM_TIERS, ImportMode.FVM_TIERS_REMOVE_ONES)


@dataclass
class ImportRow:
    """One raw row. ruolo may hold Classic or Mantra tags; ruolo_classic is an optional explicit Classic role."""
    nome: str
    squadra: str = ""
    ruolo: str = ""
    prezzo: float | None = None
    fvm: float | None = None
    ruolo_classic: str | None = None


@dataclass
class _CleanRow:
    nome: str
    squadra: str
    ruolo: str
    ruoli_mantra: list[str]
    prezzo: float
    fvm: float


@dataclass
class ImportResult:
    imported: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    total: int = 0
    batches: int = 0
    failed_batches: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "imported": self.imported,
            "updated": self.updated,
            "skipped": self.skipped,
            "failed": self.failed,
            "total": self.total,
            "batches": self.batches,
            "failedBatches": list(self.failed_batches),
        }


# ---------- Normalisation ----------


def normalize_name(value: str | None) -> str:
    """Collapse whitespace and title-case: '  de  bruyne ' -> 'De Bruyne'."""
    return " ".join((value or "").split()).title()


def derive_price(fvm: float) -> float:
    """List price when the sheet has none: a quarter of FVM, at least 1."""
    if fvm > 1:
        return float(max(1, int(fvm // 4)))
    return 1.0


def fvm_tier(fvm: float) -> str:
    if fvm >= 20:
        return "Top"
    if fvm >= 10:
        return "Titolari"
    if fvm >= 5:
        return "Low cost"
    if fvm >= 2:
        return "Jolly"
    return "Riserve"


def tier_for(mode: ImportMode, fvm: float) -> str:
    return fvm_tier(fvm) if mode.uses_fvm_tiers else NOT_LISTED_TIER


def _number(value: Any) -> float | None:
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip().replace(",", "."))
    except ValueError:
        return None


def clean_row(row: ImportRow) -> _CleanRow | None:
    """Validated, normalised copy of row, or None when it must be skipped."""
    nome = normalize_name(row.nome)
    if not nome:
        return None
    roles = parse_roles(row.ruolo, classic_hint=row.ruolo_classic)
    if roles is None:
        return None
    fvm = _number(row.fvm) or 0.0
    prezzo = _number(row.prezzo)
    if prezzo is None or prezzo <= 0:
        prezzo = derive_price(fvm)
    return _CleanRow(
        nome=nome,
        squadra=normalize_name(row.squadra),
        ruolo=roles.classic.value,
        ruoli_mantra=list(roles.mantra),
        prezzo=prezzo,
        fvm=fvm,
    )


# ---------- Pipeline ----------


def _chunks(rows: list[_CleanRow], size: int) -> Iterable[list[_CleanRow]]:
    for start in range(0, len(rows), size):
        yield rows[start:start + size]


def _write_batch(
    conn: sqlite3.Connection,
    league_id: str,
    batch: list[_CleanRow],
    mode: ImportMode,
    season: str,
) -> tuple[int, int]:
    """Upsert one batch inside the caller's transaction. Returns (imported, updated)."""
    catalog = MasterPlayerRepository()
    overlay = LeaguePlayerRepository()
    imported = updated = 0
    for row in batch:
        master = catalog.find(conn, row.nome, row.squadra, season)
        if master is None:
            master = catalog.create(
                conn, row.nome, row.squadra, row.ruolo, row.ruoli_mantra, row.prezzo, row.fvm, season
            )
        tier = tier_for(mode, row.fvm)
        if overlay.exists(conn, league_id, master.id):
            overlay.update_import_fields(conn, league_id, master.id, row.prezzo, row.fvm, tier)
            updated += 1
            continue
        status = PlayerStatus.AVAILABLE.value
        if mode.removes_fvm_one and row.fvm == 1:
            status = PlayerStatus.REMOVED.value
        overlay.create(conn, league_id, master.id, row.prezzo, row.fvm, tier=tier, status=status)
        imported += 1
    return imported, updated


@log_execution
def import_rows(
    conn: sqlite3.Connection,
    league_id: str,
    rows: list[ImportRow],
    mode: int = ImportMode.FVM_TIERS,
    batch_size: int = DEFAULT_BATCH_SIZE,
    season: str = "2025-26",
) -> ImportResult:
    """Import rows into league_id. Invalid rows are skipped and logged, never fatal."""
    import_mode = ImportMode(mode)
    size = max(1, min(batch_size, MAX_BATCH_SIZE))
    result = ImportResult(total=len(rows))

    valid: list[_CleanRow] = []
    for index, row in enumerate(rows, start=1):
        cleaned = clean_row(row)
        if cleaned is None:
            result.skipped += 1
            logger.warning(f"Import row {index} skipped: name={row.nome!r} ruolo={row.ruolo!r}")
            continue
        valid.append(cleaned)

    for number, batch in enumerate(_chunks(valid, size), start=1):
        result.batches += 1
        try:
            with transaction(conn):
                imported, updated = _write_batch(conn, league_id, batch, import_mode, season)
        except sqlite3.Error as e:
            result.failed += len(batch)
            result.failed_batches.append(number)
            logger.error(f"Import batch {number} for league {league_id} rolled back: {e}", exc_info=True)
            continue
        result.imported += imported
        result.updated += updated
        logger.debug(f"Import batch {number}: +{imported} new, {updated} updated")

    logger.info(
        f"Import into league {league_id} (mode {import_mode.value}): {result.imported} imported, "
        f"{result.updated} updated, {result.skipped} skipped, {result.failed} failed"
    )
    return result
