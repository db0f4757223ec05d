"""
Spreadsheet parsing for player list uploads (.xlsx).

Two layouts are understood:
- a sheet with a header row naming its columns (Nome/Player, Squadra, R, RM, FVM, Prezzo...),
  found anywhere in the first rows;
- the headerless official "listone" layout: two title rows, then
  Id, R, RM, Nome, Squadra, ..., FVM at column 12.
"""
from __future__ import annotations

import io
import logging
import zipfile
from typing import Any

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from fantaaiuto.errors import ValidationError
from fantaaiuto.importer import ImportRow

logger = logging.getLogger(__name__)

HEADER_SCAN_ROWS = 5
LISTONE_SKIP_ROWS = 2

# Positional listone columns (0-based)
LISTONE_COLUMNS = {"r": 1, "rm": 2, "nome": 3, "squadra": 4, "fvm": 12}

# Header aliases, lowercase; first match wins
HEADER_ALIASES: dict[str, tuple[str, ...]] = {
    "nome": ("nome", "player", "giocatore", "name"),
    "squadra": ("squadra", "team", "club"),
    "r": ("r",),
    "rm": ("rm", "ruolo", "ruoli", "role"),
    "fvm": ("fvm", "fvm m", "valore", "value"),
    "prezzo": ("prezzo", "price", "costo", "qt.a", "qt. a", "quotazione"),
}


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _header_map(row: tuple[Any, ...]) -> dict[str, int] | None:
    """Column index per field if row looks like a header row (has a name column)."""
    cells = [_text(v).lower() for v in row]
    mapping: dict[str, int] = {}
    for key, aliases in HEADER_ALIASES.items():
        for alias in aliases:
            if alias in cells:
                mapping[key] = cells.index(alias)
                break
    if "nome" not in mapping:
        return None
    return mapping


def _cell(row: tuple[Any, ...], index: int | None) -> Any:
    if index is None or index >= len(row):
        return None
    return row[index]


def _to_import_row(row: tuple[Any, ...], columns: dict[str, int]) -> ImportRow:
    classic = _text(_cell(row, columns.get("r")))
    mantra = _text(_cell(row, columns.get("rm")))
    price = _cell(row, columns.get("prezzo"))
    return ImportRow(
        nome=_text(_cell(row, columns.get("nome"))),
        squadra=_text(_cell(row, columns.get("squadra"))),
        ruolo=mantra or classic,
        prezzo=price if price not in ("", None) else None,
        fvm=_cell(row, columns.get("fvm")),
        ruolo_classic=classic if mantra and classic else None,
    )


def parse_workbook(content: bytes) -> list[ImportRow]:
    """
    Parse the first sheet of an .xlsx file into import rows.
    Fully empty rows are dropped; validation happens in the importer.
    """
    try:
        wb = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as e:
        raise ValidationError(f"Failed to parse Excel file: {e}", code="INVALID_FILE") from e
    try:
        ws = wb.worksheets[0] if wb.worksheets else None
        if ws is None:
            raise ValidationError("Excel file has no sheets", code="INVALID_FILE")
        all_rows = [tuple(r) for r in ws.iter_rows(values_only=True)]
    finally:
        wb.close()

    columns: dict[str, int] | None = None
    data_start = LISTONE_SKIP_ROWS
    for index, row in enumerate(all_rows[:HEADER_SCAN_ROWS]):
        columns = _header_map(row)
        if columns is not None:
            data_start = index + 1
            break
    if columns is None:
        columns = dict(LISTONE_COLUMNS)
        logger.debug("No header row found, using listone column layout")

    rows: list[ImportRow] = []
    for row in all_rows[data_start:]:
        if not any(_text(v) for v in row):
            continue
        rows.append(_to_import_row(row, columns))
    logger.info(f"Parsed {len(rows)} rows from spreadsheet ({len(all_rows)} sheet rows)")
    return rows
