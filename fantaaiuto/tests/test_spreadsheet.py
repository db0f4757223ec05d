"""
Tests for .xlsx parsing: header-mapped sheets and the positional listone layout.
Workbooks are built in memory with openpyxl.
"""
from __future__ import annotations

import io
from pathlib import Path

import pytest
from openpyxl import Workbook

import sys
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from fantaaiuto.errors import ValidationError
from fantaaiuto.importer import clean_row
from fantaaiuto.spreadsheet import parse_workbook


def _xlsx(rows: list[list]) -> bytes:
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def test_header_row_maps_columns_by_name():
    content = _xlsx([
        ["Nome", "Squadra", "R", "RM", "FVM", "Prezzo"],
        ["Maignan", "Milan", "P", "Por", 22, 18],
        ["Bastoni", "Inter", "D", "Dc;B", 16, None],
    ])
    rows = parse_workbook(content)
    assert [r.nome for r in rows] == ["Maignan", "Bastoni"]
    assert rows[0].ruolo == "Por"
    assert rows[0].ruolo_classic == "P"
    assert rows[0].prezzo == 18
    assert rows[1].prezzo is None
    assert rows[1].fvm == 16


def test_header_found_below_title_rows():
    content = _xlsx([
        ["Quotazioni Fantacalcio Stagione 2025/26"],
        [],
        ["Player", "Team", "Ruolo", "Valore"],
        ["Lautaro Martinez", "Inter", "Pc", 35],
    ])
    rows = parse_workbook(content)
    assert len(rows) == 1
    assert rows[0].squadra == "Inter"
    assert rows[0].ruolo == "Pc"
    assert rows[0].ruolo_classic is None


def test_listone_positional_layout_without_header():
    filler = [None] * 7
    content = _xlsx([
        ["Quotazioni Fantacalcio"],
        ["#", "Cl", "Man", "Calciatore", "Club"],
        [1, "A", "Pc", "Lautaro Martinez", "Inter", *filler, 35],
        [2, "C", "M;C", "Nicolo Barella", "Inter", *filler, 28],
    ])
    rows = parse_workbook(content)
    assert [r.nome for r in rows] == ["Lautaro Martinez", "Nicolo Barella"]
    assert rows[0].fvm == 35
    assert rows[1].ruolo == "M;C"
    assert rows[1].ruolo_classic == "C"

    cleaned = clean_row(rows[0])
    assert cleaned.ruolo == "A"
    assert cleaned.prezzo == 8.0  # no price column: derived from fvm


def test_empty_rows_are_dropped():
    content = _xlsx([
        ["Nome", "Squadra", "RM", "FVM"],
        ["Maignan", "Milan", "Por", 22],
        [None, None, None, None],
        ["Dimarco", "Inter", "E", 18],
    ])
    assert len(parse_workbook(content)) == 2


def test_invalid_file_raises_validation_error():
    with pytest.raises(ValidationError) as exc_info:
        parse_workbook(b"this is not a spreadsheet")
    assert exc_info.value.code == "INVALID_FILE"
