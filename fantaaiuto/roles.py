"""
Player role tags in the two Fantacalcio taxonomies.

Classic uses four roles (P, D, C, A). Mantra uses twelve finer tags, each of
which maps onto exactly one Classic role. Spreadsheets carry either kind,
often several Mantra tags per player ("Dc;B" or "W/T").
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum


class ClassicRole(str, Enum):
    P = "P"
    D = "D"
    C = "C"
    A = "A"


MANTRA_ROLES: tuple[str, ...] = ("Por", "Ds", "Dd", "Dc", "B", "E", "M", "C", "W", "T", "A", "Pc")

MANTRA_TO_CLASSIC: dict[str, ClassicRole] = {
    "Por": ClassicRole.P,
    "Ds": ClassicRole.D,
    "Dd": ClassicRole.D,
    "Dc": ClassicRole.D,
    "B": ClassicRole.D,
    "E": ClassicRole.C,
    "M": ClassicRole.C,
    "C": ClassicRole.C,
    "W": ClassicRole.C,
    "T": ClassicRole.C,
    "A": ClassicRole.A,
    "Pc": ClassicRole.A,
}

# Classic order used when sorting listings
CLASSIC_ORDER: dict[str, int] = {"P": 0, "D": 1, "C": 2, "A": 3}

_SPLIT = re.compile(r"[;/,\s]+")
_MANTRA_BY_LOWER = {tag.lower(): tag for tag in MANTRA_ROLES}


@dataclass(frozen=True)
class ParsedRoles:
    classic: ClassicRole
    mantra: tuple[str, ...]


def parse_roles(raw: str | None, classic_hint: str | None = None) -> ParsedRoles | None:
    """
    Parse a role tag string. Returns None when no tag is recognised.

    Mantra tags win when present; the Classic role is then derived from the
    first one unless classic_hint carries an explicit Classic role. A bare
    "P" or "D" is accepted as a Classic-only tag.
    """
    mantra: list[str] = []
    classic: ClassicRole | None = None
    for token in _SPLIT.split((raw or "").strip()):
        if not token:
            continue
        tag = _MANTRA_BY_LOWER.get(token.lower())
        if tag is not None:
            if tag not in mantra:
                mantra.append(tag)
        elif token.upper() in ("P", "D") and classic is None:
            classic = ClassicRole(token.upper())
    hint = (classic_hint or "").strip().upper()
    if hint in ClassicRole.__members__:
        classic = ClassicRole(hint)
    if mantra and classic is None:
        classic = MANTRA_TO_CLASSIC[mantra[0]]
    if classic is None:
        return None
    return ParsedRoles(classic=classic, mantra=tuple(mantra))


def role_buckets(game_mode: str) -> list[str]:
    """Role keys used for per-league distributions."""
    if game_mode == "Mantra":
        return list(MANTRA_ROLES)
    return [r.value for r in ClassicRole]
