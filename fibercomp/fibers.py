"""Fiber reference table: moisture regain per fiber under each standard.

The table only pre-fills blank moisture values in user input. The engines in
:mod:`fibercomp.core` never consult it and work from whatever regain is
attached to an observation.
"""
from __future__ import annotations

import csv
import os
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .dataclasses import FiberObservation

ROOT = Path(__file__).resolve().parents[1]
FIBERS_CSV = Path(os.environ.get("FIBERCOMP_FIBERS_CSV", ROOT / 'context' / 'fibers.csv'))

FIELDNAMES = ['id', 'name', 'iso', 'aatcc', 'eu', 'canada']


class Standard(str, Enum):
    ISO = 'iso'
    AATCC = 'aatcc'
    EU = 'eu'
    CANADA = 'canada'


@dataclass
class FiberSetting:
    id: int
    name: str
    iso: Optional[float] = None
    aatcc: Optional[float] = None
    eu: Optional[float] = None
    canada: Optional[float] = None

    def regain(self, standard: Standard) -> Optional[float]:
        return getattr(self, Standard(standard).value)

    def to_dict(self) -> Dict[str, object]:
        return {k: getattr(self, k) for k in FIELDNAMES}


DEFAULT_FIBERS: List[FiberSetting] = [
    FiberSetting(1, 'Cotton', 8.5, 8.5, 8.5, 8.5),
    FiberSetting(2, 'Polyester', 0.4, 0.4, 0.4, 0.4),
    FiberSetting(3, 'Nylon', 4.5, 4.5, 4.5, 4.5),
    FiberSetting(4, 'Viscose', 13.0, 13.0, 13.0, 13.0),
    FiberSetting(5, 'Wool', 17.0, 17.0, 17.0, 17.0),
]


def _optional_float(s: str | float | int | None, field: str, row: int) -> Optional[float]:
    """Parse *s* as float, blank as ``None``; raise ``ValueError`` with row context."""
    if s is None or str(s).strip() == "":
        return None
    if isinstance(s, (int, float)):
        return float(s)
    txt = str(s).strip().replace("\u00a0", " ").replace(" ", "").replace(",", ".")
    try:
        return float(txt)
    except ValueError as exc:
        raise ValueError(f"Invalid number for {field!r} in row {row}: {s}") from exc


def load_fibers() -> List[FiberSetting]:
    """Load fiber settings from FIBERS_CSV, or the defaults if it is absent.

    Expected columns (case-insensitive): id, name, iso, aatcc, eu, canada.
    A missing id is replaced by the row position. Rows with a blank name are
    kept (a freshly added fiber) but never match a lookup.
    """
    if not FIBERS_CSV.exists():
        return [replace(f) for f in DEFAULT_FIBERS]
    out: List[FiberSetting] = []
    with FIBERS_CSV.open('r', encoding='utf-8') as f:
        rdr = csv.DictReader(f)
        for idx, row in enumerate(rdr, start=2):  # header is row 1
            if not any(row.values()):
                continue
            row = {(k or '').strip().lower(): v for k, v in row.items()}
            try:
                raw_id = _optional_float(row.get('id'), 'id', idx)
                out.append(FiberSetting(
                    id=int(raw_id) if raw_id is not None else idx - 1,
                    name=(row.get('name') or '').strip(),
                    **{s.value: _optional_float(row.get(s.value), s.value, idx) for s in Standard},
                ))
            except ValueError as exc:
                raise ValueError(f"Error parsing fibers.csv: {exc}") from exc
    return out


def save_fibers(settings: Sequence[FiberSetting]) -> None:
    FIBERS_CSV.parent.mkdir(parents=True, exist_ok=True)
    with FIBERS_CSV.open('w', encoding='utf-8', newline='') as f:
        w = csv.DictWriter(f, fieldnames=FIELDNAMES)
        w.writeheader()
        for s in settings:
            w.writerow({k: ('' if v is None else v) for k, v in s.to_dict().items()})


class FiberReferenceTable:
    """Keyed lookup of moisture regain by fiber name and standard."""

    def __init__(self, settings: Optional[Sequence[FiberSetting]] = None) -> None:
        self.settings: List[FiberSetting] = list(settings) if settings is not None else load_fibers()

    def find(self, name: str) -> Optional[FiberSetting]:
        key = (name or '').strip().lower()
        if not key:
            return None
        for s in self.settings:
            if s.name.lower() == key:
                return s
        return None

    def find_by_id(self, fiber_id: int) -> Optional[FiberSetting]:
        return next((s for s in self.settings if s.id == fiber_id), None)

    def lookup(self, name: str, standard: Standard) -> Optional[float]:
        s = self.find(name)
        return s.regain(standard) if s is not None else None

    def names(self) -> List[str]:
        return [s.name for s in self.settings]

    def add_fiber(self, name: str = '', **regains: Optional[float]) -> FiberSetting:
        next_id = max((s.id for s in self.settings), default=0) + 1
        setting = FiberSetting(id=next_id, name=name, **regains)
        self.settings.append(setting)
        return setting

    def update_fiber(self, fiber_id: int, **changes: object) -> FiberSetting:
        for i, s in enumerate(self.settings):
            if s.id == fiber_id:
                self.settings[i] = replace(s, **changes)
                return self.settings[i]
        raise KeyError(fiber_id)

    def remove_fiber(self, fiber_id: int) -> None:
        self.settings = [s for s in self.settings if s.id != fiber_id]

    def save(self) -> None:
        save_fibers(self.settings)


def prefill_moisture(
    fibers: Sequence[FiberObservation], table: FiberReferenceTable, standard: Standard
) -> List[FiberObservation]:
    """Return *fibers* with blank moisture regains filled from *table*."""
    out = []
    for f in fibers:
        if f.moisture_regain is None:
            regain = table.lookup(f.name, standard)
            if regain is not None:
                f = replace(f, moisture_regain=regain)
        out.append(f)
    return out
