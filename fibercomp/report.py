"""Package a finished run into the structure the document exporter consumes."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Tuple

from .aggregate import total_dry_weight
from .dataclasses import SeparationRun
from .errors import InvalidBasisWeight

logger = logging.getLogger(__name__)

TITLES = {
    "manual": "Manual Separation Analysis Report",
    "residue": "Chemical Separation Analysis Report",
    "component": "Chemical Separation Analysis Report",
    "garments": "Garments Analysis Report",
}

# (attribute, header) per table; headers follow the on-screen tables.
_MANUAL_SAMPLE = [("name", "Fiber Name"), ("wet_weight", "Wet Weight (g)"), ("moisture_content", "Moisture (%)"),
                  ("dry_weight", "Dry Weight (g)"), ("percentage", "Percentage (%)")]
_CHEMICAL_SAMPLE = [("name", "Fiber Name"), ("dry_weight", "Dry Weight (g)"), ("dry_percentage", "Dry %"),
                    ("conditioned_percentage", "Conditioned %")]
_GARMENT_SAMPLE = [("fiber_name", "Fiber Name"), ("total_weight", "Total Weight (g)"),
                   ("overall_percentage", "Overall Percentage (%)")]

COLUMNS: Dict[str, Dict[str, List[Tuple[str, str]]]] = {
    "manual": {
        "sample": _MANUAL_SAMPLE,
        "without_moisture": [("name", "Fiber Name"), ("dry_weight", "Avg. Dry Weight (g)"),
                             ("moisture_content", "Avg. Moisture (%)"), ("percentage", "Avg. Percentage (%)")],
        "with_moisture": [("name", "Fiber Name"), ("dry_weight", "Avg. Dry Weight (g)"),
                          ("moisture_content", "Avg. Moisture (%)"), ("wet_weight", "Avg. Wet Weight (g)"),
                          ("percentage", "Avg. Percentage (%)")],
    },
    "chemical": {
        "sample": _CHEMICAL_SAMPLE,
        "without_moisture": [("name", "Fiber Name"), ("dry_weight", "Avg. Dry Weight (g)"),
                             ("dry_percentage", "Avg. Dry %")],
        "with_moisture": [("name", "Fiber Name"), ("dry_weight", "Avg. Dry Weight (g)"),
                          ("conditioned_percentage", "Avg. Conditioned %")],
    },
    "garments": {
        "sample": _GARMENT_SAMPLE,
        "without_moisture": [("fiber_name", "Fiber Name"), ("total_weight", "Avg. Total Weight (g)"),
                             ("overall_percentage", "Avg. Overall Percentage (%)")],
        "with_moisture": [("fiber_name", "Fiber Name"), ("total_weight", "Avg. Total Weight (g)"),
                          ("overall_percentage", "Avg. Overall Percentage (%)")],
    },
}


@dataclass
class ReportData:
    mode: str
    title: str
    columns: Dict[str, List[Tuple[str, str]]]
    sample_results: List[list]
    without_moisture: list
    with_moisture: list
    totals: Dict[str, float] = field(default_factory=dict)
    created: date = field(default_factory=date.today)

    @property
    def is_chemical(self) -> bool:
        return self.mode in ("residue", "component")

    def to_dict(self) -> Dict[str, object]:
        return {
            "mode": self.mode,
            "title": self.title,
            "created": self.created.isoformat(),
            "totals": dict(self.totals),
            "samples": [[r.to_dict() for r in rows] for rows in self.sample_results],
            "without_moisture": [r.to_dict() for r in self.without_moisture],
            "with_moisture": [r.to_dict() for r in self.with_moisture],
        }


def average_initial_weight(initial_weights: List[object], n_samples: int) -> float:
    """Mean initial weight over all samples, blanks counting as zero."""
    if n_samples <= 0:
        return float("nan")
    total = 0.0
    for w in initial_weights:
        total += float(w) if w is not None else 0.0
    return total / n_samples


def assemble_report(run: SeparationRun) -> ReportData:
    """Return :class:`ReportData` for *run*.

    Chemical runs need a positive average initial weight; anything else is
    refused with :class:`InvalidBasisWeight` rather than exported with an
    undefined basis.
    """
    totals: Dict[str, float] = {}
    if run.mode in ("residue", "component"):
        avg = average_initial_weight(run.initial_weights, len(run.sample_results))
        if math.isnan(avg) or avg <= 0:
            raise InvalidBasisWeight(
                "Please enter a valid Initial Dry Sample Weight for all samples for the report.")
        totals["average_initial_weight"] = avg
        columns = COLUMNS["chemical"]
    elif run.mode == "manual":
        totals["total_dry_weight"] = total_dry_weight(run.averages.with_moisture)
        columns = COLUMNS["manual"]
    elif run.mode == "garments":
        columns = COLUMNS["garments"]
    else:
        raise ValueError(f"Unknown analysis mode: {run.mode!r}")

    logger.info("Assembled %s report for %d sample(s)", run.mode, len(run.sample_results))
    return ReportData(
        mode=run.mode,
        title=TITLES[run.mode],
        columns=columns,
        sample_results=run.sample_results,
        without_moisture=run.averages.without_moisture,
        with_moisture=run.averages.with_moisture,
        totals=totals,
    )
