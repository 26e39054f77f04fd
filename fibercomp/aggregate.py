"""Fold per-sample fiber results into averaged views.

Rows are grouped by fiber name across samples. A fiber that is missing from a
sample simply contributes nothing for it, so each mean is taken over the
samples in which the fiber actually appeared. Percentages are averaged
directly rather than re-derived from averaged weights, except for the manual
with-moisture view which re-normalizes averaged wet weights.
"""
from __future__ import annotations

from typing import Dict, Iterable, List, Sequence

from .dataclasses import (
    AggregateViews,
    ChemicalFiberResult,
    GarmentFiberResult,
    ManualFiberResult,
)


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def group_by_fiber(sample_results: Iterable[Iterable[object]], key: str = "name") -> Dict[str, List[object]]:
    """Return ``{fiber name: [row, ...]}`` in first-seen order."""
    groups: Dict[str, List[object]] = {}
    for rows in sample_results:
        for row in rows:
            groups.setdefault(getattr(row, key), []).append(row)
    return groups


def field_means(rows: Sequence[object], fields: Sequence[str]) -> Dict[str, float]:
    """Arithmetic mean of each named attribute, computed independently."""
    return {f: _mean([float(getattr(r, f)) for r in rows]) for f in fields}


def aggregate_chemical(sample_results: Sequence[Sequence[ChemicalFiberResult]]) -> AggregateViews:
    without: List[ChemicalFiberResult] = []
    with_: List[ChemicalFiberResult] = []
    for name, rows in group_by_fiber(sample_results).items():
        m = field_means(rows, ("dry_weight", "dry_percentage", "conditioned_percentage"))
        without.append(ChemicalFiberResult(name, m["dry_weight"], m["dry_percentage"], 0.0))
        with_.append(ChemicalFiberResult(name, m["dry_weight"], 0.0, m["conditioned_percentage"]))
    return AggregateViews(without_moisture=without, with_moisture=with_)


def aggregate_manual(sample_results: Sequence[Sequence[ManualFiberResult]]) -> AggregateViews:
    groups = group_by_fiber(sample_results)
    means = {
        name: field_means(rows, ("dry_weight", "moisture_content", "wet_weight", "percentage"))
        for name, rows in groups.items()
    }
    # Ratio of averaged wet weights, not a mean of per-sample ratios.
    total_wet = sum(m["wet_weight"] for m in means.values())

    without: List[ManualFiberResult] = []
    with_: List[ManualFiberResult] = []
    for name, m in means.items():
        without.append(ManualFiberResult(
            name=name,
            dry_weight=m["dry_weight"],
            moisture_content=m["moisture_content"],
            wet_weight=0.0,
            percentage=m["percentage"],
        ))
        with_.append(ManualFiberResult(
            name=name,
            dry_weight=m["dry_weight"],
            moisture_content=m["moisture_content"],
            wet_weight=m["wet_weight"],
            percentage=(m["wet_weight"] / total_wet) * 100.0 if total_wet > 0 else 0.0,
        ))
    return AggregateViews(without_moisture=without, with_moisture=with_)


def aggregate_garments(sample_results: Sequence[Sequence[GarmentFiberResult]]) -> AggregateViews:
    """Garments carry no moisture, so both views hold the same rows."""
    rows_out: List[GarmentFiberResult] = []
    for name, rows in group_by_fiber(sample_results, key="fiber_name").items():
        m = field_means(rows, ("total_weight", "overall_percentage"))
        rows_out.append(GarmentFiberResult(name, m["total_weight"], m["overall_percentage"]))
    return AggregateViews(without_moisture=rows_out, with_moisture=list(rows_out))


def total_dry_weight(rows: Iterable[ManualFiberResult]) -> float:
    return sum(r.dry_weight for r in rows)
