from __future__ import annotations

import logging
import math
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .aggregate import aggregate_chemical, aggregate_garments, aggregate_manual
from .dataclasses import (
    AggregateViews,
    ChemicalFiberResult,
    FiberObservation,
    GarmentComponent,
    GarmentFiberResult,
    ManualFiberResult,
    ResidueStep,
    SeparationRun,
)
from .errors import (
    EmptyComponentList,
    EmptyStepList,
    InvalidBasisWeight,
    InvalidComponentName,
    InvalidStepWeight,
    NonMonotonicResidue,
    NoSamples,
    PercentageMismatch,
    ZeroTotalWeight,
)

logger = logging.getLogger(__name__)

# Absolute tolerance on a component's fiber breakdown [%]
PERCENT_TOLERANCE = 0.1


def _is_number(x: Optional[float]) -> bool:
    return x is not None and not math.isnan(x)


def _regain(x: Optional[float]) -> float:
    """Moisture regain in %, blank or NaN counting as zero."""
    return float(x) if _is_number(x) else 0.0


def conditioned_weight(dry_weight: float, moisture_regain: Optional[float]) -> float:
    """Dry weight scaled to standard conditions: dry·(1 + regain/100)."""
    return dry_weight * (1.0 + _regain(moisture_regain) / 100.0)


def _check_regain(regain: Optional[float], sample: Optional[int], step: Optional[int] = None) -> None:
    if _is_number(regain) and regain < 0:
        raise InvalidStepWeight(f"Moisture Regain cannot be negative ({regain}%).", sample=sample, step=step)


def _normalize(weights: Sequence[float]) -> List[float]:
    total = sum(weights)
    if total <= 0:
        return [0.0 for _ in weights]
    return [w / total * 100.0 for w in weights]


# ---------------------------------------------------------------------------
# Manual separation
# ---------------------------------------------------------------------------

def manual_sample(fibers: Sequence[FiberObservation], sample: Optional[int] = None) -> List[ManualFiberResult]:
    """Composition of one hand-separated sample.

    Fibers without a positive dry weight, or with a negative moisture regain,
    are kept in the output as zero rows and left out of the dry total.
    """
    if not fibers:
        raise EmptyComponentList("Please add at least one fiber.", sample=sample)

    valid: List[Tuple[str, float, float]] = []
    for f in fibers:
        dry = f.dry_weight if _is_number(f.dry_weight) else 0.0
        moisture = f.moisture_regain if f.moisture_regain is not None else 0.0
        if dry > 0 and _is_number(moisture) and moisture >= 0:
            valid.append((f.name, float(dry), float(moisture)))
        else:
            logger.debug("Excluding fiber %r from sample %s: dry=%r moisture=%r",
                         f.name, sample, f.dry_weight, f.moisture_regain)
            valid.append((f.name, 0.0, 0.0))

    total_dry = sum(dry for _, dry, _ in valid)
    return [
        ManualFiberResult(
            name=name,
            dry_weight=dry,
            moisture_content=moisture,
            wet_weight=dry * (1.0 + moisture / 100.0),
            percentage=(dry / total_dry) * 100.0 if total_dry > 0 else 0.0,
        )
        for name, dry, moisture in valid
    ]


# ---------------------------------------------------------------------------
# Chemical separation
# ---------------------------------------------------------------------------

def residue_chain(initial_weight: float, steps: Sequence[ResidueStep],
                  sample: Optional[int] = None) -> List[Tuple[str, float, Optional[float]]]:
    """Walk a dissolution chain and return ``(name, dry_weight, regain)`` per fiber.

    Step ``j`` (all but the last) dissolves ``previous - residue_j``. The last
    step names the fiber that never dissolved; its weight is the last residue.
    """
    fibers: List[Tuple[str, float, Optional[float]]] = []
    previous = initial_weight
    for j, step in enumerate(steps[:-1], start=1):
        residue = step.residue_weight
        if not _is_number(residue) or residue < 0:
            raise InvalidStepWeight("Please enter a valid, non-negative Residue Weight.",
                                    sample=sample, step=j)
        if residue > previous:
            raise NonMonotonicResidue(step=j, residue=residue, previous=previous, sample=sample)
        _check_regain(step.moisture_regain, sample, step=j)
        fibers.append((step.dissolved_fiber_name or f"Fiber from Step {j}",
                       previous - residue, step.moisture_regain))
        previous = residue

    last = steps[-1]
    _check_regain(last.moisture_regain, sample, step=len(steps))
    fibers.append((last.dissolved_fiber_name or "Final Residue", previous, last.moisture_regain))
    return fibers


def _chemical_rows(fibers: Sequence[Tuple[str, float, Optional[float]]], basis: float) -> List[ChemicalFiberResult]:
    conditioned = _normalize([conditioned_weight(dry, regain) for _, dry, regain in fibers])
    return [
        ChemicalFiberResult(
            name=name,
            dry_weight=dry,
            dry_percentage=(dry / basis) * 100.0,
            conditioned_percentage=cp,
        )
        for (name, dry, _), cp in zip(fibers, conditioned)
    ]


def residue_sample(initial_weight: Optional[float], steps: Sequence[ResidueStep],
                   sample: Optional[int] = None) -> List[ChemicalFiberResult]:
    """Composition of one sample from its chain of residue weights."""
    if not steps:
        raise EmptyStepList("Please add at least one step.", sample=sample)
    if not _is_number(initial_weight) or initial_weight <= 0:
        raise InvalidBasisWeight("Please enter a valid Initial Dry Sample Weight.", sample=sample)
    return _chemical_rows(residue_chain(float(initial_weight), steps, sample=sample), float(initial_weight))


def component_sample(fibers: Sequence[FiberObservation], initial_weight: Optional[float] = None,
                     sample: Optional[int] = None) -> List[ChemicalFiberResult]:
    """Composition of one sample from directly weighed fiber fractions.

    Percentages are taken against ``initial_weight`` when it is positive and
    against the recovered total otherwise.
    """
    if not fibers:
        raise EmptyComponentList("Please add at least one fiber.", sample=sample)
    for idx, f in enumerate(fibers, start=1):
        if not _is_number(f.dry_weight) or f.dry_weight < 0:
            raise InvalidStepWeight(
                f"Please enter a valid, non-negative Final Dry Weight for fiber {f.name or idx!r}.",
                sample=sample,
            )
        _check_regain(f.moisture_regain, sample)
    if initial_weight is not None and (math.isnan(initial_weight) or initial_weight < 0):
        raise InvalidBasisWeight("Initial Dry Sample Weight cannot be negative.", sample=sample)

    total = sum(float(f.dry_weight) for f in fibers)
    if total <= 0:
        raise ZeroTotalWeight(
            "Total dry weight of components is zero. Please enter component weights.", sample=sample)
    basis = float(initial_weight) if initial_weight else total
    return _chemical_rows([(f.name, float(f.dry_weight), f.moisture_regain) for f in fibers], basis)


# ---------------------------------------------------------------------------
# Garments analysis
# ---------------------------------------------------------------------------

def _check_component(c: GarmentComponent, sample: Optional[int]) -> None:
    if not c.name or not c.name.strip():
        raise InvalidComponentName("Please provide a valid name for all components.", sample=sample)
    if not _is_number(c.weight) or c.weight <= 0:
        raise InvalidStepWeight("Please provide a valid weight for all components.",
                                sample=sample, component=c.name)
    shares = [f.percent_of_component if _is_number(f.percent_of_component) else 0.0 for f in c.fibers]
    fiber_sum = sum(shares)
    for f, share in zip(c.fibers, shares):
        if share < 0:
            raise PercentageMismatch(fiber_sum, component=c.name, sample=sample,
                                     detail=f"Fiber {f.fiber_name!r} has a negative percentage.")
        if share != 0 and not (f.fiber_name or "").strip():
            raise InvalidComponentName("Every fiber with a percentage needs a name.",
                                       sample=sample, component=c.name)
    if abs(fiber_sum - 100.0) > PERCENT_TOLERANCE:
        raise PercentageMismatch(fiber_sum, component=c.name, sample=sample)


def garment_sample(components: Sequence[GarmentComponent], sample: Optional[int] = None) -> List[GarmentFiberResult]:
    """Overall fiber composition of one multi-component garment."""
    if not components:
        raise EmptyComponentList("Please add at least one component.", sample=sample)
    for c in components:
        _check_component(c, sample)

    total_garment = sum(float(c.weight) for c in components)
    if total_garment <= 0:
        raise ZeroTotalWeight("Total garment weight is zero. Nothing to calculate.", sample=sample)

    fiber_totals: Dict[str, float] = {}
    for c in components:
        for f in c.fibers:
            name = (f.fiber_name or "").strip()
            if not name:
                continue
            share = f.percent_of_component if _is_number(f.percent_of_component) else 0.0
            fiber_totals[name] = fiber_totals.get(name, 0.0) + float(c.weight) * (share / 100.0)

    return [
        GarmentFiberResult(fiber_name=name, total_weight=w, overall_percentage=(w / total_garment) * 100.0)
        for name, w in fiber_totals.items()
    ]


# ---------------------------------------------------------------------------
# Runs over all samples
# ---------------------------------------------------------------------------

def _run(mode: str, samples: Sequence[object], compute: Callable[[object, int], list],
         aggregate: Callable[[List[list]], AggregateViews],
         initial_weights: Optional[List[Optional[float]]] = None) -> SeparationRun:
    if not samples:
        raise NoSamples("Please provide at least one sample.")
    logger.info("Calculating %s composition for %d sample(s)", mode, len(samples))
    try:
        results = [compute(s, i) for i, s in enumerate(samples, start=1)]
    except ValueError as exc:
        logger.warning("%s run aborted: %s", mode, exc)
        raise
    run = SeparationRun(
        mode=mode,
        sample_results=results,
        averages=aggregate(results),
        initial_weights=list(initial_weights or []),
    )
    logger.info("%s run finished: %d fiber(s) averaged", mode, len(run.averages.without_moisture))
    return run


def run_manual(samples: Sequence[Sequence[FiberObservation]]) -> SeparationRun:
    return _run("manual", samples, lambda s, i: manual_sample(s, sample=i), aggregate_manual)


def run_residue(samples: Sequence[Tuple[Optional[float], Sequence[ResidueStep]]]) -> SeparationRun:
    """Each sample is ``(initial_weight, steps)``."""
    return _run(
        "residue", samples,
        lambda s, i: residue_sample(s[0], s[1], sample=i),
        aggregate_chemical,
        initial_weights=[s[0] for s in samples],
    )


def run_component(samples: Sequence[Tuple[Optional[float], Sequence[FiberObservation]]]) -> SeparationRun:
    """Each sample is ``(initial_weight or None, fibers)``."""
    return _run(
        "component", samples,
        lambda s, i: component_sample(s[1], s[0], sample=i),
        aggregate_chemical,
        initial_weights=[s[0] for s in samples],
    )


def run_garments(samples: Sequence[Sequence[GarmentComponent]]) -> SeparationRun:
    return _run("garments", samples, lambda s, i: garment_sample(s, sample=i), aggregate_garments)
