from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional


@dataclass(frozen=True)
class FiberObservation:
    name: str
    dry_weight: Optional[float]  # [g]
    moisture_regain: Optional[float] = None  # [%]


@dataclass(frozen=True)
class ResidueStep:
    dissolved_fiber_name: str
    residue_weight: Optional[float] = None  # [g], ignored on the last step
    moisture_regain: Optional[float] = None  # [%]


@dataclass(frozen=True)
class FiberBreakdown:
    fiber_name: str
    percent_of_component: Optional[float]  # [%]


@dataclass(frozen=True)
class GarmentComponent:
    name: str
    weight: Optional[float]  # [g]
    fibers: List[FiberBreakdown] = field(default_factory=list)


@dataclass(frozen=True)
class ManualFiberResult:
    name: str
    dry_weight: float
    moisture_content: float
    wet_weight: float
    percentage: float

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


@dataclass(frozen=True)
class ChemicalFiberResult:
    name: str
    dry_weight: float
    dry_percentage: float
    conditioned_percentage: float

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


@dataclass(frozen=True)
class GarmentFiberResult:
    fiber_name: str
    total_weight: float
    overall_percentage: float

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


@dataclass(frozen=True)
class AggregateViews:
    without_moisture: list
    with_moisture: list

    def to_dict(self) -> Dict[str, object]:
        return {
            "without_moisture": [r.to_dict() for r in self.without_moisture],
            "with_moisture": [r.to_dict() for r in self.with_moisture],
        }


@dataclass(frozen=True)
class SeparationRun:
    """Outcome of one calculate action over every sample of a mode."""

    mode: str  # manual | residue | component | garments
    sample_results: List[list]
    averages: AggregateViews
    initial_weights: List[Optional[float]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "mode": self.mode,
            "samples": [[r.to_dict() for r in rows] for rows in self.sample_results],
            "averages": self.averages.to_dict(),
            "initial_weights": list(self.initial_weights),
        }
