"""Validation errors raised by the composition engines.

Every error is a ``ValueError`` so callers that only care about bad input can
catch that. The message is prefixed with the sample (and step or component)
that failed, e.g. ``"Sample 2, Step 1: ..."``.
"""
from __future__ import annotations

from typing import Optional


class CompositionError(ValueError):
    """Base class for a failed validation check."""

    def __init__(
        self,
        message: str,
        sample: Optional[int] = None,
        step: Optional[int] = None,
        component: Optional[str] = None,
    ) -> None:
        self.detail = message
        self.sample = sample
        self.step = step
        self.component = component
        super().__init__(self._format())

    def _format(self) -> str:
        where = []
        if self.sample is not None:
            where.append(f"Sample {self.sample}")
        if self.step is not None:
            where.append(f"Step {self.step}")
        if self.component is not None:
            where.append(f"Component {self.component!r}")
        if not where:
            return self.detail
        return f"{', '.join(where)}: {self.detail}"


class NoSamples(CompositionError):
    pass


class InvalidBasisWeight(CompositionError):
    pass


class InvalidStepWeight(CompositionError):
    pass


class InvalidComponentName(CompositionError):
    pass


class EmptyStepList(CompositionError):
    pass


class EmptyComponentList(CompositionError):
    pass


class ZeroTotalWeight(CompositionError):
    pass


class NonMonotonicResidue(CompositionError):
    """A residue weight exceeds the residue of the step before it."""

    def __init__(self, step: int, residue: float, previous: float, sample: Optional[int] = None) -> None:
        self.residue = residue
        self.previous = previous
        super().__init__(
            f"Residue Weight ({residue}g) cannot be greater than the previous "
            f"residue weight ({previous:.4f}g).",
            sample=sample,
            step=step,
        )


class PercentageMismatch(CompositionError):
    """A fiber breakdown does not close to 100 %."""

    def __init__(self, total: float, component: Optional[str] = None, sample: Optional[int] = None,
                 detail: Optional[str] = None) -> None:
        self.total = total
        super().__init__(
            detail or f"Fiber percentages add up to {total:.4f}, not 100.",
            sample=sample,
            component=component,
        )
