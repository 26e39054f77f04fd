import math
import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from fibercomp.core import component_sample, residue_sample, run_component, run_residue
from fibercomp.dataclasses import FiberObservation, ResidueStep
from fibercomp.errors import (
    EmptyComponentList,
    EmptyStepList,
    InvalidBasisWeight,
    InvalidStepWeight,
    NonMonotonicResidue,
    ZeroTotalWeight,
)


def test_two_step_chain():
    rows = residue_sample(10, [ResidueStep("A", 7), ResidueStep("B")])
    assert [(r.name, r.dry_weight) for r in rows] == [("A", pytest.approx(3)), ("B", pytest.approx(7))]
    assert [r.dry_percentage for r in rows] == pytest.approx([30, 70])


def test_final_fiber_is_what_remains():
    w0 = 12.5
    steps = [ResidueStep("Wool", 10.1, 17), ResidueStep("Polyester", 6.05, 0.4),
             ResidueStep("Nylon", 2.2, 4.5), ResidueStep("Cotton", None, 8.5)]
    rows = residue_sample(w0, steps)
    assert all(r.dry_weight >= 0 for r in rows)
    dissolved = sum(r.dry_weight for r in rows[:-1])
    assert rows[-1].dry_weight == pytest.approx(w0 - dissolved)
    assert sum(r.dry_percentage for r in rows) == pytest.approx(100.0)
    assert sum(r.conditioned_percentage for r in rows) == pytest.approx(100.0)


def test_conditioned_percentage_scales_by_regain():
    rows = residue_sample(10, [ResidueStep("Polyester", 5, 0.4), ResidueStep("Cotton", None, 8.5)])
    cond = [5 * 1.004, 5 * 1.085]
    assert rows[0].conditioned_percentage == pytest.approx(cond[0] / sum(cond) * 100)
    assert rows[1].conditioned_percentage == pytest.approx(cond[1] / sum(cond) * 100)


def test_single_step_takes_full_initial_weight():
    (row,) = residue_sample(4.2, [ResidueStep("Cotton", None, 8.5)])
    assert row.dry_weight == pytest.approx(4.2)
    assert row.dry_percentage == pytest.approx(100)
    assert row.conditioned_percentage == pytest.approx(100)


def test_default_names():
    rows = residue_sample(10, [ResidueStep("", 4), ResidueStep("")])
    assert [r.name for r in rows] == ["Fiber from Step 1", "Final Residue"]


def test_residue_above_initial_weight_rejected():
    with pytest.raises(NonMonotonicResidue) as exc:
        residue_sample(10, [ResidueStep("A", 12), ResidueStep("B")], sample=1)
    err = exc.value
    assert (err.sample, err.step, err.residue, err.previous) == (1, 1, 12, 10)


def test_residue_above_previous_step_rejected():
    with pytest.raises(NonMonotonicResidue) as exc:
        residue_sample(10, [ResidueStep("A", 6), ResidueStep("B", 6.5), ResidueStep("C")])
    assert exc.value.step == 2


@pytest.mark.parametrize("w0", [None, 0, -1, math.nan])
def test_invalid_initial_weight(w0):
    with pytest.raises(InvalidBasisWeight):
        residue_sample(w0, [ResidueStep("A")])


@pytest.mark.parametrize("residue", [None, -0.1, math.nan])
def test_invalid_residue_weight(residue):
    with pytest.raises(InvalidStepWeight):
        residue_sample(10, [ResidueStep("A", residue), ResidueStep("B")])


def test_empty_chain_rejected():
    with pytest.raises(EmptyStepList):
        residue_sample(10, [])


def test_run_residue_aborts_on_any_failing_sample():
    with pytest.raises(NonMonotonicResidue) as exc:
        run_residue([
            (10, [ResidueStep("A", 7), ResidueStep("B")]),
            (10, [ResidueStep("A", 12), ResidueStep("B")]),
        ])
    assert exc.value.sample == 2


def test_run_residue_averages():
    run = run_residue([
        (10, [ResidueStep("A", 5), ResidueStep("B")]),
        (10, [ResidueStep("A", 3), ResidueStep("B")]),
    ])
    assert run.mode == "residue"
    assert run.initial_weights == [10, 10]
    without = {r.name: r for r in run.averages.without_moisture}
    assert without["A"].dry_percentage == pytest.approx(60)
    assert without["A"].conditioned_percentage == 0
    with_ = {r.name: r for r in run.averages.with_moisture}
    assert with_["B"].dry_percentage == 0
    assert with_["B"].conditioned_percentage == pytest.approx(40)


def test_component_mode_uses_initial_weight_as_basis():
    rows = component_sample([FiberObservation("Wool", 3, 17), FiberObservation("Nylon", 1, 4.5)], 5)
    assert [r.dry_percentage for r in rows] == pytest.approx([60, 20])
    assert sum(r.conditioned_percentage for r in rows) == pytest.approx(100)


@pytest.mark.parametrize("w0", [None, 0])
def test_component_mode_falls_back_to_recovered_total(w0):
    rows = component_sample([FiberObservation("Wool", 3, 17), FiberObservation("Nylon", 1, 4.5)], w0)
    assert [r.dry_percentage for r in rows] == pytest.approx([75, 25])


def test_component_mode_rejects_zero_total():
    with pytest.raises(ZeroTotalWeight):
        component_sample([FiberObservation("Wool", 0, 17)], 5)


def test_component_mode_rejects_negative_weights():
    with pytest.raises(InvalidStepWeight):
        component_sample([FiberObservation("Wool", -1, 17), FiberObservation("Nylon", 3, 4.5)])
    with pytest.raises(InvalidBasisWeight):
        component_sample([FiberObservation("Wool", 1, 17)], -2)


def test_component_mode_rejects_missing_weight():
    with pytest.raises(InvalidStepWeight):
        component_sample([FiberObservation("Wool", None, 17)])


def test_component_mode_empty_sample():
    with pytest.raises(EmptyComponentList):
        component_sample([])


def test_run_component_keeps_initial_weights():
    run = run_component([(None, [FiberObservation("Wool", 2, 17)]), (4, [FiberObservation("Wool", 2, 17)])])
    assert run.initial_weights == [None, 4]
    (avg,) = run.averages.without_moisture
    assert avg.dry_percentage == pytest.approx(75)


def test_negative_regain_rejected_in_residue_mode():
    with pytest.raises(InvalidStepWeight) as exc:
        residue_sample(10, [ResidueStep("A", 6, 4.5), ResidueStep("B", None, -2)], sample=1)
    assert exc.value.step == 2
    with pytest.raises(InvalidStepWeight):
        residue_sample(10, [ResidueStep("A", 6, -0.5), ResidueStep("B", None, 8.5)])


def test_negative_regain_rejected_in_component_mode():
    with pytest.raises(InvalidStepWeight):
        component_sample([FiberObservation("Wool", 3, -17), FiberObservation("Nylon", 1, 4.5)])
