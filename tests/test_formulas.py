from math import isclose

import pytest

from galenique.domain.catalog import CAPSULE_TYPES
from galenique.domain.formulas import (
    capsules_per_intake,
    compute_preparation,
    diff_percent,
    excipient_mass_g,
    exact_tablets_needed,
    lot_fill_volume_ml,
    lot_mass_g,
    tablet_bounds,
    total_units,
)
from galenique.domain.models import (
    BicarbResult,
    Drug,
    DrugKind,
    PowderResult,
    PreparationInput,
    TabletResult,
)


def test_tablet_exact_multiple_single_option():
    # 75 mg x 30 gélules avec des comprimés de 25 mg sécables par 1 -> 90 comprimés
    res = compute_preparation(PreparationInput("spiro", target_dose_mg=75, total_units=30))
    assert isinstance(res, TabletResult)
    assert isclose(res.final_tablet_count, 90.0)
    assert isclose(res.real_dose_mg, 75.0)
    assert isclose(res.diff_percent, 0.0, abs_tol=1e-12)
    assert [o.tablets for o in res.options] == [90.0]
    assert isclose(res.excipient_volume_ml, 30 * 0.21)
    assert res.capsule_label == CAPSULE_TYPES["T4"].label


def test_tablet_bounds_and_optimizer_options():
    # 6 mg x 14 gélules, comprimés de 25 mg sécables au quart -> 3,36 comprimés
    res = compute_preparation(PreparationInput("captopril", target_dose_mg=6, total_units=14))
    assert isclose(res.final_tablet_count, 3.36)
    assert isclose(res.real_dose_mg, 6.0)
    lower, upper = res.options
    assert isclose(lower.tablets, 3.25)
    assert isclose(upper.tablets, 3.5)
    assert isclose(lower.dose_mg, 3.25 * 25 / 14)
    assert isclose(upper.dose_mg, 6.25)
    assert lower.diff_percent < 0 < upper.diff_percent
    assert isclose(upper.diff_percent, 4.1666666, rel_tol=1e-6)


def test_forced_tablet_count_overrides_exact():
    res = compute_preparation(
        PreparationInput("captopril", target_dose_mg=6, total_units=14, forced_tablet_count=3.5)
    )
    assert res.final_tablet_count == 3.5
    assert isclose(res.real_dose_mg, 6.25)
    assert isclose(res.diff_percent, (6.25 - 6) / 6 * 100)
    # les options restent celles du calcul exact
    assert [o.tablets for o in res.options] == [3.25, 3.5]


@pytest.mark.parametrize("exact, step", [
    (3.36, 0.25), (7.1, 0.5), (15.9, 1.0), (0.1, 0.25), (12.34, 0.5), (1.01, 1.0),
])
def test_tablet_bounds_bracket_exact(exact, step):
    lower, upper = tablet_bounds(exact, step)
    assert lower <= exact <= upper
    assert isclose(upper - lower, step)
    assert isclose(lower / step, round(lower / step), abs_tol=1e-9)


@pytest.mark.parametrize("exact, step", [(7.5, 0.5), (90.0, 1.0), (3.25, 0.25), (0.0, 0.5)])
def test_tablet_bounds_collapse_on_multiple(exact, step):
    assert tablet_bounds(exact, step) == (exact,)


def test_tablet_bounds_tolerate_float_noise():
    # 0.1 * 3 / 0.1 n'est pas exactement 3 en flottant
    bounds = tablet_bounds(0.1 * 3, 0.1)
    assert len(bounds) == 1
    assert isclose(bounds[0], 0.3)


def test_standard_powder():
    drugs = {"zinc": Drug("Zinc", 1, 0, DrugKind.POWDER)}
    res = compute_preparation(PreparationInput("zinc", target_dose_mg=20, total_units=30), drugs=drugs)
    assert isinstance(res, PowderResult)
    assert isclose(res.total_mass_g, 0.6)
    assert isclose(res.excipient_volume_ml, 30 * 0.21)
    assert res.real_dose_mg == 20


@pytest.mark.parametrize("dose, per_intake, content", [
    (250, 1, 250.0),
    (100, 1, 100.0),
    (251, 2, 125.5),
    (500, 2, 250.0),
    (600, 3, 200.0),
    (1000, 4, 250.0),
])
def test_bicarb_split(dose, per_intake, content):
    res = compute_preparation(PreparationInput("bicarb", target_dose_mg=dose, total_units=90))
    assert isinstance(res, BicarbResult)
    assert res.capsules_per_intake == per_intake
    assert isclose(res.content_per_capsule_mg, content)
    assert res.content_per_capsule_mg <= 250.0
    assert isclose(res.content_per_capsule_mg * res.capsules_per_intake, dose)
    assert res.real_dose_mg == res.content_per_capsule_mg


def test_bicarb_fill_volume_follows_capsule():
    res = compute_preparation(
        PreparationInput("bicarb", target_dose_mg=500, total_units=20, capsule_size="T0")
    )
    assert res.fill_volume_per_capsule_ml == CAPSULE_TYPES["T0"].fill_volume_ml


def test_total_units():
    assert total_units("prop", 2, 30) == 60
    assert total_units("bicarb", 3, 30, 600) == 270
    assert total_units("bicarb", 2, 10, 250) == 20
    assert total_units("bicarb", 2, 10, None) == 20
    assert total_units("prop", 0, 30) is None
    assert total_units("prop", 2, None) is None


def test_capsules_per_intake_custom_capacity():
    assert capsules_per_intake(600, 300) == 2
    assert capsules_per_intake(0) == 1


@pytest.mark.parametrize("inp", [
    PreparationInput(None, target_dose_mg=10, total_units=30),
    PreparationInput("prop", target_dose_mg=None, total_units=30),
    PreparationInput("prop", target_dose_mg=0, total_units=30),
    PreparationInput("prop", target_dose_mg=10, total_units=0),
    PreparationInput("prop", target_dose_mg=10, total_units=None),
    PreparationInput("prop", feasible=False, target_dose_mg=10, total_units=30),
    PreparationInput("inconnu", target_dose_mg=10, total_units=30),
    PreparationInput("prop", target_dose_mg=10, total_units=30, capsule_size="T9"),
])
def test_incomplete_input_returns_none(inp):
    assert compute_preparation(inp) is None


def test_compute_is_idempotent():
    inp = PreparationInput("captopril", target_dose_mg=6, total_units=14)
    assert compute_preparation(inp) == compute_preparation(inp)


def test_small_helpers():
    assert isclose(diff_percent(6.25, 6), 4.1666666, rel_tol=1e-6)
    assert isclose(exact_tablets_needed(75, 30, 25), 90.0)
    assert isclose(lot_mass_g(200, 90), 18.0)
    assert isclose(lot_fill_volume_ml(90, 0.21), 18.9)
    # 0,21 ml x 30 x 0,65 = 4,095 g ; actif 2,25 g
    assert isclose(excipient_mass_g(0.21, 30, 75, 0.65), 1.845)
    assert excipient_mass_g(0.21, 30, 500, 0.65) == 0.0
