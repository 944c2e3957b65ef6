"""
Compounding formulas.

These functions turn a prescription (target dose per capsule, number of
capsules, capsule size) into the physical quantities the preparator
weighs or counts: tablet count, active powder mass and excipient fill
volume. Tablets can only be split down to their secability step, so the
tablet branch also returns the two nearest achievable tablet counts with
their dose deviation.

All functions are pure: they depend solely on their inputs and do not
modify any external state. An incomplete prescription yields ``None``
rather than an exception, so callers can recompute on every keystroke.
"""

from __future__ import annotations

from math import ceil, floor, isclose
from typing import Dict, Optional, Tuple, Union

from .catalog import BICARB_KEY, CAPSULE_TYPES, DRUG_MASTER
from .models import (
    BicarbResult,
    CapsuleSize,
    Drug,
    DrugKind,
    PowderResult,
    PreparationInput,
    TabletOption,
    TabletResult,
)

BICARB_CAPSULE_CAPACITY_MG = 250.0

CalcResult = Union[TabletResult, PowderResult, BicarbResult]


def _positive_float(x) -> Optional[float]:
    if x is None or isinstance(x, bool):
        return None
    try:
        val = float(x)
    except (TypeError, ValueError):
        return None
    if val != val or val <= 0:  # NaN
        return None
    return val


def _positive_int(x) -> Optional[int]:
    val = _positive_float(x)
    if val is None:
        return None
    i = int(val)
    return i if i > 0 else None


def capsules_per_intake(target_dose_mg: float, capacity_mg: float = BICARB_CAPSULE_CAPACITY_MG) -> int:
    """Number of capsules swallowed together to deliver one dose.

    A bicarbonate capsule holds at most ``capacity_mg`` of active content;
    above that the dose is split evenly over ``ceil(dose / capacity)``
    capsules.
    """
    dose = float(target_dose_mg or 0.0)
    return int(ceil(dose / capacity_mg)) if dose > capacity_mg else 1


def total_units(
    drug_key: Optional[str],
    frequency_per_day,
    duration_days,
    target_dose_mg=None,
    capacity_mg: float = BICARB_CAPSULE_CAPACITY_MG,
) -> Optional[int]:
    """Capsules for the whole treatment: ``frequency x duration`` (x capsules per intake for bicarbonate).

    Returns ``None`` until both frequency and duration are positive.
    """
    f = _positive_int(frequency_per_day)
    d = _positive_int(duration_days)
    if f is None or d is None:
        return None
    if drug_key == BICARB_KEY:
        dose = _positive_float(target_dose_mg) or 0.0
        return f * d * capsules_per_intake(dose, capacity_mg)
    return f * d


def diff_percent(real_dose_mg: float, target_dose_mg: float) -> float:
    """Deviation of the achieved dose from the prescribed one, in percent."""
    return (float(real_dose_mg) - float(target_dose_mg)) / float(target_dose_mg) * 100.0


def exact_tablets_needed(target_dose_mg: float, units: int, source_unit_mg: float) -> float:
    return (float(target_dose_mg) * int(units)) / float(source_unit_mg)


def tablet_bounds(exact_tablets: float, step: float) -> Tuple[float, ...]:
    """Nearest tablet counts allowed by the secability step.

    Returns ``(lower, upper)`` with ``upper - lower == step``, or a single
    value when ``exact_tablets`` already is a multiple of ``step``.
    """
    if step is None or step <= 0:
        return (float(exact_tablets),)
    q = float(exact_tablets) / float(step)
    nearest = round(q)
    if isclose(q, nearest, rel_tol=0.0, abs_tol=1e-9):
        return (nearest * step,)
    lower = floor(q) * step
    return (lower, lower + step)


def tablet_options(
    target_dose_mg: float, units: int, drug: Drug
) -> Tuple[TabletOption, ...]:
    """Optimizer: dose and deviation for each achievable tablet count."""
    exact = exact_tablets_needed(target_dose_mg, units, drug.source_unit_mg)
    out = []
    for tabs in tablet_bounds(exact, drug.secability_step):
        dose = (tabs * drug.source_unit_mg) / units
        out.append(TabletOption(tablets=tabs, dose_mg=dose, diff_percent=diff_percent(dose, target_dose_mg)))
    return tuple(out)


def powder_mass_g(target_dose_mg: float, units: int) -> float:
    """Total active mass (g) for a standard powder."""
    return (float(target_dose_mg) * int(units)) / 1000.0


def excipient_volume_ml(units: int, capsule: CapsuleSize) -> float:
    """Total capsule volume to complete with excipient (ml)."""
    return int(units) * capsule.fill_volume_ml


def lot_mass_g(content_per_capsule_mg: float, units_in_lot: int) -> float:
    return (float(content_per_capsule_mg) * int(units_in_lot)) / 1000.0


def lot_fill_volume_ml(units_in_lot: int, fill_volume_per_capsule_ml: float) -> float:
    return int(units_in_lot) * float(fill_volume_per_capsule_ml)


def excipient_mass_g(
    fill_volume_ml: float, units: int, real_dose_mg: float, density: float
) -> float:
    """Estimated excipient mass: theoretical fill mass minus active mass, floored at 0."""
    theoretical = float(fill_volume_ml) * int(units) * float(density)
    active = (float(real_dose_mg) * int(units)) / 1000.0
    return max(0.0, theoretical - active)


def compute_preparation(
    inp: PreparationInput,
    drugs: Dict[str, Drug] = DRUG_MASTER,
    capsules: Dict[str, CapsuleSize] = CAPSULE_TYPES,
    bicarb_capacity_mg: float = BICARB_CAPSULE_CAPACITY_MG,
) -> Optional[CalcResult]:
    """Compute the manufacturing quantities of one preparation line.

    Parameters
    ----------
    inp: PreparationInput
        Full input of the line. ``forced_tablet_count`` pins the tablet
        count chosen in the optimizer; the caller clears it whenever drug,
        dose or units change.

    Returns
    -------
    TabletResult | PowderResult | BicarbResult | None
        ``None`` when the line is infeasible or its inputs are incomplete.
    """
    if not inp.drug_key or not inp.feasible:
        return None
    dose = _positive_float(inp.target_dose_mg)
    units = _positive_int(inp.total_units)
    if dose is None or units is None:
        return None
    drug = drugs.get(inp.drug_key)
    capsule = capsules.get(inp.capsule_size)
    if drug is None or capsule is None:
        return None

    if inp.drug_key == BICARB_KEY:
        per_intake = capsules_per_intake(dose, bicarb_capacity_mg)
        return BicarbResult(
            capsules_per_intake=per_intake,
            content_per_capsule_mg=dose / per_intake,
            fill_volume_per_capsule_ml=capsule.fill_volume_ml,
            capsule_label=capsule.label,
        )

    if drug.kind is DrugKind.POWDER:
        return PowderResult(
            total_mass_g=powder_mass_g(dose, units),
            excipient_volume_ml=excipient_volume_ml(units, capsule),
            real_dose_mg=dose,
            capsule_label=capsule.label,
        )

    exact = exact_tablets_needed(dose, units, drug.source_unit_mg)
    final = float(inp.forced_tablet_count) if inp.forced_tablet_count is not None else exact
    real_dose = (final * drug.source_unit_mg) / units
    return TabletResult(
        final_tablet_count=final,
        real_dose_mg=real_dose,
        excipient_volume_ml=excipient_volume_ml(units, capsule),
        diff_percent=diff_percent(real_dose, dose),
        options=tablet_options(dose, units, drug),
        capsule_label=capsule.label,
    )
