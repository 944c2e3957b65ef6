from math import isclose

from galenique.domain.models import DrugKind, TabletResult
from galenique.usecases.preparation_form import PreparationForm


def _bicarb_form() -> PreparationForm:
    form = PreparationForm("bicarb")
    form.target_dose = "600"
    form.frequency = "3"
    form.duration = "30"
    return form


def test_default_total_units():
    assert PreparationForm("prop").total_units == 14


def test_total_recomputed_from_frequency_and_duration():
    form = PreparationForm("prop")
    form.target_dose = "10"
    form.frequency = "2"
    assert form.total_units == 14          # durée absente : pas de recalcul
    form.duration = "30"
    assert form.total_units == 60


def test_bicarb_total_and_balanced_lots():
    form = _bicarb_form()
    assert form.total_units == 270
    assert [l.units for l in form.lots] == [90, 90, 90]
    assert form.lots_valid
    assert form.valid

    sug = form.lot_suggestions()
    assert sug.maximize == (100, 100, 70)
    assert not sug.identical


def test_bicarb_identical_suggestions():
    form = PreparationForm("bicarb")
    form.target_dose = 250
    form.frequency = 2
    form.duration = 10
    assert form.total_units == 20
    assert form.lot_suggestions().identical


def test_lot_editing_gates_validity():
    form = _bicarb_form()
    first = form.lots[0]
    form.set_lot_units(first.id, "80")
    assert form.lots_total == 260
    assert not form.lots_valid
    assert not form.valid

    extra = form.add_lot()
    form.set_lot_units(extra.id, 10)
    assert len(form.lots) == 4
    assert form.valid

    form.remove_lot(extra.id)
    assert not form.valid
    form.apply_suggestion(form.lot_suggestions().maximize)
    assert [l.units for l in form.lots] == [100, 100, 70]
    assert form.valid


def test_lots_reset_when_total_changes():
    form = _bicarb_form()
    form.apply_suggestion([100, 100, 70])
    form.total_units = 250
    assert [l.units for l in form.lots] == [84, 83, 83]


def test_lot_details():
    form = _bicarb_form()
    details = form.lot_details()
    assert [d["index"] for d in details] == [1, 2, 3]
    assert isclose(details[0]["mass_g"], 18.0)
    assert isclose(details[0]["volume_ml"], 90 * 0.21)
    assert not any(d["over_limit"] for d in details)

    form.apply_suggestion([150, 120])
    details = form.lot_details()
    assert [d["over_limit"] for d in details] == [True, True]
    assert form.valid   # dépassement : simple alerte


def test_bicarb_line_snapshot():
    line = _bicarb_form().to_line()
    assert line.molecule == "Bicarbonate de Sodium"
    assert line.kind is DrugKind.POWDER
    assert line.lots == (90, 90, 90)
    assert line.total_units == 270
    assert isclose(line.total_powder_mass_g, 54.0)
    assert line.real_dose_per_unit_mg == 200.0
    assert line.final_tablet_count is None
    assert line.duration_days == 30
    assert line.valid


def test_tablet_line_snapshot():
    form = PreparationForm("prop")
    form.target_dose = "10"
    form.frequency = 2
    form.duration = 30
    line = form.to_line()
    assert line.molecule == "Propranolol"
    assert line.kind is DrugKind.TABLET
    assert line.final_tablet_count == 15.0
    assert line.real_dose_per_unit_mg == 10.0
    assert isclose(line.excipient_fill_volume_ml, 12.6)
    assert line.total_powder_mass_g is None
    assert line.lots == ()
    assert line.capsule_size == "T4"
    assert line.valid


def _captopril_form() -> PreparationForm:
    form = PreparationForm("captopril")
    form.target_dose = "6"
    form.frequency = 2
    form.duration = 7
    return form


def test_pinned_tablets():
    form = _captopril_form()
    res = form.result()
    assert isinstance(res, TabletResult)
    form.pin_tablets(res.options[1].tablets)
    assert isclose(form.result().real_dose_mg, 6.25)
    assert form.to_line().final_tablet_count == 3.5
    form.pin_tablets(None)
    assert isclose(form.result().final_tablet_count, 3.36)


def test_pin_cleared_by_dose_units_or_drug():
    form = _captopril_form()
    form.pin_tablets(3.5)
    form.target_dose = "6,5"
    assert form.forced_tablet_count is None

    form.pin_tablets(3.5)
    form.total_units = 28
    assert form.forced_tablet_count is None

    form.pin_tablets(3.5)
    form.drug_key = "prop"
    assert form.forced_tablet_count is None


def test_pin_kept_when_unrelated_fields_change():
    form = _captopril_form()
    form.pin_tablets(3.5)
    form.capsule_size = "T2"
    form.frequency = 2          # même total
    form.total_units = "14"
    assert form.forced_tablet_count == 3.5


def test_infeasible_line_needs_reason():
    form = PreparationForm("prop")
    form.feasible = False
    assert not form.valid
    form.reason = "  "
    assert not form.valid
    form.reason = "Rupture de stock"
    assert form.valid
    line = form.to_line()
    assert not line.feasible
    assert line.reason == "Rupture de stock"
    assert line.final_tablet_count is None


def test_incomplete_line_is_invalid():
    form = PreparationForm("prop")
    assert form.result() is None
    assert not form.valid
    assert not PreparationForm().valid


def test_from_dict_explicit_values_win():
    form = PreparationForm.from_dict(
        {"drug": "prop", "dose": "10", "frequency": 2, "duration": 30, "units": 45}
    )
    assert form.total_units == 45

    form = PreparationForm.from_dict(
        {"drug": "bicarb", "dose": 600, "frequency": 3, "duration": 30, "lots": [100, 100, 70]}
    )
    assert [l.units for l in form.lots] == [100, 100, 70]
    assert form.valid

    form = PreparationForm.from_dict(
        {"drug": "captopril", "dose": 6, "units": 14, "forced_tabs": "3,25", "capsule": "T1"}
    )
    assert form.forced_tablet_count == 3.25
    assert form.result().capsule_label == "Taille 1"

    form = PreparationForm.from_dict({"drug": "prop", "feasible": False, "reason": "Allergie"})
    assert form.valid


def test_negative_lot_quantities_are_clamped():
    form = PreparationForm.from_dict(
        {"drug": "bicarb", "dose": 250, "units": 100, "lots": [150, -50]}
    )
    assert [l.units for l in form.lots] == [150, 0]
    assert not form.valid

    form = PreparationForm.from_dict({"drug": "bicarb", "dose": 250, "units": 100})
    first = form.lots[0]
    form.set_lot_units(first.id, "150")
    extra = form.add_lot()
    form.set_lot_units(extra.id, "-50")
    assert extra.units == 0
    assert not form.valid
    assert all(q >= 0 for q in form.to_line().lots)


def test_negative_duration_is_stored_as_zero():
    form = PreparationForm.from_dict({"drug": "prop", "dose": 10, "units": 30, "duration": "-5"})
    assert form.to_line().duration_days == 0
