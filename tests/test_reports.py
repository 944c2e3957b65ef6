from datetime import datetime
from math import isclose

from galenique.domain.models import Appointment, DrugKind, HistoryLog, Patient, PreparationLine
from galenique.usecases.reports import (
    active_alerts,
    compute_dashboard,
    compute_production_stats,
    month_label,
    renewal_alerts,
)


def _ms(*args) -> int:
    return int(datetime(*args).timestamp() * 1000)


def _line(molecule="Spironolactone", units=30, real=75.0, duration=30, feasible=True):
    return PreparationLine(
        drug_key="spiro", molecule=molecule, feasible=feasible, kind=DrugKind.TABLET,
        total_units=units if feasible else None, real_dose_per_unit_mg=real if feasible else None,
        capsule_size="T4", duration_days=duration if feasible else 0, valid=True,
        reason=None if feasible else "Rupture",
    )


def _log(ts, preps, team=("Dr A",)):
    return HistoryLog(
        date=datetime.fromtimestamp(ts / 1000).strftime("%d/%m/%Y"),
        timestamp=ts, doctor="", preparator_names=tuple(team), preps=tuple(preps),
    )


def test_month_label():
    assert month_label(datetime(2024, 3, 15)) == "MARS 2024"
    assert month_label(datetime(2024, 8, 1)) == "AOÛT 2024"


def test_production_stats():
    patients = [
        Patient("A", history=[
            _log(_ms(2024, 3, 4, 9, 0), [_line(), _line(feasible=False)]),
            _log(_ms(2024, 2, 20, 9, 0), [_line(units=60)]),
        ]),
        Patient("B", history=[
            _log(_ms(2024, 3, 4, 15, 0), [_line(molecule="Captopril", units=14, real=6.0)]),
            _log(_ms(2024, 3, 6, 10, 0), [_line()]),
        ]),
    ]
    res = compute_production_stats(patients, now=datetime(2024, 3, 15, 12, 0))
    assert res["month_label"] == "MARS 2024"
    assert res["total_capsules"] == 30 + 14 + 30
    assert res["total_preps"] == 3
    assert res["unique_patients"] == 2
    assert res["working_days"] == 2
    assert res["cadence"] == 37
    assert res["patient_yield"] == 1.0
    assert res["top_molecules"][0] == ("Spironolactone", 2)
    # 0,21 ml x 0,65 g/ml par gélule, moins l'actif
    expected = 2 * (0.21 * 30 * 0.65 - 2.25) + (0.21 * 14 * 0.65 - 0.084)
    assert isclose(res["total_excipient_mass_g"], expected)


def test_production_stats_empty_month():
    res = compute_production_stats([], now=datetime(2024, 3, 15))
    assert res["total_capsules"] == 0
    assert res["working_days"] == 1
    assert res["top_molecules"] == []


def test_renewal_alerts():
    now = datetime(2024, 2, 15, 12, 0)
    patients = [
        Patient("SOON", history=[_log(_ms(2024, 2, 10, 12, 0), [_line(duration=7)])]),
        Patient("LATE", history=[_log(_ms(2024, 2, 1, 12, 0), [_line(duration=10)])]),
        Patient("FINE", history=[_log(_ms(2024, 2, 14, 12, 0), [_line(duration=30)])]),
        Patient("NONE"),
    ]
    alerts = renewal_alerts(patients, now=now)
    assert [a["patient"] for a in alerts] == ["LATE", "SOON"]
    late, soon = alerts
    assert late["days_left"] == -4
    assert late["severity"] == "red"
    assert late["label"] == "Terminé (4j)"
    assert soon["days_left"] == 2
    assert soon["severity"] == "orange"
    assert soon["label"] == "Reste 2j"
    assert soon["molecule"] == "Spironolactone"

    booked = [Appointment(id="1", patient_name="late", date="2024-02-18")]
    assert [a["patient"] for a in active_alerts(alerts, booked)] == ["SOON"]


def test_dashboard():
    now = datetime(2024, 3, 6, 16, 0)
    patients = [
        Patient("A", history=[
            _log(_ms(2024, 3, 4, 9, 0), [_line(), _line(feasible=False)], team=("Dr A", "Dr B")),
        ]),
        Patient("B", history=[
            _log(_ms(2024, 3, 6, 10, 0), [_line(units=14)], team=("Dr B",)),
            _log(_ms(2024, 2, 6, 10, 0), [_line()], team=("Dr C",)),
        ]),
    ]
    appts = [
        Appointment(id="old", patient_name="A", date="2024-03-01"),
        Appointment(id="n2", patient_name="B", date="2024-03-12"),
        Appointment(id="n1", patient_name="A", date="2024-03-07"),
    ]
    res = compute_dashboard(patients, appts, now=now)
    assert res["total_patients"] == 2
    assert res["month_preps"] == 3
    assert res["today_preps"] == 1
    assert res["month_capsules"] == 44
    assert res["top_preparators"][0] == ("Dr B", 2)
    assert [a["timestamp"] for a in res["recent_activity"]] == [
        _ms(2024, 3, 6, 10, 0), _ms(2024, 3, 4, 9, 0), _ms(2024, 2, 6, 10, 0),
    ]
    assert [a.id for a in res["upcoming_appointments"]] == ["n1", "n2"]
