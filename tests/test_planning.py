from datetime import date, datetime

import pytest

from galenique.domain.exceptions import CapacityExceeded, DayClosed
from galenique.domain.models import Appointment
from galenique.domain.planning import Planning, format_date, ideal_date


def _ts(*args) -> int:
    """Horodatage local en millisecondes."""
    return int(datetime(*args).timestamp() * 1000)


def _appts(day: str, n: int):
    return [Appointment(id=f"{day}-{i}", patient_name=f"P{i}", date=day) for i in range(n)]


def test_format_date():
    assert format_date("2024-03-07") == "2024-03-07"
    assert format_date(date(2024, 3, 7)) == "2024-03-07"
    assert format_date(datetime(2024, 3, 7, 23, 30)) == "2024-03-07"


def test_ideal_date_is_end_of_treatment_minus_buffer():
    assert ideal_date(_ts(2024, 3, 1, 10, 0), 10) == date(2024, 3, 9)
    assert ideal_date(_ts(2024, 3, 1, 10, 0), 10, safety_buffer_days=0) == date(2024, 3, 11)


def test_suggestion_moves_back_from_closed_day():
    # fin à J+10, idéal samedi 09/03 ; vendredi fermé -> jeudi 07/03
    res = Planning().find_best_slot("ALI", "Propranolol", 10, _ts(2024, 3, 1, 10, 0))
    assert res.ideal_date == "2024-03-09"
    assert res.suggested_date == "2024-03-07"
    assert res.is_ideal is False
    assert res.slots_left == 6


def test_suggestion_on_open_ideal_day():
    res = Planning().find_best_slot("ALI", "", 6, _ts(2024, 3, 1, 10, 0))
    assert res.suggested_date == "2024-03-05"
    assert res.is_ideal is True


def test_suggestion_skips_full_day():
    planning = Planning(_appts("2024-03-05", 6))
    res = planning.find_best_slot("ALI", "", 6, _ts(2024, 3, 1, 10, 0))
    assert res.ideal_date == "2024-03-05"
    assert res.suggested_date == "2024-03-04"
    assert res.is_ideal is False


def test_suggestion_degrades_after_attempt_budget():
    planning = Planning(_appts("2024-03-07", 6) + _appts("2024-03-06", 6), max_search_attempts=3)
    res = planning.find_best_slot("ALI", "", 10, _ts(2024, 3, 1, 10, 0))
    assert res.suggested_date == "2024-03-06"
    assert res.is_ideal is False
    assert res.slots_left == 0


def test_suggestion_never_on_closed_or_full_day():
    planning = Planning(_appts("2024-03-12", 6) + _appts("2024-03-19", 6))
    start = _ts(2024, 3, 1, 10, 0)
    for duration in range(3, 60):
        res = planning.find_best_slot(None, None, duration, start)
        assert not planning.is_closed_day(res.suggested_date)
        assert not planning.is_full(res.suggested_date)
        assert res.suggested_date <= res.ideal_date


def test_add_appointment_counts():
    planning = Planning()
    planning.add_appointment(Appointment(id="a", patient_name="ALI", date="2024-03-07"))
    assert planning.daily_count("2024-03-07") == 1
    assert planning.daily_count(date(2024, 3, 7)) == 1
    assert planning.slots_left("2024-03-07") == 5
    assert planning.has_appointment_for("ali")
    assert len(planning) == 1


def test_add_appointment_rejects_full_day():
    planning = Planning(_appts("2024-03-07", 6))
    with pytest.raises(CapacityExceeded) as exc:
        planning.add_appointment(Appointment(id="x", patient_name="ALI", date="2024-03-07"))
    assert "Max 6" in str(exc.value)
    assert len(planning) == 6
    assert planning.daily_count("2024-03-07") == 6


def test_add_appointment_rejects_closed_day():
    planning = Planning()
    with pytest.raises(DayClosed):
        planning.add_appointment(Appointment(id="x", patient_name="ALI", date="2024-03-08"))
    with pytest.raises(DayClosed):
        planning.add_appointment(Appointment(id="y", patient_name="ALI", date="2024-05-01"))
    assert len(planning) == 0


def test_capacity_is_checked_before_closure():
    planning = Planning(_appts("2024-03-08", 2), max_capacity=2)
    with pytest.raises(CapacityExceeded):
        planning.add_appointment(Appointment(id="x", patient_name="ALI", date="2024-03-08"))


def test_delete_appointment():
    planning = Planning(_appts("2024-03-07", 2))
    planning.delete_appointment("inconnu")
    assert len(planning) == 2
    planning.delete_appointment("2024-03-07-0")
    assert [a.id for a in planning.appointments] == ["2024-03-07-1"]


def test_upcoming():
    planning = Planning(_appts("2024-03-11", 2) + _appts("2024-03-04", 1) + _appts("2024-03-07", 4))
    out = planning.upcoming(today="2024-03-05", limit=5)
    assert [a.date for a in out] == ["2024-03-07"] * 4 + ["2024-03-11"]
