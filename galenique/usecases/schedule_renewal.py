# galenique/usecases/schedule_renewal.py
"""
CU : Planning des renouvellements.

- load_planning:      charge les rendez-vous et les paramètres dans un ``Planning``
- suggest_renewal:    propose une date à partir de la dernière visite du patient
- book_appointment:   ajoute un rendez-vous (capacité et fermeture recontrôlées)
- cancel_appointment: supprime un rendez-vous (sans effet si absent)
- day_view:           état d'un jour (rendez-vous, compteur, fermeture)

Le ``Planning`` est reconstruit depuis la base à chaque appel : le contrôle
de capacité porte toujours sur l'ensemble lu juste avant l'écriture.
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional

from galenique.config import DB_PATH, DEFAULTS
from galenique.domain.exceptions import PatientNotFound, SchedulingError
from galenique.domain.models import Appointment
from galenique.domain.planning import Planning, format_date
from galenique.domain.policies import holiday_name
from galenique.infra.migrations import apply_migrations
from galenique.infra.repositories import (
    AppointmentRepo,
    ParamsRepo,
    PatientRepo,
    normalize_name,
)
from galenique.infra.logger import (
    log_transaction, log_planning, log_database_operation, log_system_event,
)


def load_planning(db_path: str = DB_PATH) -> Planning:
    """Construit le service de planning avec les paramètres effectifs."""
    apply_migrations(db_path)
    params = ParamsRepo(db_path)
    appts = AppointmentRepo(db_path).get_all()
    log_database_operation("appointment", "SELECT_ALL", len(appts))
    return Planning(
        appts,
        max_capacity=params.get_int("max_capacity", DEFAULTS.max_capacity),
        safety_buffer_days=params.get_int("safety_buffer_days", DEFAULTS.safety_buffer_days),
        max_search_attempts=params.get_int("max_search_attempts", DEFAULTS.max_search_attempts),
    )


def suggest_renewal(patient_name: str, db_path: str = DB_PATH) -> Dict[str, Any]:
    """Suggestion de rendez-vous à partir de la visite la plus récente.

    Durée retenue : la plus longue des lignes de la visite ; molécule : celle
    de la première ligne.

    Raises:
        PatientNotFound: nom inconnu.
        SchedulingError: aucune durée de traitement sur la dernière visite.
    """
    name = normalize_name(patient_name)
    planning = load_planning(db_path)
    patient = PatientRepo(db_path).find_by_name(name)
    if patient is None:
        raise PatientNotFound(name)
    latest = patient.latest_log()
    duration = latest.max_duration if latest else 0
    if duration <= 0:
        raise SchedulingError(f"Aucune durée de traitement pour {name}.")
    molecule = latest.preps[0].molecule if latest.preps else ""

    res = planning.find_best_slot(name, molecule, duration, latest.timestamp)
    log_planning("suggest", res.suggested_date, name, ideal=res.ideal_date, is_ideal=res.is_ideal)
    return {
        "patient": name,
        "molecule": molecule,
        "duration": duration,
        "last_prep_timestamp": latest.timestamp,
        "suggestion": res,
    }


def book_appointment(
    patient_name: str,
    date: str,
    molecule: str = "",
    status: str = "confirmed",
    db_path: str = DB_PATH,
    appointment_id: Optional[str] = None,
) -> Appointment:
    """Ajoute un rendez-vous à la date choisie (jamais déplacé automatiquement).

    Raises:
        CapacityExceeded, DayClosed: rejet sans modification.
    """
    name = normalize_name(patient_name)
    appt = Appointment(
        id=appointment_id or uuid.uuid4().hex,
        patient_name=name,
        date=format_date(date),
        status=status,
        molecule=molecule or "",
        patient_id=name,
    )
    try:
        planning = load_planning(db_path)
        planning.add_appointment(appt)
        AppointmentRepo(db_path).insert(appt)
        log_database_operation("appointment", "INSERT", 1, id=appt.id)
        log_planning("add", appt.date, name, id=appt.id)
        log_transaction("book_appointment", {"patient": name, "date": appt.date}, result=appt.id)
        return appt
    except SchedulingError as e:
        log_planning("rejected", appt.date, name, reason=str(e))
        log_transaction("book_appointment", {"patient": name, "date": appt.date}, error=str(e))
        raise


def cancel_appointment(appointment_id: str, db_path: str = DB_PATH) -> bool:
    """Supprime par id ; renvoie False si l'id n'existait pas."""
    apply_migrations(db_path)
    n = AppointmentRepo(db_path).delete(appointment_id)
    log_database_operation("appointment", "DELETE", n, id=appointment_id)
    log_planning("delete", None, None, id=appointment_id, found=bool(n))
    return n > 0


def list_appointments(date: Optional[str] = None, db_path: str = DB_PATH) -> List[Appointment]:
    apply_migrations(db_path)
    repo = AppointmentRepo(db_path)
    return repo.list_by_date(format_date(date)) if date else repo.get_all()


def day_view(date: str, db_path: str = DB_PATH) -> Dict[str, Any]:
    """Rendez-vous du jour avec compteur, fermeture et nom du férié."""
    planning = load_planning(db_path)
    day = format_date(date)
    count = planning.daily_count(day)
    log_system_event("day_view", {"date": day, "count": count})
    return {
        "date": day,
        "appointments": planning.appointments_on(day),
        "count": count,
        "max_capacity": planning.max_capacity,
        "closed": planning.is_closed_day(day),
        "holiday": holiday_name(day, planning.holidays),
        "full": planning.is_full(day),
    }
