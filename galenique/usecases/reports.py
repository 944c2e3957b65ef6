# galenique/usecases/reports.py
"""
Rapports :
- statistiques de production du mois en cours
- tableau de bord (activité, préparateurs, alertes de renouvellement, prochains rendez-vous)

Les calculs (``compute_*``) travaillent sur des listes de patients déjà
chargées ; les fonctions ``report_*`` lisent la base puis délèguent.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime
from math import ceil, floor
from typing import Any, Dict, Iterable, List, Optional, Sequence

from galenique.config import DB_PATH, DEFAULTS
from galenique.domain.catalog import CAPSULE_TYPES
from galenique.domain.formulas import excipient_mass_g
from galenique.domain.models import Appointment, Patient
from galenique.domain.planning import DAY_MS, Planning, local_datetime
from galenique.domain.policies import renewal_label, renewal_severity
from galenique.infra.migrations import apply_migrations
from galenique.infra.repositories import AppointmentRepo, PatientRepo
from galenique.infra.logger import log_system_event, log_database_operation


MONTHS_FR = [
    "janvier", "février", "mars", "avril", "mai", "juin",
    "juillet", "août", "septembre", "octobre", "novembre", "décembre",
]


# ----------------------
# util
# ----------------------

def _round_half_up(x: float) -> int:
    return int(floor(x + 0.5))


def _same_month(ts_ms: int, now: datetime) -> bool:
    d = local_datetime(ts_ms)
    return d.year == now.year and d.month == now.month


def month_label(now: datetime) -> str:
    return f"{MONTHS_FR[now.month - 1]} {now.year}".upper()


# ----------------------
# 1) Production du mois
# ----------------------

def compute_production_stats(
    patients: Iterable[Patient],
    now: Optional[datetime] = None,
    density: float = DEFAULTS.excipient_density,
    top_n: int = 5,
) -> Dict[str, Any]:
    now = now or datetime.now()
    default_capsule = CAPSULE_TYPES[DEFAULTS.default_capsule]

    total_capsules = 0
    total_excipient = 0.0
    total_preps = 0
    distinct_patients = set()
    active_days = set()
    molecules: Counter = Counter()

    for p in patients:
        for h in p.history:
            if not _same_month(h.timestamp, now):
                continue
            active_days.add(local_datetime(h.timestamp).date())
            distinct_patients.add(p.name)
            for prep in h.preps:
                if not prep.feasible:
                    continue
                total_preps += 1
                molecules[prep.molecule] += 1
                units = int(prep.total_units or 0)
                if units > 0:
                    total_capsules += units
                    cap = CAPSULE_TYPES.get(prep.capsule_size or "", default_capsule)
                    total_excipient += excipient_mass_g(
                        cap.fill_volume_ml, units, prep.real_dose_per_unit_mg or 0.0, density
                    )

    days = len(active_days) or 1
    return {
        "month_label": month_label(now),
        "total_excipient_mass_g": total_excipient,
        "total_capsules": total_capsules,
        "unique_patients": len(distinct_patients),
        "total_preps": total_preps,
        "working_days": days,
        "cadence": _round_half_up(total_capsules / days),
        "patient_yield": round(len(distinct_patients) / days, 1),
        "excipient_flow_g": round(total_excipient / days, 1),
        "top_molecules": molecules.most_common(top_n),
    }


def report_production(db_path: str = DB_PATH, now: Optional[datetime] = None) -> Dict[str, Any]:
    log_system_event("report_production_start", {"db_path": db_path})
    apply_migrations(db_path)
    patients = PatientRepo(db_path).get_all()
    log_database_operation("patient", "SELECT_ALL", len(patients))
    res = compute_production_stats(patients, now)
    log_system_event("report_production_done", {"capsules": res["total_capsules"], "days": res["working_days"]})
    return res


# ----------------------
# 2) Alertes de renouvellement
# ----------------------

def renewal_alerts(
    patients: Iterable[Patient],
    now: Optional[datetime] = None,
    alert_days: int = DEFAULTS.renewal_alert_days,
) -> List[Dict[str, Any]]:
    """Patients dont le traitement se termine dans ``alert_days`` jours ou moins."""
    now_ms = int((now or datetime.now()).timestamp() * 1000)
    alerts: List[Dict[str, Any]] = []
    for p in patients:
        latest = p.latest_log()
        if latest is None:
            continue
        duration = latest.max_duration
        if duration <= 0:
            continue
        remaining = duration * DAY_MS - (now_ms - latest.timestamp)
        days_left = int(ceil(remaining / DAY_MS))
        if days_left > alert_days:
            continue
        alerts.append({
            "patient": p.name,
            "molecule": latest.preps[0].molecule if latest.preps else "",
            "days_left": days_left,
            "severity": renewal_severity(days_left),
            "label": renewal_label(days_left),
            "last_prep_timestamp": latest.timestamp,
            "duration": duration,
        })
    alerts.sort(key=lambda a: a["days_left"])
    return alerts


def active_alerts(alerts: Sequence[Dict[str, Any]], appointments: Iterable[Appointment]) -> List[Dict[str, Any]]:
    """Masque les alertes des patients qui ont déjà un rendez-vous."""
    planning = Planning(appointments)
    return [a for a in alerts if not planning.has_appointment_for(a["patient"])]


# ----------------------
# 3) Tableau de bord
# ----------------------

def compute_dashboard(
    patients: Sequence[Patient],
    appointments: Sequence[Appointment],
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    now = now or datetime.now()
    today_fr = now.strftime("%d/%m/%Y")

    month_preps = 0
    today_preps = 0
    month_capsules = 0
    preparators: Counter = Counter()
    activity: List[Dict[str, Any]] = []

    for p in patients:
        for h in p.history:
            if _same_month(h.timestamp, now):
                month_preps += len(h.preps)
                month_capsules += sum(int(pr.total_units or 0) for pr in h.preps if pr.feasible)
            if h.date == today_fr:
                today_preps += len(h.preps)
            preparators.update(h.preparator_names)
            activity.append({
                "id": f"{p.name}-{h.timestamp}",
                "patient": p.name,
                "timestamp": h.timestamp,
                "preparators": list(h.preparator_names),
                "molecules": [
                    {"name": pr.molecule, "feasible": pr.feasible,
                     "type": pr.kind.value if pr.kind else None, "total_mass": pr.total_powder_mass_g}
                    for pr in h.preps
                ],
            })

    activity.sort(key=lambda a: a["timestamp"], reverse=True)
    upcoming = Planning(appointments).upcoming(now, limit=5)

    return {
        "total_patients": len(patients),
        "month_preps": month_preps,
        "today_preps": today_preps,
        "month_capsules": month_capsules,
        "top_preparators": preparators.most_common(3),
        "recent_activity": activity[:10],
        "renewal_alerts": active_alerts(renewal_alerts(patients, now), appointments),
        "upcoming_appointments": upcoming,
    }


def report_dashboard(db_path: str = DB_PATH, now: Optional[datetime] = None) -> Dict[str, Any]:
    log_system_event("report_dashboard_start", {"db_path": db_path})
    apply_migrations(db_path)
    patients = PatientRepo(db_path).get_all()
    appointments = AppointmentRepo(db_path).get_all()
    log_database_operation("patient", "SELECT_ALL", len(patients))
    log_database_operation("appointment", "SELECT_ALL", len(appointments))
    return compute_dashboard(patients, appointments, now)
