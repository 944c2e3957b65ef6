# galenique/infra/repositories.py
"""
Dépôts (DAO) d'accès aux données SQLite.

Classes:
- ParamsRepo
- PatientRepo      (patients + visites + lignes de préparation)
- AppointmentRepo

Les visites sont en ajout seul : aucune méthode ne modifie ni ne supprime
un ``history_log`` ou une ``preparation`` existants.
"""

from __future__ import annotations

import json
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .db import connect
from galenique.domain.models import (
    Appointment,
    DrugKind,
    HistoryLog,
    Patient,
    PreparationLine,
)


# -------------------------
# Helpers
# -------------------------

def normalize_name(name: Optional[str]) -> str:
    """Clé naturelle du patient : nom sans espaces de bord, en majuscules."""
    return (name or "").strip().upper()


def _line_to_row(line: PreparationLine, history_id: int, position: int) -> Dict[str, Any]:
    return {
        "history_id": history_id,
        "position": position,
        "drug_key": line.drug_key,
        "molecule": line.molecule,
        "status": "ok" if line.feasible else "ko",
        "type": line.kind.value if line.kind else None,
        "reason": line.reason,
        "target_dose": line.target_dose_mg,
        "real_dose": line.real_dose_per_unit_mg,
        "tabs": line.final_tablet_count,
        "total_mass": line.total_powder_mass_g,
        "gels": line.total_units,
        "capsule": line.capsule_size,
        "duration": line.duration_days,
        "lots": json.dumps(list(line.lots)) if line.lots else None,
        "excipient_ml": line.excipient_fill_volume_ml,
    }


def _row_to_line(r: Dict[str, Any]) -> PreparationLine:
    lots = tuple(json.loads(r["lots"])) if r.get("lots") else ()
    return PreparationLine(
        drug_key=r.get("drug_key") or "",
        molecule=r.get("molecule") or "",
        feasible=r.get("status") == "ok",
        kind=DrugKind(r["type"]) if r.get("type") else None,
        reason=r.get("reason"),
        target_dose_mg=r.get("target_dose"),
        capsule_size=r.get("capsule"),
        total_units=r.get("gels"),
        duration_days=int(r.get("duration") or 0),
        final_tablet_count=r.get("tabs"),
        total_powder_mass_g=r.get("total_mass"),
        real_dose_per_unit_mg=r.get("real_dose"),
        excipient_fill_volume_ml=r.get("excipient_ml"),
        lots=lots,
        valid=True,
    )


def _rows(cur) -> List[Dict[str, Any]]:
    cols = [d[0] for d in cur.description]
    return [dict(zip(cols, row)) for row in cur.fetchall()]


# -------------------------
# Params
# -------------------------

class ParamsRepo:
    def __init__(self, db_path: str):
        self.db_path = db_path

    def set_many(self, items: Iterable[Tuple[str, str]]) -> None:
        with connect(self.db_path) as c:
            c.executemany(
                """
                INSERT INTO params (name, value)
                VALUES (?, ?)
                ON CONFLICT(name) DO UPDATE SET value=excluded.value
                """,
                list(items),
            )

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        with connect(self.db_path) as c:
            row = c.execute("SELECT value FROM params WHERE name = ?", (key,)).fetchone()
            return row[0] if row else default

    def get_int(self, key: str, default: int) -> int:
        v = self.get(key, None)
        if v is None:
            return default
        try:
            return int(float(v))
        except ValueError:
            return default


# -------------------------
# Patients
# -------------------------

class PatientRepo:
    def __init__(self, db_path: str):
        self.db_path = db_path

    def _load(self, c, where: str = "", args: tuple = ()) -> List[Patient]:
        patients = _rows(c.execute(
            f"SELECT id, name, phone, age, weight, last_update FROM patient {where} ORDER BY name", args
        ))
        if not patients:
            return []
        ids = [p["id"] for p in patients]
        marks = ",".join("?" for _ in ids)
        logs = _rows(c.execute(
            f"""SELECT id, patient_id, date, timestamp, doctor, preparators
                FROM history_log WHERE patient_id IN ({marks}) ORDER BY id""",
            ids,
        ))
        lines_by_log: Dict[int, List[PreparationLine]] = defaultdict(list)
        if logs:
            log_ids = [l["id"] for l in logs]
            lmarks = ",".join("?" for _ in log_ids)
            for r in _rows(c.execute(
                f"SELECT * FROM preparation WHERE history_id IN ({lmarks}) ORDER BY history_id, position",
                log_ids,
            )):
                lines_by_log[r["history_id"]].append(_row_to_line(r))
        logs_by_patient: Dict[int, List[HistoryLog]] = defaultdict(list)
        for l in logs:
            logs_by_patient[l["patient_id"]].append(HistoryLog(
                date=l["date"],
                timestamp=int(l["timestamp"]),
                doctor=l["doctor"] or "",
                preparator_names=tuple(json.loads(l["preparators"] or "[]")),
                preps=tuple(lines_by_log[l["id"]]),
            ))
        return [
            Patient(
                id=p["id"],
                name=p["name"],
                phone=p["phone"],
                age=p["age"],
                weight=p["weight"],
                last_update=int(p["last_update"] or 0),
                history=logs_by_patient[p["id"]],
            )
            for p in patients
        ]

    def get_all(self) -> List[Patient]:
        with connect(self.db_path) as c:
            return self._load(c)

    def find_by_name(self, name: str) -> Optional[Patient]:
        with connect(self.db_path) as c:
            found = self._load(c, "WHERE name = ?", (normalize_name(name),))
        return found[0] if found else None

    def search(self, fragment: str) -> List[Patient]:
        """Patients dont le nom normalisé contient ``fragment``."""
        with connect(self.db_path) as c:
            return self._load(c, "WHERE instr(name, ?) > 0", (normalize_name(fragment),))

    def record_visit(self, patient: Patient, log: HistoryLog) -> int:
        """Crée ou met à jour le patient puis ajoute la visite, dans une seule transaction.

        Returns:
            L'id interne du patient.
        """
        with connect(self.db_path) as c:
            if patient.id is None:
                cur = c.execute(
                    """INSERT INTO patient (name, phone, age, weight, last_update)
                       VALUES (?, ?, ?, ?, ?)""",
                    (patient.name, patient.phone, patient.age, patient.weight, patient.last_update),
                )
                patient_id = cur.lastrowid
            else:
                patient_id = patient.id
                c.execute(
                    """UPDATE patient SET phone = ?, age = ?, weight = ?, last_update = ?
                       WHERE id = ?""",
                    (patient.phone, patient.age, patient.weight, patient.last_update, patient_id),
                )
            cur = c.execute(
                """INSERT INTO history_log (patient_id, date, timestamp, doctor, preparators)
                   VALUES (?, ?, ?, ?, ?)""",
                (patient_id, log.date, log.timestamp, log.doctor,
                 json.dumps(list(log.preparator_names), ensure_ascii=False)),
            )
            history_id = cur.lastrowid
            rows = [_line_to_row(line, history_id, i) for i, line in enumerate(log.preps)]
            if rows:
                keys = list(rows[0].keys())
                c.executemany(
                    f"INSERT INTO preparation ({','.join(keys)}) VALUES ({','.join(':' + k for k in keys)})",
                    rows,
                )
        return patient_id


# -------------------------
# Rendez-vous
# -------------------------

class AppointmentRepo:
    def __init__(self, db_path: str):
        self.db_path = db_path

    @staticmethod
    def _to_appt(r: Dict[str, Any]) -> Appointment:
        return Appointment(
            id=r["id"],
            patient_name=r["patient_name"],
            date=r["date"],
            status=r.get("status") or "confirmed",
            molecule=r.get("molecule") or "",
            patient_id=r.get("patient_id"),
        )

    def get_all(self) -> List[Appointment]:
        with connect(self.db_path) as c:
            cur = c.execute(
                "SELECT id, patient_name, date, status, molecule, patient_id FROM appointment ORDER BY date, rowid"
            )
            return [self._to_appt(r) for r in _rows(cur)]

    def list_by_date(self, date: str) -> List[Appointment]:
        with connect(self.db_path) as c:
            cur = c.execute(
                """SELECT id, patient_name, date, status, molecule, patient_id
                   FROM appointment WHERE date = ? ORDER BY rowid""",
                (date,),
            )
            return [self._to_appt(r) for r in _rows(cur)]

    def insert(self, appt: Appointment) -> None:
        with connect(self.db_path) as c:
            c.execute(
                """INSERT INTO appointment (id, patient_name, date, status, molecule, patient_id)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (appt.id, appt.patient_name, appt.date, appt.status, appt.molecule, appt.patient_id),
            )

    def delete(self, appointment_id: str) -> int:
        with connect(self.db_path) as c:
            return c.execute("DELETE FROM appointment WHERE id = ?", (appointment_id,)).rowcount
