# galenique/usecases/record_preparation.py
"""
CU : Enregistrer une visite (patient + lignes de préparation).

Flux :
1) Contrôle d'enregistrement : nom requis, au moins une ligne, toutes valides.
2) Normalisation du nom (clé naturelle) et recherche du patient.
3) Création, ou mise à jour de téléphone / âge / poids / dernière mise à jour.
4) Ajout d'une nouvelle visite (jamais modifiée ensuite).
"""
from __future__ import annotations

import json
import time
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from galenique.adapters.parsers import parse_number, parse_optional_number
from galenique.config import DB_PATH
from galenique.domain.exceptions import IncompletePreparation
from galenique.domain.models import HistoryLog, Patient, PreparationLine
from galenique.domain.policies import all_lines_valid
from galenique.infra.migrations import apply_migrations
from galenique.infra.repositories import PatientRepo, normalize_name
from galenique.infra.logger import (
    log_transaction, log_preparation, log_database_operation,
    log_system_event, log_file_operation, print_system,
)
from galenique.usecases.preparation_form import PreparationForm


def _now_ms() -> int:
    return int(time.time() * 1000)


def _check_visit(name: str, lines: Sequence[PreparationLine]) -> None:
    if not name:
        raise IncompletePreparation("Nom du patient requis.")
    if not lines:
        raise IncompletePreparation("Aucune préparation à enregistrer.")
    if not all_lines_valid(lines):
        raise IncompletePreparation(
            "Veuillez compléter toutes les lignes de préparation (ou indiquer un motif)."
        )


def add_preparation(
    patient_info: Dict[str, Any],
    team: Sequence[str],
    lines: Sequence[PreparationLine],
    db_path: str = DB_PATH,
    now_ms: Optional[int] = None,
) -> Patient:
    """Enregistre une visite et renvoie le patient à jour (historique compris).

    Args:
        patient_info: dict avec ``name``, ``phone``, ``age``, ``weight``, ``doctor``
            (valeurs texte acceptées ; âge/poids vides conservent l'existant).
        team: préparateurs présents.
        lines: lignes finalisées (``PreparationForm.to_line()``).

    Raises:
        IncompletePreparation: si le contrôle d'enregistrement échoue.
    """
    name = normalize_name(patient_info.get("name"))
    log_system_event("add_preparation_start", {"patient": name, "lines": len(lines)})

    try:
        print_system("=== Enregistrer une visite ===")
        _check_visit(name, lines)
        apply_migrations(db_path)

        ts = now_ms if now_ms is not None else _now_ms()
        log = HistoryLog(
            date=datetime.fromtimestamp(ts / 1000).strftime("%d/%m/%Y"),
            timestamp=ts,
            doctor=(patient_info.get("doctor") or "").strip(),
            preparator_names=tuple(team),
            preps=tuple(lines),
        )

        repo = PatientRepo(db_path)
        existing = repo.find_by_name(name)
        phone = (patient_info.get("phone") or "").strip() or None
        if existing is not None:
            patient = Patient(
                id=existing.id,
                name=existing.name,
                phone=phone,
                age=parse_optional_number(patient_info.get("age"), existing.age),
                weight=parse_optional_number(patient_info.get("weight"), existing.weight),
                last_update=ts,
            )
            action = "UPDATE"
        else:
            patient = Patient(
                name=name,
                phone=phone,
                age=parse_number(patient_info.get("age")),
                weight=parse_number(patient_info.get("weight")),
                last_update=ts,
            )
            action = "CREATE"

        patient_id = repo.record_visit(patient, log)
        log_database_operation("patient", action, 1, patient=name)
        log_database_operation("history_log", "INSERT", 1, patient=name, lines=len(lines))
        for line in lines:
            log_preparation("saved", name, line.molecule, feasible=line.feasible,
                            units=line.total_units, real_dose=line.real_dose_per_unit_mg)

        saved = repo.find_by_name(name)
        print_system(">> Visite enregistrée.")
        log_transaction("add_preparation", {"patient": name, "team": list(team)},
                        result={"patient_id": patient_id, "history": len(saved.history)})
        log_system_event("add_preparation_success", {"patient": name})
        return saved

    except Exception as e:
        log_transaction("add_preparation", {"patient": name}, error=str(e))
        log_system_event("add_preparation_error", {"patient": name, "error": str(e)}, level="error")
        raise


def load_visit_file(path: str) -> Dict[str, Any]:
    """Lit un fichier JSON de visite et calcule chaque ligne.

    Format::

        {"patient": {"name": ..., "phone": ..., "age": ..., "weight": ..., "doctor": ...},
         "team": ["Dr ..."],
         "lines": [{"drug": "prop", "dose": 10, "frequency": 2, "duration": 30, ...}]}
    """
    log_file_operation("import", path)
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    lines: List[PreparationLine] = [PreparationForm.from_dict(d).to_line() for d in data.get("lines", [])]
    log_file_operation("import", path, rows_processed=len(lines))
    return {"patient": data.get("patient") or {}, "team": data.get("team") or [], "lines": lines}


def run_visit_file(path: str, db_path: str = DB_PATH) -> Patient:
    """Charge un fichier de visite puis l'enregistre."""
    visit = load_visit_file(path)
    return add_preparation(visit["patient"], visit["team"], visit["lines"], db_path=db_path)
