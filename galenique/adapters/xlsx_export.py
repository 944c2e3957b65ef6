# galenique/adapters/xlsx_export.py
"""
Export de l'historique des préparations vers XLSX.

Une ligne par ligne de préparation finalisée, avec les informations du
patient et de la visite. L'écriture passe par pandas (moteur openpyxl).
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List

import pandas as pd

from galenique.domain.models import Patient

COLUMNS = [
    "patient", "telephone", "age", "poids", "date", "timestamp", "medecin",
    "preparateurs", "molecule", "faisable", "motif", "type", "dose_cible_mg",
    "dose_reelle_mg", "comprimes", "masse_g", "gelules", "gelule", "duree_j", "lots",
]


def history_rows(patients: Iterable[Patient]) -> List[Dict[str, Any]]:
    """Aplatit les historiques : une entrée par ligne de préparation."""
    rows: List[Dict[str, Any]] = []
    for p in patients:
        for h in p.history:
            for prep in h.preps:
                rows.append({
                    "patient": p.name,
                    "telephone": p.phone,
                    "age": p.age,
                    "poids": p.weight,
                    "date": h.date,
                    "timestamp": h.timestamp,
                    "medecin": h.doctor,
                    "preparateurs": ", ".join(h.preparator_names),
                    "molecule": prep.molecule,
                    "faisable": "OUI" if prep.feasible else "NON",
                    "motif": prep.reason,
                    "type": prep.kind.value if prep.kind else None,
                    "dose_cible_mg": prep.target_dose_mg,
                    "dose_reelle_mg": prep.real_dose_per_unit_mg,
                    "comprimes": prep.final_tablet_count,
                    "masse_g": prep.total_powder_mass_g,
                    "gelules": prep.total_units,
                    "gelule": prep.capsule_size,
                    "duree_j": prep.duration_days,
                    "lots": "/".join(str(q) for q in prep.lots) or None,
                })
    return rows


def history_dataframe(patients: Iterable[Patient]) -> pd.DataFrame:
    df = pd.DataFrame(history_rows(patients), columns=COLUMNS)
    if not df.empty:
        df = df.sort_values(["timestamp", "patient"], kind="stable").reset_index(drop=True)
    return df


def export_history_xlsx(patients: Iterable[Patient], path: str) -> int:
    """Écrit l'historique dans ``path`` et renvoie le nombre de lignes."""
    df = history_dataframe(patients)
    df.to_excel(path, index=False, sheet_name="Historique")
    return len(df)
