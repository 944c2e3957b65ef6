# galenique/domain/catalog.py
"""
Données de référence (immuables à l'exécution).

- DRUG_MASTER:    molécules disponibles (comprimé ou poudre)
- CAPSULE_TYPES:  tailles de gélules et volume interne (ml)
- HOLIDAYS:       jours fériés fixes (MM-JJ), indépendants de l'année
- PREPARATORS:    équipe de préparation

Obs.: les fêtes religieuses sont approximées par des dates fixes ; elles
seront fausses les autres années. Un fournisseur de calendrier lunaire
peut remplacer HOLIDAYS en gardant le contrat ``is_closed_day``.
"""

from __future__ import annotations

from typing import Dict

from .models import CapsuleSize, Drug, DrugKind


BICARB_KEY = "bicarb"

DRUG_MASTER: Dict[str, Drug] = {
    "amox": Drug("Amoxicilline", 500, 0.5, DrugKind.TABLET),
    "prop": Drug("Propranolol", 40, 0.5, DrugKind.TABLET),
    "furo": Drug("Furosémide", 40, 0.5, DrugKind.TABLET),
    "spiro": Drug("Spironolactone", 25, 1.0, DrugKind.TABLET),
    "captopril": Drug("Captopril", 25, 0.25, DrugKind.TABLET),
    "amlo": Drug("Amlodipine", 5, 0.5, DrugKind.TABLET),
    "hydro": Drug("Hydrochlorothiazide", 25, 0.5, DrugKind.TABLET),
    "aten100": Drug("Aténolol 100mg", 100, 0.5, DrugKind.TABLET),
    "carv25": Drug("Carvédilol 25mg", 25, 0.5, DrugKind.TABLET),
    "carv12": Drug("Carvédilol 12.5mg", 12.5, 0.5, DrugKind.TABLET),
    "carv6": Drug("Carvédilol 6.25mg", 6.25, 0.5, DrugKind.TABLET),
    "carv3": Drug("Carvédilol 3.125mg", 3.125, 0.5, DrugKind.TABLET),
    "biso10": Drug("Bisoprolol 10mg", 10, 0.5, DrugKind.TABLET),
    "biso5": Drug("Bisoprolol 5mg", 5, 0.5, DrugKind.TABLET),
    "val80": Drug("Valsartan 80mg", 80, 0.5, DrugKind.TABLET),
    "val160": Drug("Valsartan 160mg", 160, 0.5, DrugKind.TABLET),
    "val320": Drug("Valsartan 320mg", 320, 0.5, DrugKind.TABLET),
    # Poudres
    BICARB_KEY: Drug("Bicarbonate de Sodium", 1, 0, DrugKind.POWDER),
}

CAPSULE_TYPES: Dict[str, CapsuleSize] = {
    "T0": CapsuleSize("Taille 0", 0.68),
    "T1": CapsuleSize("Taille 1", 0.50),
    "T2": CapsuleSize("Taille 2", 0.37),
    "T3": CapsuleSize("Taille 3", 0.30),
    "T4": CapsuleSize("Taille 4", 0.21),
}

HOLIDAYS: Dict[str, str] = {
    "01-01": "Nouvel An",
    "01-12": "Yennayer",
    "05-01": "Fête du Travail",
    "07-05": "Indépendance",
    "11-01": "Révolution",
    # Fêtes religieuses approximées (2024/2025)
    "04-10": "Aïd el-Fitr",
    "06-16": "Aïd el-Adha",
    "07-07": "Mouharram",
    "09-15": "Mawlid",
}

PREPARATORS = [
    "Dr Hellali Djaafar Hamza",
    "Dr Slimatni Souad",
    "Dr Bourouba Saoucen",
    "Dr Moussaoui Meriem",
    "Dr Amirouche Nada",
    "Dr Mokhtari Fatma zahra",
    "Dr Tirichine Amina",
]


def drug_label(key: str) -> str:
    """Libellé d'affichage : ajoute le dosage source ou « (Poudre) »."""
    d = DRUG_MASTER[key]
    if d.kind is DrugKind.POWDER:
        return f"{d.name} (Poudre)"
    unit = f"{d.source_unit_mg:g}mg"
    return d.name if unit in d.name else f"{d.name} ({unit})"
