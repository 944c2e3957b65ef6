# galenique/domain/models.py
"""
Modèles (dataclasses) du domaine.

Observation importante :
- Les résultats de calcul sont immuables (``frozen=True``) : le calculateur
  est une fonction pure et renvoie un objet neuf à chaque appel.
- Les dépôts (infra) acceptent et renvoient ces dataclasses ; les
  dictionnaires restent acceptés là où c'est plus pratique (CLI, JSON).
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple


class DrugKind(str, Enum):
    TABLET = "tablet"
    POWDER = "powder"


@dataclass(frozen=True)
class Drug:
    """Molécule de référence."""
    name: str
    source_unit_mg: float        # mg par comprimé source (ignoré pour les poudres)
    secability_step: float       # plus petite fraction utilisable (0 pour les poudres)
    kind: DrugKind


@dataclass(frozen=True)
class CapsuleSize:
    label: str
    fill_volume_ml: float


@dataclass(frozen=True)
class PreparationInput:
    """Entrées du calculateur (une ligne de préparation)."""
    drug_key: Optional[str]
    feasible: bool = True
    target_dose_mg: Optional[float] = None
    total_units: Optional[int] = None
    capsule_size: str = "T4"
    forced_tablet_count: Optional[float] = None


@dataclass(frozen=True)
class TabletOption:
    tablets: float
    dose_mg: float
    diff_percent: float


@dataclass(frozen=True)
class TabletResult:
    final_tablet_count: float
    real_dose_mg: float
    excipient_volume_ml: float
    diff_percent: float
    options: Tuple[TabletOption, ...]
    capsule_label: str


@dataclass(frozen=True)
class PowderResult:
    total_mass_g: float
    excipient_volume_ml: float
    real_dose_mg: float
    capsule_label: str


@dataclass(frozen=True)
class BicarbResult:
    capsules_per_intake: int
    content_per_capsule_mg: float
    fill_volume_per_capsule_ml: float
    capsule_label: str

    @property
    def real_dose_mg(self) -> float:
        return self.content_per_capsule_mg


@dataclass(frozen=True)
class LotSuggestions:
    maximize: Tuple[int, ...]
    balanced: Tuple[int, ...]
    identical: bool


@dataclass
class Lot:
    """Un lot de production de bicarbonate (éditable par l'opérateur)."""
    units: int = 0
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


@dataclass(frozen=True)
class PreparationLine:
    """Instantané finalisé d'une ligne de préparation (tel qu'enregistré)."""
    drug_key: str
    molecule: str
    feasible: bool
    kind: Optional[DrugKind] = None
    reason: Optional[str] = None
    target_dose_mg: Optional[float] = None
    capsule_size: Optional[str] = None
    total_units: Optional[int] = None
    duration_days: int = 0
    final_tablet_count: Optional[float] = None     # comprimés uniquement
    total_powder_mass_g: Optional[float] = None    # poudres (bicarbonate : somme des lots)
    real_dose_per_unit_mg: Optional[float] = None
    excipient_fill_volume_ml: Optional[float] = None
    lots: Tuple[int, ...] = ()
    valid: bool = False


@dataclass(frozen=True)
class HistoryLog:
    """Une visite finalisée ; jamais modifiée après l'ajout."""
    date: str                   # JJ/MM/AAAA
    timestamp: int              # millisecondes epoch
    doctor: str
    preparator_names: Tuple[str, ...]
    preps: Tuple[PreparationLine, ...]

    @property
    def max_duration(self) -> int:
        return max((p.duration_days or 0 for p in self.preps), default=0)


@dataclass
class Patient:
    """Patient identifié par son nom normalisé (clé naturelle) et un id interne."""
    name: str
    phone: Optional[str] = None
    age: Optional[float] = None
    weight: Optional[float] = None
    last_update: int = 0
    history: List[HistoryLog] = field(default_factory=list)
    id: Optional[int] = None

    def latest_log(self) -> Optional[HistoryLog]:
        if not self.history:
            return None
        return max(self.history, key=lambda h: h.timestamp)


@dataclass(frozen=True)
class Appointment:
    id: str
    patient_name: str
    date: str                   # AAAA-MM-JJ (heure locale)
    status: str = "confirmed"   # 'confirmed' | 'pending'
    molecule: str = ""          # texte libre (souvent un numéro de téléphone)
    patient_id: Optional[str] = None


@dataclass(frozen=True)
class SuggestionResult:
    ideal_date: str
    suggested_date: str
    is_ideal: bool
    slots_left: int
