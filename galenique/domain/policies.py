"""
Règles métier : jours fermés, découpage en lots et validation des lignes.

Ce module regroupe les règles qui ne sont pas des formules de dosage :
- quels jours la pharmacie est fermée ;
- comment répartir une production de bicarbonate en lots de 100 gélules ;
- quand une ligne de préparation peut être enregistrée.
Toutes les fonctions sont pures.
"""

from __future__ import annotations

from datetime import date, datetime
from math import ceil
from typing import Dict, Iterable, List, Optional, Sequence

from .catalog import HOLIDAYS
from .exceptions import InvalidDate
from .models import LotSuggestions

LOT_CAPACITY = 100

# date.weekday(): lundi=0 ... vendredi=4, samedi=5
CLOSED_WEEKDAYS = frozenset({4, 5})


def to_date(d) -> date:
    """Accepte ``date``, ``datetime`` ou chaîne ``AAAA-MM-JJ``.

    Raises:
        InvalidDate: chaîne illisible.
    """
    if isinstance(d, datetime):
        return d.date()
    if isinstance(d, date):
        return d
    try:
        return date.fromisoformat(str(d).strip()[:10])
    except ValueError:
        raise InvalidDate(d) from None


def holiday_name(d, holidays: Dict[str, str] = HOLIDAYS) -> Optional[str]:
    """Nom du jour férié (clé MM-JJ) ou ``None``."""
    dd = to_date(d)
    return holidays.get(f"{dd.month:02d}-{dd.day:02d}")


def is_closed_day(d, holidays: Dict[str, str] = HOLIDAYS) -> bool:
    """Vrai si le jour est un vendredi, un samedi ou un jour férié fixe."""
    dd = to_date(d)
    if dd.weekday() in CLOSED_WEEKDAYS:
        return True
    return holiday_name(dd, holidays) is not None


# -------------------------
# Lots (bicarbonate)
# -------------------------

def split_maximize(total: int, capacity: int = LOT_CAPACITY) -> List[int]:
    """Remplit des lots pleins puis le reste : 250 -> [100, 100, 50]."""
    out: List[int] = []
    rem = int(total)
    while rem > 0:
        take = min(capacity, rem)
        out.append(take)
        rem -= take
    return out


def split_balanced(total: int, capacity: int = LOT_CAPACITY) -> List[int]:
    """Même nombre de lots, tailles équilibrées : 250 -> [84, 83, 83]."""
    total = int(total)
    if total <= 0:
        return []
    num_lots = int(ceil(total / capacity))
    base, rem = divmod(total, num_lots)
    return [base + 1 if i < rem else base for i in range(num_lots)]


def suggest_lots(total_units, capacity: int = LOT_CAPACITY) -> Optional[LotSuggestions]:
    """Propose les deux stratégies de répartition ; ``None`` si le total n'est pas positif."""
    try:
        total = int(total_units)
    except (TypeError, ValueError):
        return None
    if total <= 0:
        return None
    a = split_maximize(total, capacity)
    b = split_balanced(total, capacity)
    return LotSuggestions(maximize=tuple(a), balanced=tuple(b), identical=a == b)


def lots_sum_valid(lots: Iterable[int], total_units) -> bool:
    """Invariant : la somme des lots égale le nombre total de gélules.

    Un lot négatif invalide la ligne, même si la somme tombe juste.
    """
    quantities = [int(q) for q in lots]
    if any(q < 0 for q in quantities):
        return False
    try:
        required = int(total_units or 0)
    except (TypeError, ValueError):
        required = 0
    return sum(quantities) == required


def lot_over_limit(units: int, capacity: int = LOT_CAPACITY) -> bool:
    """Avertissement seulement : un lot au-delà de la capacité machine."""
    return int(units) > capacity


# -------------------------
# Validation (save-gate)
# -------------------------

def is_line_valid(feasible: bool, has_result: bool, reason: Optional[str] = None,
                  lots_ok: bool = True) -> bool:
    """Une ligne est enregistrable si :
    - non faisable : le motif est renseigné ;
    - faisable : le calcul a abouti et, pour le bicarbonate, la somme des lots est juste.
    """
    if not feasible:
        return bool((reason or "").strip())
    return bool(has_result) and bool(lots_ok)


def all_lines_valid(lines: Sequence) -> bool:
    return bool(lines) and all(getattr(l, "valid", False) for l in lines)


# -------------------------
# Alertes de renouvellement
# -------------------------

def renewal_severity(days_left: int) -> str:
    if days_left <= 0:
        return "red"
    if days_left <= 3:
        return "orange"
    return "yellow"


def renewal_label(days_left: int) -> str:
    if days_left <= 0:
        return f"Terminé ({abs(days_left)}j)"
    return f"Reste {days_left}j"
