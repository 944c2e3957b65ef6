"""
Lecture des valeurs numériques saisies par l'opérateur.

Les champs du formulaire de préparation arrivent sous forme de texte
(« 12,5 », « 30 », « »). Une saisie vide ou illisible donne ``None`` :
c'est l'état « pas encore prêt » du calculateur, pas une erreur.
"""

from __future__ import annotations

import re
from typing import Any, Optional

_NUM_RE = re.compile(r"^\s*[-+]?\d+(?:[.,]\d+)?")
_INT_RE = re.compile(r"^\s*[-+]?\d+")


def parse_number(txt: Any) -> Optional[float]:
    """Interprète un nombre décimal (virgule ou point).

    Exemples:
        "12,5"   → 12.5
        "75 mg"  → 75.0
        ""       → None
        "abc"    → None
    """
    if txt is None or isinstance(txt, bool):
        return None
    if isinstance(txt, (int, float)):
        return float(txt) if txt == txt else None
    m = _NUM_RE.match(str(txt))
    if not m:
        return None
    return float(m.group(0).strip().replace(",", "."))


def parse_int(txt: Any) -> Optional[int]:
    """Interprète un entier en tronquant la partie décimale (« 12.7 » → 12)."""
    if txt is None or isinstance(txt, bool):
        return None
    if isinstance(txt, int):
        return txt
    if isinstance(txt, float):
        return int(txt) if txt == txt else None
    m = _INT_RE.match(str(txt))
    if not m:
        return None
    return int(m.group(0))


def parse_optional_number(txt: Any, previous: Optional[float] = None) -> Optional[float]:
    """Comme ``parse_number`` mais garde ``previous`` si la saisie est vide."""
    val = parse_number(txt)
    return previous if val is None else val
