# galenique/usecases/preparation_form.py
"""
Formulaire d'une ligne de préparation (état tenu par l'appelant).

Le calculateur est une fonction pure ; c'est ce formulaire qui applique
les règles de recalcul :
1) fréquence, durée, dose ou molécule modifiées → total de gélules recalculé
   (f × d, × gélules par prise pour le bicarbonate) si f et d sont positifs ;
2) molécule, dose ou total modifiés → le nombre de comprimés imposé est effacé ;
3) total ou molécule modifiés (bicarbonate) → lots réinitialisés en « équilibré ».
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from galenique.adapters.parsers import parse_int, parse_number
from galenique.config import DEFAULTS
from galenique.domain.catalog import BICARB_KEY, CAPSULE_TYPES, DRUG_MASTER
from galenique.domain.formulas import (
    compute_preparation,
    lot_fill_volume_ml,
    lot_mass_g,
    total_units,
)
from galenique.domain.models import (
    BicarbResult,
    Lot,
    LotSuggestions,
    PowderResult,
    PreparationInput,
    PreparationLine,
    TabletResult,
)
from galenique.domain.policies import (
    is_line_valid,
    lot_over_limit,
    lots_sum_valid,
    split_balanced,
    suggest_lots,
)


class PreparationForm:
    def __init__(self, drug_key: str = "", capsule_size: str = DEFAULTS.default_capsule):
        self.feasible: bool = True
        self.capsule_size: str = capsule_size
        self.reason: str = ""
        self.forced_tablet_count: Optional[float] = None
        self.lots: List[Lot] = []
        self._drug_key: str = ""
        self._target_dose: Any = None
        self._frequency: Any = None
        self._duration: Any = None
        self._total_units: Any = 14
        if drug_key:
            self.drug_key = drug_key

    # -----------------------
    # champs réactifs
    # -----------------------

    @property
    def drug_key(self) -> str:
        return self._drug_key

    @drug_key.setter
    def drug_key(self, value: str) -> None:
        self._drug_key = value or ""
        self.forced_tablet_count = None
        self._recompute_total()
        self._reset_lots()

    @property
    def target_dose(self) -> Any:
        return self._target_dose

    @target_dose.setter
    def target_dose(self, value: Any) -> None:
        self._target_dose = value
        self.forced_tablet_count = None
        self._recompute_total()

    @property
    def frequency(self) -> Any:
        return self._frequency

    @frequency.setter
    def frequency(self, value: Any) -> None:
        self._frequency = value
        self._recompute_total()

    @property
    def duration(self) -> Any:
        return self._duration

    @duration.setter
    def duration(self, value: Any) -> None:
        self._duration = value
        self._recompute_total()

    @property
    def total_units(self) -> Any:
        return self._total_units

    @total_units.setter
    def total_units(self, value: Any) -> None:
        self._set_total(value)

    def _set_total(self, value: Any) -> None:
        changed = parse_int(value) != parse_int(self._total_units)
        self._total_units = value
        if changed:
            self.forced_tablet_count = None
            self._reset_lots()

    def _recompute_total(self) -> None:
        tot = total_units(
            self._drug_key,
            parse_int(self._frequency),
            parse_int(self._duration),
            parse_number(self._target_dose),
            DEFAULTS.bicarb_capsule_capacity_mg,
        )
        if tot is not None:
            self._set_total(tot)

    # -----------------------
    # calcul
    # -----------------------

    @property
    def is_bicarb(self) -> bool:
        return self._drug_key == BICARB_KEY

    def to_input(self) -> PreparationInput:
        return PreparationInput(
            drug_key=self._drug_key or None,
            feasible=self.feasible,
            target_dose_mg=parse_number(self._target_dose),
            total_units=parse_int(self._total_units),
            capsule_size=self.capsule_size,
            forced_tablet_count=self.forced_tablet_count,
        )

    def result(self):
        return compute_preparation(
            self.to_input(), bicarb_capacity_mg=DEFAULTS.bicarb_capsule_capacity_mg
        )

    def pin_tablets(self, count: Optional[float]) -> None:
        """Choix d'une option de l'optimiseur (``None`` revient au calcul exact)."""
        self.forced_tablet_count = None if count is None else float(count)

    # -----------------------
    # lots (bicarbonate)
    # -----------------------

    def _reset_lots(self) -> None:
        if not self.is_bicarb:
            return
        total = parse_int(self._total_units)
        if total is not None and total > 0:
            self.apply_suggestion(split_balanced(total, DEFAULTS.lot_capacity))
        else:
            self.lots = []

    def lot_suggestions(self) -> Optional[LotSuggestions]:
        return suggest_lots(parse_int(self._total_units), DEFAULTS.lot_capacity)

    def apply_suggestion(self, quantities: Sequence[int]) -> None:
        self.lots = [Lot(units=int(q)) for q in quantities]

    def set_lot_units(self, lot_id: str, value: Any) -> None:
        qty = max(0, parse_int(value) or 0)
        for lot in self.lots:
            if lot.id == lot_id:
                lot.units = qty

    def add_lot(self) -> Lot:
        lot = Lot(units=0)
        self.lots.append(lot)
        return lot

    def remove_lot(self, lot_id: str) -> None:
        self.lots = [l for l in self.lots if l.id != lot_id]

    @property
    def lots_total(self) -> int:
        return sum(l.units for l in self.lots)

    @property
    def lots_valid(self) -> bool:
        if not self.is_bicarb:
            return True
        return lots_sum_valid((l.units for l in self.lots), parse_int(self._total_units))

    def lot_details(self) -> List[Dict[str, Any]]:
        """Masse (g) et volume (ml) de chaque lot, avec l'alerte de dépassement."""
        res = self.result()
        if not isinstance(res, BicarbResult):
            return []
        return [
            {
                "index": i + 1,
                "id": lot.id,
                "units": lot.units,
                "mass_g": lot_mass_g(res.content_per_capsule_mg, lot.units),
                "volume_ml": lot_fill_volume_ml(lot.units, res.fill_volume_per_capsule_ml),
                "over_limit": lot_over_limit(lot.units, DEFAULTS.lot_capacity),
            }
            for i, lot in enumerate(self.lots)
        ]

    # -----------------------
    # validation / instantané
    # -----------------------

    @property
    def valid(self) -> bool:
        return is_line_valid(self.feasible, self.result() is not None, self.reason, self.lots_valid)

    def to_line(self) -> PreparationLine:
        """Instantané finalisé de la ligne, tel qu'il sera enregistré."""
        drug = DRUG_MASTER.get(self._drug_key)
        res = self.result()
        units = parse_int(self._total_units)
        tabs = mass = real = excipient = None
        lots: tuple = ()

        if isinstance(res, TabletResult):
            tabs = round(res.final_tablet_count, 2)
            real = round(res.real_dose_mg, 2)
            excipient = round(res.excipient_volume_ml, 2)
        elif isinstance(res, PowderResult):
            mass = round(res.total_mass_g, 2)
            real = round(res.real_dose_mg, 2)
            excipient = round(res.excipient_volume_ml, 2)
        elif isinstance(res, BicarbResult):
            lots = tuple(l.units for l in self.lots)
            mass = round(sum(lot_mass_g(res.content_per_capsule_mg, q) for q in lots), 4)
            real = round(res.content_per_capsule_mg, 2)
            excipient = round(lot_fill_volume_ml(units or 0, res.fill_volume_per_capsule_ml), 2)

        capsule = self.capsule_size if self.capsule_size in CAPSULE_TYPES else None
        return PreparationLine(
            drug_key=self._drug_key,
            molecule=drug.name if drug else "",
            feasible=self.feasible,
            kind=drug.kind if drug else None,
            reason=(self.reason or "").strip() or None,
            target_dose_mg=parse_number(self._target_dose),
            capsule_size=capsule,
            total_units=units,
            duration_days=max(0, parse_int(self._duration) or 0),
            final_tablet_count=tabs,
            total_powder_mass_g=mass,
            real_dose_per_unit_mg=real,
            excipient_fill_volume_ml=excipient,
            lots=lots,
            valid=self.valid,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PreparationForm":
        """Construit un formulaire depuis un dict (fichier JSON, CLI).

        Clés reconnues : drug, feasible, capsule, dose, frequency, duration,
        units, reason, forced_tabs, lots. L'ordre d'application reproduit la
        saisie : les valeurs explicites (units, forced_tabs, lots) passent
        après les recalculs automatiques.
        """
        form = cls(capsule_size=data.get("capsule") or DEFAULTS.default_capsule)
        form.drug_key = data.get("drug") or ""
        form.feasible = bool(data.get("feasible", True))
        form.target_dose = data.get("dose")
        form.frequency = data.get("frequency")
        form.duration = data.get("duration")
        if data.get("units") is not None:
            form.total_units = data["units"]
        if data.get("forced_tabs") is not None:
            form.pin_tablets(parse_number(data["forced_tabs"]))
        if data.get("lots") is not None:
            form.apply_suggestion([max(0, parse_int(q) or 0) for q in data["lots"]])
        form.reason = data.get("reason") or ""
        return form
