"""
Planning des renouvellements.

Le service ``Planning`` tient l'ensemble des rendez-vous en mémoire et
applique deux règles : une capacité fixe par jour ouvré et un calendrier
de jours fermés (vendredi, samedi, fériés fixes).

La suggestion part de la date idéale (fin du traitement moins une marge
de sécurité) et recule jour par jour : le patient doit revenir avant
d'être à court de traitement, jamais après.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple, Union

from .catalog import HOLIDAYS
from .exceptions import CapacityExceeded, DayClosed
from .models import Appointment, SuggestionResult
from .policies import is_closed_day, to_date

DAY_MS = 24 * 60 * 60 * 1000

MAX_CAPACITY = 6
SAFETY_BUFFER_DAYS = 2
MAX_SEARCH_ATTEMPTS = 30

DateLike = Union[str, date, datetime]


def format_date(d: DateLike) -> str:
    """``AAAA-MM-JJ`` en heure locale (pas de conversion UTC)."""
    return to_date(d).strftime("%Y-%m-%d")


def local_datetime(timestamp_ms: Union[int, float]) -> datetime:
    return datetime.fromtimestamp(float(timestamp_ms) / 1000.0)


def ideal_date(
    last_prep_timestamp: Union[int, float],
    duration_days: int,
    safety_buffer_days: int = SAFETY_BUFFER_DAYS,
) -> date:
    """Fin du traitement moins la marge de sécurité, en jour calendaire local."""
    target = float(last_prep_timestamp) + int(duration_days) * DAY_MS - safety_buffer_days * DAY_MS
    return local_datetime(target).date()


class Planning:
    """Ensemble des rendez-vous avec contrôle de capacité et de fermeture."""

    def __init__(
        self,
        appointments: Iterable[Appointment] = (),
        max_capacity: int = MAX_CAPACITY,
        holidays: Optional[Dict[str, str]] = None,
        safety_buffer_days: int = SAFETY_BUFFER_DAYS,
        max_search_attempts: int = MAX_SEARCH_ATTEMPTS,
    ):
        self._appointments: List[Appointment] = list(appointments)
        self.max_capacity = int(max_capacity)
        self.holidays = HOLIDAYS if holidays is None else holidays
        self.safety_buffer_days = int(safety_buffer_days)
        self.max_search_attempts = int(max_search_attempts)

    @property
    def appointments(self) -> Tuple[Appointment, ...]:
        return tuple(self._appointments)

    def __len__(self) -> int:
        return len(self._appointments)

    # -----------------------
    # lecture
    # -----------------------

    def daily_count(self, d: DateLike) -> int:
        key = format_date(d)
        return sum(1 for a in self._appointments if a.date == key)

    def is_closed_day(self, d: DateLike) -> bool:
        return is_closed_day(d, self.holidays)

    def is_full(self, d: DateLike) -> bool:
        return self.daily_count(d) >= self.max_capacity

    def slots_left(self, d: DateLike) -> int:
        return self.max_capacity - self.daily_count(d)

    def appointments_on(self, d: DateLike) -> List[Appointment]:
        key = format_date(d)
        return [a for a in self._appointments if a.date == key]

    def has_appointment_for(self, patient_name: str) -> bool:
        name = (patient_name or "").upper()
        return any(a.patient_name.upper() == name for a in self._appointments)

    def upcoming(self, today: Optional[DateLike] = None, limit: int = 5) -> List[Appointment]:
        """Prochains rendez-vous (date >= aujourd'hui), par date croissante."""
        today_s = format_date(today or date.today())
        out = sorted((a for a in self._appointments if a.date >= today_s), key=lambda a: a.date)
        return out[:limit]

    # -----------------------
    # mutations
    # -----------------------

    def add_appointment(self, appt: Appointment) -> None:
        """Ajoute un rendez-vous ou lève sans rien modifier.

        Raises:
            CapacityExceeded: le jour a déjà ``max_capacity`` rendez-vous.
            DayClosed: le jour est fermé.
        """
        if self.daily_count(appt.date) >= self.max_capacity:
            raise CapacityExceeded(appt.date, self.max_capacity)
        if self.is_closed_day(appt.date):
            raise DayClosed(appt.date)
        self._appointments.append(appt)

    def delete_appointment(self, appointment_id: str) -> None:
        """Supprime par id ; sans effet si l'id est inconnu."""
        self._appointments = [a for a in self._appointments if a.id != appointment_id]

    # -----------------------
    # suggestion
    # -----------------------

    def find_best_slot(
        self,
        patient_name: Optional[str],
        molecule: Optional[str],
        duration_days: int,
        last_prep_timestamp: Union[int, float],
    ) -> SuggestionResult:
        """Cherche le jour ouvert et non complet le plus proche, à la date idéale ou avant.

        Au-delà de ``max_search_attempts`` pas, la dernière date examinée est
        rendue telle quelle (résultat dégradé, ``is_ideal=False``).
        """
        ideal = ideal_date(last_prep_timestamp, duration_days, self.safety_buffer_days)
        current = ideal
        is_ideal = True
        attempts = 0
        while (self.is_full(current) or self.is_closed_day(current)) and attempts < self.max_search_attempts:
            is_ideal = False
            current = current - timedelta(days=1)
            attempts += 1
        if attempts == 0 and (self.is_full(current) or self.is_closed_day(current)):
            is_ideal = False
        return SuggestionResult(
            ideal_date=format_date(ideal),
            suggested_date=format_date(current),
            is_ideal=is_ideal,
            slots_left=self.slots_left(current),
        )
