"""
Exceptions du domaine.

Le calculateur ne lève jamais : une saisie incomplète donne ``None``.
Seules les mutations (prise de rendez-vous, enregistrement) rejettent.
"""


class GaleniqueError(Exception):
    """Base de toutes les erreurs présentables à l'opérateur."""


class SchedulingError(GaleniqueError):
    pass


class CapacityExceeded(SchedulingError):
    def __init__(self, date: str, max_capacity: int):
        self.date = date
        self.max_capacity = max_capacity
        super().__init__(f"Ce jour est complet (Max {max_capacity} patients).")


class DayClosed(SchedulingError):
    def __init__(self, date: str):
        self.date = date
        super().__init__("Impossible : La pharmacie est fermée ce jour-là.")


class IncompletePreparation(GaleniqueError):
    """Rejet de l'enregistrement : nom manquant, aucune ligne ou ligne invalide."""


class PatientNotFound(GaleniqueError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Patient introuvable : {name}")


class InvalidDate(SchedulingError):
    def __init__(self, value):
        self.value = value
        super().__init__(f"Date invalide : {value!r} (format attendu AAAA-MM-JJ).")
