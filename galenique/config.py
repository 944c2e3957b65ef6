# galenique/config.py
"""
Configuration globale et valeurs par défaut de l'assistant de préparation.
"""

import os
from dataclasses import dataclass


# Chemin par défaut de la base SQLite
DB_PATH = os.environ.get("GALENIQUE_DB") or os.path.join(os.getcwd(), "galenique.db")


@dataclass
class DefaultConfig:
    """Valeurs par défaut des paramètres du système."""
    max_capacity: int = 6                  # rendez-vous par jour ouvré
    safety_buffer_days: int = 2            # retour avant la fin du traitement
    max_search_attempts: int = 30          # pas de recherche en arrière
    lot_capacity: int = 100                # gélules par lot (machine)
    bicarb_capsule_capacity_mg: float = 250.0
    excipient_density: float = 0.65        # g/ml (mélange lactose/amidon)
    renewal_alert_days: int = 7
    default_capsule: str = "T4"


# Instance globale des valeurs par défaut
DEFAULTS = DefaultConfig()

# Clés acceptées dans la table `params` (surchargent DEFAULTS)
PARAM_KEYS = ("max_capacity", "safety_buffer_days", "max_search_attempts")
