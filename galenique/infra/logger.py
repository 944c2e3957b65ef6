"""
Journalisation des opérations de l'officine.

Ce module configure et fournit les loggers qui tracent les opérations
critiques : enregistrement des préparations, prise et annulation de
rendez-vous, accès à la base et événements système.

Le cœur de calcul (``galenique.domain``) ne journalise jamais ; seuls les
cas d'usage et l'infra appellent ces fonctions.
"""

import logging
import os
from pathlib import Path
from typing import Dict, Any, Optional


# Drapeau global pour activer/désactiver la journalisation
ENABLE_LOGGING = os.environ.get("GALENIQUE_LOGGING", "0") not in ("", "0", "false")
# Drapeau global pour activer/désactiver les sorties console
ENABLE_OUTPUT = False


def print_system(*args, **kwargs):
    """print contrôlé par ENABLE_OUTPUT."""
    if ENABLE_OUTPUT:
        print(*args, **kwargs)


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logger(name: str, log_file: str, level: int = logging.INFO) -> logging.Logger:
    """
    Configure un logger avec son fichier de sortie.

    Args:
        name: Nom du logger
        log_file: Chemin du fichier de log
        level: Niveau (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Returns:
        Logger configuré
    """
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False

    while logger.handlers:
        logger.removeHandler(logger.handlers[0])

    # delay=True : le fichier n'est créé qu'à la première écriture
    file_handler = logging.FileHandler(log_file, encoding='utf-8', delay=True)
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    logger.addHandler(file_handler)

    return logger


LOGS_DIR = Path(os.environ.get("GALENIQUE_LOGS_DIR") or (Path(__file__).parent.parent / "logs"))

LOG_FILES = {
    "transactions": LOGS_DIR / "transactions.log",
    "preparations": LOGS_DIR / "preparations.log",
    "planning": LOGS_DIR / "planning.log",
    "database": LOGS_DIR / "database.log",
    "system": LOGS_DIR / "system.log",
}

transaction_logger = setup_logger('galenique.transactions', str(LOG_FILES["transactions"]))
preparation_logger = setup_logger('galenique.preparations', str(LOG_FILES["preparations"]))
planning_logger = setup_logger('galenique.planning', str(LOG_FILES["planning"]))
database_logger = setup_logger('galenique.database', str(LOG_FILES["database"]))
system_logger = setup_logger('galenique.system', str(LOG_FILES["system"]))


def _enabled() -> bool:
    return ENABLE_LOGGING or ENABLE_OUTPUT


def log_transaction(operation: str, data: Dict[str, Any], result: Optional[Any] = None, error: Optional[str] = None) -> None:
    """
    Trace une transaction complète.

    Args:
        operation: Type d'opération (add_preparation, book_appointment...)
        data: Données de la transaction
        result: Résultat (optionnel)
        error: Message d'erreur (optionnel)
    """
    if not _enabled():
        return
    if error:
        transaction_logger.error(f"TRANSACTION_FAILED: {operation} - {error} - Data: {data}")
    else:
        transaction_logger.info(f"TRANSACTION_SUCCESS: {operation} - Result: {result} - Data: {data}")


def log_preparation(action: str, patient: str, molecule: Optional[str] = None, **kwargs) -> None:
    """Trace une ligne de préparation (validation, enregistrement)."""
    if not _enabled():
        return
    log_data = {"action": action, "patient": patient, "molecule": molecule, **kwargs}
    preparation_logger.info(f"PREP_{action.upper()}: {log_data}")


def log_planning(action: str, date: Optional[str] = None, patient: Optional[str] = None, **kwargs) -> None:
    """Trace une opération de planning (suggestion, ajout, suppression)."""
    if not _enabled():
        return
    log_data = {"action": action, "date": date, "patient": patient, **kwargs}
    planning_logger.info(f"PLANNING_{action.upper()}: {log_data}")


def log_database_operation(table: str, operation: str, affected_rows: int = 0, **kwargs) -> None:
    """
    Trace une opération en base.

    Args:
        table: Nom de la table
        operation: Opération SQL (INSERT, UPDATE, DELETE, SELECT)
        affected_rows: Nombre de lignes affectées
    """
    if not _enabled():
        return
    log_data = {"table": table, "operation": operation, "affected_rows": affected_rows, **kwargs}
    database_logger.info(f"DB_{operation}: {log_data}")


def log_system_event(event: str, details: Dict[str, Any] = None, level: str = "info") -> None:
    """Trace un événement système (niveau info, warning ou error)."""
    if not _enabled():
        return
    log_data = {"event": event, "details": details or {}}
    log_method = getattr(system_logger, level.lower(), system_logger.info)
    log_method(f"SYSTEM_EVENT: {event} - {log_data}")


def log_file_operation(operation: str, file_path: str, rows_processed: int = 0, **kwargs) -> None:
    """Trace une opération de fichier (import, export)."""
    if not _enabled():
        return
    log_data = {"operation": operation, "file_path": file_path, "rows_processed": rows_processed, **kwargs}
    system_logger.info(f"FILE_{operation.upper()}: {log_data}")


def get_log_summary(log_type: str = "transactions", lines: int = 100) -> Optional[str]:
    """
    Renvoie les dernières lignes d'un journal.

    Args:
        log_type: transactions, preparations, planning, database ou system
        lines: Nombre de lignes
    """
    if not _enabled():
        return None

    log_file = LOG_FILES.get(log_type)
    if not log_file or not log_file.exists():
        return f"Journal {log_type} introuvable."

    with open(log_file, 'r', encoding='utf-8') as f:
        all_lines = f.readlines()
    return ''.join(all_lines[-lines:])
