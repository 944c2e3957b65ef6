# galenique/infra/db.py
"""
Connexion SQLite (substitut du magasin de documents).
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator


@contextmanager
def connect(db_path: str) -> Iterator[sqlite3.Connection]:
    """
    Context manager ouvrant une connexion SQLite avec :
    - répertoire parent créé si besoin
    - foreign_keys ON
    - row_factory = sqlite3.Row
    - commit en sortie (rollback en cas d'exception)

    Un seul écrivain à la fois : SQLite sérialise les écritures, ce qui
    suffit au recontrôle de capacité au moment de l'enregistrement.
    """
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path, timeout=10)
    try:
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON;")
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
