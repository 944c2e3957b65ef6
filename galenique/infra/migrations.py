# galenique/infra/migrations.py
"""
Migrations de schéma via PRAGMA user_version.

V1: tables de base (params, patient, history_log, preparation, appointment)
V2: volume d'excipient sur les préparations et lien patient sur les rendez-vous
"""

from __future__ import annotations

from typing import List
from .db import connect


SCHEMA_V1: List[str] = [
    # Paramètres K/V
    """
    CREATE TABLE IF NOT EXISTS params (
        name TEXT PRIMARY KEY,
        value TEXT
    );
    """,
    # Patients : id interne stable + nom normalisé (clé naturelle)
    """
    CREATE TABLE IF NOT EXISTS patient (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL UNIQUE,
        phone TEXT,
        age REAL,
        weight REAL,
        last_update INTEGER
    );
    """,
    # Visites (append-only)
    """
    CREATE TABLE IF NOT EXISTS history_log (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        patient_id INTEGER NOT NULL,
        date TEXT,
        timestamp INTEGER NOT NULL,
        doctor TEXT,
        preparators TEXT, -- JSON list
        FOREIGN KEY (patient_id) REFERENCES patient(id) ON DELETE CASCADE
    );
    """,
    # Lignes de préparation finalisées
    """
    CREATE TABLE IF NOT EXISTS preparation (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        history_id INTEGER NOT NULL,
        position INTEGER NOT NULL,
        drug_key TEXT,
        molecule TEXT,
        status TEXT NOT NULL, -- 'ok' | 'ko'
        type TEXT,            -- 'tablet' | 'powder'
        reason TEXT,
        target_dose REAL,
        real_dose REAL,
        tabs REAL,
        total_mass REAL,
        gels INTEGER,
        capsule TEXT,
        duration INTEGER,
        lots TEXT,            -- JSON list (bicarbonate)
        FOREIGN KEY (history_id) REFERENCES history_log(id) ON DELETE CASCADE
    );
    """,
    # Rendez-vous
    """
    CREATE TABLE IF NOT EXISTS appointment (
        id TEXT PRIMARY KEY,
        patient_name TEXT NOT NULL,
        date TEXT NOT NULL,
        status TEXT,
        molecule TEXT
    );
    """,
]


def _ensure_column(conn, table: str, column: str, ddl: str) -> None:
    """Ajoute la colonne si elle n'existe pas."""
    cur = conn.execute(f"PRAGMA table_info({table});")
    cols = [r[1] for r in cur.fetchall()]  # r[1] = nom de colonne
    if column not in cols:
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {ddl};")


def _apply_v1(conn) -> None:
    for sql in SCHEMA_V1:
        conn.executescript(sql)


def _apply_v2(conn) -> None:
    _ensure_column(conn, "preparation", "excipient_ml", "excipient_ml REAL")
    _ensure_column(conn, "appointment", "patient_id", "patient_id TEXT")
    conn.executescript(
        """
        CREATE INDEX IF NOT EXISTS idx_history_patient ON history_log(patient_id);
        CREATE INDEX IF NOT EXISTS idx_history_ts      ON history_log(timestamp);
        CREATE INDEX IF NOT EXISTS idx_prep_history    ON preparation(history_id);
        CREATE INDEX IF NOT EXISTS idx_appt_date       ON appointment(date);
        """
    )


def apply_migrations(db_path: str) -> None:
    """Applique les migrations incrémentales selon PRAGMA user_version."""
    with connect(db_path) as conn:
        ver = conn.execute("PRAGMA user_version;").fetchone()[0] or 0

        if ver < 1:
            _apply_v1(conn)
            conn.execute("PRAGMA user_version = 1;")
            ver = 1

        if ver < 2:
            _apply_v2(conn)
            conn.execute("PRAGMA user_version = 2;")
            ver = 2
