#!/usr/bin/env python3
# CUI // SP-CTI
"""Persisted ManagedResourceRecord state (SQLite).

One row per managed account, keyed by external ID. Rows are written only
after a transition fully succeeds and deleted only after a successful
quarantine move.
"""

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

from arcorg.orgs.models import ManagedResourceRecord

SCHEMA = """
CREATE TABLE IF NOT EXISTS managed_accounts (
    external_id TEXT PRIMARY KEY,
    account_id TEXT,
    email TEXT,
    name TEXT,
    active_unit_id TEXT,
    closed_unit_id TEXT,
    created_at TIMESTAMP NOT NULL,
    updated_at TIMESTAMP NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_managed_accounts_email ON managed_accounts(email);
"""

_COLUMNS = ("external_id", "account_id", "email", "name",
            "active_unit_id", "closed_unit_id")


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class StateStore:
    """SQLite-backed record store. One connection per call."""

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path)
        self._initialized = False

    def _connect(self) -> sqlite3.Connection:
        if not self._initialized:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        if not self._initialized:
            conn.executescript(SCHEMA)
            self._initialized = True
        return conn

    @staticmethod
    def _to_record(row) -> ManagedResourceRecord:
        return ManagedResourceRecord(**{c: row[c] for c in _COLUMNS})

    def save(self, record: ManagedResourceRecord, previous_id: Optional[str] = None):
        """Upsert a record.

        previous_id is the key the record was stored under before a refresh
        changed its external ID; that row is replaced.
        """
        now = _now()
        conn = self._connect()
        try:
            with conn:
                if previous_id and previous_id != record.external_id:
                    conn.execute("DELETE FROM managed_accounts WHERE external_id = ?",
                                 (previous_id,))
                conn.execute(
                    """INSERT INTO managed_accounts
                       (external_id, account_id, email, name, active_unit_id,
                        closed_unit_id, created_at, updated_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                       ON CONFLICT(external_id) DO UPDATE SET
                         account_id = excluded.account_id,
                         email = excluded.email,
                         name = excluded.name,
                         active_unit_id = excluded.active_unit_id,
                         closed_unit_id = excluded.closed_unit_id,
                         updated_at = excluded.updated_at""",
                    tuple(getattr(record, c) for c in _COLUMNS) + (now, now),
                )
        finally:
            conn.close()

    def get(self, external_id: str) -> Optional[ManagedResourceRecord]:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT * FROM managed_accounts WHERE external_id = ?",
                (external_id,)).fetchone()
        finally:
            conn.close()
        return self._to_record(row) if row else None

    def delete(self, external_id: str) -> bool:
        conn = self._connect()
        try:
            with conn:
                cur = conn.execute(
                    "DELETE FROM managed_accounts WHERE external_id = ?",
                    (external_id,))
        finally:
            conn.close()
        return cur.rowcount > 0

    def list_records(self) -> List[ManagedResourceRecord]:
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT * FROM managed_accounts ORDER BY created_at, external_id"
            ).fetchall()
        finally:
            conn.close()
        return [self._to_record(r) for r in rows]
