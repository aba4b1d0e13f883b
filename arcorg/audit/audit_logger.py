#!/usr/bin/env python3
# CUI // SP-CTI
"""Append-only audit trail of account lifecycle transitions.
No UPDATE or DELETE operations - all entries are immutable."""

import argparse
import json
import sqlite3
from pathlib import Path
from typing import Dict, List, Optional, Union

from arcorg.resilience.correlation import get_correlation_id

SCHEMA = """
CREATE TABLE IF NOT EXISTS audit_trail (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    event_type TEXT NOT NULL,
    actor TEXT NOT NULL,
    action TEXT NOT NULL,
    external_id TEXT,
    account_id TEXT,
    details TEXT,
    session_id TEXT,
    timestamp TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""

VALID_EVENT_TYPES = (
    "account.created", "account.adopted", "account.duplicate_skipped",
    "account.create_failed",
    "account.refreshed", "account.removed", "account.read_failed",
    "account.updated", "account.update_rejected",
    "account.quarantined", "account.quarantine_failed",
    "account.imported", "account.import_failed",
)


def _connect(db_path: Union[str, Path]) -> sqlite3.Connection:
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.executescript(SCHEMA)
    return conn


def log_event(
    db_path: Union[str, Path],
    event_type: str,
    action: str,
    actor: str = "arcorg",
    external_id: str = None,
    account_id: str = None,
    details: dict = None,
    session_id: str = None,
) -> int:
    """Write an immutable audit trail entry. Returns the entry ID."""
    if event_type not in VALID_EVENT_TYPES:
        raise ValueError(f"Invalid event_type '{event_type}'. Valid: {VALID_EVENT_TYPES}")

    if session_id is None:
        session_id = get_correlation_id()

    conn = _connect(db_path)
    try:
        c = conn.cursor()
        c.execute(
            """INSERT INTO audit_trail
               (event_type, actor, action, external_id, account_id, details,
                session_id)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                event_type,
                actor,
                action,
                external_id,
                account_id,
                json.dumps(details, default=str) if details else None,
                session_id,
            ),
        )
        conn.commit()
        return c.lastrowid
    finally:
        conn.close()


def query_events(db_path: Union[str, Path], external_id: Optional[str] = None,
                 limit: int = 100) -> List[Dict]:
    """Return the newest entries first, optionally for one external ID."""
    conn = _connect(db_path)
    conn.row_factory = sqlite3.Row
    try:
        if external_id:
            rows = conn.execute(
                "SELECT * FROM audit_trail WHERE external_id = ? "
                "ORDER BY id DESC LIMIT ?", (external_id, limit)).fetchall()
        else:
            rows = conn.execute(
                "SELECT * FROM audit_trail ORDER BY id DESC LIMIT ?",
                (limit,)).fetchall()
    finally:
        conn.close()
    events = []
    for row in rows:
        event = dict(row)
        event["details"] = json.loads(event["details"]) if event["details"] else None
        events.append(event)
    return events


def main():
    parser = argparse.ArgumentParser(description="Show the account lifecycle audit trail")
    parser.add_argument("--db", required=True, help="Path to the state database")
    parser.add_argument("--id", dest="external_id", help="Filter by external id")
    parser.add_argument("--limit", type=int, default=100)
    parser.add_argument("--json", action="store_true", dest="json_output", help="JSON output")
    args = parser.parse_args()

    events = query_events(args.db, args.external_id, args.limit)
    if args.json_output:
        print(json.dumps(events, indent=2, default=str))
        return
    for event in events:
        print(f"#{event['id']} {event['timestamp']} [{event['event_type']}] "
              f"{event['action']} ({event['session_id'] or '-'})")


if __name__ == "__main__":
    main()
