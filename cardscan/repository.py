"""
SQLite persistence for cards, contacts and the activity log.

Connection-per-operation: every call opens its own connection, so the
repositories are safe to share between the request thread and the
processing workers. Writes are retried when SQLite reports the database
as locked.
"""

import json
import logging
import sqlite3
import time
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

from .models import (
    ActivityLogEntry, AuditAction, Card, CardStatus, Contact, EntityType
)

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS cards (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    image_key TEXT NOT NULL DEFAULT '',
    image_url TEXT NOT NULL DEFAULT '',
    image_path TEXT NOT NULL DEFAULT '',
    ocr_text TEXT NOT NULL DEFAULT '',
    status TEXT NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending', 'processed', 'failed')),
    error_message TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_cards_user_created ON cards(user_id, created_at);
CREATE INDEX IF NOT EXISTS idx_cards_status ON cards(status);

CREATE TABLE IF NOT EXISTS contacts (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    card_id TEXT NOT NULL,
    full_name TEXT NOT NULL DEFAULT '',
    designation TEXT NOT NULL DEFAULT '',
    company TEXT NOT NULL DEFAULT '',
    email TEXT NOT NULL DEFAULT '',
    phone TEXT NOT NULL DEFAULT '',
    website TEXT NOT NULL DEFAULT '',
    address TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_contacts_card ON contacts(card_id);
CREATE INDEX IF NOT EXISTS idx_contacts_user_created ON contacts(user_id, created_at);

CREATE TABLE IF NOT EXISTS activity_logs (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    action TEXT NOT NULL,
    entity_type TEXT NOT NULL,
    entity_id TEXT,
    metadata_json TEXT NOT NULL,
    ip_address TEXT,
    user_agent TEXT,
    timestamp TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_activity_timestamp ON activity_logs(timestamp);
CREATE INDEX IF NOT EXISTS idx_activity_user ON activity_logs(user_id, timestamp);
CREATE INDEX IF NOT EXISTS idx_activity_action ON activity_logs(action, timestamp);
"""

# Columns added after the first release; ADD COLUMN fails once they exist
MIGRATIONS = (
    "ALTER TABLE activity_logs ADD COLUMN ip_address TEXT",
    "ALTER TABLE activity_logs ADD COLUMN user_agent TEXT",
)


class Database:
    """Location of the SQLite file plus connection and retry helpers."""

    MAX_RETRIES = 3
    RETRY_DELAY_MS = 100

    def __init__(self, db_path: str):
        self.db_path = str(db_path)
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _init_schema(self) -> None:
        conn = sqlite3.connect(self.db_path)
        try:
            conn.executescript(SCHEMA)
            for statement in MIGRATIONS:
                try:
                    conn.execute(statement)
                except sqlite3.OperationalError:
                    pass  # Column already exists
            conn.commit()
        finally:
            conn.close()

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path, timeout=5.0)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def query(self, sql: str, params: Sequence = ()) -> List[sqlite3.Row]:
        with self.connect() as conn:
            return conn.execute(sql, params).fetchall()

    def write(self, sql: str, params: Sequence = ()) -> int:
        """Run a write statement and return the affected row count."""
        for attempt in range(self.MAX_RETRIES):
            try:
                with self.connect() as conn:
                    cursor = conn.execute(sql, params)
                    conn.commit()
                    return cursor.rowcount
            except sqlite3.OperationalError as e:
                if "locked" not in str(e).lower():
                    raise
                if attempt == self.MAX_RETRIES - 1:
                    raise sqlite3.OperationalError(
                        f"Database locked after {self.MAX_RETRIES} attempts: {e}"
                    ) from e
                logger.debug(f"Database locked, retrying ({attempt + 1}/{self.MAX_RETRIES})")
                time.sleep(self.RETRY_DELAY_MS / 1000.0)
        return 0


class CardRepository:
    """Card rows. Status and OCR text are written only by the pipeline."""

    def __init__(self, db: Database):
        self.db = db

    def create(self, card: Card) -> Card:
        self.db.write(
            """
            INSERT INTO cards
            (id, user_id, image_key, image_url, image_path, ocr_text, status, error_message, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                card.id, card.user_id, card.image_key, card.image_url, card.image_path,
                card.ocr_text, card.status.value, card.error_message, card.created_at.isoformat()
            )
        )
        return card

    def get(self, card_id: str) -> Optional[Card]:
        rows = self.db.query("SELECT * FROM cards WHERE id = ?", (card_id,))
        return self._row_to_card(rows[0]) if rows else None

    def list_for_user(
        self,
        user_id: Optional[str] = None,
        status: Optional[CardStatus] = None,
        page: int = 1,
        limit: int = 20
    ) -> List[Card]:
        """Newest first. ``user_id=None`` lists every user's cards."""
        where, params = self._filters(user_id, status)
        offset = max(page - 1, 0) * limit
        rows = self.db.query(
            f"SELECT * FROM cards {where} ORDER BY created_at DESC LIMIT ? OFFSET ?",
            (*params, limit, offset)
        )
        return [self._row_to_card(row) for row in rows]

    def count_for_user(self, user_id: Optional[str] = None, status: Optional[CardStatus] = None) -> int:
        where, params = self._filters(user_id, status)
        rows = self.db.query(f"SELECT COUNT(*) AS n FROM cards {where}", params)
        return rows[0]["n"]

    def list_all_for_user(self, user_id: str) -> List[Card]:
        rows = self.db.query("SELECT * FROM cards WHERE user_id = ?", (user_id,))
        return [self._row_to_card(row) for row in rows]

    def mark_processed(self, card_id: str, ocr_text: str) -> None:
        self.db.write(
            "UPDATE cards SET ocr_text = ?, status = ?, error_message = NULL WHERE id = ?",
            (ocr_text, CardStatus.PROCESSED.value, card_id)
        )

    def mark_failed(self, card_id: str, error_message: str) -> None:
        self.db.write(
            "UPDATE cards SET status = ?, error_message = ? WHERE id = ?",
            (CardStatus.FAILED.value, error_message, card_id)
        )

    def delete(self, card_id: str) -> bool:
        return self.db.write("DELETE FROM cards WHERE id = ?", (card_id,)) > 0

    @staticmethod
    def _filters(user_id, status):
        clauses, params = [], []
        if user_id is not None:
            clauses.append("user_id = ?")
            params.append(user_id)
        if status is not None:
            clauses.append("status = ?")
            params.append(CardStatus(status).value)
        where = "WHERE " + " AND ".join(clauses) if clauses else ""
        return where, tuple(params)

    @staticmethod
    def _row_to_card(row: sqlite3.Row) -> Card:
        return Card(
            id=row["id"],
            user_id=row["user_id"],
            image_key=row["image_key"],
            image_url=row["image_url"],
            image_path=row["image_path"],
            ocr_text=row["ocr_text"],
            status=CardStatus(row["status"]),
            error_message=row["error_message"],
            created_at=datetime.fromisoformat(row["created_at"])
        )


class ContactRepository:
    """Contact rows created by the pipeline."""

    FIELDS = ("full_name", "designation", "company", "email", "phone", "website", "address")

    def __init__(self, db: Database):
        self.db = db

    def create(self, contact: Contact) -> Contact:
        self.db.write(
            f"""
            INSERT INTO contacts (id, user_id, card_id, {", ".join(self.FIELDS)}, created_at)
            VALUES (?, ?, ?, {", ".join("?" for _ in self.FIELDS)}, ?)
            """,
            (
                contact.id, contact.user_id, contact.card_id,
                *(getattr(contact, name) or "" for name in self.FIELDS),
                contact.created_at.isoformat()
            )
        )
        return contact

    def get_for_card(self, card_id: str) -> Optional[Contact]:
        contacts = self.list_for_card(card_id)
        return contacts[0] if contacts else None

    def list_for_card(self, card_id: str) -> List[Contact]:
        rows = self.db.query(
            "SELECT * FROM contacts WHERE card_id = ? ORDER BY created_at", (card_id,)
        )
        return [self._row_to_contact(row) for row in rows]

    def count_for_card(self, card_id: str) -> int:
        rows = self.db.query("SELECT COUNT(*) AS n FROM contacts WHERE card_id = ?", (card_id,))
        return rows[0]["n"]

    def delete_for_card(self, card_id: str) -> int:
        return self.db.write("DELETE FROM contacts WHERE card_id = ?", (card_id,))

    def delete_for_user(self, user_id: str) -> int:
        return self.db.write("DELETE FROM contacts WHERE user_id = ?", (user_id,))

    def _row_to_contact(self, row: sqlite3.Row) -> Contact:
        return Contact(
            id=row["id"],
            user_id=row["user_id"],
            card_id=row["card_id"],
            created_at=datetime.fromisoformat(row["created_at"]),
            **{name: row[name] for name in self.FIELDS}
        )


class ActivityLogRepository:
    """Append-only activity log. No update or delete."""

    def __init__(self, db: Database):
        self.db = db

    def append(self, entry: ActivityLogEntry) -> None:
        self.db.write(
            """
            INSERT INTO activity_logs
            (id, user_id, action, entity_type, entity_id, metadata_json, ip_address, user_agent, timestamp)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                entry.id, entry.user_id, entry.action.value, entry.entity_type.value,
                entry.entity_id, json.dumps(entry.metadata, default=str),
                entry.ip_address, entry.user_agent, entry.timestamp.isoformat()
            )
        )

    def recent(
        self,
        action: Optional[AuditAction] = None,
        user_id: Optional[str] = None,
        entity_id: Optional[str] = None,
        limit: int = 50
    ) -> List[ActivityLogEntry]:
        """Most recent first."""
        clauses, params = [], []
        if action is not None:
            clauses.append("action = ?")
            params.append(AuditAction(action).value)
        if user_id is not None:
            clauses.append("user_id = ?")
            params.append(user_id)
        if entity_id is not None:
            clauses.append("entity_id = ?")
            params.append(entity_id)
        where = "WHERE " + " AND ".join(clauses) if clauses else ""
        rows = self.db.query(
            f"SELECT * FROM activity_logs {where} ORDER BY timestamp DESC LIMIT ?",
            (*params, limit)
        )
        return [
            ActivityLogEntry(
                id=row["id"],
                user_id=row["user_id"],
                action=AuditAction(row["action"]),
                entity_type=EntityType(row["entity_type"]),
                entity_id=row["entity_id"],
                metadata=json.loads(row["metadata_json"]),
                ip_address=row["ip_address"],
                user_agent=row["user_agent"],
                timestamp=datetime.fromisoformat(row["timestamp"])
            )
            for row in rows
        ]
