"""
Tests for the SQLite repositories and the activity logger.
"""

import sqlite3
from unittest.mock import patch

import pytest

from cardscan.audit import ActivityLogger
from cardscan.models import AuditAction, Card, CardStatus, Contact, EntityType, RequestContext
from cardscan.repository import (
    ActivityLogRepository,
    CardRepository,
    ContactRepository,
    Database,
)


@pytest.fixture
def db(tmp_path):
    return Database(tmp_path / "nested" / "cards.db")


class TestCardRepository:
    """Test cases for CardRepository."""

    def test_create_and_get(self, db):
        cards = CardRepository(db)
        card = cards.create(Card(user_id="user-1", image_key="cards/user-1/1-a.png"))

        stored = cards.get(card.id)

        assert stored.user_id == "user-1"
        assert stored.status == CardStatus.PENDING
        assert stored.image_key == "cards/user-1/1-a.png"
        assert stored.created_at == card.created_at

    def test_status_transitions(self, db):
        cards = CardRepository(db)
        card = cards.create(Card(user_id="user-1"))

        cards.mark_failed(card.id, "engine exploded")
        assert cards.get(card.id).error_message == "engine exploded"

        cards.mark_processed(card.id, "Jane Doe")
        stored = cards.get(card.id)
        assert stored.status == CardStatus.PROCESSED
        assert stored.ocr_text == "Jane Doe"
        assert stored.error_message is None

    def test_list_filters_and_pages(self, db):
        cards = CardRepository(db)
        created = [cards.create(Card(user_id="user-1")) for _ in range(5)]
        cards.mark_failed(created[0].id, "x")
        cards.create(Card(user_id="user-2"))

        assert cards.count_for_user("user-1") == 5
        assert cards.count_for_user() == 6
        assert cards.count_for_user("user-1", status="failed") == 1
        assert len(cards.list_for_user("user-1", page=2, limit=3)) == 2
        assert [c.id for c in cards.list_for_user("user-1", status=CardStatus.FAILED)] == [created[0].id]

    def test_delete(self, db):
        cards = CardRepository(db)
        card = cards.create(Card(user_id="user-1"))

        assert cards.delete(card.id) is True
        assert cards.delete(card.id) is False
        assert cards.get(card.id) is None


class TestContactRepository:

    def test_contacts_by_card_and_user(self, db):
        contacts = ContactRepository(db)
        contacts.create(Contact(user_id="user-1", card_id="card-1", full_name="Jane", email=None))
        contacts.create(Contact(user_id="user-1", card_id="card-2", full_name="John"))

        contact = contacts.get_for_card("card-1")
        assert contact.full_name == "Jane"
        assert contact.email == ""

        assert contacts.delete_for_card("card-1") == 1
        assert contacts.get_for_card("card-1") is None
        assert contacts.delete_for_user("user-1") == 1
        assert contacts.count_for_card("card-2") == 0


class TestDatabase:

    def test_locked_database_is_retried(self, db):
        real_connect = sqlite3.connect
        attempts = []

        def flaky_connect(*args, **kwargs):
            attempts.append(1)
            if len(attempts) == 1:
                raise sqlite3.OperationalError("database is locked")
            return real_connect(*args, **kwargs)

        with patch("cardscan.repository.sqlite3.connect", side_effect=flaky_connect):
            CardRepository(db).create(Card(user_id="user-1"))

        assert len(attempts) == 2
        assert CardRepository(db).count_for_user("user-1") == 1

    def test_other_errors_are_raised(self, db):
        with pytest.raises(sqlite3.OperationalError):
            db.write("INSERT INTO missing_table VALUES (1)")

    def test_older_activity_table_gains_client_columns(self, tmp_path):
        path = tmp_path / "old.db"
        conn = sqlite3.connect(str(path))
        conn.execute(
            """
            CREATE TABLE activity_logs (
                id TEXT PRIMARY KEY, user_id TEXT NOT NULL, action TEXT NOT NULL,
                entity_type TEXT NOT NULL, entity_id TEXT, metadata_json TEXT NOT NULL,
                timestamp TEXT NOT NULL
            )
            """
        )
        conn.commit()
        conn.close()

        activity = ActivityLogger(ActivityLogRepository(Database(path)))
        context = RequestContext(ip_address="192.0.2.1", user_agent="curl/8.0")

        assert activity.log("user-1", AuditAction.CARD_UPLOADED, context=context) is True
        entry = activity.recent_activities()[0]
        assert entry.ip_address == "192.0.2.1"
        assert entry.user_agent == "curl/8.0"
        # Opening the same file again must not fail on the existing columns
        Database(path)


class TestActivityLogger:
    """Test cases for ActivityLogger."""

    def test_log_and_read_back(self, db):
        activity = ActivityLogger(ActivityLogRepository(db))

        assert activity.log("user-1", AuditAction.CARD_UPLOADED, EntityType.CARD, "card-1", {"file_name": "a.png"})
        assert activity.log("user-2", AuditAction.OCR_FAILED, EntityType.CARD, "card-2")

        entries = activity.recent_activities(user_id="user-1")
        assert len(entries) == 1
        assert entries[0].action == AuditAction.CARD_UPLOADED
        assert entries[0].metadata == {"file_name": "a.png"}
        assert len(activity.recent_activities(action="ocr_failed")) == 1

    def test_failures_are_swallowed(self, db):
        repository = ActivityLogRepository(db)
        activity = ActivityLogger(repository)

        with patch.object(repository, "append", side_effect=sqlite3.OperationalError("disk I/O error")):
            assert activity.log("user-1", AuditAction.CARD_UPLOADED) is False

        with patch.object(repository, "recent", side_effect=sqlite3.OperationalError("disk I/O error")):
            assert activity.recent_activities() == []

    def test_unknown_action_is_rejected_quietly(self, db):
        activity = ActivityLogger(ActivityLogRepository(db))

        assert activity.log("user-1", "user_signed_up") is False
