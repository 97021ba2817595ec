"""
Tests for CardProcessingQueue.
"""

import time
from unittest.mock import Mock

import pytest

from cardscan.errors import QueueFullError
from cardscan.models import Card, CardStatus
from cardscan.worker import CardProcessingQueue


class TestCardProcessingQueue:
    """Test cases for CardProcessingQueue."""

    def test_scheduled_card_is_processed(self, services, image_file):
        card = services.cards.create(Card(user_id="user-1", image_path=str(image_file)))

        assert services.queue.schedule(card.id, str(image_file), "user-1") is True
        services.queue.join()

        assert services.cards.get(card.id).status == CardStatus.PROCESSED
        assert services.queue.get_status()["processed"] == 1

    def test_schedule_does_not_wait(self, services, engine, image_file):
        card = services.cards.create(Card(user_id="user-1", image_path=str(image_file)))
        engine.release.clear()

        start = time.time()
        services.queue.schedule(card.id, str(image_file), "user-1")

        assert time.time() - start < 0.5
        assert services.cards.get(card.id).status == CardStatus.PENDING

        engine.release.set()
        services.queue.join()
        assert services.cards.get(card.id).status == CardStatus.PROCESSED

    def test_second_schedule_is_ignored(self, services, engine, image_file):
        card = services.cards.create(Card(user_id="user-1", image_path=str(image_file)))
        engine.release.clear()

        assert services.queue.schedule(card.id, str(image_file), "user-1") is True
        assert services.queue.schedule(card.id, str(image_file), "user-1") is False
        engine.release.set()
        services.queue.join()

        assert services.contacts.count_for_card(card.id) == 1
        assert len(engine.calls) == 1

    def test_finished_cards_are_forgotten(self, services, engine, image_file):
        card = services.cards.create(Card(user_id="user-1", image_path=str(image_file)))

        services.queue.schedule(card.id, str(image_file), "user-1")
        services.queue.join()
        assert services.queue.get_status()["in_flight"] == 0

        # Offered again after finishing: accepted, but the processed card is left alone
        assert services.queue.schedule(card.id, str(image_file), "user-1") is True
        services.queue.join()

        assert services.queue.get_status()["scheduled_total"] == 2
        assert services.contacts.count_for_card(card.id) == 1
        assert len(engine.calls) == 1
        assert services.cards.get(card.id).status == CardStatus.PROCESSED

    def test_full_queue_refuses(self):
        pipeline = Mock()
        queue = CardProcessingQueue(pipeline, workers=1, max_queue_size=1, autostart=False)

        queue.schedule("card-1", "/tmp/a.png", "user-1")
        with pytest.raises(QueueFullError):
            queue.schedule("card-2", "/tmp/b.png", "user-1")

        # A refused card was never scheduled and may be offered again
        queue.start()
        queue.join()
        assert queue.schedule("card-2", "/tmp/b.png", "user-1") is True
        queue.join()
        queue.stop(timeout=1)

        assert pipeline.process_card.call_count == 2

    def test_worker_survives_pipeline_errors(self):
        pipeline = Mock()
        pipeline.process_card.side_effect = [RuntimeError("boom"), CardStatus.PROCESSED]
        queue = CardProcessingQueue(pipeline, workers=1, max_queue_size=5)

        queue.schedule("card-1", "/tmp/a.png", "user-1")
        queue.schedule("card-2", "/tmp/b.png", "user-1")
        queue.join()

        status = queue.get_status()
        assert status["failed"] == 1
        assert status["processed"] == 1
        queue.stop(timeout=1)

    def test_stop(self):
        queue = CardProcessingQueue(Mock(), workers=2, max_queue_size=5)
        assert queue.get_status()["workers"] == 2

        queue.stop(timeout=1)

        assert queue.get_status()["workers"] == 0
