"""
Background processing for uploaded cards.

A bounded queue feeds a fixed pool of worker threads, so uploads return
immediately while the number of in-flight OCR runs stays capped.
"""

import logging
import queue
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional, Set

from .errors import QueueFullError
from .models import CardStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CardJob:
    card_id: str
    image_path: str
    user_id: str


class CardProcessingQueue:
    """Scheduler for CardPipeline runs.

    A card id is refused while it is queued or running. Finished ids are
    forgotten; the pipeline itself skips cards that are no longer pending.
    """

    def __init__(self, pipeline, workers: int = 2, max_queue_size: int = 100, autostart: bool = True):
        """
        Initialize the queue.

        Args:
            pipeline: Object exposing ``process_card(card_id, image_path, user_id)``
            workers: Number of worker threads
            max_queue_size: Cards allowed to wait before schedule() refuses
            autostart: Start the workers immediately
        """
        self.pipeline = pipeline
        self.workers = max(1, workers)
        self.max_queue_size = max_queue_size
        self._queue: "queue.Queue[Optional[CardJob]]" = queue.Queue(maxsize=max_queue_size)
        self._threads: List[threading.Thread] = []
        self._in_flight: Set[str] = set()
        self._lock = threading.Lock()
        self._stats = {"scheduled_total": 0, "processed": 0, "failed": 0}
        if autostart:
            self.start()

    def start(self) -> None:
        if self._threads:
            return
        for i in range(self.workers):
            thread = threading.Thread(target=self._run, name=f"card-worker-{i + 1}", daemon=True)
            thread.start()
            self._threads.append(thread)
        logger.info(f"Started {self.workers} card workers (queue size {self.max_queue_size})")

    def schedule(self, card_id: str, image_path: str, user_id: str) -> bool:
        """
        Hand a card to the workers without waiting for it.

        Returns:
            False when the card is already queued or running

        Raises:
            QueueFullError: No room left in the queue
        """
        with self._lock:
            if card_id in self._in_flight:
                logger.warning(f"Card {card_id} already in flight; ignoring")
                return False
            try:
                self._queue.put_nowait(CardJob(card_id, image_path, user_id))
            except queue.Full:
                raise QueueFullError(
                    f"Processing queue is full ({self.max_queue_size} cards waiting)"
                ) from None
            self._in_flight.add(card_id)
            self._stats["scheduled_total"] += 1

        logger.debug(f"Scheduled card {card_id}")
        return True

    def _run(self) -> None:
        while True:
            job = self._queue.get()
            try:
                if job is None:
                    return
                status = self.pipeline.process_card(job.card_id, job.image_path, job.user_id)
                with self._lock:
                    key = "processed" if status == CardStatus.PROCESSED else "failed"
                    self._stats[key] += 1
            except Exception as e:
                logger.error(f"Worker error for card {job.card_id}: {e}", exc_info=True)
                with self._lock:
                    self._stats["failed"] += 1
            finally:
                if job is not None:
                    with self._lock:
                        self._in_flight.discard(job.card_id)
                self._queue.task_done()

    def join(self) -> None:
        """Block until every scheduled card has been processed."""
        self._queue.join()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Let queued cards finish, then stop the workers."""
        for _ in self._threads:
            self._queue.put(None)
        for thread in self._threads:
            thread.join(timeout)
        self._threads = []
        logger.info("Card workers stopped")

    def get_status(self) -> Dict:
        with self._lock:
            return {
                "workers": len(self._threads),
                "queued": self._queue.qsize(),
                "max_queue_size": self.max_queue_size,
                "in_flight": len(self._in_flight),
                **self._stats
            }
