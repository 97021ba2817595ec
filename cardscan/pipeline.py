"""
Card Processing Pipeline
Background routine turning one uploaded card into a contact.

0. Skip cards that were deleted or already reached a terminal status
1. OCR the local image copy
2. FAILED: record the error on the card, audit it, no contact
3. PROCESSED: store the text, parse it, create exactly one contact, audit twice
4. Always delete the local image copy
"""

import logging
import time
from pathlib import Path
from typing import Dict, Optional

from .audit import ActivityLogger
from .errors import BestEffortResult, best_effort
from .models import AuditAction, CardStatus, Contact, EntityType
from .ocr import OCRAdapter
from .parser import ContactParser
from .repository import CardRepository, ContactRepository

logger = logging.getLogger(__name__)


def remove_local_file(path: Optional[str]) -> BestEffortResult:
    """Delete a transient local image; never raises."""
    if not path:
        return BestEffortResult(operation="remove local file")
    return best_effort(f"remove local file {path}", Path(path).unlink, missing_ok=True)


class CardPipeline:
    """State machine for one card: pending -> processed | failed.

    All collaborators are injected; the pipeline never looks up globals.
    """

    def __init__(
        self,
        ocr: OCRAdapter,
        cards: CardRepository,
        contacts: ContactRepository,
        activity: ActivityLogger,
        parser: Optional[ContactParser] = None
    ):
        self.ocr = ocr
        self.cards = cards
        self.contacts = contacts
        self.activity = activity
        self.parser = parser or ContactParser()

    def process_card(self, card_id: str, image_path: str, user_id: str) -> CardStatus:
        """
        Run recognition, parsing and persistence for one card.

        Args:
            card_id: Card to process
            image_path: Local copy of the card image, owned by this run
            user_id: Card owner

        Returns:
            The terminal status written to the card
        """
        start_time = time.time()
        logger.info(f"Processing card {card_id}")
        status_written = False
        try:
            card = self.cards.get(card_id)
            if card is None:
                logger.warning(f"Card {card_id} no longer exists; skipping")
                return CardStatus.FAILED
            if card.status.is_terminal:
                logger.warning(f"Card {card_id} already {card.status.value}; skipping")
                return card.status

            ocr_result = self.ocr.extract_text(image_path)

            if not ocr_result.success:
                return self._fail(card_id, user_id, ocr_result.error or "OCR failed")

            self.cards.mark_processed(card_id, ocr_result.text)
            status_written = True

            fields = self.parser.parse(ocr_result.text)
            contact = self.contacts.create(Contact.from_fields(user_id, card_id, fields))

            self.activity.log(
                user_id,
                AuditAction.OCR_PROCESSED,
                EntityType.CARD,
                card_id,
                {
                    "contact_id": contact.id,
                    "confidence": ocr_result.confidence,
                    "heuristic_confidence": fields.heuristic_confidence
                }
            )
            self.activity.log(user_id, AuditAction.CONTACT_CREATED, EntityType.CONTACT, contact.id)

            logger.info(f"Card {card_id} processed in {time.time() - start_time:.2f}s")
            return CardStatus.PROCESSED

        except Exception as e:
            logger.error(f"Card processing error for {card_id}: {e}", exc_info=True)
            if status_written:
                # Terminal status is never rewritten
                return CardStatus.PROCESSED
            best_effort(f"mark card {card_id} failed", self.cards.mark_failed, card_id, str(e) or type(e).__name__)
            return CardStatus.FAILED

        finally:
            remove_local_file(image_path)

    def _fail(self, card_id: str, user_id: str, error: str) -> CardStatus:
        logger.warning(f"OCR failed for card {card_id}: {error}")
        self.cards.mark_failed(card_id, error)
        self.activity.log(
            user_id,
            AuditAction.OCR_FAILED,
            EntityType.CARD,
            card_id,
            {"error": error}
        )
        return CardStatus.FAILED

    def get_status(self) -> Dict:
        """Get pipeline status information."""
        return {
            "ocr": self.ocr.get_status(),
            "parser": type(self.parser).__name__
        }
