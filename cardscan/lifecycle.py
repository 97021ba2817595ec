"""
Card deletion with best-effort cleanup.

Contacts, the remote blob and the local file are each cleaned up
independently; a failure in one step never stops the others, and the card
row is always deleted at the end.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .audit import ActivityLogger
from .errors import BestEffortResult, best_effort
from .models import AuditAction, Card, EntityType, RequestContext
from .pipeline import remove_local_file
from .repository import CardRepository, ContactRepository
from .storage import BlobStorage

logger = logging.getLogger(__name__)


@dataclass
class DeletionReport:
    card_id: str
    card_deleted: bool = False
    cleanup: List[BestEffortResult] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return all(result.ok for result in self.cleanup)

    def to_dict(self) -> Dict:
        return {
            "card_id": self.card_id,
            "card_deleted": self.card_deleted,
            "clean": self.clean,
            "cleanup": [result.to_dict() for result in self.cleanup]
        }


class CardDeletionCoordinator:
    """Deletes cards and releases everything they own."""

    def __init__(
        self,
        cards: CardRepository,
        contacts: ContactRepository,
        storage: BlobStorage,
        activity: Optional[ActivityLogger] = None
    ):
        self.cards = cards
        self.contacts = contacts
        self.storage = storage
        self.activity = activity

    def delete_card(
        self,
        card: Card,
        cascade: bool = True,
        actor_id: Optional[str] = None,
        action: AuditAction = AuditAction.CARD_DELETED,
        context: Optional[RequestContext] = None
    ) -> DeletionReport:
        """
        Delete one card.

        Args:
            card: Card to delete
            cascade: Also delete contacts created from this card
            actor_id: Who asked for the deletion (defaults to the owner)
            action: Audit action to record
            context: Client details of the request asking for the deletion

        Returns:
            DeletionReport with the outcome of each cleanup step
        """
        report = DeletionReport(card_id=card.id)

        if cascade:
            report.cleanup.append(
                best_effort(f"delete contacts of card {card.id}", self.contacts.delete_for_card, card.id)
            )
        report.cleanup.append(self.storage.remove(card.image_key))
        report.cleanup.append(remove_local_file(card.image_path))

        report.card_deleted = self.cards.delete(card.id)

        if not report.clean:
            logger.warning(f"Card {card.id} deleted with incomplete cleanup")
        logger.info(f"Deleted card {card.id}")

        if self.activity is not None:
            metadata = {"card_owner": card.user_id} if action == AuditAction.ADMIN_CARD_DELETED else {}
            self.activity.log(actor_id or card.user_id, action, EntityType.CARD, card.id, metadata, context)

        return report

    def delete_user_cards(
        self,
        user_id: str,
        actor_id: Optional[str] = None,
        context: Optional[RequestContext] = None
    ) -> List[DeletionReport]:
        """Delete every card of a user, then any contacts left behind.

        Each card gets its own admin_card_deleted event; the sweep as a whole
        is recorded once as admin_user_deleted against the user.
        """
        reports = [
            self.delete_card(
                card,
                cascade=True,
                actor_id=actor_id,
                action=AuditAction.ADMIN_CARD_DELETED,
                context=context
            )
            for card in self.cards.list_all_for_user(user_id)
        ]
        contacts = best_effort(f"delete contacts of user {user_id}", self.contacts.delete_for_user, user_id)
        logger.info(f"Deleted {len(reports)} cards of user {user_id}")

        if self.activity is not None:
            self.activity.log(
                actor_id or user_id,
                AuditAction.ADMIN_USER_DELETED,
                EntityType.USER,
                user_id,
                {
                    "deleted_user": user_id,
                    "cards_deleted": sum(1 for r in reports if r.card_deleted),
                    "contacts_removed": contacts.ok
                },
                context
            )
        return reports
