"""
Persisted records for cards, contacts and activity log entries.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


class CardStatus(str, Enum):
    """Card processing state; values are the wire strings clients poll for."""

    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not CardStatus.PENDING


class AuditAction(str, Enum):
    USER_REGISTERED = "user_registered"
    USER_LOGIN = "user_login"
    CARD_UPLOADED = "card_uploaded"
    CARD_DELETED = "card_deleted"
    CONTACT_CREATED = "contact_created"
    CONTACT_UPDATED = "contact_updated"
    CONTACT_DELETED = "contact_deleted"
    OCR_PROCESSED = "ocr_processed"
    OCR_FAILED = "ocr_failed"
    EXPORT_CSV = "export_csv"
    EXPORT_VCARD = "export_vcard"
    ADMIN_USER_DISABLED = "admin_user_disabled"
    ADMIN_USER_ENABLED = "admin_user_enabled"
    ADMIN_USER_DELETED = "admin_user_deleted"
    ADMIN_CARD_DELETED = "admin_card_deleted"


class EntityType(str, Enum):
    USER = "user"
    CARD = "card"
    CONTACT = "contact"
    TAG = "tag"
    SYSTEM = "system"


@dataclass
class Card:
    """One uploaded card image and its recognition state.

    Attributes:
        id: Card identity
        user_id: Owning user
        image_key: Blob storage key
        image_url: Public URL of the stored blob (may be empty)
        image_path: Transient local copy used by the pipeline (may be empty)
        ocr_text: Raw recognized text, empty until processed
        status: Processing state
        error_message: Set only when the card failed
        created_at: Creation timestamp (UTC)
    """
    user_id: str
    image_key: str = ""
    image_url: str = ""
    image_path: str = ""
    ocr_text: str = ""
    status: CardStatus = CardStatus.PENDING
    error_message: Optional[str] = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "image_key": self.image_key,
            "image_url": self.image_url,
            "ocr_text": self.ocr_text,
            "status": self.status.value,
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat()
        }


@dataclass
class Contact:
    """Structured contact derived from a processed card."""
    user_id: str
    card_id: str
    full_name: str = ""
    designation: str = ""
    company: str = ""
    email: str = ""
    phone: str = ""
    website: str = ""
    address: str = ""
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)

    @classmethod
    def from_fields(cls, user_id: str, card_id: str, fields) -> "Contact":
        """Build a contact from parser output."""
        return cls(
            user_id=user_id,
            card_id=card_id,
            full_name=fields.full_name,
            designation=fields.designation,
            company=fields.company,
            email=fields.email,
            phone=fields.phone,
            website=fields.website,
            address=fields.address
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "card_id": self.card_id,
            "full_name": self.full_name,
            "designation": self.designation,
            "company": self.company,
            "email": self.email,
            "phone": self.phone,
            "website": self.website,
            "address": self.address,
            "created_at": self.created_at.isoformat()
        }


@dataclass(frozen=True)
class RequestContext:
    """Client details recorded with audit events a request triggered."""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass
class ActivityLogEntry:
    """Append-only activity record."""
    user_id: str
    action: AuditAction
    entity_type: EntityType = EntityType.SYSTEM
    entity_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    id: str = field(default_factory=new_id)
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "action": self.action.value,
            "entity_type": self.entity_type.value,
            "entity_id": self.entity_id,
            "metadata": self.metadata,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "timestamp": self.timestamp.isoformat()
        }
