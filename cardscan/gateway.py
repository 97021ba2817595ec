"""
Ingestion gateway: the synchronous half of an upload.

Validates the file, stores it in blob storage, creates the pending card and
schedules background processing. It never waits for OCR.
"""

import logging
import uuid
from pathlib import Path
from typing import BinaryIO, Optional, Set

from .audit import ActivityLogger
from .errors import QueueFullError, StorageError, ValidationError
from .models import AuditAction, Card, EntityType, RequestContext
from .pipeline import remove_local_file
from .repository import CardRepository
from .storage import BlobStorage
from .worker import CardProcessingQueue

logger = logging.getLogger(__name__)


class IngestionGateway:
    """Accepts card uploads and hands them to the processing queue."""

    def __init__(
        self,
        upload_folder: str,
        storage: BlobStorage,
        cards: CardRepository,
        activity: ActivityLogger,
        processing_queue: CardProcessingQueue,
        allowed_extensions: Optional[Set[str]] = None,
        max_file_size: Optional[int] = None
    ):
        self.upload_folder = Path(upload_folder)
        self.upload_folder.mkdir(parents=True, exist_ok=True)
        self.storage = storage
        self.cards = cards
        self.activity = activity
        self.queue = processing_queue
        self.allowed_extensions = allowed_extensions or {"png", "jpg", "jpeg", "gif", "webp"}
        self.max_file_size = max_file_size

    def validate(self, filename: str, size: Optional[int] = None) -> str:
        """Return the lower-cased extension or raise ValidationError."""
        if not filename:
            raise ValidationError("No file selected")
        if "." not in filename:
            raise ValidationError("File has no extension")
        ext = filename.rsplit(".", 1)[1].lower()
        if ext not in self.allowed_extensions:
            raise ValidationError(
                f"File type not allowed. Allowed: {', '.join(sorted(self.allowed_extensions))}"
            )
        if size is not None and self.max_file_size and size > self.max_file_size:
            raise ValidationError(
                f"File too large. Maximum size: {self.max_file_size // (1024 * 1024)}MB"
            )
        return ext

    def ingest(
        self,
        stream: BinaryIO,
        filename: str,
        user_id: str,
        content_type: Optional[str] = None,
        context: Optional[RequestContext] = None
    ) -> Card:
        """
        Store an uploaded card image and schedule it.

        Args:
            stream: Readable binary stream with the image
            filename: Client-side file name
            user_id: Uploading user
            content_type: MIME type reported by the client
            context: Client details recorded with the upload event

        Returns:
            The card; ``pending`` normally, ``failed`` if the queue was full

        Raises:
            ValidationError: The upload was rejected
            StorageError: The local or blob write failed; no card was created
        """
        self.validate(filename)
        data = stream.read()
        ext = self.validate(filename, len(data))
        if not data:
            raise ValidationError("Uploaded file is empty")

        local_path = self.upload_folder / f"card-{uuid.uuid4().hex}.{ext}"
        try:
            local_path.write_bytes(data)
        except OSError as e:
            remove_local_file(str(local_path))
            raise StorageError(f"Failed to save upload locally: {e}") from e

        try:
            blob = self.storage.upload(local_path, filename, user_id, content_type)
        except StorageError:
            remove_local_file(str(local_path))
            raise

        try:
            card = self.cards.create(Card(
                user_id=user_id,
                image_key=blob.key,
                image_url=blob.public_url,
                image_path=str(local_path)
            ))
        except Exception:
            logger.error(f"Card record not created for blob {blob.key}; releasing upload")
            self.storage.remove(blob.key)
            remove_local_file(str(local_path))
            raise

        self.activity.log(
            user_id,
            AuditAction.CARD_UPLOADED,
            EntityType.CARD,
            card.id,
            {"file_name": filename},
            context
        )

        try:
            self.queue.schedule(card.id, str(local_path), user_id)
        except QueueFullError as e:
            logger.warning(f"Card {card.id} not scheduled: {e}")
            self.cards.mark_failed(card.id, str(e))
            remove_local_file(str(local_path))
            raise

        logger.info(f"Card {card.id} uploaded by {user_id}; processing scheduled")
        return card
