"""
Process-wide wiring of the card pipeline.

External clients (OCR engine, blob storage) are built once here and passed
explicitly to everything that needs them.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .audit import ActivityLogger
from .gateway import IngestionGateway
from .lifecycle import CardDeletionCoordinator
from .ocr import EasyOCREngine, OCRAdapter, RecognitionEngine
from .parser import ContactParser
from .pipeline import CardPipeline
from .repository import ActivityLogRepository, CardRepository, ContactRepository, Database
from .storage import BlobStorage, LocalBlobStorage, SupabaseBlobStorage
from .worker import CardProcessingQueue

logger = logging.getLogger(__name__)


@dataclass
class CardServices:
    cards: CardRepository
    contacts: ContactRepository
    activity: ActivityLogger
    storage: BlobStorage
    ocr: OCRAdapter
    parser: ContactParser
    pipeline: CardPipeline
    queue: CardProcessingQueue
    gateway: IngestionGateway
    deletion: CardDeletionCoordinator

    def shutdown(self) -> None:
        self.queue.stop()
        self.ocr.shutdown()


def build_storage(config) -> BlobStorage:
    backend = config.STORAGE_BACKEND.lower()
    if backend == "supabase":
        return SupabaseBlobStorage(
            url=config.SUPABASE_URL,
            service_key=config.SUPABASE_SERVICE_ROLE_KEY,
            bucket=config.SUPABASE_BUCKET
        )
    if backend == "local":
        return LocalBlobStorage(config.BLOB_FOLDER)
    raise ValueError(f"Unknown storage backend: {config.STORAGE_BACKEND}")


def build_engine(config) -> RecognitionEngine:
    engine = config.OCR_ENGINE.lower()
    if engine == "gemini":
        from .vlm_ocr import GeminiEngine
        return GeminiEngine(
            api_key=config.GOOGLE_API_KEY,
            model=config.GEMINI_MODEL,
            request_timeout=config.OCR_TIMEOUT
        )
    if engine == "easyocr":
        return EasyOCREngine(
            languages=config.OCR_LANGUAGES,
            gpu=config.OCR_GPU,
            model_dir=config.OCR_MODEL_DIR
        )
    raise ValueError(f"Unknown OCR engine: {config.OCR_ENGINE}")


def build_services(
    config,
    engine: Optional[RecognitionEngine] = None,
    storage: Optional[BlobStorage] = None
) -> CardServices:
    """
    Build every collaborator from configuration.

    Args:
        config: Config class or instance
        engine: Recognition engine to use instead of the configured one
        storage: Blob storage to use instead of the configured one
    """
    db = Database(config.DATABASE_PATH)
    cards = CardRepository(db)
    contacts = ContactRepository(db)
    activity = ActivityLogger(ActivityLogRepository(db))
    storage = storage or build_storage(config)
    ocr = OCRAdapter(
        engine or build_engine(config),
        timeout=config.OCR_TIMEOUT
    )
    parser = ContactParser()
    pipeline = CardPipeline(ocr, cards, contacts, activity, parser)
    queue = CardProcessingQueue(
        pipeline,
        workers=config.PROCESSING_WORKERS,
        max_queue_size=config.PROCESSING_QUEUE_SIZE
    )
    gateway = IngestionGateway(
        upload_folder=config.UPLOAD_FOLDER,
        storage=storage,
        cards=cards,
        activity=activity,
        processing_queue=queue,
        allowed_extensions=config.ALLOWED_EXTENSIONS,
        max_file_size=config.MAX_CONTENT_LENGTH
    )
    deletion = CardDeletionCoordinator(cards, contacts, storage, activity)

    logger.info(f"Card services ready (ocr={ocr.engine.name}, storage={storage.name})")
    return CardServices(
        cards=cards,
        contacts=contacts,
        activity=activity,
        storage=storage,
        ocr=ocr,
        parser=parser,
        pipeline=pipeline,
        queue=queue,
        gateway=gateway,
        deletion=deletion
    )
