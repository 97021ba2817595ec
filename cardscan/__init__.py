"""
Asynchronous business card to contact pipeline.
"""

from .errors import (
    BestEffortResult,
    CardScanError,
    QueueFullError,
    RecognitionError,
    StorageError,
    ValidationError,
)
from .gateway import IngestionGateway
from .lifecycle import CardDeletionCoordinator, DeletionReport
from .models import Card, CardStatus, Contact
from .ocr import OCRAdapter, OCRResult, RecognitionEngine
from .parser import ContactParser, ParsedContactFields
from .pipeline import CardPipeline
from .worker import CardProcessingQueue

__all__ = [
    "BestEffortResult",
    "CardScanError",
    "QueueFullError",
    "RecognitionError",
    "StorageError",
    "ValidationError",
    "IngestionGateway",
    "CardDeletionCoordinator",
    "DeletionReport",
    "Card",
    "CardStatus",
    "Contact",
    "OCRAdapter",
    "OCRResult",
    "RecognitionEngine",
    "ContactParser",
    "ParsedContactFields",
    "CardPipeline",
    "CardProcessingQueue",
]
