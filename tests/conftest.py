"""
Shared fixtures: a scripted recognition engine and services wired to a
temporary directory.
"""

import threading
import time

import pytest

from cardscan.errors import RecognitionError
from cardscan.ocr import RecognitionEngine
from cardscan.services import build_services
from config import TestingConfig


SAMPLE_CARD_TEXT = (
    "John Smith\nSenior Engineer\nAcme Corp Ltd\njohn@acme.com\n"
    "+1-415-555-0100\nwww.acme.com\n123 Main St"
)


class ScriptedEngine(RecognitionEngine):
    """Recognition engine whose behaviour each test sets up."""

    name = "scripted"

    def __init__(self, text=SAMPLE_CARD_TEXT, confidence=0.9, error=None, delay=0.0):
        self.text = text
        self.confidence = confidence
        self.error = error
        self.delay = delay
        self.calls = []
        self.release = threading.Event()
        self.release.set()

    def recognize(self, image_path):
        self.calls.append(image_path)
        self.release.wait(10)
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.text, self.confidence


@pytest.fixture
def engine():
    return ScriptedEngine()


@pytest.fixture
def failing_engine():
    return ScriptedEngine(error=RecognitionError("engine exploded"))


@pytest.fixture
def test_config(tmp_path):
    class _Config(TestingConfig):
        DATABASE_PATH = str(tmp_path / "data" / "cards.db")
        UPLOAD_FOLDER = str(tmp_path / "uploads")
        BLOB_FOLDER = str(tmp_path / "blobs")
        STORAGE_BACKEND = "local"
        OCR_TIMEOUT = 2.0
        PROCESSING_WORKERS = 1
        PROCESSING_QUEUE_SIZE = 10
    return _Config


@pytest.fixture
def services(test_config, engine):
    services = build_services(test_config, engine=engine)
    yield services
    services.shutdown()


@pytest.fixture
def image_file(tmp_path):
    """A local card image copy, as the gateway leaves it for the pipeline."""
    path = tmp_path / "uploads" / "card-test.png"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"\x89PNG fake image data")
    return path
