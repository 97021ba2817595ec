"""
OCR adapter and the EasyOCR recognition engine.

The adapter treats the engine as an opaque capability: it bounds every call
with a timeout and converts any engine failure into an unsuccessful
OCRResult instead of raising.
"""
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple, Union

import cv2
import numpy as np

from .errors import RecognitionError

logger = logging.getLogger(__name__)


@dataclass
class OCRResult:
    """Typed outcome of one recognition call."""
    success: bool
    text: str = ""
    confidence: float = 0.0
    error: Optional[str] = None
    engine: str = ""

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "text": self.text,
            "confidence": round(self.confidence, 4),
            "error": self.error,
            "engine": self.engine
        }


class RecognitionEngine:
    """Interface for OCR engines.

    ``recognize`` returns the recognized text and a confidence in [0, 1] and
    raises on any failure; the adapter takes care of the rest.
    """

    name = "engine"

    def recognize(self, image_path: Path) -> Tuple[str, float]:
        raise NotImplementedError


class EasyOCREngine(RecognitionEngine):
    """Recognition engine backed by EasyOCR."""

    name = "easyocr"

    # Results below this confidence are treated as noise
    MIN_CONFIDENCE = 0.15
    TARGET_WIDTH = 1600
    MAX_WIDTH = 2400

    def __init__(
        self,
        languages: List[str] = None,
        gpu: bool = False,
        model_dir: str = "./models"
    ):
        """
        Initialize the EasyOCR reader.

        Args:
            languages: List of languages for OCR
            gpu: Use GPU for OCR
            model_dir: Directory for model storage
        """
        import easyocr

        self.languages = languages or ["en"]
        self.gpu = gpu
        Path(model_dir).mkdir(parents=True, exist_ok=True)

        logger.info(f"Initializing EasyOCR with languages: {self.languages}")
        self.reader = easyocr.Reader(
            lang_list=self.languages,
            gpu=self.gpu,
            model_storage_directory=model_dir,
            download_enabled=True,
            verbose=False
        )
        logger.info("EasyOCR initialized successfully")

    def _preprocess_image(self, image_path: Path) -> np.ndarray:
        img = cv2.imread(str(image_path))
        if img is None:
            raise RecognitionError(f"Cannot read image: {image_path}")

        h, w = img.shape[:2]
        if w < self.TARGET_WIDTH:
            scale = self.TARGET_WIDTH / w
            img = cv2.resize(img, (self.TARGET_WIDTH, int(h * scale)), interpolation=cv2.INTER_CUBIC)
        elif w > self.MAX_WIDTH:
            scale = self.MAX_WIDTH / w
            img = cv2.resize(img, (self.MAX_WIDTH, int(h * scale)), interpolation=cv2.INTER_AREA)
        logger.debug(f"Resized from {w}x{h} to {img.shape[1]}x{img.shape[0]}")

        gray = cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)
        gray = cv2.fastNlMeansDenoising(gray, None, h=8, templateWindowSize=7, searchWindowSize=21)
        clahe = cv2.createCLAHE(clipLimit=3.0, tileGridSize=(12, 12))
        gray = clahe.apply(gray)

        return cv2.cvtColor(gray, cv2.COLOR_GRAY2BGR).astype(np.uint8)

    def recognize(self, image_path: Path) -> Tuple[str, float]:
        img = self._preprocess_image(image_path)
        results = self.reader.readtext(img, detail=1, paragraph=False)

        # Top-to-bottom by the top-left Y coordinate
        results.sort(key=lambda r: r[0][0][1])

        lines = []
        confidences = []
        for _bbox, text, confidence in results:
            text = text.strip()
            if confidence >= self.MIN_CONFIDENCE and text:
                lines.append(text)
                confidences.append(confidence)

        if not lines:
            raise RecognitionError("No text extracted from image")

        # Longer lines weigh more in the overall confidence
        weights = [len(line) for line in lines]
        confidence = sum(c * w for c, w in zip(confidences, weights)) / sum(weights)
        return "\n".join(lines), confidence


class OCRAdapter:
    """Bounded, exception-free front for a recognition engine.

    Each call runs the engine on its own daemon thread, so the timeout clock
    starts when the engine starts. A call that overruns is abandoned: its
    thread finishes in the background and the result is discarded.
    """

    def __init__(self, engine: RecognitionEngine, timeout: float = 60.0):
        self.engine = engine
        self.timeout = timeout
        self._lock = threading.Lock()
        self._abandoned = 0
        self._closed = False

    def extract_text(self, image_path: Union[str, Path]) -> OCRResult:
        """
        Recognize the text on a card image.

        Args:
            image_path: Local path of the image

        Returns:
            OCRResult; ``success`` is False on any engine error or timeout
        """
        image_path = Path(image_path)
        if self._closed:
            return OCRResult(success=False, error="OCR unavailable: adapter shut down", engine=self.engine.name)

        logger.info(f"Extracting text from {image_path} with {self.engine.name}")
        call = _EngineCall(self.engine, image_path)
        call.start()

        if not call.done.wait(self.timeout):
            with self._lock:
                self._abandoned += 1
            logger.error(f"OCR timed out after {self.timeout} seconds for {image_path}")
            call.on_finish(self._release)
            return OCRResult(
                success=False,
                error=f"OCR timed out after {self.timeout} seconds",
                engine=self.engine.name
            )

        if call.error is not None:
            e = call.error
            logger.error(f"OCR extraction error: {e}", exc_info=e)
            return OCRResult(success=False, error=str(e) or type(e).__name__, engine=self.engine.name)

        text, confidence = call.result
        if not text or not text.strip():
            return OCRResult(success=False, error="No text extracted from image", engine=self.engine.name)

        logger.info(f"Extracted {len(text.splitlines())} lines with {confidence:.2%} confidence")
        return OCRResult(success=True, text=text, confidence=float(confidence), engine=self.engine.name)

    def _release(self) -> None:
        with self._lock:
            self._abandoned -= 1
        logger.info("Abandoned OCR call finished")

    def shutdown(self) -> None:
        self._closed = True

    def get_status(self) -> dict:
        with self._lock:
            abandoned = self._abandoned
        return {
            "engine": self.engine.name,
            "timeout_seconds": self.timeout,
            "abandoned_calls": abandoned
        }


class _EngineCall(threading.Thread):
    """One engine invocation on a daemon thread."""

    def __init__(self, engine: RecognitionEngine, image_path: Path):
        super().__init__(name=f"ocr-{image_path.name}", daemon=True)
        self.engine = engine
        self.image_path = image_path
        self.result: Optional[Tuple[str, float]] = None
        self.error: Optional[BaseException] = None
        self.done = threading.Event()
        self._callbacks_lock = threading.Lock()
        self._callback = None

    def run(self) -> None:
        try:
            self.result = self.engine.recognize(self.image_path)
        except Exception as e:
            self.error = e
        finally:
            with self._callbacks_lock:
                self.done.set()
                callback = self._callback
            if callback is not None:
                callback()

    def on_finish(self, callback) -> None:
        """Run ``callback`` once the engine returns (now, if it already has)."""
        with self._callbacks_lock:
            if not self.done.is_set():
                self._callback = callback
                return
        callback()
