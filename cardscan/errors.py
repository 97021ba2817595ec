"""
Error taxonomy and best-effort result type for the card pipeline.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class CardScanError(Exception):
    """Base class for all pipeline errors."""


class ValidationError(CardScanError):
    """Upload rejected before anything is stored or scheduled."""


class StorageError(CardScanError):
    """Blob write, read or remove failed."""


class RecognitionError(CardScanError):
    """OCR engine failed or timed out."""


class QueueFullError(CardScanError):
    """The processing queue has no room for another card."""


@dataclass
class BestEffortResult:
    """Outcome of an operation whose failure must never abort the caller.

    Call sites decide explicitly whether to ignore or report it.
    """
    operation: str
    ok: bool = True
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "operation": self.operation,
            "ok": self.ok,
            "error": self.error
        }


def best_effort(operation: str, func: Callable[..., Any], *args, **kwargs) -> BestEffortResult:
    """Run ``func`` and convert any exception into a failed result.

    Args:
        operation: Short description used in logs and in the result
        func: Callable to run

    Returns:
        BestEffortResult describing what happened
    """
    try:
        func(*args, **kwargs)
        return BestEffortResult(operation=operation)
    except Exception as e:
        logger.warning(f"{operation} failed: {e}")
        return BestEffortResult(operation=operation, ok=False, error=str(e))
