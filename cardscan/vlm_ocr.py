"""
Vision Language Model OCR using Gemini.

Selected with CARD_API_OCR_ENGINE=gemini. The model is only asked to
transcribe the card; field extraction stays with ContactParser so both
engines feed the same heuristics.
"""

import json
import logging
import os
import re
from pathlib import Path
from typing import Dict, Optional, Tuple

from google import genai
from google.genai import types

from .errors import RecognitionError
from .ocr import RecognitionEngine

logger = logging.getLogger(__name__)


class GeminiEngine(RecognitionEngine):
    """Gemini-based transcription of business card images."""

    name = "gemini"

    TRANSCRIPTION_PROMPT = """Transcribe ALL visible text on this business card image.

Return a JSON object with these exact fields:
{
    "lines": ["Each line of text, top to bottom, exactly as printed"],
    "confidence": 0.0
}

Rules:
- Keep the printed line order, one entry per printed line
- Do NOT reformat, translate, or invent text
- confidence is your certainty in the transcription, between 0 and 1
- Return ONLY valid JSON, no markdown or explanation"""

    MIME_TYPES = {
        ".jpg": "image/jpeg",
        ".jpeg": "image/jpeg",
        ".png": "image/png",
        ".gif": "image/gif",
        ".webp": "image/webp",
        ".bmp": "image/bmp"
    }

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gemini-2.5-flash",
        request_timeout: float = 60.0
    ):
        """
        Initialize Gemini OCR.

        Args:
            api_key: Google API key (or set GOOGLE_API_KEY env var)
            model: Model to use
            request_timeout: Seconds before a hung API request is dropped
        """
        self.api_key = api_key or os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY")
        self.model_name = model
        if not self.api_key:
            raise RecognitionError("No Gemini API key provided. Set GOOGLE_API_KEY or GEMINI_API_KEY")
        # HttpOptions.timeout is in milliseconds
        self.client = genai.Client(
            api_key=self.api_key,
            http_options=types.HttpOptions(timeout=int(request_timeout * 1000))
        )
        logger.info(f"Gemini OCR initialized with model: {self.model_name}")

    def _parse_response(self, response_text: str) -> Dict:
        """Parse JSON from Gemini response."""
        try:
            return json.loads(response_text)
        except json.JSONDecodeError:
            # Models sometimes wrap the object in a markdown fence
            match = re.search(r"```(?:json)?\s*([\s\S]*?)\s*```", response_text) \
                or re.search(r"(\{[\s\S]*\})", response_text)
            if match:
                try:
                    return json.loads(match.group(1))
                except json.JSONDecodeError:
                    pass
        return {}

    def recognize(self, image_path: Path) -> Tuple[str, float]:
        image_bytes = Path(image_path).read_bytes()
        mime_type = self.MIME_TYPES.get(Path(image_path).suffix.lower(), "image/jpeg")

        logger.info(f"Calling Gemini API for: {image_path}")
        response = self.client.models.generate_content(
            model=self.model_name,
            contents=[
                types.Content(
                    parts=[
                        types.Part.from_text(text=self.TRANSCRIPTION_PROMPT),
                        types.Part.from_bytes(data=image_bytes, mime_type=mime_type)
                    ]
                )
            ],
            config=types.GenerateContentConfig(
                temperature=0.1,
                max_output_tokens=1024
            )
        )
        response_text = response.text or ""
        logger.debug(f"Gemini response: {response_text[:500]}")

        data = self._parse_response(response_text)
        lines = [str(line).strip() for line in data.get("lines") or [] if str(line).strip()]
        if not lines:
            raise RecognitionError("Failed to parse Gemini response")

        try:
            confidence = float(data.get("confidence") or 0.0)
        except (TypeError, ValueError):
            confidence = 0.0
        # Max 95% for VLM transcriptions
        return "\n".join(lines), min(max(confidence, 0.0), 0.95)
