"""
OCR engine adapters.

Both engines return ``(text, confidence)`` with confidence on the engine's
native 0-100 scale; OCRService maps it to 0-1.
"""

import io
import logging
import shlex
from statistics import mean
from typing import Any, Dict, Optional, Tuple

import pytesseract
from google.cloud import vision
from PIL import Image

from ..config import settings
from ..exceptions import OCRUnavailableError

logger = logging.getLogger(__name__)

# Vision omits confidences for some responses
DEFAULT_CLOUD_CONFIDENCE = 80.0


class TesseractEngine:
    """On-device Tesseract engine driven through pytesseract."""

    name = 'tesseract'

    def __init__(self, tesseract_cmd: Optional[str] = None, psm: int = 6):
        self.tesseract_cmd = tesseract_cmd or settings.TESSERACT_CMD
        self.psm = psm
        self.language = 'eng'
        self.params: Dict[str, Any] = {}

    def initialize(self, language: str = 'eng') -> None:
        """Point pytesseract at the binary and check it runs."""
        pytesseract.pytesseract.tesseract_cmd = self.tesseract_cmd
        self.language = language
        version = pytesseract.get_tesseract_version()
        logger.info("Tesseract initialized", extra={'version': str(version), 'language': language})

    def configure(self, **params: Any) -> None:
        self.params.update(params)

    def build_config(self) -> str:
        parts = ['--oem 3', f'--psm {self.psm}']
        for key, value in sorted(self.params.items()):
            parts.append(f'-c {key}={shlex.quote(str(value))}')
        return ' '.join(parts)

    def recognize(self, image_bytes: bytes) -> Tuple[str, float]:
        """
        Run Tesseract on an image.

        Returns:
            (text, mean word confidence 0-100); words Tesseract reports
            with -1 are layout boxes and are ignored
        """
        config = self.build_config()
        with Image.open(io.BytesIO(image_bytes)) as image:
            image.load()
            data = pytesseract.image_to_data(
                image, lang=self.language, config=config, output_type=pytesseract.Output.DICT
            )
            text = pytesseract.image_to_string(image, lang=self.language, config=config)

        confidences = []
        for conf, word in zip(data.get('conf', []), data.get('text', [])):
            try:
                value = float(conf)
            except (TypeError, ValueError):
                continue
            if value >= 0 and str(word).strip():
                confidences.append(value)

        confidence = mean(confidences) if confidences else 0.0
        return text.strip(), confidence


class CloudVisionEngine:
    """Google Cloud Vision document text detection."""

    name = 'google_vision'

    def __init__(
        self,
        credentials_path: Optional[str] = None,
        timeout: float = 30.0,
        client: Optional[vision.ImageAnnotatorClient] = None,
    ):
        self.credentials_path = credentials_path
        self.timeout = timeout
        self._client = client

    @property
    def client(self) -> vision.ImageAnnotatorClient:
        if self._client is None:
            if self.credentials_path:
                self._client = vision.ImageAnnotatorClient.from_service_account_file(self.credentials_path)
            else:
                self._client = vision.ImageAnnotatorClient()
        return self._client

    def recognize(self, image_bytes: bytes) -> Tuple[str, float]:
        image = vision.Image(content=image_bytes)
        response = self.client.document_text_detection(image=image, timeout=self.timeout)
        if response.error.message:
            raise OCRUnavailableError(
                f'Error detecting text: {response.error.message}',
                context={'engine': self.name, 'api_error': response.error.message},
            )

        annotation = response.full_text_annotation
        text = annotation.text if annotation else ''
        if not text and response.text_annotations:
            text = response.text_annotations[0].description

        confidences = [
            block.confidence
            for page in (annotation.pages if annotation else [])
            for block in page.blocks
            if block.confidence
        ]
        confidence = mean(confidences) * 100 if confidences else DEFAULT_CLOUD_CONFIDENCE
        return (text or '').strip(), confidence

    def close(self) -> None:
        transport = getattr(self._client, 'transport', None)
        if transport is not None:
            transport.close()
        self._client = None
