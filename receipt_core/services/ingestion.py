"""
Pipeline entry points that combine preprocessing, OCR, validation and parsing.
"""

import logging
from typing import Any, Dict, Optional, Union

from ..config import Settings, settings as default_settings
from ..models.receipt import EmailParseResult, EmailPayload, ExtractedReceiptData
from .email_parser import EmailParser
from .ocr import OCRService
from .parser import ReceiptParser
from .preprocessing import ImagePreprocessor
from .validator import ReceiptValidator

logger = logging.getLogger(__name__)


class ReceiptProcessor:
    """
    Runs one receipt through the right pipeline.

    Images: preprocess -> OCR -> validate -> parse. Text: validate -> parse.
    Emails go straight to the email parser. The OCR service (and with it
    the long-lived engine session) is only built on the first image.
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        preprocessor: Optional[ImagePreprocessor] = None,
        ocr: Optional[OCRService] = None,
        validator: Optional[ReceiptValidator] = None,
        parser: Optional[ReceiptParser] = None,
        email_parser: Optional[EmailParser] = None,
    ):
        self.settings = config or default_settings
        self.preprocessor = preprocessor or ImagePreprocessor(self.settings)
        self._ocr = ocr
        self.validator = validator or ReceiptValidator()
        self.parser = parser or ReceiptParser()
        self.email_parser = email_parser or EmailParser(self.settings)

    @property
    def ocr(self) -> OCRService:
        if self._ocr is None:
            self._ocr = OCRService(self.settings)
        return self._ocr

    def process_image(self, image_bytes: bytes) -> ExtractedReceiptData:
        """
        Extract a receipt record from a photo.

        Returns the default record when no engine recognized any text.

        Raises:
            ProcessingError: undecodable image or no reachable OCR engine
            NotAReceiptError: text was recognized but is not a receipt
        """
        image = self.preprocessor.preprocess(image_bytes)
        recognition = self.ocr.extract_text(image)

        if recognition.is_empty:
            logger.warning(
                "No text extracted from image",
                extra={'engine': recognition.engine, 'used_fallback': recognition.used_fallback},
            )
            return ExtractedReceiptData.empty()

        return self.process_text(recognition.text)

    def process_text(self, text: str) -> ExtractedReceiptData:
        """
        Validate and parse already-recognized receipt text.

        Raises:
            NotAReceiptError: the text does not look like a receipt
        """
        report = self.validator.ensure_receipt(text)
        debug: Dict[str, Any] = {}
        record = self.parser.parse(text, debug=debug)
        logger.info(
            "Processed receipt text",
            extra={
                'tier': report.tier,
                'validation_score': report.score,
                'confidence_per_field': debug.get('confidence_per_field'),
                'warnings': debug.get('warnings'),
            },
        )
        return record

    def process_email(self, payload: Union[EmailPayload, Dict[str, Any], str]) -> EmailParseResult:
        return self.email_parser.parse(payload)

    def close(self) -> None:
        if self._ocr is not None:
            self._ocr.close()

    def __enter__(self) -> 'ReceiptProcessor':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
