"""
Exception taxonomy for the receipt core.

Callers should treat the two branches differently:

- ProcessingError: the input could not be processed (undecodable image,
  no OCR engine reachable, misconfigured engine). Retry or alert.
- NotAReceiptError: the input was processed fine but the recognized text
  does not look like a receipt. Discard the upload.
"""

from typing import Any, Dict, Optional


class ReceiptCoreError(Exception):
    """Base exception for every error raised by receipt_core."""

    default_code = 'receipt_core_error'
    default_detail = 'Receipt processing failed'

    def __init__(
        self,
        detail: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.detail = detail or self.default_detail
        self.code = self.default_code
        self.context = context or {}
        super().__init__(self.detail)

    def to_dict(self) -> Dict[str, Any]:
        return {'code': self.code, 'detail': self.detail, 'context': self.context}


# ========================
# Processing errors (hard failures)
# ========================

class ProcessingError(ReceiptCoreError):
    """Container-level failure; the caller should retry or alert."""
    default_code = 'processing_error'
    default_detail = 'Receipt could not be processed'


class PreprocessingFailure(ProcessingError):
    """Image undecodable even after the minimal fallback pass."""
    default_code = 'preprocessing_failed'
    default_detail = 'Failed to decode image for OCR'


class ImageConversionError(PreprocessingFailure):
    """No converter could turn an exotic container into a standard raster."""
    default_code = 'image_conversion_failed'
    default_detail = 'Failed to convert image container'


class EngineConfigurationError(ProcessingError):
    """OCR engine exposes no supported initialization sequence."""
    default_code = 'ocr_engine_misconfigured'
    default_detail = 'OCR engine exposes no supported initialization sequence'


class OCRUnavailableError(ProcessingError):
    """Neither the primary nor the fallback OCR engine could be reached."""
    default_code = 'ocr_unavailable'
    default_detail = 'No OCR engine could be reached'


# ========================
# Internal recognition signals (trigger engine fallback)
# ========================

class RecognitionTimeout(ReceiptCoreError):
    default_code = 'ocr_timeout'
    default_detail = 'OCR recognition timed out'


class LowConfidence(ReceiptCoreError):
    """Primary engine answered, but with no text or below the threshold."""
    default_code = 'ocr_low_confidence'
    default_detail = 'OCR text extraction confidence is too low'

    def __init__(self, result=None, detail: Optional[str] = None):
        self.result = result
        context = {}
        if result is not None:
            context = {'confidence': result.confidence, 'engine': result.engine}
        super().__init__(detail=detail, context=context)


# ========================
# Validation rejection
# ========================

class NotAReceiptError(ReceiptCoreError):
    """Recognized text does not look like a receipt."""
    default_code = 'NOT_A_RECEIPT'
    default_detail = 'Uploaded image does not appear to contain a receipt'

    def __init__(self, report=None, detail: Optional[str] = None):
        self.report = report
        context = {}
        if report is not None:
            context = {'score': report.score, 'signals': report.signals()}
        super().__init__(detail=detail, context=context)
