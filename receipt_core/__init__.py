"""
receipt_core: turns receipt photos, OCR text and forwarded emails into
structured purchase records.
"""

__version__ = "0.1.0"
