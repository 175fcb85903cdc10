"""
Vision for relocator.

Tesseract OCR engine and the conditional click poller built on it.
"""

from relocator.vision.conditional import ConditionalClickPoller
from relocator.vision.ocr import OCREngine, OCREngineError, match_ocr_text

__all__ = [
	'ConditionalClickPoller',
	'OCREngine',
	'OCREngineError',
	'match_ocr_text',
]
