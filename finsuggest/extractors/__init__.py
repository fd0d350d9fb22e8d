"""
Text and field extraction adapters.

- pdf_extractor: PDF text layer (pypdf)
- ocr_extractor: image OCR (Tesseract)
- router: picks the adapter by file type, PDF -> OCR fallback
- ai_extractor: AI tier prompt + response parsing
"""

from .ai_extractor import AIExtractor
from .ocr_extractor import TesseractOCR
from .pdf_extractor import PdfTextExtractor
from .router import ExtractedText, TextExtractorRouter, detect_kind

__all__ = [
    "AIExtractor",
    "ExtractedText",
    "PdfTextExtractor",
    "TesseractOCR",
    "TextExtractorRouter",
    "detect_kind",
]
