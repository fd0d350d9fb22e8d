"""
Routes an attachment to the matching text extractor by file type.

PDF -> text layer, then OCR of the embedded page images when the text layer
is insufficient. Images -> OCR. Anything else yields no text.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from .ocr_extractor import IMAGE_EXTENSIONS, TesseractOCR
from .pdf_extractor import PdfTextExtractor

logger = logging.getLogger(__name__)

MIN_TEXT_CHARS = 50


@dataclass
class ExtractedText:
    text: str
    source: str  # "pdf", "ocr" or "none"

    @property
    def length(self) -> int:
        return len(self.text)


def detect_kind(filename: str, mime_type: Optional[str] = None) -> str:
    """Classify an attachment as "pdf", "image" or "other"."""
    if mime_type:
        mime = mime_type.lower()
        if mime == "application/pdf":
            return "pdf"
        if mime.startswith("image/"):
            return "image"

    ext = os.path.splitext(filename or "")[1].lower()
    if ext == ".pdf":
        return "pdf"
    if ext in IMAGE_EXTENSIONS:
        return "image"
    return "other"


class TextExtractorRouter:
    """
    Text extraction front door for the cascade.

    Args:
        pdf_extractor: PDF text layer reader
        ocr_engine: OCR adapter for images and scanned PDFs
        min_text_chars: Below this many characters the text is insufficient
    """

    def __init__(
        self,
        pdf_extractor: Optional[PdfTextExtractor] = None,
        ocr_engine: Optional[TesseractOCR] = None,
        min_text_chars: int = MIN_TEXT_CHARS,
    ):
        self.pdf_extractor = pdf_extractor or PdfTextExtractor()
        self.ocr_engine = ocr_engine or TesseractOCR()
        self.min_text_chars = min_text_chars

    def is_sufficient(self, text: str) -> bool:
        return len(text.strip()) >= self.min_text_chars

    def extract(self, binary: bytes, filename: str, mime_type: Optional[str] = None) -> ExtractedText:
        """
        Extract text from an attachment. Blocking; run it in a worker thread.

        Returns:
            ExtractedText, possibly empty. Never raises for bad input.
        """
        kind = detect_kind(filename, mime_type)

        if kind == "pdf":
            text = self.pdf_extractor.extract_text(binary)
            if self.is_sufficient(text):
                return ExtractedText(text, "pdf")

            logger.info(
                f"PDF text layer insufficient for {filename} ({len(text)} chars), trying OCR"
            )
            images = self.pdf_extractor.extract_images(binary)
            ocr_text = self.ocr_engine.recognize_many(images) if images else ""
            if len(ocr_text) > len(text):
                return ExtractedText(ocr_text, "ocr")
            return ExtractedText(text, "pdf" if text else "none")

        if kind == "image":
            text = self.ocr_engine.recognize(binary)
            return ExtractedText(text, "ocr" if text else "none")

        logger.info(f"No text extractor for {filename} (mime={mime_type})")
        return ExtractedText("", "none")
