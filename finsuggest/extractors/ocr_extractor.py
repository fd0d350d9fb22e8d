"""
OCR adapter backed by Tesseract (pytesseract + Pillow).

Recognition is a black box: any failure yields "" so that the cascade treats
the document as having insufficient text.
"""

import io
import logging
from typing import Iterable, Optional

import pytesseract
from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".tif", ".tiff", ".bmp", ".webp")


class TesseractOCR:
    """
    Tesseract OCR engine.

    Args:
        languages: Tesseract language string (default Spanish + English)
        tesseract_cmd: Path to the tesseract binary when not on PATH
    """

    def __init__(self, languages: str = "spa+eng", tesseract_cmd: Optional[str] = None):
        self.languages = languages
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

    def recognize(self, binary: bytes, languages: Optional[str] = None) -> str:
        """
        Run OCR on one image.

        Returns:
            Recognized text, "" on any failure
        """
        try:
            with Image.open(io.BytesIO(binary)) as image:
                text = pytesseract.image_to_string(image, lang=languages or self.languages)
        except pytesseract.TesseractNotFoundError:
            logger.error("Tesseract binary not found; OCR disabled for this document")
            return ""
        except pytesseract.TesseractError as e:
            logger.warning(f"Tesseract failed: {e}")
            return ""
        except (UnidentifiedImageError, OSError) as e:
            logger.warning(f"OCR could not open image: {e}")
            return ""

        text = (text or "").strip()
        logger.debug(f"OCR recognized {len(text)} chars")
        return text

    def recognize_many(self, images: Iterable[bytes], languages: Optional[str] = None) -> str:
        """OCR several images (e.g. the pages of a scanned PDF) and join the text."""
        texts = [self.recognize(image, languages) for image in images]
        return "\n".join(t for t in texts if t).strip()
