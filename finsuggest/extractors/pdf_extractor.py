"""
PDF text layer extraction with pypdf.

Scanned PDFs have no usable text layer; for those the embedded page images
are exposed so the router can hand them to OCR.
"""

import io
import logging
from typing import List

from pypdf import PdfReader
from pypdf.errors import PdfReadError

logger = logging.getLogger(__name__)


class PdfTextExtractor:
    """Reads the text layer of a PDF held in memory."""

    def __init__(self, max_pages: int = 50):
        self.max_pages = max_pages

    def extract_text(self, binary: bytes) -> str:
        """
        Concatenate the text of every page.

        Args:
            binary: PDF file content

        Returns:
            Page texts joined by newlines, "" when the file cannot be read
        """
        try:
            reader = PdfReader(io.BytesIO(binary))
            pages = []
            for page in reader.pages[: self.max_pages]:
                pages.append(page.extract_text() or "")
        except (PdfReadError, ValueError, KeyError, OSError) as e:
            logger.warning(f"PDF text extraction failed: {e}")
            return ""

        text = "\n".join(pages).strip()
        logger.debug(f"PDF text layer: {len(text)} chars from {len(pages)} pages")
        return text

    def extract_images(self, binary: bytes) -> List[bytes]:
        """
        Raw bytes of the images embedded in the PDF pages.

        Returns:
            Image payloads in page order, [] when none can be read
        """
        images: List[bytes] = []
        try:
            reader = PdfReader(io.BytesIO(binary))
            for page in reader.pages[: self.max_pages]:
                for image in page.images:
                    images.append(image.data)
        except (PdfReadError, ValueError, KeyError, OSError, NotImplementedError) as e:
            logger.warning(f"PDF image extraction failed: {e}")
        return images
