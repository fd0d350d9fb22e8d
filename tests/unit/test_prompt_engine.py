"""
Unit tests for the prompt engine.
"""

from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from langdetect import LangDetectException

from finsuggest.core.models import ThreadMessage
from finsuggest.core.prompt_engine import PromptEngine


SPANISH_TEXT = (
    "Por medio de la presente les enviamos el comprobante de pago de la factura "
    "correspondiente al servicio de transporte del mes pasado."
)
ENGLISH_TEXT = (
    "Please find attached the payment receipt for the invoice related to the "
    "freight service provided last month."
)


class TestPromptEngine:
    """Tests for PromptEngine."""

    def setup_method(self):
        self.engine = PromptEngine()

    def test_detect_language_spanish(self):
        assert self.engine.detect_language(SPANISH_TEXT) == "es"

    def test_detect_language_english(self):
        assert self.engine.detect_language(ENGLISH_TEXT) == "en"

    def test_short_text_uses_default(self):
        """Text under 20 chars is not worth detecting."""
        assert self.engine.detect_language("Total 100") == "en"

    def test_detection_error_uses_default(self):
        with patch(
            "finsuggest.core.prompt_engine.detect",
            side_effect=LangDetectException(0, "no features"),
        ):
            assert self.engine.detect_language(SPANISH_TEXT) == "en"

    def test_unsupported_language_uses_default(self):
        with patch("finsuggest.core.prompt_engine.detect", return_value="fr"):
            assert self.engine.detect_language(ENGLISH_TEXT) == "en"

    def test_render_extraction_english(self):
        prompt = self.engine.render_extraction(
            ENGLISH_TEXT, operation_name="OP-100", client_name="ACME", min_confidence=70
        )

        assert "financial transaction analyzer" in prompt
        assert "Operation: OP-100" in prompt
        assert "Client: ACME" in prompt
        assert "confidence >= 70%" in prompt
        assert ENGLISH_TEXT in prompt

    def test_render_extraction_spanish(self):
        prompt = self.engine.render_extraction(SPANISH_TEXT, operation_name="OP-7")

        assert "analizador de transacciones" in prompt
        assert "Operación: OP-7" in prompt
        assert "Cliente: Desconocido" in prompt

    def test_render_extraction_without_context(self):
        prompt = self.engine.render_extraction(ENGLISH_TEXT)

        assert "No operation context available" in prompt

    def test_render_extraction_truncates_text(self):
        text = ENGLISH_TEXT + " " + "x" * 500
        prompt = self.engine.render_extraction(text, max_text_chars=50)

        assert text[:50] in prompt
        assert text[:51] not in prompt

    def test_render_thread_analysis(self):
        messages = [
            ThreadMessage(
                id="m1",
                sender="ops@client.com",
                subject="Pending customs documents",
                snippet="Please send the customs documents for the shipment as soon as possible.",
                date=datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc),
            )
        ]

        prompt = self.engine.render_thread_analysis(
            messages,
            existing_tasks=[{"status": "open", "title": "Book truck"}],
            existing_notes=[],
            min_confidence=70,
        )

        assert "From: ops@client.com" in prompt
        assert "- [open] Book truck" in prompt
        assert "confidence > 70%" in prompt

    def test_unknown_template(self):
        with pytest.raises(ValueError):
            self.engine.get_template("classify", "en")

    def test_custom_template_override(self, tmp_path):
        (tmp_path / "extract_en.j2").write_text("CUSTOM {{ text }}", encoding="utf-8")
        engine = PromptEngine(templates_dir=str(tmp_path))

        assert engine.render("extract", "en", text="hello") == "CUSTOM hello"
