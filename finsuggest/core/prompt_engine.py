"""
Prompt engine with template system and language detection.

Renders the two AI prompts used by the pipeline:
- extract: transaction extraction from document text
- thread: task/note analysis of an email conversation

Templates exist in English and Spanish; the language follows the input text.
"""

import json
import logging
import os
from typing import Dict, List, Optional

from jinja2 import BaseLoader, Environment, StrictUndefined
from langdetect import DetectorFactory, LangDetectException, detect

logger = logging.getLogger(__name__)

# Deterministic language detection
DetectorFactory.seed = 0


class PromptEngine:
    """
    Template-based prompt engine with language detection.

    Features:
    - Jinja2 templates for flexible prompt formatting
    - Automatic language detection (langdetect) for en/es prompts
    - Custom template overrides loaded from a directory
    - Fallback to the default language for unsupported languages
    """

    SUPPORTED_LANGUAGES = {"en", "es"}
    DEFAULT_LANGUAGE = "en"
    MIN_DETECT_CHARS = 20

    # Default templates (embedded, no file dependencies)
    DEFAULT_TEMPLATES = {
        "extract_en": """You are a financial transaction analyzer for a logistics company. Analyze the following text and detect any financial transactions (PAYMENTS or EXPENSES).

**Context:**
{% if operation_name %}
- Operation: {{ operation_name }}
- Client: {{ client_name or "Unknown" }}
{% else %}
No operation context available
{% endif %}

**Rules:**
1. PAYMENT: Money RECEIVED from clients (to pay invoices, deposits, etc.)
2. EXPENSE: Money SENT by the company (fees, services, suppliers, etc.)
3. Only return transactions with confidence >= {{ min_confidence }}%
4. Extract: amount, currency ({{ currencies }}), date, description, reference
5. For payments: detect payment method (transfer, check, card, cash)
6. For expenses: detect category (travel, supplies, services, customs, freight, other)

**Text to analyze:**
{{ text }}

**Response format (JSON array):**
[
  {
    "type": "payment" | "expense",
    "amount": number,
    "currency": "MXN" | "USD" | "EUR",
    "date": "YYYY-MM-DD",
    "description": "Clear description",
    "paymentMethod": "transfer" (only for payments),
    "reference": "Reference number",
    "category": "category" (only for expenses),
    "confidence": 0-100,
    "reasoning": "Why this is a payment/expense"
  }
]

Return empty array [] if no transactions detected.""",

        "extract_es": """Eres un analizador de transacciones financieras para una empresa de logística. Analiza el siguiente texto y detecta transacciones financieras (PAGOS o GASTOS).

**Contexto:**
{% if operation_name %}
- Operación: {{ operation_name }}
- Cliente: {{ client_name or "Desconocido" }}
{% else %}
Sin contexto de operación
{% endif %}

**Reglas:**
1. PAYMENT: Dinero RECIBIDO de clientes (pago de facturas, depósitos, etc.)
2. EXPENSE: Dinero ENVIADO por la empresa (honorarios, servicios, proveedores, etc.)
3. Solo devuelve transacciones con confianza >= {{ min_confidence }}%
4. Extrae: monto, moneda ({{ currencies }}), fecha, descripción, referencia
5. Para pagos: detecta método de pago (transfer, check, card, cash)
6. Para gastos: detecta categoría (travel, supplies, services, customs, freight, other)

**Texto a analizar:**
{{ text }}

**Formato de respuesta (arreglo JSON, claves en inglés):**
[
  {
    "type": "payment" | "expense",
    "amount": number,
    "currency": "MXN" | "USD" | "EUR",
    "date": "YYYY-MM-DD",
    "description": "Descripción clara",
    "paymentMethod": "transfer" (solo pagos),
    "reference": "Número de referencia",
    "category": "categoría" (solo gastos),
    "confidence": 0-100,
    "reasoning": "Por qué es un pago/gasto"
  }
]

Devuelve un arreglo vacío [] si no hay transacciones.""",

        "thread_en": """Analyze this logistics / freight forwarding email thread and decide which tasks and notes are needed.

EMAIL THREAD:
{% for m in messages %}
Email {{ loop.index }}:
From: {{ m.sender }}
Subject: {{ m.subject }}
Date: {{ m.date.isoformat() }}
Content: {{ m.snippet }}
---
{% endfor %}

EXISTING TASKS IN THIS OPERATION:
{% for t in existing_tasks %}
- [{{ t.status }}] {{ t.title }}
{% else %}
None
{% endfor %}

EXISTING NOTES:
{% for n in existing_notes %}
- {{ n.content[:100] }}
{% else %}
None
{% endfor %}

Respond ONLY with a JSON object (no markdown):
{"tasks": [{"title": "...", "description": "...", "priority": "low|medium|high|urgent", "confidence": 0-100, "reasoning": "..."}],
 "notes": [{"content": "...", "confidence": 0-100, "reasoning": "..."}]}

IMPORTANT:
- Do NOT duplicate existing tasks
- Do NOT create generic tasks
- Only items with confidence > {{ min_confidence }}%
- If nothing is new, return empty arrays""",

        "thread_es": """Analiza esta cadena de correos sobre logística/freight forwarding y determina qué tareas y notas se necesitan.

THREAD DE CORREOS:
{% for m in messages %}
Correo {{ loop.index }}:
De: {{ m.sender }}
Asunto: {{ m.subject }}
Fecha: {{ m.date.isoformat() }}
Contenido: {{ m.snippet }}
---
{% endfor %}

TAREAS EXISTENTES EN ESTA OPERACIÓN:
{% for t in existing_tasks %}
- [{{ t.status }}] {{ t.title }}
{% else %}
Ninguna
{% endfor %}

NOTAS EXISTENTES:
{% for n in existing_notes %}
- {{ n.content[:100] }}
{% else %}
Ninguna
{% endfor %}

Responde SOLO con un objeto JSON (sin markdown):
{"tasks": [{"title": "...", "description": "...", "priority": "low|medium|high|urgent", "confidence": 0-100, "reasoning": "..."}],
 "notes": [{"content": "...", "confidence": 0-100, "reasoning": "..."}]}

IMPORTANTE:
- NO dupliques tareas que ya existen
- NO crees tareas genéricas
- Solo elementos con confianza > {{ min_confidence }}%
- Si no hay nada nuevo, devuelve arrays vacíos""",
    }

    def __init__(
        self,
        templates_dir: Optional[str] = None,
        default_language: str = DEFAULT_LANGUAGE,
    ):
        """
        Initialize prompt engine.

        Args:
            templates_dir: Optional directory for custom templates
            default_language: Fallback language (default: en)
        """
        self.templates_dir = templates_dir
        self.default_language = default_language

        self._env = Environment(
            loader=BaseLoader(),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            undefined=StrictUndefined,
        )

        self._custom_templates: Dict[str, str] = {}
        if templates_dir and os.path.isdir(templates_dir):
            self._load_custom_templates(templates_dir)

    def _load_custom_templates(self, templates_dir: str) -> None:
        """Load custom templates from directory (extract_es.j2, thread_en.txt...)."""
        for filename in os.listdir(templates_dir):
            if filename.endswith((".jinja2", ".txt", ".j2")):
                name = os.path.splitext(filename)[0]
                path = os.path.join(templates_dir, filename)
                with open(path, "r", encoding="utf-8") as f:
                    self._custom_templates[name] = f.read()
                logger.debug(f"Loaded custom template: {name}")

    def detect_language(self, text: str) -> str:
        """
        Detect language of text.

        Returns:
            Supported language code, or the default language
        """
        if not text or len(text.strip()) < self.MIN_DETECT_CHARS:
            return self.default_language

        try:
            lang = detect(text)
        except LangDetectException:
            return self.default_language

        return lang if lang in self.SUPPORTED_LANGUAGES else self.default_language

    def get_template(self, template_name: str, language: Optional[str] = None) -> str:
        """
        Get a template by name and language.

        Args:
            template_name: Base template name ('extract' or 'thread')
            language: Language code (defaults to default_language)

        Returns:
            Template string
        """
        lang = language or self.default_language
        key = f"{template_name}_{lang}"

        if key in self._custom_templates:
            return self._custom_templates[key]
        if key in self.DEFAULT_TEMPLATES:
            return self.DEFAULT_TEMPLATES[key]

        en_key = f"{template_name}_en"
        if en_key in self.DEFAULT_TEMPLATES:
            return self.DEFAULT_TEMPLATES[en_key]

        raise ValueError(f"Template not found: {template_name}")

    def render(self, template_name: str, language: Optional[str] = None, **context) -> str:
        """Render a template with the given variables."""
        template = self._env.from_string(self.get_template(template_name, language))
        return template.render(**context)

    def render_extraction(
        self,
        text: str,
        operation_name: Optional[str] = None,
        client_name: Optional[str] = None,
        min_confidence: int = 70,
        currencies: Optional[List[str]] = None,
        max_text_chars: int = 12000,
    ) -> str:
        """
        Build the transaction extraction prompt for document text.

        Args:
            text: Extracted document text
            operation_name: Operation the document belongs to
            client_name: Client of the operation
            min_confidence: Confidence floor announced to the model
            currencies: Currency codes to list in the prompt
            max_text_chars: Text is truncated to this many characters
        """
        language = self.detect_language(text)
        return self.render(
            "extract",
            language,
            text=text[:max_text_chars],
            operation_name=operation_name,
            client_name=client_name,
            min_confidence=min_confidence,
            currencies="/".join(currencies or ["MXN", "USD", "EUR"]),
        )

    def render_thread_analysis(
        self,
        messages: List,
        existing_tasks: List[Dict],
        existing_notes: List[Dict],
        min_confidence: int,
    ) -> str:
        """Build the conversation analysis prompt."""
        sample = " ".join(f"{m.subject} {m.snippet}" for m in messages[-3:])
        language = self.detect_language(sample)
        return self.render(
            "thread",
            language,
            messages=messages,
            existing_tasks=existing_tasks,
            existing_notes=existing_notes,
            min_confidence=min_confidence,
        )
