"""
Input sanitization and response parsing for AI calls.

Document text and email snippets are untrusted: they are cleaned and
neutralized against prompt injection before being placed in a prompt.
Model answers are parsed tolerantly (markdown fences, surrounding prose).
"""

import json
import re
import logging
import unicodedata
from typing import Any

from ..core.errors import ProviderError

logger = logging.getLogger(__name__)

# Maximum lengths to prevent resource exhaustion
MAX_DOCUMENT_LENGTH = 12000
MAX_SNIPPET_LENGTH = 1000

# Patterns that could be used for prompt injection
INJECTION_PATTERNS = [
    # Instruction override attempts
    r'(?i)ignore\s+(previous|all|above)\s+(instructions?|prompts?)',
    r'(?i)disregard\s+(previous|all|above)',
    r'(?i)forget\s+(everything|all|previous)',
    r'(?i)new\s+instructions?:',
    r'(?i)ignora\s+(las\s+)?instrucciones',
    # Role manipulation
    r'(?i)you\s+are\s+now',
    r'(?i)pretend\s+(to\s+be|you\s+are)',
    # Delimiter injection
    r'```system',
    r'<\|im_start\|>',
    r'<\|im_end\|>',
    r'\[INST\]',
    r'\[/INST\]',
]

_compiled_patterns = [re.compile(p) for p in INJECTION_PATTERNS]

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)


def sanitize_text(text: str, max_length: int = MAX_DOCUMENT_LENGTH) -> str:
    """
    Sanitize text input for safe LLM processing.

    Args:
        text: Input text to sanitize
        max_length: Maximum allowed length

    Returns:
        Sanitized text
    """
    if not text:
        return ""

    if not isinstance(text, str):
        text = str(text)

    # Remove null bytes and control characters (except newlines and tabs)
    text = re.sub(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]', '', text)

    # OCR output often carries compatibility glyphs (full-width digits, ligatures)
    text = unicodedata.normalize('NFKC', text)

    if len(text) > max_length:
        text = text[:max_length] + "..."
        logger.debug(f"Text truncated to {max_length} characters")

    injection_found = False
    for pattern in _compiled_patterns:
        if pattern.search(text):
            injection_found = True
            text = pattern.sub('[FILTERED]', text)

    if injection_found:
        logger.warning("Potential prompt injection detected and neutralized")

    return text


def sanitize_snippet(snippet: str) -> str:
    """Sanitize an email subject or snippet."""
    return sanitize_text(snippet, MAX_SNIPPET_LENGTH)


def is_safe_for_llm(text: str) -> bool:
    """
    Check if text appears safe for LLM processing.

    Returns:
        True if no injection patterns detected
    """
    if not text:
        return True

    for pattern in _compiled_patterns:
        if pattern.search(text):
            return False

    return True


def extract_json(text: str, opening: str = "[") -> Any:
    """
    Parse the JSON payload of a model response.

    Accepts bare JSON, markdown-fenced JSON, or JSON surrounded by prose.

    Args:
        text: Raw model answer
        opening: "[" when an array is expected, "{" for an object

    Raises:
        ProviderError: nothing parseable was found
    """
    cleaned = _FENCE_RE.sub("", text or "").strip()
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    closing = "]" if opening == "[" else "}"
    start = cleaned.find(opening)
    end = cleaned.rfind(closing)
    if start != -1 and end > start:
        try:
            return json.loads(cleaned[start : end + 1])
        except json.JSONDecodeError:
            pass

    raise ProviderError(f"Unparseable AI response: {cleaned[:200]!r}")
