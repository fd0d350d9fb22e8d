"""
Rule-based fallback analyzer.

Works without any AI when the provider is rate limited, the circuit is open
or no API key is configured. Pure code: keyword vocabularies plus
prioritized regular expressions for amount, date, currency and reference.

Confidence is deliberately lower than the AI tier (65 for a clear type,
60 when both vocabularies match).
"""

import logging
import re
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Callable, List, Optional, Pattern, Tuple

from .models import (
    Currency,
    ExpenseCategory,
    OperationContext,
    PaymentMethod,
    TransactionCandidate,
    TransactionType,
)

logger = logging.getLogger(__name__)

RULE_REASONING_TAG = "[rule-based]"

MIN_AMOUNT = Decimal("1")
MAX_AMOUNT = Decimal("10000000")


@dataclass(frozen=True)
class KeywordRule:
    """A labelled keyword vocabulary. Keywords match at a word start."""
    label: Enum
    keywords: Tuple[str, ...]

    def matches(self, text: str) -> List[str]:
        """Keywords of this rule found in (lowercased, normalized) text."""
        return [kw for kw in self.keywords if re.search(r"\b" + re.escape(kw), text)]


@dataclass(frozen=True)
class AmountPattern:
    """
    Amount regex with a selection priority (higher wins).

    The amount is capture group "amount"; an optional "currency" group
    carries a currency code written next to the number.
    """
    name: str
    regex: Pattern
    priority: int


@dataclass(frozen=True)
class AmountMatch:
    amount: Decimal
    priority: int
    pattern: str
    position: int
    currency: Optional[Currency] = None


# Vocabularies

PAYMENT_RULE = KeywordRule(TransactionType.PAYMENT, (
    # Spanish
    "pago", "pagó", "transferencia", "depósito", "deposito", "abono",
    "cobro", "cobrado", "recibo", "comprobante de pago", "voucher",
    "transferido", "enviado", "remesa", "remitido",
    # English
    "payment", "paid", "transfer", "deposit", "receipt",
    "transferred", "sent", "remittance",
))

EXPENSE_RULE = KeywordRule(TransactionType.EXPENSE, (
    # Spanish
    "gasto", "factura", "compra", "adquisición", "adquisicion",
    "costo", "cargo", "cuenta", "consumo", "servicio",
    "proveedor", "solicitud de pago",
    # English
    "invoice", "bill", "expense", "purchase", "acquisition", "cost",
    "charge", "supplier", "vendor", "service fee",
))

# Checked in order, first match wins
PAYMENT_METHOD_RULES = (
    KeywordRule(PaymentMethod.TRANSFER, ("transferencia", "transfer", "spei", "wire")),
    KeywordRule(PaymentMethod.CASH, ("efectivo", "cash", "contado")),
    KeywordRule(PaymentMethod.CHECK, ("cheque", "check")),
    KeywordRule(PaymentMethod.CARD, ("tarjeta", "card", "visa", "mastercard")),
)

EXPENSE_CATEGORY_RULES = (
    KeywordRule(ExpenseCategory.TRAVEL, ("viaje", "viático", "travel", "transport", "hotel", "vuelo", "flight")),
    KeywordRule(ExpenseCategory.SUPPLIES, ("suministro", "material", "supplies", "equipment", "papelería")),
    KeywordRule(ExpenseCategory.SERVICES, ("servicio", "service", "consultoría", "consulting", "asesoría")),
    KeywordRule(ExpenseCategory.CUSTOMS, ("despacho", "aduana", "customs", "pedimento", "importación")),
    KeywordRule(ExpenseCategory.FREIGHT, ("flete", "freight", "transporte", "shipping", "envío")),
)

# Patterns

_NUMBER = r"(?<![\d.,])(?P<amount>\d{1,3}(?:,\d{3})+(?:\.\d{1,2})?|\d+(?:\.\d{1,2})?)(?![\d,])"
_CODES = r"USD|MXN|EUR|ARS|GBP|CAD"

AMOUNT_PATTERNS = (
    AmountPattern(
        "labelled",
        re.compile(
            r"\b(?:total|monto|amount|importe)\b[^\d\n$€]{0,20}?"
            r"(?:(?P<currency>" + _CODES + r")\s*)?[$€]?\s*" + _NUMBER,
            re.IGNORECASE,
        ),
        priority=3,
    ),
    AmountPattern(
        "currency-code",
        re.compile(r"\b(?P<currency>" + _CODES + r")\s*\$?\s*" + _NUMBER, re.IGNORECASE),
        priority=2,
    ),
    AmountPattern(
        "code-suffix",
        re.compile(_NUMBER + r"\s*(?P<currency>" + _CODES + r")\b", re.IGNORECASE),
        priority=2,
    ),
    AmountPattern(
        "symbol",
        re.compile(r"[$€]\s*" + _NUMBER),
        priority=1,
    ),
)

CURRENCY_RE = re.compile(
    r"\b(" + _CODES + r"|DÓLARES|DOLARES|DÓLAR|DOLAR|PESOS|PESO|EUROS|EURO)\b", re.IGNORECASE
)

REFERENCE_RE = re.compile(
    r"\b(?:REFERENCIA|REFERENCE|REF|SPEI|FOLIO|NO\.|CLAVE)[ \t:.#-]*((?=[A-Z0-9]*\d)[A-Z0-9]{4,})",
    re.IGNORECASE,
)

_MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
    "ene": 1, "abr": 4, "ago": 8, "dic": 12,
}

ISO_DATE_RE = re.compile(r"\b(\d{4})[-/](\d{1,2})[-/](\d{1,2})\b")
DMY_DATE_RE = re.compile(r"\b(\d{1,2})[-/](\d{1,2})[-/](\d{4}|\d{2})\b")
MONTH_DATE_RE = re.compile(r"\b([A-Za-z]{3})[a-z]*\.?\s+(\d{1,2}),?\s+(\d{4})\b")


def _normalize(text: str) -> str:
    return re.sub(r"[_\-.]+", " ", text.lower())


def clean_file_name(file_name: str) -> str:
    return re.sub(r"\.(pdf|png|jpe?g)$", "", file_name or "", flags=re.IGNORECASE)


class RuleBasedAnalyzer:
    """
    Keyword + regex transaction detector.

    Usage:
        analyzer = RuleBasedAnalyzer()
        candidates = analyzer.analyze(text, "comprobante_pago.pdf", context)
    """

    def __init__(
        self,
        clear_confidence: int = 65,
        ambiguous_confidence: int = 60,
        default_currency: Currency = Currency.MXN,
        today: Callable[[], date] = date.today,
    ):
        """
        Initialize analyzer.

        Args:
            clear_confidence: Confidence when exactly one vocabulary matches
            ambiguous_confidence: Confidence when both vocabularies match
            default_currency: Used when no currency is found in the text
            today: Date source for the plausibility window and fallback date
        """
        self.clear_confidence = clear_confidence
        self.ambiguous_confidence = ambiguous_confidence
        self.default_currency = default_currency
        self._today = today

    def analyze(
        self,
        text: str,
        file_name: str,
        context: Optional[OperationContext] = None,
    ) -> List[TransactionCandidate]:
        """
        Detect at most one transaction in text.

        Returns:
            [] when no vocabulary or no plausible amount is found
        """
        logger.debug(f"Rule-based analysis of {file_name} ({len(text)} chars)")

        haystack = f"{_normalize(text)} {_normalize(file_name)}"
        payment_hits = PAYMENT_RULE.matches(haystack)
        expense_hits = EXPENSE_RULE.matches(haystack)

        if not payment_hits and not expense_hits:
            logger.info(f"No payment or expense indicators in {file_name}")
            return []

        amount_match = self.select_amount(text)
        if amount_match is None:
            logger.info(f"No plausible amount found in {file_name}")
            return []

        tx_type, confidence, reasoning = self._classify(payment_hits, expense_hits, file_name)

        currency = amount_match.currency or self.extract_currency(text)
        operation_name = context.operation_name if context else "Operación desconocida"
        cleaned_name = clean_file_name(file_name)

        if tx_type is TransactionType.PAYMENT:
            description = f"Comprobante de pago - {cleaned_name} ({operation_name})"
        else:
            description = f"Gasto detectado - {cleaned_name} ({operation_name})"

        candidate = TransactionCandidate(
            type=tx_type,
            amount=amount_match.amount,
            currency=currency,
            date=self.extract_date(text) or self._today(),
            description=description,
            confidence=confidence,
            reasoning=f"{RULE_REASONING_TAG} {reasoning}; amount from {amount_match.pattern} match",
            reference=self.extract_reference(text),
        )
        if tx_type is TransactionType.PAYMENT:
            candidate.payment_method = self.detect_payment_method(haystack)
        else:
            candidate.category = self.detect_expense_category(haystack)

        logger.info(
            f"Rule-based tier detected {tx_type.value} of {currency.value} {candidate.amount} in {file_name}"
        )
        return [candidate]

    def _classify(self, payment_hits, expense_hits, file_name) -> Tuple[TransactionType, int, str]:
        if payment_hits and not expense_hits:
            return (
                TransactionType.PAYMENT,
                self.clear_confidence,
                f"payment keywords in text/file name ({', '.join(payment_hits[:3])})",
            )
        if expense_hits and not payment_hits:
            return (
                TransactionType.EXPENSE,
                self.clear_confidence,
                f"expense keywords in text/file name ({', '.join(expense_hits[:3])})",
            )

        name = file_name.lower()
        if "pago" in name or "payment" in name:
            return TransactionType.PAYMENT, self.ambiguous_confidence, "payment (file name breaks the tie)"
        return TransactionType.EXPENSE, self.ambiguous_confidence, "expense (both vocabularies matched)"

    def find_amounts(self, text: str) -> List[AmountMatch]:
        """All plausible amounts in text, with their pattern priority."""
        matches = []
        for pattern in AMOUNT_PATTERNS:
            for m in pattern.regex.finditer(text):
                try:
                    amount = Decimal(m.group("amount").replace(",", ""))
                except InvalidOperation:
                    continue
                if not (MIN_AMOUNT <= amount <= MAX_AMOUNT):
                    continue
                code = m.groupdict().get("currency")
                matches.append(AmountMatch(
                    amount=amount,
                    priority=pattern.priority,
                    pattern=pattern.name,
                    position=m.start("amount"),
                    currency=Currency.parse(code) if code else None,
                ))
        return matches

    def select_amount(self, text: str) -> Optional[AmountMatch]:
        """Highest pattern priority wins, then the highest value."""
        matches = self.find_amounts(text)
        if not matches:
            return None
        return max(matches, key=lambda m: (m.priority, m.amount))

    def extract_currency(self, text: str) -> Currency:
        match = CURRENCY_RE.search(text)
        if match:
            return Currency.parse(match.group(1), default=self.default_currency)
        if "€" in text:
            return Currency.EUR
        return self.default_currency

    def extract_reference(self, text: str) -> Optional[str]:
        match = REFERENCE_RE.search(text)
        return match.group(1).upper() if match else None

    def extract_date(self, text: str) -> Optional[date]:
        """First plausible date in text order (last 5 years up to next year)."""
        found: List[Tuple[int, date]] = []

        for m in ISO_DATE_RE.finditer(text):
            found.append((m.start(), self._make_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))))

        for m in DMY_DATE_RE.finditer(text):
            year = int(m.group(3))
            if year < 100:
                year += 2000
            # Day first, as written in Mexico and most of Europe
            found.append((m.start(), self._make_date(year, int(m.group(2)), int(m.group(1)))))

        for m in MONTH_DATE_RE.finditer(text):
            month = _MONTHS.get(m.group(1).lower())
            if month:
                found.append((m.start(), self._make_date(int(m.group(3)), month, int(m.group(2)))))

        today = self._today()
        earliest = today - timedelta(days=5 * 365 + 1)
        latest = today + timedelta(days=366)

        for _, candidate in sorted(found, key=lambda item: item[0]):
            if candidate is not None and earliest <= candidate <= latest:
                return candidate
        return None

    @staticmethod
    def _make_date(year: int, month: int, day: int) -> Optional[date]:
        try:
            return date(year, month, day)
        except ValueError:
            return None

    @staticmethod
    def detect_payment_method(haystack: str) -> PaymentMethod:
        for rule in PAYMENT_METHOD_RULES:
            if rule.matches(haystack):
                return rule.label
        return PaymentMethod.OTHER

    @staticmethod
    def detect_expense_category(haystack: str) -> ExpenseCategory:
        for rule in EXPENSE_CATEGORY_RULES:
            if rule.matches(haystack):
                return rule.label
        return ExpenseCategory.OTHER
