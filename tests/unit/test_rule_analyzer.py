"""
Unit tests for the rule-based analyzer.
"""

from datetime import date
from decimal import Decimal

import pytest

from finsuggest.core.models import (
    Currency,
    ExpenseCategory,
    OperationContext,
    PaymentMethod,
    TransactionType,
)
from finsuggest.core.rule_analyzer import RULE_REASONING_TAG, RuleBasedAnalyzer


TODAY = date(2026, 4, 1)

PAYMENT_TEXT = (
    "Comprobante de transferencia SPEI\n"
    "Fecha: 15/03/2026\n"
    "Monto: $12,500.00 MXN\n"
    "Referencia: ABC12345\n"
)

EXPENSE_TEXT = (
    "Factura de servicio de flete\n"
    "Total: 3,480.50 USD\n"
    "Fecha 2026-02-10\n"
)


@pytest.fixture
def analyzer():
    return RuleBasedAnalyzer(today=lambda: TODAY)


@pytest.fixture
def context():
    return OperationContext("op-1", "Importación ACME", "ACME")


class TestAnalyze:
    """End-to-end behaviour of analyze()."""

    def test_payment_receipt(self, analyzer, context):
        candidates = analyzer.analyze(PAYMENT_TEXT, "comprobante_pago.pdf", context)

        assert len(candidates) == 1
        tx = candidates[0]
        assert tx.type is TransactionType.PAYMENT
        assert tx.amount == Decimal("12500.00")
        assert tx.currency is Currency.MXN
        assert tx.date == date(2026, 3, 15)
        assert tx.confidence == 65
        assert tx.payment_method is PaymentMethod.TRANSFER
        assert tx.category is None
        assert tx.reference == "ABC12345"
        assert tx.description == "Comprobante de pago - comprobante_pago (Importación ACME)"
        assert tx.reasoning.startswith(RULE_REASONING_TAG)

    def test_expense_invoice(self, analyzer, context):
        candidates = analyzer.analyze(EXPENSE_TEXT, "factura_flete.pdf", context)

        assert len(candidates) == 1
        tx = candidates[0]
        assert tx.type is TransactionType.EXPENSE
        assert tx.amount == Decimal("3480.50")
        assert tx.currency is Currency.USD
        assert tx.date == date(2026, 2, 10)
        assert tx.category is ExpenseCategory.SERVICES
        assert tx.payment_method is None
        assert tx.description.startswith("Gasto detectado - factura_flete")

    def test_both_vocabularies_file_name_breaks_tie(self, analyzer):
        text = "Pago de factura pendiente. Total $500"
        candidates = analyzer.analyze(text, "pago_factura.pdf")

        assert candidates[0].type is TransactionType.PAYMENT
        assert candidates[0].confidence == 60

    def test_both_vocabularies_defaults_to_expense(self, analyzer):
        text = "Pago de factura pendiente. Total $500"
        candidates = analyzer.analyze(text, "documento.pdf")

        assert candidates[0].type is TransactionType.EXPENSE
        assert candidates[0].confidence == 60

    def test_without_context_uses_unknown_operation(self, analyzer):
        candidates = analyzer.analyze("Pago recibido, total $800", "recibo.pdf")

        assert candidates[0].description.endswith("(Operación desconocida)")

    def test_no_keywords(self, analyzer):
        assert analyzer.analyze("Lorem ipsum dolor sit amet $500", "doc.pdf") == []

    def test_no_amount(self, analyzer):
        assert analyzer.analyze("Comprobante de pago sin importe", "doc.pdf") == []

    @pytest.mark.parametrize("amount", ["$0.50", "$50,000,000.00"])
    def test_implausible_amounts_ignored(self, analyzer, amount):
        assert analyzer.analyze(f"Pago total {amount}", "doc.pdf") == []

    def test_default_currency_and_date(self, analyzer):
        candidates = analyzer.analyze("Pago recibido, total 1,500.00", "doc.pdf")

        assert candidates[0].currency is Currency.MXN
        assert candidates[0].date == TODAY


class TestAmountSelection:
    """Pattern priority, then value."""

    def test_labelled_beats_larger_code_amount(self, analyzer):
        match = analyzer.select_amount("Total: $1,000.00. Subtotal USD 5,000.00")

        assert match.amount == Decimal("1000.00")
        assert match.pattern == "labelled"

    def test_highest_value_within_priority(self, analyzer):
        match = analyzer.select_amount("Pago $200 y $1,200")

        assert match.amount == Decimal("1200")

    def test_code_prefix_carries_currency(self, analyzer):
        match = analyzer.select_amount("Se transfirieron EUR 950.00 al proveedor")

        assert match.currency is Currency.EUR

    def test_no_amount(self, analyzer):
        assert analyzer.select_amount("sin montos") is None


class TestFieldExtraction:
    """Currency, date and reference helpers."""

    def test_currency_words(self, analyzer):
        assert analyzer.extract_currency("pagado en dolares") is Currency.USD
        assert analyzer.extract_currency("son 300 pesos") is Currency.MXN
        assert analyzer.extract_currency("total 40 €") is Currency.EUR
        assert analyzer.extract_currency("nada") is Currency.MXN

    def test_first_plausible_date_wins(self, analyzer):
        text = "Contrato 01/01/2015, pagado el 20/03/2026 y vence 2026-05-01"

        assert analyzer.extract_date(text) == date(2026, 3, 20)

    def test_month_name_date(self, analyzer):
        assert analyzer.extract_date("Paid on March 3, 2026") == date(2026, 3, 3)

    def test_invalid_dates_skipped(self, analyzer):
        assert analyzer.extract_date("31/02/2026") is None

    def test_reference_needs_digits(self, analyzer):
        assert analyzer.extract_reference("SPEI\nFecha: hoy") is None
        assert analyzer.extract_reference("Folio: a1b2c3") == "A1B2C3"

    def test_payment_methods(self, analyzer):
        assert analyzer.detect_payment_method("pago en efectivo") is PaymentMethod.CASH
        assert analyzer.detect_payment_method("pago con tarjeta visa") is PaymentMethod.CARD
        assert analyzer.detect_payment_method("pago") is PaymentMethod.OTHER

    def test_expense_categories(self, analyzer):
        assert analyzer.detect_expense_category("despacho aduanal") is ExpenseCategory.CUSTOMS
        assert analyzer.detect_expense_category("hotel en monterrey") is ExpenseCategory.TRAVEL
        assert analyzer.detect_expense_category("otros") is ExpenseCategory.OTHER
