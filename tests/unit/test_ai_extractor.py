"""
Unit tests for the AI tier response parsing.
"""

import json
from datetime import date
from decimal import Decimal
from unittest.mock import Mock, patch

import pytest

from finsuggest.core.errors import ProviderError
from finsuggest.core.models import (
    Currency,
    ExpenseCategory,
    OperationContext,
    PaymentMethod,
    TransactionType,
)
from finsuggest.extractors.ai_extractor import AIExtractor


PAYMENT_ITEM = {
    "type": "payment",
    "amount": 12500.0,
    "currency": "MXN",
    "date": "2026-03-15",
    "description": "Pago SPEI cliente ACME",
    "paymentMethod": "transfer",
    "reference": "ABC12345",
    "confidence": 92,
    "reasoning": "SPEI receipt with amount and date",
}

EXPENSE_ITEM = {
    "type": "expense",
    "amount": "3,480.50",
    "currency": "usd",
    "date": "2026-02-10",
    "description": "Flete terrestre",
    "category": "freight",
    "confidence": 0.81,
}


@pytest.fixture
def extractor():
    provider = Mock()
    provider.generate.return_value = json.dumps([PAYMENT_ITEM])
    return AIExtractor(provider, min_confidence=70)


class TestParseResponse:
    def test_payment_item(self, extractor):
        [candidate] = extractor.parse_response(json.dumps([PAYMENT_ITEM]))

        assert candidate.type is TransactionType.PAYMENT
        assert candidate.amount == Decimal("12500.0")
        assert candidate.currency is Currency.MXN
        assert candidate.date == date(2026, 3, 15)
        assert candidate.payment_method is PaymentMethod.TRANSFER
        assert candidate.reference == "ABC12345"
        assert candidate.category is None
        assert candidate.reasoning.startswith("[ai]")

    def test_expense_item_with_fractional_confidence(self, extractor):
        [candidate] = extractor.parse_response(json.dumps([EXPENSE_ITEM]))

        assert candidate.type is TransactionType.EXPENSE
        assert candidate.amount == Decimal("3480.50")
        assert candidate.currency is Currency.USD
        assert candidate.confidence == 81
        assert candidate.category is ExpenseCategory.FREIGHT
        assert candidate.payment_method is None

    def test_object_with_transactions_key(self, extractor):
        raw = json.dumps({"transactions": [PAYMENT_ITEM, EXPENSE_ITEM]})

        assert len(extractor.parse_response(raw)) == 2

    def test_fenced_answer(self, extractor):
        raw = "```json\n" + json.dumps([PAYMENT_ITEM]) + "\n```"

        assert len(extractor.parse_response(raw)) == 1

    def test_below_threshold_dropped(self, extractor):
        low = dict(PAYMENT_ITEM, confidence=55)

        assert extractor.parse_response(json.dumps([low])) == []

    @pytest.mark.parametrize("amount", ["abc", None, -10, 0, float("inf")])
    def test_invalid_amount_skipped(self, extractor, amount):
        bad = dict(PAYMENT_ITEM, amount=amount)

        assert extractor.parse_response(json.dumps([bad, EXPENSE_ITEM]))[0].type is TransactionType.EXPENSE

    @pytest.mark.parametrize("confidence", [float("inf"), float("-inf"), float("nan")])
    def test_non_finite_confidence_skipped(self, extractor, confidence):
        bad = dict(PAYMENT_ITEM, confidence=confidence)

        candidates = extractor.parse_response(json.dumps([bad, EXPENSE_ITEM]))

        assert [c.type for c in candidates] == [TransactionType.EXPENSE]

    def test_unexpected_item_error_raises_provider_error(self, extractor):
        with patch.object(AIExtractor, "_build_candidate", side_effect=OverflowError("too large")):
            with pytest.raises(ProviderError):
                extractor.parse_response(json.dumps([PAYMENT_ITEM]))

    def test_unknown_type_skipped(self, extractor):
        assert extractor.parse_response(json.dumps([dict(PAYMENT_ITEM, type="refund")])) == []

    def test_unknown_currency_defaults_to_mxn(self, extractor):
        [candidate] = extractor.parse_response(json.dumps([dict(PAYMENT_ITEM, currency="XYZ")]))

        assert candidate.currency is Currency.MXN

    def test_empty_array(self, extractor):
        assert extractor.parse_response("[]") == []

    def test_not_json_raises(self, extractor):
        with pytest.raises(ProviderError):
            extractor.parse_response("I could not find any transaction.")

    def test_scalar_json_raises(self, extractor):
        with pytest.raises(ProviderError):
            extractor.parse_response("42")


class TestExtract:
    def test_prompt_contains_document_and_operation(self, extractor):
        context = OperationContext("op-1", "Importación ACME", "ACME Corp")

        candidates = extractor.extract("Comprobante de transferencia por $12,500.00 MXN", context)

        assert len(candidates) == 1
        prompt = extractor.provider.generate.call_args.args[0]
        assert "12,500.00" in prompt
        assert "Importación ACME" in prompt

    def test_provider_error_propagates(self, extractor):
        extractor.provider.generate.side_effect = ProviderError("down")

        with pytest.raises(ProviderError):
            extractor.extract("Comprobante de transferencia por $12,500.00 MXN")
