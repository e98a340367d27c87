"""Tests for the end-to-end cascade: sanitize, rules, model residue, categories, preferences."""

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import logging
from unittest.mock import Mock

import pytest

from statement_normalizer import (
    AIBatchClient, CategoryResult, NormalizationPipeline, PipelineConfig, ValidatedAIResult,
    description_key,
)


RAW = [
    "COMPRA MERCADONA VALENCIA CARD*1234",
    "COMPRA TIENDA LOCAL DESCONOCIDA CARD*9999",
    "BIZUM A SR JUAN PEREZ REF:123456789012",
    "COMISION MANTENIMIENTO CUENTA",
    "PAGO PANADERIA SOL 28/03/2024",
]


def _ai_client(answers, categories=None):
    """Mock client answering ``{id: label}`` and ``{id: category}`` with model results."""
    client = Mock(spec=AIBatchClient)

    def simplify_batch(items):
        return {
            item.id: ValidatedAIResult(id=item.id, simplified=answers[item.id], confidence=0.8)
            for item in items if item.id in answers
        }

    def categorize_batch(items, categories_offered):
        return {
            item.id: CategoryResult(id=item.id, category=categories[item.id], confidence=0.9)
            for item in items if item.id in (categories or {})
        }

    client.simplify_batch.side_effect = simplify_batch
    client.categorize_batch.side_effect = categorize_batch
    return client


# ── Cascade ─────────────────────────────────────────────────────────

def test_rules_resolve_known_lines_and_residue_goes_to_model():
    client = _ai_client({"tx_1": "Tienda Local", "tx_4": "Panaderia Sol"})
    lines = NormalizationPipeline(ai_client=client).run(RAW)

    assert len(lines) == len(RAW)
    assert [line.raw for line in lines] == RAW
    assert [line.simplified for line in lines] == [
        "Mercadona", "Tienda Local", "Bizum Juan", "Bank Fee", "Panaderia Sol",
    ]
    assert [line.source for line in lines] == ["rules", "ai", "rules", "rules", "ai"]

    (items,), _ = client.simplify_batch.call_args
    assert [item.id for item in items] == ["tx_1", "tx_4"]
    assert items[0].sanitized_description == "COMPRA TIENDA LOCAL DESCONOCIDA CARD"


def test_rule_lines_carry_rule_metadata():
    lines = NormalizationPipeline().run(RAW[:1])
    line = lines[0]
    assert line.sanitized == "COMPRA MERCADONA VALENCIA CARD"
    assert line.matched_rule == "merchant:mercadona"
    assert line.type_hint == "merchant"
    assert line.category == "Groceries"
    assert line.category_source == "rules"
    assert line.confidence >= 0.9


def test_no_model_client_uses_fallback():
    lines = NormalizationPipeline().run(RAW)
    assert lines[1].simplified == "Tienda"
    assert lines[1].source == "fallback"
    assert lines[1].confidence < 0.5
    assert lines[4].simplified == "Panaderia"


def test_ids_missing_from_model_get_fallback():
    client = _ai_client({"tx_1": "Tienda Local"})
    lines = NormalizationPipeline(ai_client=client).run(RAW)
    assert lines[1].source == "ai"
    assert lines[4].source == "fallback"
    assert lines[4].simplified == "Panaderia"


def test_model_not_called_when_rules_cover_everything():
    client = _ai_client({})
    lines = NormalizationPipeline(ai_client=client).run([RAW[0], RAW[3]])
    client.simplify_batch.assert_not_called()
    client.categorize_batch.assert_not_called()
    assert all(line.source == "rules" for line in lines)


def test_threshold_sends_low_confidence_rules_to_model():
    client = _ai_client({"tx_0": "Mercadona Valencia"})
    pipeline = NormalizationPipeline(ai_client=client, config=PipelineConfig(rule_threshold=0.99))
    lines = pipeline.run(RAW[:1])
    assert lines[0].simplified == "Mercadona Valencia"
    assert lines[0].source == "ai"


def test_raw_pii_never_reaches_the_model():
    client = _ai_client({})
    NormalizationPipeline(ai_client=client).run(["TIENDA X +34 123 456 789 ES9121000418450200051332"])
    (items,), _ = client.simplify_batch.call_args
    sent = items[0].sanitized_description
    assert "123 456 789" not in sent
    assert "ES91" not in sent


@pytest.mark.parametrize("raw", ["", "   ", "***", "1234", "€€€"])
def test_labels_are_never_empty(raw):
    lines = NormalizationPipeline().run([raw])
    assert len(lines) == 1
    assert lines[0].simplified


def test_empty_batch():
    assert NormalizationPipeline().run([]) == []


# ── Categories ──────────────────────────────────────────────────────

def test_model_categorizes_lines_without_rule_category():
    client = _ai_client(
        {"tx_1": "Tienda Local", "tx_4": "Panaderia Sol"},
        categories={"tx_1": "Shopping", "tx_4": "Groceries"},
    )
    lines = NormalizationPipeline(ai_client=client).run(RAW)

    assert [line.category for line in lines] == [
        "Groceries", "Shopping", "Transfers", "Bank Fees", "Groceries",
    ]
    assert [line.category_source for line in lines] == ["rules", "ai", "rules", "rules", "ai"]

    (items, offered), _ = client.categorize_batch.call_args
    assert [item.id for item in items] == ["tx_1", "tx_4"]
    assert items[0].simplified == "Tienda Local"
    assert items[0].sanitized_description == "COMPRA TIENDA LOCAL DESCONOCIDA CARD"
    assert "Other" in offered


def test_categories_missing_from_model_get_local_guess():
    client = _ai_client({"tx_1": "Tienda Local", "tx_4": "Panaderia Sol"}, categories={"tx_1": "Shopping"})
    lines = NormalizationPipeline(ai_client=client).run(RAW)
    assert lines[4].category == "Groceries"
    assert lines[4].category_source == "fallback"


def test_amounts_reach_the_category_step():
    client = _ai_client({"tx_0": "Acme Ltd"})
    NormalizationPipeline(ai_client=client).run(["ABONO ACME LTD"], amounts=[1500.0])
    (items, _), _ = client.categorize_batch.call_args
    assert items[0].amount == 1500.0


def test_positive_amount_guides_local_category():
    lines = NormalizationPipeline().run(["REVERSAL ACME"], amounts=[12.5])
    assert lines[0].category == "Refunds"
    assert lines[0].category_source == "fallback"

    lines = NormalizationPipeline().run(["PAGO TIENDA"], amounts=[30.0])
    assert lines[0].category == "Other"
    assert lines[0].category_source == "fallback"


def test_categories_argument_overrides_configured_list():
    client = _ai_client({"tx_0": "Tienda"})
    NormalizationPipeline(ai_client=client).run(["TIENDA X"], categories=["Home", "Other"])
    (_, offered), _ = client.categorize_batch.call_args
    assert tuple(offered) == ("Home", "Other")


def test_every_line_gets_a_category():
    lines = NormalizationPipeline().run(RAW + ["", "***"])
    assert all(line.category for line in lines)


# ── Preferences ─────────────────────────────────────────────────────

def test_description_key():
    assert description_key("PAGO Panadería SOL 28/03/2024") == "pago panaderia sol"
    assert description_key("Café  12,50") == "cafe"
    assert description_key("") == ""


def test_preferences_override_rule_category():
    prefs = {description_key(RAW[0]): "Household"}
    lines = NormalizationPipeline().run(RAW, preferences=prefs)
    assert lines[0].category == "Household"
    assert lines[0].category_source == "preference"
    assert lines[3].category_source == "rules"


def test_preferences_apply_to_fallback_lines():
    prefs = {"pago panaderia sol": "Restaurants"}
    lines = NormalizationPipeline().run(RAW, preferences=prefs)
    assert lines[4].category == "Restaurants"
    assert lines[4].category_source == "preference"
    assert lines[1].category == "Other"
    assert lines[1].category_source == "fallback"


# ── Logging ─────────────────────────────────────────────────────────

def test_logs_summary(caplog):
    with caplog.at_level(logging.INFO, logger="statement_normalizer.pipeline"):
        NormalizationPipeline().run(RAW)
    assert "Rule coverage: 3/5" in caplog.text
    assert "rules=3" in caplog.text


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
