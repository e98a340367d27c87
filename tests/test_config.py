"""Tests for config loading and pipeline construction."""

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import pytest

from statement_normalizer import (
    DEFAULT_CATEGORIES, AIBatchClient, create_pipeline, load_config, load_from_yaml,
)
from statement_normalizer.ai_client import DEFAULT_MODEL


def test_defaults():
    cfg = load_config({}, environ={})
    assert cfg["rule_threshold"] == pytest.approx(0.75)
    assert cfg["ai_enabled"] is True
    assert cfg["api_key_env"] == "OPENROUTER_API_KEY"
    assert cfg["model"] == DEFAULT_MODEL
    assert cfg["batch_size"] == 25
    assert cfg["fallback_model"] is None


def test_nested_and_flat_are_equivalent():
    body = {"rule_threshold": 0.8, "ai": {"batch_size": 10}, "sanitizer": {"skip_kinds": ["PHONE"]}}
    nested = load_config({"statement_normalizer": body}, environ={})
    flat = load_config(body, environ={})
    assert nested == flat
    assert flat["batch_size"] == 10
    assert flat["skip_kinds"] == {"PHONE"}


def test_model_env_override_only_when_not_configured():
    env = {"OPENROUTER_SIMPLIFY_MODEL": "env/model"}
    assert load_config({}, environ=env)["model"] == "env/model"
    assert load_config({"ai": {"model": "cfg/model"}}, environ=env)["model"] == "cfg/model"


def test_load_from_yaml(tmp_path):
    path = tmp_path / "normalizer.yaml"
    path.write_text(
        "statement_normalizer:\n"
        "  rule_threshold: 0.9\n"
        "  sanitizer:\n"
        "    allow_list: [AMAZON.ES]\n"
        "  ai:\n"
        "    enabled: false\n"
        "    total_timeout: null\n"
    )
    cfg = load_from_yaml(path, environ={})
    assert cfg["rule_threshold"] == pytest.approx(0.9)
    assert cfg["allow_list"] == {"AMAZON.ES"}
    assert cfg["ai_enabled"] is False
    assert cfg["total_timeout"] is None


def test_load_from_empty_yaml(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert load_from_yaml(path, environ={})["rule_threshold"] == pytest.approx(0.75)


def test_category_settings():
    env = {"OPENROUTER_CATEGORY_MODEL": "env/categories"}
    cfg = load_config({"categories": ["Home", "Other"]}, environ=env)
    assert cfg["categories"] == ("Home", "Other")
    assert cfg["category_model"] == "env/categories"
    assert cfg["category_temperature"] == pytest.approx(0.1)
    assert load_config({}, environ={})["categories"] == DEFAULT_CATEGORIES
    assert load_config({}, environ={})["category_model"] is None


# ── create_pipeline ─────────────────────────────────────────────────

def test_create_pipeline_injects_key_from_environment():
    pipeline = create_pipeline({"ai": {"api_key_env": "MY_KEY", "batch_size": 7}}, environ={"MY_KEY": "secret"})
    assert isinstance(pipeline.ai_client, AIBatchClient)
    assert pipeline.ai_client.api_key == "secret"
    assert pipeline.ai_client.batch_size == 7
    assert pipeline.ai_client.configured


def test_create_pipeline_passes_category_settings():
    pipeline = create_pipeline(
        {"categories": ["Home", "Other"], "ai": {"model": "a/model", "category_model": "b/model"}},
        environ={},
    )
    assert pipeline.config.categories == ("Home", "Other")
    assert pipeline.ai_client.category_model == "b/model"
    assert pipeline.ai_client.model == "a/model"


def test_create_pipeline_without_key_still_labels_everything(caplog):
    pipeline = create_pipeline({}, environ={})
    assert pipeline.ai_client is not None
    assert not pipeline.ai_client.configured
    assert "OPENROUTER_API_KEY is not set" in caplog.text

    lines = pipeline.run(["COMPRA TIENDA LOCAL DESCONOCIDA CARD*9999"])
    assert lines[0].simplified == "Tienda"
    assert lines[0].source == "fallback"


def test_create_pipeline_ai_disabled():
    pipeline = create_pipeline({"ai": {"enabled": False}}, environ={"OPENROUTER_API_KEY": "k"})
    assert pipeline.ai_client is None


def test_create_pipeline_accepts_loaded_config():
    cfg = load_config({"rule_threshold": 0.5, "sanitizer": {"skip_kinds": ["PHONE"]}}, environ={})
    pipeline = create_pipeline(cfg, environ={})
    assert pipeline.config.rule_threshold == pytest.approx(0.5)
    assert "+34 123 456 789" in pipeline.sanitizer.sanitize("CALL +34 123 456 789")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
