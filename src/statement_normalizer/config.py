"""YAML/dict config loader for statement-normalizer.

Supports loading from a YAML file or a plain dict (for embedding
in a larger application config).

Example YAML:

    statement_normalizer:
      rule_threshold: 0.75
      categories: [Groceries, Restaurants, Shopping, Transfers, Income, Other]
      sanitizer:
        skip_kinds: []
        allow_list:
          - AMAZON.ES
      ai:
        enabled: true
        api_key_env: OPENROUTER_API_KEY
        model: anthropic/claude-3.5-sonnet
        fallback_model: google/gemini-2.0-flash-exp:free
        category_model: google/gemini-2.0-flash-exp:free
        endpoint: https://openrouter.ai/api/v1/chat/completions
        batch_size: 25
        max_workers: 3
        request_timeout: 30
        total_timeout: 90
        temperature: 0.3
        category_temperature: 0.1
        app_name: Statement Normalizer
        referer: http://localhost:3000

The API key itself never lives in the config; only the name of the
environment variable holding it.
"""

from __future__ import annotations
import logging
import os
from pathlib import Path
from typing import Any, Mapping

from .ai_client import DEFAULT_BATCH_SIZE, DEFAULT_ENDPOINT, DEFAULT_MODEL, AIBatchClient
from .categorizer import DEFAULT_CATEGORIES
from .matcher import RuleMatcher
from .pipeline import NormalizationPipeline, PipelineConfig
from .sanitizer import Sanitizer, SanitizerConfig

logger = logging.getLogger(__name__)

DEFAULT_API_KEY_ENV = "OPENROUTER_API_KEY"
MODEL_ENV = "OPENROUTER_SIMPLIFY_MODEL"
CATEGORY_MODEL_ENV = "OPENROUTER_CATEGORY_MODEL"


def load_config(
    data: dict[str, Any],
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Normalize a config dict (from YAML or inline)."""
    env = os.environ if environ is None else environ
    data = data or {}
    # Support nested under "statement_normalizer" key or flat
    if "statement_normalizer" in data:
        data = data["statement_normalizer"] or {}

    sanitizer = data.get("sanitizer") or {}
    ai = data.get("ai") or {}

    return {
        "rule_threshold": float(data.get("rule_threshold", 0.75)),
        "categories": tuple(data.get("categories") or DEFAULT_CATEGORIES),
        "skip_kinds": set(sanitizer.get("skip_kinds", [])),
        "allow_list": set(sanitizer.get("allow_list", [])),
        "ai_enabled": bool(ai.get("enabled", True)),
        "api_key_env": ai.get("api_key_env", DEFAULT_API_KEY_ENV),
        "model": ai.get("model") or env.get(MODEL_ENV) or DEFAULT_MODEL,
        "fallback_model": ai.get("fallback_model"),
        "category_model": ai.get("category_model") or env.get(CATEGORY_MODEL_ENV) or None,
        "endpoint": ai.get("endpoint", DEFAULT_ENDPOINT),
        "batch_size": int(ai.get("batch_size", DEFAULT_BATCH_SIZE)),
        "max_workers": int(ai.get("max_workers", 3)),
        "request_timeout": float(ai.get("request_timeout", 30.0)),
        "total_timeout": _optional_float(ai.get("total_timeout", 90.0)),
        "temperature": float(ai.get("temperature", 0.3)),
        "category_temperature": float(ai.get("category_temperature", 0.1)),
        "app_name": ai.get("app_name"),
        "referer": ai.get("referer"),
    }


def load_from_yaml(
    path: str | Path,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Load config from a YAML file."""
    import yaml
    with open(path) as f:
        return load_config(yaml.safe_load(f) or {}, environ=environ)


def create_pipeline(
    config: dict[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> NormalizationPipeline:
    """Create a fully configured pipeline from a config dict.

    The model credential is read here, from the environment variable the
    config names, and injected into the client.  A missing credential is
    not an error: the client then answers with heuristic labels.
    """
    env = os.environ if environ is None else environ
    config = config or {}
    cfg = config if "ai_enabled" in config else load_config(config, environ=env)

    sanitizer = Sanitizer(SanitizerConfig(
        skip_kinds=cfg["skip_kinds"],
        allow_list=cfg["allow_list"],
    ))

    ai_client = None
    if cfg["ai_enabled"]:
        api_key = env.get(cfg["api_key_env"]) or None
        if api_key is None:
            logger.warning(
                "%s is not set; unresolved lines will get heuristic labels",
                cfg["api_key_env"],
            )
        ai_client = AIBatchClient(
            api_key,
            model=cfg["model"],
            fallback_model=cfg["fallback_model"],
            category_model=cfg["category_model"],
            endpoint=cfg["endpoint"],
            batch_size=cfg["batch_size"],
            max_workers=cfg["max_workers"],
            request_timeout=cfg["request_timeout"],
            total_timeout=cfg["total_timeout"],
            temperature=cfg["temperature"],
            category_temperature=cfg["category_temperature"],
            app_name=cfg["app_name"],
            referer=cfg["referer"],
        )

    return NormalizationPipeline(
        sanitizer=sanitizer,
        matcher=RuleMatcher(),
        ai_client=ai_client,
        config=PipelineConfig(
            rule_threshold=cfg["rule_threshold"],
            categories=cfg["categories"],
        ),
    )


def _optional_float(value: Any) -> float | None:
    return None if value is None else float(value)
