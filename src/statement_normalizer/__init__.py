"""Statement Normalizer — PII-safe labelling of bank statement lines.

Sanitize, resolve with fixed rules, send only the residue to a model, then
assign spending categories.
"""

from .sanitizer import Sanitizer, SanitizerConfig, sanitize, extract_merchant_tokens
from .patterns import scan_pii
from .matcher import RuleMatcher, match, match_many
from .fallback import fallback
from .categorizer import DEFAULT_CATEGORIES, fallback_category, normalize_category
from .ai_client import AIBatchClient
from .pipeline import NormalizationPipeline, PipelineConfig, description_key
from .config import create_pipeline, load_config, load_from_yaml
from .types import (
    BatchItem, CategoryItem, CategoryResult, FallbackResult, NormalizedLine, PIIMatch,
    SimplificationResult, ValidatedAIResult,
)

__all__ = [
    "Sanitizer", "SanitizerConfig", "sanitize", "extract_merchant_tokens", "scan_pii",
    "RuleMatcher", "match", "match_many",
    "fallback",
    "DEFAULT_CATEGORIES", "fallback_category", "normalize_category",
    "AIBatchClient",
    "NormalizationPipeline", "PipelineConfig", "description_key",
    "create_pipeline", "load_config", "load_from_yaml",
    "BatchItem", "CategoryItem", "CategoryResult", "FallbackResult", "NormalizedLine", "PIIMatch",
    "SimplificationResult", "ValidatedAIResult",
]
__version__ = "0.1.0"
