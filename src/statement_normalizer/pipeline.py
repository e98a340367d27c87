"""NormalizationPipeline — the confidence cascade for one import batch.

    raw line ──► sanitize ──► rule match ──► (residue) model batch ──► merge
                                   │                 │
                                   └─ confident ─────┴─► categorize ──► preferences

Usage:
    from statement_normalizer import NormalizationPipeline, AIBatchClient

    pipeline = NormalizationPipeline(ai_client=AIBatchClient(api_key=key))
    lines = pipeline.run(["COMPRA MERCADONA VALENCIA CARD*1234", ...])
    lines[0].simplified   # "Mercadona"
"""

from __future__ import annotations
import logging
import re
import time
import unicodedata
from dataclasses import dataclass
from typing import Mapping, Sequence

from .ai_client import AIBatchClient, fallback_categories, fallback_results
from .categorizer import DEFAULT_CATEGORIES
from .matcher import RuleMatcher
from .sanitizer import Sanitizer
from .types import BatchItem, CategoryItem, NormalizedLine

logger = logging.getLogger(__name__)

_DATE = re.compile(r"\b\d{1,4}[-/]\d{1,2}[-/]\d{1,4}\b")
_NUMBER = re.compile(r"\b\d+(?:[.,]\d+)?\b")
_WHITESPACE = re.compile(r"\s+")


def description_key(raw: str) -> str:
    """Key used to look up a user's category preference for a description."""
    if not raw:
        return ""
    text = unicodedata.normalize("NFKD", raw.lower())
    text = "".join(c for c in text if not unicodedata.combining(c))
    text = _DATE.sub(" ", text)
    text = _NUMBER.sub(" ", text)
    return _WHITESPACE.sub(" ", text).strip()


@dataclass
class PipelineConfig:
    """Configuration for the pipeline."""
    rule_threshold: float = 0.75      # minimum rule confidence accepted without AI
    categories: tuple[str, ...] = DEFAULT_CATEGORIES   # offered to the category step


class NormalizationPipeline:
    """Sequences sanitize → match → model batch and merges the results.

    Without an ``ai_client`` the unresolved residue gets heuristic labels
    directly.  ``run`` never raises for any input.
    """

    def __init__(
        self,
        *,
        sanitizer: Sanitizer | None = None,
        matcher: RuleMatcher | None = None,
        ai_client: AIBatchClient | None = None,
        config: PipelineConfig | None = None,
    ) -> None:
        self.sanitizer = sanitizer or Sanitizer()
        self.matcher = matcher or RuleMatcher()
        self.ai_client = ai_client
        self.config = config or PipelineConfig()

    def run(
        self,
        raw_lines: Sequence[str],
        preferences: Mapping[str, str] | None = None,
        amounts: Sequence[float | None] | None = None,
        categories: Sequence[str] | None = None,
    ) -> list[NormalizedLine]:
        """Normalize one import batch; one NormalizedLine per input, in order.

        Lines the rules did not categorize get a category from the model,
        or a local guess.  ``amounts`` (signed, aligned with ``raw_lines``)
        helps tell income from spending; ``categories`` overrides the
        configured list for this call.  ``preferences`` maps
        ``description_key(raw)`` to a category chosen by the user; it
        overrides every other category.
        """
        started = time.monotonic()
        lines: list[NormalizedLine | None] = [None] * len(raw_lines)
        residue: list[tuple[int, str, str]] = []

        # --- Stage 1+2: sanitize and rule-match every line ---
        for i, raw in enumerate(raw_lines):
            sanitized = self.sanitizer.sanitize(raw)
            result = self.matcher.match(sanitized)
            if result.simplified and result.confidence >= self.config.rule_threshold:
                lines[i] = NormalizedLine(
                    raw=raw,
                    sanitized=sanitized,
                    simplified=result.simplified,
                    confidence=result.confidence,
                    source="rules",
                    matched_rule=result.matched_rule,
                    type_hint=result.type_hint,
                    category=result.category,
                    category_source="rules" if result.category else None,
                )
            else:
                residue.append((i, raw, sanitized))

        rule_count = len(raw_lines) - len(residue)
        logger.info("Rule coverage: %d/%d", rule_count, len(raw_lines))
        if residue:
            logger.debug(
                "Unmatched sample: %s", ", ".join(s for _, _, s in residue[:5])
            )

        # --- Stage 3: model batch for the residue ---
        if residue:
            items = [BatchItem(id=f"tx_{i}", sanitized_description=s) for i, _, s in residue]
            if self.ai_client is not None:
                labels = self.ai_client.simplify_batch(items)
            else:
                labels = fallback_results(items)
            missing = [item for item in items if item.id not in labels]
            if missing:
                labels.update(fallback_results(missing))

            for i, raw, sanitized in residue:
                label = labels[f"tx_{i}"]
                lines[i] = NormalizedLine(
                    raw=raw,
                    sanitized=sanitized,
                    simplified=label.simplified,
                    confidence=label.confidence,
                    source=label.source,
                    matched_rule=label.matched_rule,
                )

        # --- Stage 4: categories for lines the rules left uncategorized ---
        uncategorized = [i for i, line in enumerate(lines) if line.category is None]
        if uncategorized:
            categories = tuple(categories or self.config.categories)
            cat_items = [
                CategoryItem(
                    id=f"tx_{i}",
                    simplified=lines[i].simplified,
                    sanitized_description=lines[i].sanitized,
                    amount=_amount_at(amounts, i),
                )
                for i in uncategorized
            ]
            if self.ai_client is not None:
                assigned = self.ai_client.categorize_batch(cat_items, categories)
            else:
                assigned = fallback_categories(cat_items, categories)
            missing = [item for item in cat_items if item.id not in assigned]
            if missing:
                assigned.update(fallback_categories(missing, categories))

            for i in uncategorized:
                result = assigned[f"tx_{i}"]
                lines[i].category = result.category
                lines[i].category_source = result.source
            logger.info(
                "Categorized %d lines: ai=%d fallback=%d",
                len(uncategorized),
                sum(1 for i in uncategorized if lines[i].category_source == "ai"),
                sum(1 for i in uncategorized if lines[i].category_source == "fallback"),
            )

        # --- Stage 5: user preferences win over everything ---
        applied = 0
        if preferences:
            for line in lines:
                category = preferences.get(description_key(line.raw))
                if category:
                    line.category = category
                    line.category_source = "preference"
                    applied += 1

        elapsed_ms = (time.monotonic() - started) * 1000
        ai_count = sum(1 for line in lines if line.source == "ai")
        logger.info(
            "Normalized %d lines in %.0fms: rules=%d ai=%d fallback=%d preferences=%d",
            len(lines), elapsed_ms, rule_count, ai_count,
            len(residue) - ai_count, applied,
        )
        return lines


def _amount_at(amounts: Sequence[float | None] | None, i: int) -> float | None:
    if amounts is None or i >= len(amounts):
        return None
    return amounts[i]
