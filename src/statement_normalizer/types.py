"""Core types."""

from __future__ import annotations
from dataclasses import dataclass
from typing import Hashable


# "merchant" | "fee" | "atm" | "salary" | "refund" | "transfer"
TYPE_HINTS = ("merchant", "fee", "atm", "salary", "refund", "transfer")


@dataclass(frozen=True, slots=True)
class PIIMatch:
    """A single detected PII span in an uppercased description."""
    kind: str              # e.g. "CARD", "IBAN", "PHONE"
    start: int
    end: int
    text: str
    placeholder: str       # what the span is replaced with


@dataclass(frozen=True, slots=True)
class SimplificationResult:
    """Outcome of the rule engine for one sanitized line."""
    simplified: str | None
    confidence: float                    # 0.0–1.0
    matched_rule: str | None = None   # e.g. "merchant:mercadona"
    type_hint: str | None = None      # one of TYPE_HINTS
    category: str | None = None       # spending category hint

    @property
    def matched(self) -> bool:
        return self.simplified is not None


NO_MATCH = SimplificationResult(simplified=None, confidence=0.0)


@dataclass(frozen=True, slots=True)
class FallbackResult:
    """Local heuristic label. Never empty, always low confidence."""
    simplified: str
    confidence: float


@dataclass(frozen=True, slots=True)
class BatchItem:
    """One line handed to the external model."""
    id: Hashable
    sanitized_description: str


@dataclass(frozen=True, slots=True)
class ValidatedAIResult:
    """Model output after clamping/truncation, or a heuristic stand-in."""
    id: Hashable
    simplified: str
    confidence: float
    source: str = "ai"           # "ai" | "fallback"
    matched_rule: str = "ai"     # "ai" | "ai_fallback" | "fallback"


@dataclass(frozen=True, slots=True)
class CategoryItem:
    """One labelled line handed to the model for a spending category."""
    id: Hashable
    simplified: str
    sanitized_description: str
    amount: float | None = None          # signed; positive is money in


@dataclass(frozen=True, slots=True)
class CategoryResult:
    id: Hashable
    category: str
    confidence: float
    source: str = "ai"           # "ai" | "fallback"


@dataclass(slots=True)
class NormalizedLine:
    """Final per-line result handed back to the import pipeline."""
    raw: str
    sanitized: str
    simplified: str
    confidence: float
    source: str                          # "rules" | "ai" | "fallback"
    matched_rule: str | None = None
    type_hint: str | None = None
    category: str | None = None
    category_source: str | None = None   # "rules" | "ai" | "fallback" | "preference"
