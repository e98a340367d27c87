"""RuleMatcher — deterministic rule engine over sanitized descriptions.

Usage:
    from statement_normalizer import match

    match("COMPRA MERCADONA VALENCIA CARD")
    # SimplificationResult(simplified="Mercadona", confidence=0.95,
    #                      matched_rule="merchant:mercadona", type_hint="merchant", ...)

    match("COMPRA TIENDA LOCAL DESCONOCIDA CARD")
    # SimplificationResult(simplified=None, confidence=0.0, ...)  -> defer to AI
"""

from __future__ import annotations
from typing import Iterable, Sequence

from .rules import DEFAULT_RULES, RULE_CLASSES, Rule
from .types import NO_MATCH, SimplificationResult


class RuleMatcher:
    """Evaluates rule classes in fixed precedence order; first class with a hit wins.

    Within a class the longest matched span wins, over every occurrence of
    every rule; ties go to the rule listed first, then the earlier occurrence.
    """

    def __init__(self, rules: Iterable[Rule] = DEFAULT_RULES) -> None:
        by_class: dict[str, list[Rule]] = {c: [] for c in RULE_CLASSES}
        for rule in rules:
            by_class[rule.rule_class].append(rule)
        self._classes: tuple[tuple[Rule, ...], ...] = tuple(
            tuple(by_class[c]) for c in RULE_CLASSES
        )

    def match(self, sanitized: str) -> SimplificationResult:
        if not sanitized or not sanitized.strip():
            return NO_MATCH

        for rules in self._classes:
            best = None
            best_len = -1
            for rule in rules:
                for m in rule.pattern.finditer(sanitized):
                    if m.end() - m.start() > best_len:
                        best = (rule, m)
                        best_len = m.end() - m.start()
            if best is not None:
                rule, m = best
                return SimplificationResult(
                    simplified=rule.label(m),
                    confidence=rule.confidence,
                    matched_rule=rule.rule_id,
                    type_hint=rule.type_hint,
                    category=rule.category,
                )

        return NO_MATCH

    def match_many(self, descriptions: Sequence[str]) -> list[SimplificationResult]:
        return [self.match(d) for d in descriptions]


_default = RuleMatcher()


def match(sanitized: str) -> SimplificationResult:
    """Match one sanitized line against the built-in rule tables."""
    return _default.match(sanitized)


def match_many(descriptions: Sequence[str]) -> list[SimplificationResult]:
    return _default.match_many(descriptions)
