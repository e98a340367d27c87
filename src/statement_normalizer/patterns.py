"""PII patterns for bank statement descriptions.

Every pattern is written against UPPERCASED, whitespace-collapsed text and
uses only bounded or non-overlapping quantifiers, so a scan is linear in
the input length.  Each detected span is replaced by an alphabetic
placeholder (CARD, IBAN, PHONE, AUTH, REF); placeholders contain no digits.

Marker patterns (card, auth) swallow the whole chain of digit groups that
follows the marker, so the placeholder left behind is never followed by
something its own pattern would match again.
"""

from __future__ import annotations
import re
from typing import Collection, Sequence

from .types import PIIMatch

# Trailing digit groups after a card number: "*1234 5678", "-12", ".34"
_DIGIT_CHAIN = r"(?:[ *#:.\-]{1,3}\d+)*"

# Each pattern: (kind, compiled_regex, placeholder).  Order is priority:
# when spans overlap, the merged span is labelled with the earliest kind.
PII_PATTERNS: tuple[tuple[str, re.Pattern, str], ...] = (
    # IBAN, compact: country code, two check digits, 10-30 alphanumerics
    ("IBAN", re.compile(r"\b[A-Z]{2}\d{2}[A-Z0-9]{10,30}\b"), "IBAN"),

    # IBAN, printed in groups of four: ES91 2100 0418 4502 0005 1332
    ("IBAN", re.compile(
        r"\b[A-Z]{2}\d{2} ?[A-Z0-9]{4}(?: ?\d{4}){1,6}(?: ?(?=[A-Z]{0,3}\d)[A-Z0-9]{1,4}){0,2}\b"
    ), "IBAN"),

    # Card reference after a marker: CARD*1234, TARJ*1234, TARJETA 4111 1111 1111 1111
    ("CARD", re.compile(r"\b(?:CARD|TARJ(?:ETA)?)[ *#:.\-]{0,3}\d+" + _DIGIT_CHAIN), "CARD"),

    # Masked card: **** 9012
    ("CARD", re.compile(r"\*{2,8} ?\d{4,}" + _DIGIT_CHAIN), "CARD"),

    # Full card number in groups of four
    ("CARD", re.compile(r"\b\d{4}(?:[ \-]\d{4}){3}(?!\d)" + _DIGIT_CHAIN), "CARD"),

    # International phone: +34 123 456 789
    ("PHONE", re.compile(r"\+\d{1,3}(?:[ .\-]?\d{2,4}){2,5}"), "PHONE"),

    # Domestic phone: 123-456-7890, (555) 123-4567
    ("PHONE", re.compile(r"\b\d{3}-\d{3}-\d{4}\b|\(\d{3}\) ?\d{3}-\d{4}\b"), "PHONE"),

    # Authorization code: AUTH:ABC123, AUTH123456, AUTORIZACION CW4WE8Q35
    ("AUTH", re.compile(
        r"\bAUT(?:H|ORIZACION)(?:: ?| )?(?=[A-Z]*\d)[A-Z0-9]+(?:[ :](?=[A-Z]*\d)[A-Z0-9]+)*"
    ), "AUTH"),

    # Reference number after REF: / REFERENCIA:
    ("REF", re.compile(r"\bREF(?:ERENCIA)?[:#.] ?\d+"), "REF"),

    # Any remaining long numeric reference
    ("REF", re.compile(r"\d{9,}"), "REF"),
)

PLACEHOLDERS = frozenset(placeholder for _, _, placeholder in PII_PATTERNS)

_WHITESPACE = re.compile(r"\s+")


def normalize(text: str) -> str:
    """Uppercase and collapse whitespace."""
    return _WHITESPACE.sub(" ", text.upper()).strip()


def scan_pii(
    text: str,
    patterns: Sequence[tuple[str, re.Pattern, str]] = PII_PATTERNS,
    allow_list: Collection[str] = (),
) -> list[PIIMatch]:
    """Run all patterns against normalized text. Returns non-overlapping spans.

    Overlapping matches are merged into one span, so every character any
    pattern flagged is covered.  Matches whose text is allow-listed are
    dropped before merging.  Spans refer to ``normalize(text)``.
    """
    normalized = normalize(text)
    matches: list[tuple[int, int, int]] = []
    for priority, (_, pattern, _) in enumerate(patterns):
        for m in pattern.finditer(normalized):
            if m.group() in allow_list:
                continue
            matches.append((m.start(), m.end(), priority))
    return _merge(normalized, matches, patterns)


def _merge(
    text: str,
    matches: list[tuple[int, int, int]],
    patterns: Sequence[tuple[str, re.Pattern, str]],
) -> list[PIIMatch]:
    """Union overlapping spans in one sweep; the lowest priority index names the span."""
    if not matches:
        return []
    merged: list[PIIMatch] = []
    matches.sort()
    start, end, best = matches[0]
    for s, e, priority in matches[1:]:
        if s < end:
            end = max(end, e)
            best = min(best, priority)
            continue
        merged.append(_span(text, start, end, patterns[best]))
        start, end, best = s, e, priority
    merged.append(_span(text, start, end, patterns[best]))
    return merged


def _span(text: str, start: int, end: int, pattern: tuple[str, re.Pattern, str]) -> PIIMatch:
    kind, _, placeholder = pattern
    return PIIMatch(kind=kind, start=start, end=end, text=text[start:end], placeholder=placeholder)
