"""Sanitizer — strips PII from raw statement lines before anything leaves the process.

Usage:
    from statement_normalizer import sanitize

    sanitize("COMPRA MERCADONA VALENCIA CARD*1234")
    # "COMPRA MERCADONA VALENCIA CARD"

    sanitize("BIZUM A SR JUAN PEREZ REF:123456789012")
    # "BIZUM A SR JUAN PEREZ REF"
"""

from __future__ import annotations
import re
from dataclasses import dataclass, field

from .patterns import PII_PATTERNS, normalize, scan_pii
from .types import PIIMatch

# Banking jargon and URL fragments that never identify a merchant
NOISE_WORDS = frozenset({
    "COMPRA", "PAGO", "RECIBO", "CARGO", "PAYMENT", "PURCHASE", "ONLINE",
    "EN", "DE", "DEL", "LA", "EL", "LOS", "LAS", "IN", "AT", "THE",
    "WWW", "COM", "HTTP", "HTTPS", "TPV", "POS", "TARJ", "TARJETA",
    "CARD", "IBAN", "PHONE", "AUTH", "REF",
})

_TOKEN_SPLIT = re.compile(r"[\s\-_/\\|.,;:*]+")


@dataclass
class SanitizerConfig:
    """Configuration for the Sanitizer."""
    # PII kinds to leave in place (e.g. {"PHONE"})
    skip_kinds: set[str] = field(default_factory=set)
    # Allow-list: exact uppercased values that should NEVER be redacted
    allow_list: set[str] = field(default_factory=set)


class Sanitizer:
    """Regex PII redactor for statement descriptions.

    Detection is ``scan_pii`` over the uppercased text; the merged spans it
    reports are exactly what gets replaced.
    """

    def __init__(self, config: SanitizerConfig | None = None) -> None:
        self.config = config or SanitizerConfig()
        self._allow_list = frozenset(v.upper() for v in self.config.allow_list)
        self._patterns = tuple(
            entry for entry in PII_PATTERNS
            if entry[0] not in self.config.skip_kinds
        )

    def scan(self, text: str) -> list[PIIMatch]:
        """Spans this sanitizer would redact, relative to ``normalize(text)``."""
        return scan_pii(text, self._patterns, self._allow_list)

    def sanitize(self, raw: str) -> str:
        """Return ``raw`` uppercased, with PII replaced by placeholders."""
        if not raw or not isinstance(raw, str):
            return ""
        text = normalize(raw)
        if not text:
            return ""

        spans = self.scan(text)
        if not spans:
            return text

        parts: list[str] = []
        pos = 0
        for span in spans:
            parts.append(text[pos:span.start])
            parts.append(f" {span.placeholder} ")
            pos = span.end
        parts.append(text[pos:])
        return normalize("".join(parts))


_default = Sanitizer()


def sanitize(raw: str) -> str:
    """Sanitize one raw line with the default configuration."""
    return _default.sanitize(raw)


def extract_merchant_tokens(sanitized: str) -> list[str]:
    """Split a sanitized line into candidate merchant tokens.

    Drops noise words, URL fragments and tokens shorter than 3 characters.
    """
    if not sanitized:
        return []
    tokens: list[str] = []
    for token in _TOKEN_SPLIT.split(sanitized.upper()):
        if len(token) < 3 or token in NOISE_WORDS or token.isdigit():
            continue
        tokens.append(token)
    return tokens
