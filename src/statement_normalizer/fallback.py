"""Local label heuristic used whenever the model path is unavailable or incomplete."""

from __future__ import annotations
import re

from .sanitizer import NOISE_WORDS
from .types import FallbackResult

FALLBACK_CONFIDENCE = 0.3
DEFAULT_LABEL = "Transaction"
MAX_LABEL_LENGTH = 50

_ALPHA_RUN = re.compile(r"[^\W\d_]{2,}")


def fallback(sanitized: str) -> FallbackResult:
    """Pick the first meaningful alphabetic run and Title-Case it.

    Banking prefixes (COMPRA, PAGO, RECIBO, ...), connectors and redaction
    placeholders are skipped.  If nothing survives, the first alphabetic
    run of any kind is used, then "Transaction".
    """
    text = (sanitized or "").upper()

    first_any: str | None = None
    for m in _ALPHA_RUN.finditer(text):
        run = m.group()
        if first_any is None:
            first_any = run
        if run not in NOISE_WORDS:
            return FallbackResult(_label(run), FALLBACK_CONFIDENCE)

    if first_any is not None:
        return FallbackResult(_label(first_any), FALLBACK_CONFIDENCE)
    return FallbackResult(DEFAULT_LABEL, FALLBACK_CONFIDENCE)


def _label(run: str) -> str:
    return run.capitalize()[:MAX_LABEL_LENGTH]
