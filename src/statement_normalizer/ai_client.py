"""Batched model client for lines the rule engine could not resolve.

Speaks the OpenAI-compatible chat completions format:

    POST {endpoint}
    {"model": ..., "messages": [...], "response_format": {...}, "temperature": ...}
    -> {"choices": [{"message": {"content": "<JSON string>"}}]}

Usage:
    client = AIBatchClient(api_key=os.environ.get("OPENROUTER_API_KEY"))
    results = client.simplify_batch([
        BatchItem(id="tx_0", sanitized_description="COMPRA TIENDA LOCAL CARD"),
    ])
    results["tx_0"].simplified   # model label, or a heuristic one

``categorize_batch`` works the same way for spending categories of lines
that already carry a label.

Neither call raises and both return one entry per requested id.  Missing
credential, transport errors, non-2xx responses, unusable bodies and
timeouts all degrade to local heuristics.
"""

from __future__ import annotations
import json
import logging
import math
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Any, Callable, Hashable, Sequence

import requests

from .categorizer import (
    DEFAULT_CATEGORIES, FALLBACK_CATEGORY_CONFIDENCE, fallback_category, normalize_category,
)
from .fallback import fallback
from .types import BatchItem, CategoryItem, CategoryResult, ValidatedAIResult

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://openrouter.ai/api/v1/chat/completions"
DEFAULT_MODEL = "anthropic/claude-3.5-sonnet"
DEFAULT_BATCH_SIZE = 25
MAX_BATCH_SIZE = 100
MAX_LABEL_LENGTH = 50
DEFAULT_CONFIDENCE = 0.5

SYSTEM_PROMPT = """You are a transaction description simplifier. Extract a clean, concise merchant name or label from each bank transaction description.

RULES:
1. Extract the PRIMARY merchant or service name (e.g. "Amazon", "Spotify", "Uber")
2. For transfers use "Transfer <FirstName>" or just "Transfer"
3. For generic operations use: "Bank Fee", "ATM Withdrawal", "Salary", "Refund"
4. Remove banking jargon (COMPRA, PAGO, TPV, POS, ...) and locations (MADRID, VALENCIA, ...)
5. Use Title Case, 1-3 words, at most 50 characters
6. If unclear, make a best guess; never return the full description

Respond with ONLY a JSON object:
{{"results": [{{"id": "tx_0", "simplified": "Amazon", "confidence": 0.9}}]}}

Return ALL {count} items, use each "id" exactly as given, confidence between 0.0 and 1.0."""

CATEGORY_PROMPT = """You are a transaction categorization expert. Put each transaction into ONE of the available categories, based on its simplified merchant name and amount.

AVAILABLE CATEGORIES:
{categories}

RULES:
1. Use ONLY categories from the list above, spelled exactly as listed
2. "simplified_description" is the primary signal (e.g. "Amazon", "Spotify", "Transfer Juan")
3. "amount" is signed: negative is an expense, positive is money coming in
4. A positive amount that is not salary is most likely Transfers or Refunds
5. Use "Other" only as a last resort; the same merchant always gets the same category

Respond with ONLY a JSON object:
{{"results": [{{"id": "tx_0", "category": "Groceries", "confidence": 0.9}}]}}

Return ALL {count} items, use each "id" exactly as given, confidence between 0.0 and 1.0."""


class _UpstreamError(Exception):
    """Non-2xx response from the completion endpoint."""


class AIBatchClient:
    """Sends lines to the model in bounded, independent batches.

    The credential is injected; ``api_key=None`` is a supported mode that
    answers every item with a local heuristic and makes no network calls.

    Without a ``session`` each request goes through ``requests.post``, so
    worker threads never share a connection pool.
    """

    def __init__(
        self,
        api_key: str | None,
        *,
        model: str = DEFAULT_MODEL,
        fallback_model: str | None = None,
        category_model: str | None = None,
        endpoint: str = DEFAULT_ENDPOINT,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_workers: int = 3,
        request_timeout: float = 30.0,
        total_timeout: float | None = 90.0,
        temperature: float = 0.3,
        category_temperature: float = 0.1,
        app_name: str | None = None,
        referer: str | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.fallback_model = fallback_model
        self.category_model = category_model or model
        self.endpoint = endpoint
        self.batch_size = max(1, min(int(batch_size), MAX_BATCH_SIZE))
        self.max_workers = max(1, int(max_workers))
        self.request_timeout = request_timeout
        self.total_timeout = total_timeout
        self.temperature = temperature
        self.category_temperature = category_temperature
        self.app_name = app_name
        self.referer = referer
        self._session = session

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def simplify_batch(self, items: Sequence[BatchItem]) -> dict[Hashable, ValidatedAIResult]:
        """Label every item; one entry per distinct id, never raises."""
        return self._guarded(
            items, "labels",
            process=lambda chunk, n, total: self._call_models(
                chunk, n, total, self.model, self.build_payload, merge_records,
            ),
            fallback_fn=lambda chunk: fallback_results(chunk, matched_rule="fallback"),
        )

    def categorize_batch(
        self,
        items: Sequence[CategoryItem],
        categories: Sequence[str] = DEFAULT_CATEGORIES,
    ) -> dict[Hashable, CategoryResult]:
        """Pick one of ``categories`` for every item; never raises.

        Model answers outside the list are mapped through known aliases,
        then to "Other".
        """
        categories = tuple(categories) or DEFAULT_CATEGORIES
        return self._guarded(
            items, "categories",
            process=lambda chunk, n, total: self._call_models(
                chunk, n, total, self.category_model,
                lambda c, model: self.build_category_payload(c, model, categories),
                lambda c, records: merge_categories(c, records, categories),
            ),
            fallback_fn=lambda chunk: fallback_categories(chunk, categories),
        )

    # ------------------------------------------------------------------
    # Batching
    # ------------------------------------------------------------------

    def _guarded(
        self,
        items: Sequence[Any],
        what: str,
        process: Callable[[list, int, int], dict],
        fallback_fn: Callable[[list], dict],
    ) -> dict:
        if not items:
            return {}
        items = list(items)

        if not self.configured:
            logger.warning(
                "No API key configured, using heuristic %s for %d items", what, len(items)
            )
            return fallback_fn(items)

        try:
            return self._run(items, what, process, fallback_fn)
        except Exception:
            logger.exception("Batch %s request failed, using heuristic %s", what, what)
            return fallback_fn(items)

    def _run(
        self,
        items: list,
        what: str,
        process: Callable[[list, int, int], dict],
        fallback_fn: Callable[[list], dict],
    ) -> dict:
        chunks = [
            items[i:i + self.batch_size]
            for i in range(0, len(items), self.batch_size)
        ]
        total = len(chunks)
        results: dict = {}

        executor = ThreadPoolExecutor(
            max_workers=min(self.max_workers, total),
            thread_name_prefix=f"ai-{what}",
        )
        try:
            futures = {
                executor.submit(process, chunk, n, total): chunk
                for n, chunk in enumerate(chunks, start=1)
            }
            done, pending = wait(futures, timeout=self.total_timeout)

            for future in done:
                chunk = futures[future]
                try:
                    results.update(future.result())
                except _UpstreamError as e:
                    logger.warning("%s, using heuristic %s", e, what)
                    results.update(fallback_fn(chunk))
                except Exception:
                    logger.exception("Batch worker crashed, using heuristic %s", what)
                    results.update(fallback_fn(chunk))

            for future in pending:
                chunk = futures[future]
                logger.warning(
                    "Batch of %d items timed out after %ss, using heuristic %s",
                    len(chunk), self.total_timeout, what,
                )
                results.update(fallback_fn(chunk))
        finally:
            # Do not wait for timed-out batches
            executor.shutdown(wait=False, cancel_futures=True)

        return results

    def _call_models(
        self,
        chunk: list,
        batch_num: int,
        total: int,
        model: str,
        payload_fn: Callable[[list, str], dict[str, Any]],
        merge_fn: Callable[[list, list[Any]], dict],
    ) -> dict:
        """Try ``model`` then the secondary model; raises only if both fail."""
        models = [model]
        if self.fallback_model and self.fallback_model != model:
            models.append(self.fallback_model)

        logger.info("Processing batch %d/%d (%d items)", batch_num, total, len(chunk))
        for name in models:
            try:
                records = self._request(payload_fn(chunk, name))
            except (requests.RequestException, _UpstreamError, ValueError) as e:
                logger.warning("Batch %d/%d failed on model %s: %s", batch_num, total, name, e)
                continue
            return merge_fn(chunk, records)

        raise _UpstreamError(f"batch {batch_num}/{total}: all models failed")

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if self.referer:
            headers["HTTP-Referer"] = self.referer
        if self.app_name:
            headers["X-Title"] = self.app_name
        return headers

    def build_payload(self, chunk: Sequence[BatchItem], model: str) -> dict[str, Any]:
        """Chat completion request body for one batch of descriptions."""
        user_content = json.dumps(
            [{"id": str(item.id), "description": item.sanitized_description} for item in chunk],
            ensure_ascii=False,
        )
        return self._completion(
            model, SYSTEM_PROMPT.format(count=len(chunk)), user_content, self.temperature
        )

    def build_category_payload(
        self, chunk: Sequence[CategoryItem], model: str, categories: Sequence[str]
    ) -> dict[str, Any]:
        """Chat completion request body for one batch of labelled lines."""
        user_content = json.dumps(
            [
                {"id": str(item.id), "simplified_description": item.simplified, "amount": item.amount}
                for item in chunk
            ],
            ensure_ascii=False,
        )
        prompt = CATEGORY_PROMPT.format(categories=", ".join(categories), count=len(chunk))
        return self._completion(model, prompt, user_content, self.category_temperature)

    def _completion(
        self, model: str, system: str, user: str, temperature: float
    ) -> dict[str, Any]:
        return {
            "model": model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "temperature": temperature,
            "response_format": {"type": "json_object"},
        }

    def _request(self, payload: dict[str, Any]) -> list[Any]:
        post = self._session.post if self._session is not None else requests.post
        response = post(
            self.endpoint,
            json=payload,
            headers=self._headers(),
            timeout=self.request_timeout,
        )
        if not 200 <= response.status_code < 300:
            raise _UpstreamError(f"HTTP {response.status_code}: {response.text[:150]}")

        body = response.json()
        try:
            content = body["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            raise ValueError("no message content in completion response")
        return parse_content(content)


# ----------------------------------------------------------------------
# Validation
# ----------------------------------------------------------------------

def parse_content(content: Any) -> list[Any]:
    """Decode model content into a list of records.

    Accepts a JSON array or an object with a ``results`` array; anything
    else raises ValueError.
    """
    if isinstance(content, str):
        content = json.loads(content)
    if isinstance(content, list):
        return content
    if isinstance(content, dict) and isinstance(content.get("results"), list):
        return content["results"]
    raise ValueError(f"unexpected response shape: {type(content).__name__}")


def clamp_confidence(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_CONFIDENCE
    try:
        number = float(value)
    except (OverflowError, ValueError):
        # integers too large for a float
        return DEFAULT_CONFIDENCE
    if not math.isfinite(number):
        return DEFAULT_CONFIDENCE
    return max(0.0, min(1.0, number))


def _collect(
    chunk: Sequence[Any],
    records: Sequence[Any],
    build: Callable[[Any, dict], Any],
) -> dict[Hashable, Any]:
    """Map records onto requested items; each record is validated on its own.

    Unknown ids, duplicates and records ``build`` rejects (returns None or
    raises) are skipped without affecting the rest of the batch.
    """
    wanted = {str(item.id): item for item in chunk}
    results: dict[Hashable, Any] = {}

    for record in records:
        if not isinstance(record, dict):
            continue
        rid = record.get("id")
        item = wanted.get(str(rid)) if rid is not None else None
        if item is None or item.id in results:
            continue
        try:
            result = build(item, record)
        except (TypeError, ValueError, OverflowError) as e:
            logger.debug("Dropping model record for %s: %s", item.id, e)
            continue
        if result is not None:
            results[item.id] = result
    return results


def _label_record(item: BatchItem, record: dict) -> ValidatedAIResult | None:
    simplified = record.get("simplified")
    if not isinstance(simplified, str) or not simplified.strip():
        return None
    return ValidatedAIResult(
        id=item.id,
        simplified=simplified.strip()[:MAX_LABEL_LENGTH].rstrip(),
        confidence=clamp_confidence(record.get("confidence")),
        source="ai",
        matched_rule="ai",
    )


def merge_records(
    chunk: Sequence[BatchItem], records: Sequence[Any]
) -> dict[Hashable, ValidatedAIResult]:
    """Validate model labels for one batch and fill gaps with heuristic labels."""
    results = _collect(chunk, records, _label_record)

    missing = [item for item in chunk if item.id not in results]
    if missing:
        logger.debug("%d of %d items missing from model output", len(missing), len(chunk))
        results.update(fallback_results(missing, matched_rule="ai_fallback"))
    return results


def merge_categories(
    chunk: Sequence[CategoryItem],
    records: Sequence[Any],
    categories: Sequence[str] = DEFAULT_CATEGORIES,
) -> dict[Hashable, CategoryResult]:
    """Validate model categories for one batch and fill gaps locally."""
    def build(item: CategoryItem, record: dict) -> CategoryResult | None:
        category = record.get("category")
        if not isinstance(category, str) or not category.strip():
            return None
        return CategoryResult(
            id=item.id,
            category=normalize_category(category, categories),
            confidence=clamp_confidence(record.get("confidence")),
            source="ai",
        )

    results = _collect(chunk, records, build)

    missing = [item for item in chunk if item.id not in results]
    if missing:
        logger.debug("%d of %d categories missing from model output", len(missing), len(chunk))
        results.update(fallback_categories(missing, categories))
    return results


def fallback_results(
    items: Sequence[BatchItem], *, matched_rule: str = "fallback"
) -> dict[Hashable, ValidatedAIResult]:
    results: dict[Hashable, ValidatedAIResult] = {}
    for item in items:
        fb = fallback(item.sanitized_description)
        results[item.id] = ValidatedAIResult(
            id=item.id,
            simplified=fb.simplified,
            confidence=fb.confidence,
            source="fallback",
            matched_rule=matched_rule,
        )
    return results


def fallback_categories(
    items: Sequence[CategoryItem], categories: Sequence[str] = DEFAULT_CATEGORIES
) -> dict[Hashable, CategoryResult]:
    return {
        item.id: CategoryResult(
            id=item.id,
            category=fallback_category(item.simplified, item.amount, categories),
            confidence=FALLBACK_CATEGORY_CONFIDENCE,
            source="fallback",
        )
        for item in items
    }
