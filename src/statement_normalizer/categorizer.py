"""Spending categories for labelled lines.

The model picks categories for lines the rules left uncategorized (see
``AIBatchClient.categorize_batch``).  This module holds the category list,
maps free-form model answers back onto it, and provides the local guess
used whenever the model path is unavailable.

Usage:
    normalize_category("supermarket")            # "Groceries"
    fallback_category("Bizum Juan", amount=25)   # "Transfers"
    fallback_category("Panaderia Sol")           # "Groceries"
"""

from __future__ import annotations
import re
import unicodedata
from typing import Sequence

from .matcher import match

FALLBACK_CATEGORY_CONFIDENCE = 0.3
OTHER = "Other"

DEFAULT_CATEGORIES: tuple[str, ...] = (
    "Groceries",
    "Restaurants",
    "Food Delivery",
    "Shopping",
    "Subscriptions",
    "Utilities",
    "Public Transport",
    "Taxi/Rideshare",
    "Gas",
    "Parking",
    "Travel",
    "Sports",
    "Bank Fees",
    "Cash",
    "Income",
    "Refunds",
    "Transfers",
    "Insurance",
    "Taxes",
    OTHER,
)

# Common model answers that are not spelled like a listed category
CATEGORY_ALIASES: dict[str, str] = {
    "grocery": "Groceries",
    "grocery store": "Groceries",
    "supermarket": "Groceries",
    "dining": "Restaurants",
    "restaurant": "Restaurants",
    "cafe": "Restaurants",
    "coffee": "Restaurants",
    "delivery": "Food Delivery",
    "takeaway": "Food Delivery",
    "takeaway/delivery": "Food Delivery",
    "subscription": "Subscriptions",
    "utility": "Utilities",
    "transport": "Public Transport",
    "transportation": "Public Transport",
    "taxi": "Taxi/Rideshare",
    "rideshare": "Taxi/Rideshare",
    "fuel": "Gas",
    "bank fee": "Bank Fees",
    "fees": "Bank Fees",
    "atm": "Cash",
    "salary": "Income",
    "payroll": "Income",
    "refund": "Refunds",
    "transfer": "Transfers",
    "tax": "Taxes",
}

# Money in: only these kinds of label say anything about the category
_INCOME_HINTS = (
    (re.compile(r"salar|payroll|nomina|wage"), "Income"),
    (re.compile(r"refund|reversal|devolucion|reembolso|rembours"), "Refunds"),
    (re.compile(r"transf|bizum|virement"), "Transfers"),
)

# Money out, when no rule recognizes the label
_EXPENSE_HINTS = (
    (re.compile(r"\b(?:restaurante?|bar|cafe|cafeteria|brasserie|pizzeria|bistro|pub)\b"), "Restaurants"),
    (re.compile(r"\b(?:supermercado|supermarket|panaderia|boulangerie|bakery|fruteria|carniceria)\b"), "Groceries"),
    (re.compile(r"\b(?:gasolinera|petrol|fuel|carburant)\b"), "Gas"),
    (re.compile(r"\b(?:parking|aparcamiento)\b"), "Parking"),
    (re.compile(r"\b(?:seguros?|insurance|assurance)\b"), "Insurance"),
    (re.compile(r"\b(?:hacienda|impuestos?|tax|taxes|impots?)\b"), "Taxes"),
    (re.compile(r"\b(?:metro|bus|emt|tmb)\b"), "Public Transport"),
    (re.compile(r"\btaxi\b"), "Taxi/Rideshare"),
)


def _fold(text: str) -> str:
    text = unicodedata.normalize("NFKD", text.lower())
    return "".join(c for c in text if not unicodedata.combining(c))


def normalize_category(value: str, categories: Sequence[str] = DEFAULT_CATEGORIES) -> str:
    """Map a free-form category onto ``categories``; "Other" when nothing fits."""
    wanted = (value or "").strip().lower()
    for category in categories:
        if category.lower() == wanted:
            return category
    alias = CATEGORY_ALIASES.get(wanted)
    if alias is not None and alias in categories:
        return alias
    return OTHER


def fallback_category(
    simplified: str,
    amount: float | None = None,
    categories: Sequence[str] = DEFAULT_CATEGORIES,
) -> str:
    """Guess a category from the label and the sign of the amount."""
    text = _fold(simplified or "")

    if amount is not None and amount > 0:
        for pattern, category in _INCOME_HINTS:
            if pattern.search(text):
                return normalize_category(category, categories)
        return OTHER

    hit = match(text.upper())
    if hit.category:
        return normalize_category(hit.category, categories)
    for pattern, category in _EXPENSE_HINTS:
        if pattern.search(text):
            return normalize_category(category, categories)
    return OTHER
