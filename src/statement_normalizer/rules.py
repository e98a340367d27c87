"""Fixed rule tables for the rule engine.

Three rule classes, evaluated in this order by ``RuleMatcher``:

    merchant   — gazetteer of known brands → canonical display name
    operation  — banking operation tokens → generic label (fees, ATM, ...)
    transfer   — transfer triggers → "<Label> <FirstName>"

The tables are tuples of frozen ``Rule`` entries built once at import time.
"""

from __future__ import annotations
import re
from dataclasses import dataclass
from typing import Callable

from .patterns import PLACEHOLDERS

RULE_CLASSES = ("merchant", "operation", "transfer")

MERCHANT_CONFIDENCE = 0.95
OPERATION_CONFIDENCE = 0.85
TRANSFER_CONFIDENCE = 0.85

# Titles stripped before picking a transfer counterpart's first name
HONORIFICS = frozenset({
    # English
    "MR", "MRS", "MS", "MISS", "SIR", "MADAM",
    # French
    "MONSIEUR", "MME", "MLLE",
    # Spanish
    "SR", "SRA", "SRTA", "DON", "DOÑA", "DONA", "DA", "DN", "DNA",
    # Professional
    "DR", "DRA", "PROF", "ING", "LIC",
    # German
    "HERR", "FRAU",
})

# Prepositions that sit between the trigger and the name
CONNECTORS = frozenset({
    "A", "DE", "DESDE", "PARA", "AL", "DEL",
    "TO", "FROM", "FOR",
    "VERS", "RECU", "EMIS", "EN", "FAVEUR",
})

_NAME_TOKEN = re.compile(r"[^\W\d_]+")


@dataclass(frozen=True, slots=True)
class Rule:
    """One entry of a rule table."""
    rule_class: str                       # one of RULE_CLASSES
    key: str                              # id suffix, e.g. "mercadona"
    pattern: re.Pattern
    confidence: float
    label: Callable[[re.Match], str]      # builds the display label
    type_hint: str
    category: str | None = None

    @property
    def rule_id(self) -> str:
        return f"{self.rule_class}:{self.key}"


def first_name_after(text: str, start: int) -> str | None:
    """First token after ``start`` that is not an honorific, connector or placeholder.

    Assumes the counterpart's first name comes first; "JUAN PEREZ" gives
    "Juan".  The token is returned Title-Cased.
    """
    for token in _NAME_TOKEN.findall(text[start:].upper()):
        if len(token) < 2:
            continue
        if token in HONORIFICS or token in CONNECTORS or token in PLACEHOLDERS:
            continue
        return token.capitalize()
    return None


def _merchant(key: str, regex: str, name: str, category: str) -> Rule:
    return Rule(
        rule_class="merchant",
        key=key,
        pattern=re.compile(regex, re.IGNORECASE),
        confidence=MERCHANT_CONFIDENCE,
        label=lambda m: name,
        type_hint="merchant",
        category=category,
    )


def _operation(token: str, label: str, type_hint: str, category: str | None) -> Rule:
    return Rule(
        rule_class="operation",
        key=token.lower().replace(" ", "_"),
        pattern=re.compile(rf"\b{token}\b", re.IGNORECASE),
        confidence=OPERATION_CONFIDENCE,
        label=lambda m: label,
        type_hint=type_hint,
        category=category,
    )


def _transfer(token: str, label: str) -> Rule:
    def _label(m: re.Match) -> str:
        name = first_name_after(m.string, m.end())
        return f"{label} {name}" if name else label

    return Rule(
        rule_class="transfer",
        key=token.lower().replace(" ", "_"),
        pattern=re.compile(rf"\b{token}\b", re.IGNORECASE),
        confidence=TRANSFER_CONFIDENCE,
        label=_label,
        type_hint="transfer",
        category="Transfers",
    )


MERCHANT_RULES: tuple[Rule, ...] = (
    # Groceries
    _merchant("mercadona", r"\bMERCADONA\b", "Mercadona", "Groceries"),
    _merchant("carrefour", r"\bCARREFOUR\b", "Carrefour", "Groceries"),
    _merchant("alcampo", r"\bALCAMPO\b", "Alcampo", "Groceries"),
    _merchant("dia", r"\bDIA\b", "DIA", "Groceries"),
    _merchant("lidl", r"\bLIDL\b", "Lidl", "Groceries"),
    _merchant("aldi", r"\bALDI\b", "Aldi", "Groceries"),
    _merchant("eroski", r"\bEROS?KI\b", "Eroski", "Groceries"),
    _merchant("hipercor", r"\bHIPERCOR\b", "Hipercor", "Groceries"),
    _merchant("consum", r"\bCONSUM\b", "Consum", "Groceries"),

    # Shopping
    _merchant("amazon", r"\bAMAZON\b", "Amazon", "Shopping"),
    _merchant("el_corte_ingles", r"\bEL ?CORTE ?INGL[EÉ]S\b", "El Corte Inglés", "Shopping"),
    _merchant("zara", r"\bZARA\b", "Zara", "Shopping"),
    _merchant("primark", r"\bPRIMARK\b", "Primark", "Shopping"),
    _merchant("ikea", r"\bIKEA\b", "IKEA", "Shopping"),
    _merchant("decathlon", r"\bDECATHLON\b", "Decathlon", "Sports"),
    _merchant("mediamarkt", r"\bMEDIA ?MARKT\b", "MediaMarkt", "Shopping"),
    _merchant("h&m", r"\bH&M\b", "H&M", "Shopping"),

    # Subscriptions
    _merchant("spotify", r"\bSPOTIFY\b", "Spotify", "Subscriptions"),
    _merchant("netflix", r"\bNETFLIX\b", "Netflix", "Subscriptions"),
    _merchant("disney_plus", r"\bDISNEY ?(?:\+|PLUS)", "Disney+", "Subscriptions"),
    _merchant("hbo", r"\bHBO\b", "HBO", "Subscriptions"),
    _merchant("prime_video", r"\bPRIME ?VIDEO\b", "Prime Video", "Subscriptions"),
    _merchant("apple", r"\b(?:APPLE|ITUNES|APP ?STORE)\b", "Apple", "Subscriptions"),
    _merchant("google", r"\bGOOGLE\b", "Google", "Subscriptions"),
    _merchant("microsoft", r"\bMICROSOFT\b", "Microsoft", "Subscriptions"),

    # Transport & travel
    _merchant("uber", r"\bUBER\b", "Uber", "Taxi/Rideshare"),
    _merchant("cabify", r"\bCABIFY\b", "Cabify", "Taxi/Rideshare"),
    _merchant("bolt", r"\bBOLT\b", "Bolt", "Taxi/Rideshare"),
    _merchant("renfe", r"\bRENFE\b", "Renfe", "Public Transport"),
    _merchant("repsol", r"\bREPSOL\b", "Repsol", "Gas"),
    _merchant("cepsa", r"\bCEPSA\b", "Cepsa", "Gas"),
    _merchant("ryanair", r"\bRYANAIR\b", "Ryanair", "Travel"),
    _merchant("vueling", r"\bVUELING\b", "Vueling", "Travel"),
    _merchant("booking", r"\bBOOKING(?:\.COM)?\b", "Booking.com", "Travel"),
    _merchant("airbnb", r"\bAIRBNB\b", "Airbnb", "Travel"),

    # Food & delivery
    _merchant("uber_eats", r"\bUBER ?EATS\b", "Uber Eats", "Food Delivery"),
    _merchant("glovo", r"\bGLOVO\b", "Glovo", "Food Delivery"),
    _merchant("deliveroo", r"\bDELIVEROO\b", "Deliveroo", "Food Delivery"),
    _merchant("just_eat", r"\bJUST ?EAT\b", "Just Eat", "Food Delivery"),
    _merchant("mcdonalds", r"\bMC ?DONALD'?S?\b", "McDonald's", "Restaurants"),
    _merchant("burger_king", r"\bBURGER ?KING\b", "Burger King", "Restaurants"),
    _merchant("telepizza", r"\bTELEPIZZA\b", "Telepizza", "Restaurants"),
    _merchant("starbucks", r"\bSTARBUCKS\b", "Starbucks", "Restaurants"),

    # Utilities
    _merchant("endesa", r"\bENDESA\b", "Endesa", "Utilities"),
    _merchant("iberdrola", r"\bIBERDROLA\b", "Iberdrola", "Utilities"),
    _merchant("naturgy", r"\bNATURGY\b", "Naturgy", "Utilities"),
    _merchant("vodafone", r"\bVODAFONE\b", "Vodafone", "Utilities"),
    _merchant("movistar", r"\bMOVISTAR\b", "Movistar", "Utilities"),

    # France
    _merchant("auchan", r"\bAUCHAN\b", "Auchan", "Groceries"),
    _merchant("leclerc", r"\b(?:E\.? ?)?LECLERC\b", "E.Leclerc", "Groceries"),
    _merchant("intermarche", r"\bINTERMARCH[EÉ]\b", "Intermarché", "Groceries"),
    _merchant("monoprix", r"\bMONOPRIX\b", "Monoprix", "Groceries"),
    _merchant("franprix", r"\bFRANPRIX\b", "Franprix", "Groceries"),
    _merchant("picard", r"\bPICARD\b", "Picard", "Groceries"),
    _merchant("sncf", r"\bSNCF\b", "SNCF", "Public Transport"),
    _merchant("ratp", r"\bRATP\b", "RATP", "Public Transport"),
    _merchant("fnac", r"\bFNAC\b", "Fnac", "Shopping"),
    _merchant("darty", r"\bDARTY\b", "Darty", "Shopping"),
    _merchant("leroy_merlin", r"\bLEROY ?MERLIN\b", "Leroy Merlin", "Shopping"),
    _merchant("sephora", r"\bSEPHORA\b", "Sephora", "Shopping"),
    _merchant("edf", r"\bEDF\b", "EDF", "Utilities"),
    _merchant("engie", r"\bENGIE\b", "Engie", "Utilities"),
    _merchant("sfr", r"\bSFR\b", "SFR", "Utilities"),
    _merchant("bouygues", r"\bBOUYGUES\b", "Bouygues Telecom", "Utilities"),

    # United Kingdom
    _merchant("tesco", r"\bTESCO\b", "Tesco", "Groceries"),
    _merchant("sainsburys", r"\bSAINSBURY'?S?\b", "Sainsbury's", "Groceries"),
    _merchant("waitrose", r"\bWAITROSE\b", "Waitrose", "Groceries"),
    _merchant("morrisons", r"\bMORRISONS?\b", "Morrisons", "Groceries"),
    _merchant("tfl", r"\bTFL\b", "TfL", "Public Transport"),
    _merchant("argos", r"\bARGOS\b", "Argos", "Shopping"),
    _merchant("currys", r"\bCURRYS\b", "Currys", "Shopping"),
    _merchant("john_lewis", r"\bJOHN ?LEWIS\b", "John Lewis", "Shopping"),
    _merchant("greggs", r"\bGREGGS\b", "Greggs", "Restaurants"),
    _merchant("nandos", r"\bNANDO'?S\b", "Nando's", "Restaurants"),
    _merchant("pret", r"\bPRET A MANGER\b", "Pret A Manger", "Restaurants"),

    # United States
    _merchant("walmart", r"\bWAL-?MART\b", "Walmart", "Groceries"),
    _merchant("costco", r"\bCOSTCO\b", "Costco", "Groceries"),
    _merchant("whole_foods", r"\bWHOLE ?FOODS\b", "Whole Foods", "Groceries"),
    _merchant("kroger", r"\bKROGER\b", "Kroger", "Groceries"),
    _merchant("kfc", r"\bKFC\b", "KFC", "Restaurants"),
    _merchant("subway", r"\bSUBWAY\b", "Subway", "Restaurants"),

    # Payments
    _merchant("paypal", r"\bPAYPAL\b", "PayPal", "Other"),
    _merchant("revolut", r"\bREVOLUT\b", "Revolut", "Bank Fees"),
)

OPERATION_RULES: tuple[Rule, ...] = (
    _operation("COMISION", "Bank Fee", "fee", "Bank Fees"),
    _operation("COMISIONES", "Bank Fee", "fee", "Bank Fees"),
    _operation("FEE", "Bank Fee", "fee", "Bank Fees"),
    _operation("CAJERO", "ATM Withdrawal", "atm", "Cash"),
    _operation("ATM", "ATM Withdrawal", "atm", "Cash"),
    _operation("NOMINA", "Salary", "salary", "Income"),
    _operation("SALARIO", "Salary", "salary", "Income"),
    _operation("SALARY", "Salary", "salary", "Income"),
    _operation("PAYROLL", "Salary", "salary", "Income"),
    _operation("DEVOLUCION", "Refund", "refund", "Refunds"),
    _operation("REEMBOLSO", "Refund", "refund", "Refunds"),
    _operation("REFUND", "Refund", "refund", "Refunds"),

    # French
    _operation("FRAIS", "Bank Fee", "fee", "Bank Fees"),
    _operation("COMMISSION", "Bank Fee", "fee", "Bank Fees"),
    _operation("AGIOS", "Bank Fee", "fee", "Bank Fees"),
    _operation("COTISATION", "Bank Fee", "fee", "Bank Fees"),
    _operation("RETRAIT", "ATM Withdrawal", "atm", "Cash"),
    _operation("DAB", "ATM Withdrawal", "atm", "Cash"),
    _operation("GAB", "ATM Withdrawal", "atm", "Cash"),
    _operation("SALAIRE", "Salary", "salary", "Income"),
    _operation("REMBOURSEMENT", "Refund", "refund", "Refunds"),
    _operation("REMBOURS", "Refund", "refund", "Refunds"),

    # English
    _operation("OVERDRAFT", "Bank Fee", "fee", "Bank Fees"),
    _operation("WITHDRAWAL", "ATM Withdrawal", "atm", "Cash"),
    _operation("WAGES", "Salary", "salary", "Income"),
)

TRANSFER_RULES: tuple[Rule, ...] = (
    _transfer("BIZUM", "Bizum"),
    _transfer("TRANSFERENCIA", "Transfer"),
    _transfer("SEPA", "Transfer"),
    _transfer("TRANSFER", "Transfer"),
    _transfer("TRANSF", "Transfer"),
    _transfer("VIREMENT", "Transfer"),
    _transfer("VIR", "Transfer"),
    _transfer("STANDING ORDER", "Transfer"),
    _transfer("FASTER PAYMENT", "Transfer"),
)

DEFAULT_RULES: tuple[Rule, ...] = MERCHANT_RULES + OPERATION_RULES + TRANSFER_RULES
