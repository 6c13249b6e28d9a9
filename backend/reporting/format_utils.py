"""Consistent French formatting for document amounts, dates and numbers. Never render raw floats."""
from __future__ import annotations

import random
import re
import secrets
import string
import unicodedata
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

GROUP_SEPARATOR = "\u202f"
CURRENCY_SUFFIX = "\u00a0€"
PERCENT_SUFFIX = "\u00a0%"
CENT = Decimal("0.01")

MONTHS_FR = (
    "janvier",
    "février",
    "mars",
    "avril",
    "mai",
    "juin",
    "juillet",
    "août",
    "septembre",
    "octobre",
    "novembre",
    "décembre",
)

DOCUMENT_NUMBER_PREFIXES: dict[str, str] = {
    "receipt": "QUI",
    "partial_receipt": "REC",
    "payment_notice": "AVE",
    "formal_notice": "MED",
    "caf_certificate": "CAF",
    "annual_certificate": "ATT",
    "landlord_termination": "CGB",
    "tenant_termination": "CGL",
    "sale_notice": "CGV",
    "indexation_letter": "IND",
    "charge_reconciliation": "REG",
    "payment_plan": "ECH",
    "lease_contract": "BAI",
}
DEFAULT_DOCUMENT_PREFIX = "DOC"
_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits

_UNITS = (
    "", "un", "deux", "trois", "quatre", "cinq", "six", "sept", "huit", "neuf",
    "dix", "onze", "douze", "treize", "quatorze", "quinze", "seize",
    "dix-sept", "dix-huit", "dix-neuf",
)
_TENS = (
    "", "", "vingt", "trente", "quarante", "cinquante",
    "soixante", "soixante", "quatre-vingt", "quatre-vingt",
)


def parse_decimal(value: Any) -> Decimal | None:
    """
    Parse a money/number input into a Decimal. Returns None for blanks and
    anything that is not a finite number. Handles "1 234,56 €" and "1,234.56".
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, (int, float)):
        try:
            parsed = Decimal(str(value))
        except InvalidOperation:
            return None
        return parsed if parsed.is_finite() else None
    text = str(value).strip()
    if not text:
        return None
    text = re.sub(r"[\s\u00a0\u202f€]", "", text)
    if "," in text and "." in text:
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
    elif "," in text:
        text = text.replace(",", ".")
    if not re.fullmatch(r"-?\d+(?:\.\d+)?", text):
        return None
    return Decimal(text)


def to_cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _group_thousands(whole: int) -> str:
    return f"{whole:,}".replace(",", GROUP_SEPARATOR)


def format_currency(value: Any) -> str:
    amount = to_cents(parse_decimal(value) or Decimal("0"))
    sign = "-" if amount < 0 else ""
    whole, frac = f"{abs(amount):.2f}".split(".")
    return f"{sign}{_group_thousands(int(whole))},{frac}{CURRENCY_SUFFIX}"


def format_number(value: Any, precision: int = 2) -> str:
    parsed = parse_decimal(value)
    if parsed is None:
        return "—"
    quant = Decimal(1).scaleb(-precision) if precision > 0 else Decimal(1)
    amount = parsed.quantize(quant, rounding=ROUND_HALF_UP)
    sign = "-" if amount < 0 else ""
    text = f"{abs(amount):.{max(0, precision)}f}"
    whole, _, frac = text.partition(".")
    grouped = _group_thousands(int(whole))
    return f"{sign}{grouped},{frac}" if frac else f"{sign}{grouped}"


def format_percent(value: Any, precision: int = 2) -> str:
    """`value` is already a percentage (3.0 -> "3,00 %")."""
    text = format_number(value, precision=precision)
    if text == "—":
        return text
    return f"{text}{PERCENT_SUFFIX}"


def parse_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value:
        return None
    text = str(value).strip()
    if not text:
        return None
    for candidate in (text, text[:10]):
        try:
            return datetime.fromisoformat(candidate).date()
        except ValueError:
            continue
    for fmt in ("%d/%m/%Y", "%d.%m.%Y", "%d-%m-%Y", "%Y/%m/%d"):
        try:
            return datetime.strptime(text[:10], fmt).date()
        except ValueError:
            continue
    return None


def format_date(value: Any, form: str = "long") -> str:
    """
    long: "5 mars 2025", short: "05/03/2025", month_year: "mars 2025".
    Missing input gives "" and unparseable text is returned as-is.
    """
    key = str(form or "long").strip().lower().replace("-", "_")
    if key not in ("long", "short", "month_year"):
        raise ValueError(f"Unsupported date form: {form}")
    if value is None or (isinstance(value, str) and not value.strip()):
        return ""
    d = parse_date(value)
    if d is None:
        return str(value).strip()
    month = MONTHS_FR[d.month - 1]
    if key == "short":
        return d.strftime("%d/%m/%Y")
    if key == "month_year":
        return f"{month} {d.year}"
    return f"{d.day} {month} {d.year}"


def _below_hundred(n: int) -> str:
    if n < 20:
        return _UNITS[n]
    ten, unit = divmod(n, 10)
    if ten in (7, 9):
        if ten == 7 and unit == 1:
            return "soixante et onze"
        return f"{_TENS[ten]}-{_UNITS[10 + unit]}"
    if unit == 0:
        return _TENS[ten]
    if unit == 1 and ten != 8:
        return f"{_TENS[ten]} et un"
    return f"{_TENS[ten]}-{_UNITS[unit]}"


def _below_thousand(n: int, final: bool = True) -> str:
    hundred, rest = divmod(n, 100)
    if hundred == 0:
        return _below_hundred(rest)
    prefix = "cent" if hundred == 1 else f"{_UNITS[hundred]} cent"
    if rest == 0:
        # "deux cents" but "deux cent mille"
        return f"{prefix}s" if hundred > 1 and final else prefix
    return f"{prefix} {_below_hundred(rest)}"


def number_to_words(n: int) -> str:
    """French cardinal words for a non-negative integer (21 -> "vingt et un")."""
    if isinstance(n, bool):
        raise ValueError("number_to_words expects an integer")
    value = int(n)
    if value < 0:
        raise ValueError("number_to_words expects a non-negative integer")
    if value == 0:
        return "zéro"

    billions, rest = divmod(value, 1_000_000_000)
    millions, rest = divmod(rest, 1_000_000)
    thousands, rest = divmod(rest, 1000)

    parts: list[str] = []
    if billions:
        parts.append(f"{number_to_words(billions)} milliard{'s' if billions > 1 else ''}")
    if millions:
        parts.append(f"{_below_thousand(millions)} million{'s' if millions > 1 else ''}")
    if thousands:
        parts.append("mille" if thousands == 1 else f"{_below_thousand(thousands, final=False)} mille")
    if rest:
        parts.append(_below_thousand(rest))
    return " ".join(parts)


def amount_in_words(value: Any) -> str:
    """Amount in words for legal paragraphs, e.g. 772.50 gives "... euros et cinquante centimes"."""
    amount = abs(to_cents(parse_decimal(value) or Decimal("0")))
    euros = int(amount)
    cents = int((amount - euros) * 100)
    if euros == 0:
        words = "zéro euro"
    elif euros % 1_000_000 == 0:
        words = f"{number_to_words(euros)} d'euros"
    else:
        words = f"{number_to_words(euros)} euro{'s' if euros > 1 else ''}"
    if cents:
        words += f" et {number_to_words(cents)} centime{'s' if cents > 1 else ''}"
    return words


def generate_document_number(
    document_type: Any,
    on: Any = None,
    rng: random.Random | None = None,
) -> str:
    """PREFIX-YYYYMMDD-RAND4, e.g. QUI-20250305-7K2D."""
    key = str(getattr(document_type, "value", document_type) or "").strip().lower()
    prefix = DOCUMENT_NUMBER_PREFIXES.get(key, DEFAULT_DOCUMENT_PREFIX)
    d = parse_date(on) or date.today()
    pick = rng.choice if rng is not None else secrets.choice
    suffix = "".join(pick(_SUFFIX_ALPHABET) for _ in range(4))
    return f"{prefix}-{d.strftime('%Y%m%d')}-{suffix}"


def sanitize_filename_part(value: Any, fallback: str = "document") -> str:
    text = unicodedata.normalize("NFKD", str(value or ""))
    text = "".join(ch for ch in text if not unicodedata.combining(ch)).lower().strip()
    text = re.sub(r"\s+", "_", text)
    text = re.sub(r"[^\w-]", "", text)
    text = re.sub(r"_+", "_", text).strip("_")
    return text or fallback
