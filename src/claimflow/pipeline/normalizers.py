"""Parsing of loosely formatted dates and currency-like amounts."""

import math
import re
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

from dateutil import parser as date_parser

DEFAULT_DATE_FORMATS: tuple[str, ...] = (
    "MM/DD/YYYY",
    "YYYY-MM-DD",
    "MM-DD-YYYY",
    "DD/MM/YYYY",
    "YYYYMMDD",
    "MM/DD/YY",
    "M/D/YYYY",
    "M/D/YY",
)

# Longest tokens first so "YYYY" is not read as two "YY".
_FORMAT_TOKEN = re.compile(r"YYYY|YY|MM|M|DD|D")
_TOKEN_PATTERNS = {
    "YYYY": r"(?P<year>\d{4})",
    "YY": r"(?P<short_year>\d{2})",
    "MM": r"(?P<month>\d{2})",
    "M": r"(?P<month>[1-9]\d?)",
    "DD": r"(?P<day>\d{2})",
    "D": r"(?P<day>[1-9]\d?)",
}

# Shape-only checks used when sniffing a carrier's export format.
_DATE_SHAPES = {
    "MM/DD/YYYY": re.compile(r"^\d{1,2}/\d{1,2}/\d{4}$"),
    "YYYY-MM-DD": re.compile(r"^\d{4}-\d{1,2}-\d{1,2}$"),
    "YYYYMMDD": re.compile(r"^\d{8}$"),
    "DD/MM/YYYY": re.compile(r"^\d{1,2}/\d{1,2}/\d{4}$"),
    "MM-DD-YYYY": re.compile(r"^\d{1,2}-\d{1,2}-\d{4}$"),
}
_DOLLAR_AMOUNT = re.compile(r"^\$?\d+\.?\d{0,2}$")
_PLAIN_AMOUNT = re.compile(r"^\d+\.?\d{0,2}$")

_AMOUNT_NOISE = re.compile(r"[$,\s()]")


@lru_cache(maxsize=64)
def _compile_format(fmt: str) -> re.Pattern[str]:
    """Turn a format like ``MM/DD/YYYY`` into an anchored regex."""
    parts: list[str] = []
    pos = 0
    for match in _FORMAT_TOKEN.finditer(fmt):
        parts.append(re.escape(fmt[pos : match.start()]))
        parts.append(_TOKEN_PATTERNS[match.group()])
        pos = match.end()
    parts.append(re.escape(fmt[pos:]))
    return re.compile("^" + "".join(parts) + "$")


def _parse_strict(text: str, fmt: str) -> datetime | None:
    """Parse ``text`` with exactly one format; None when it does not fit."""
    try:
        pattern = _compile_format(fmt)
    except (KeyError, re.error):
        return None
    match = pattern.match(text)
    if not match:
        return None

    groups = match.groupdict()
    if groups.get("year"):
        year = int(groups["year"])
    elif groups.get("short_year"):
        short = int(groups["short_year"])
        year = 2000 + short if short <= 68 else 1900 + short
    else:
        return None
    if not groups.get("month") or not groups.get("day"):
        return None

    try:
        return datetime(year, int(groups["month"]), int(groups["day"]))
    except ValueError:
        return None


def _parse_lenient(text: str) -> datetime | None:
    """Catch-all parse for values no strict format accepted."""
    try:
        parsed = date_parser.parse(text)
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_date(value: Any, formats: list[str] | tuple[str, ...] | None = None) -> datetime | None:
    """
    Parse a loosely formatted date.

    Formats are tried in order with strict matching; the first one that
    yields a real calendar date wins. Ambiguous inputs such as ``03/04/2024``
    resolve by format order, not by guessing. Only when every strict format
    fails is a lenient parse attempted.

    Args:
        value: Any scalar; non-strings are stringified
        formats: Ordered format hints (defaults to DEFAULT_DATE_FORMATS)

    Returns:
        A naive datetime, or None for empty or unparseable input
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None

    for fmt in formats or DEFAULT_DATE_FORMATS:
        parsed = _parse_strict(text, fmt)
        if parsed is not None:
            return parsed

    return _parse_lenient(text)


def parse_amount(value: Any) -> float:
    """
    Parse a currency-like value into a non-negative number.

    Dollar signs, commas, whitespace and parentheses are stripped. Empty or
    unparseable values yield 0. The sign is discarded: ``-$150.00`` and
    ``($150.00)`` both parse to 150.
    """
    if value is None:
        return 0.0
    text = _AMOUNT_NOISE.sub("", str(value).strip())
    if not text or "_" in text:
        return 0.0
    try:
        amount = float(text)
    except ValueError:
        return 0.0
    if not math.isfinite(amount):
        return 0.0
    return abs(amount)


def is_negative_amount(value: Any) -> bool:
    """Check the sign of a raw amount before parse_amount discards it."""
    if value is None:
        return False
    text = str(value).strip().replace("$", "").replace(",", "").replace(" ", "")
    if not text:
        return False
    negative = text.startswith("-") or (text.startswith("(") and text.endswith(")"))
    return negative and parse_amount(value) > 0


def matches_date_format(value: str, fmt: str) -> bool:
    """Check whether a value has the shape of a date format."""
    pattern = _DATE_SHAPES.get(fmt)
    return bool(pattern and pattern.match(value.strip()))


def matches_amount_format(value: str, fmt: str) -> bool:
    """Check whether a value has the shape of an amount format."""
    pattern = _PLAIN_AMOUNT if fmt == "0.00" else _DOLLAR_AMOUNT
    return bool(pattern.match(value.strip()))
