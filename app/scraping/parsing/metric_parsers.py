"""
Text-to-number converters for traffic metrics.

Parsers only convert text; range checks belong to callers. Unparsable input
returns ``None`` so one bad token never aborts a whole record.
"""

from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

SUFFIX_MULTIPLIERS = {
    "": Decimal(1),
    "K": Decimal(1_000),
    "M": Decimal(1_000_000),
    "B": Decimal(1_000_000_000),
}

PAGES_PER_VISIT_MIN = 0.1
PAGES_PER_VISIT_MAX = 20.0
GROWTH_RATE_LIMIT = 1000.0

# Fragments shared with the extraction strategies.
SUFFIXED_NUMBER_PATTERN = r"\d[\d,]*(?:\.\d+)?\s?[KMB]?\b"
CLOCK_DURATION_PATTERN = r"\b\d{1,2}:\d{2}(?::\d{2})?\b"
PERCENTAGE_PATTERN = r"\d+(?:\.\d+)?\s?%"
SIGNED_PERCENTAGE_PATTERN = r"[+-]\d+(?:\.\d+)?\s?%"
MONTH_LABEL_PATTERN = r"\b\d{4}[/-]\d{2}\b"

_SUFFIXED_REGEX = re.compile(r"^(\d+(?:\.\d+)?|\.\d+)\s*([KMB]?)$", flags=re.IGNORECASE)
_PLAIN_NUMBER_REGEX = re.compile(r"^[+-]?(?:\d+(?:\.\d+)?|\.\d+)$")
_CLOCK_REGEX = re.compile(r"^(?:(\d+):)?(\d+):(\d+)$")
_HOURS_REGEX = re.compile(r"(\d+)\s*h")
_MINUTES_REGEX = re.compile(r"(\d+)\s*m(?!s)")
_SECONDS_REGEX = re.compile(r"(\d+)\s*s")
_MONTH_LABEL_REGEX = re.compile(r"^(\d{4})[/-](\d{2})$")


def parse_suffixed_number(value: str | None) -> int | None:
    """
    Parse ``"12.3K"``, ``"4.5M"``, ``"82.28B"`` or ``"1,234"`` into an integer.
    """

    if not value:
        return None
    cleaned = value.strip().replace(",", "")
    match = _SUFFIXED_REGEX.match(cleaned)
    if match is not None:
        number, suffix = match.group(1), match.group(2).upper()
    elif _PLAIN_NUMBER_REGEX.match(cleaned):
        number, suffix = cleaned, ""
    else:
        return None

    try:
        amount = Decimal(number) * SUFFIX_MULTIPLIERS[suffix]
    except InvalidOperation:
        return None
    return int(amount.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def parse_duration(value: str | None) -> int | None:
    """
    Parse ``HH:MM:SS``, ``MM:SS`` or ``"1h 2m 3s"`` style text into seconds.
    """

    if not value:
        return None
    cleaned = value.strip().lower()

    clock = _CLOCK_REGEX.match(cleaned)
    if clock is not None:
        hours = int(clock.group(1) or 0)
        total = hours * 3600 + int(clock.group(2)) * 60 + int(clock.group(3))
        return total or None

    total = 0
    hours_match = _HOURS_REGEX.search(cleaned)
    if hours_match:
        total += int(hours_match.group(1)) * 3600
    minutes_match = _MINUTES_REGEX.search(cleaned)
    if minutes_match:
        total += int(minutes_match.group(1)) * 60
    seconds_match = _SECONDS_REGEX.search(cleaned)
    if seconds_match:
        total += int(seconds_match.group(1))
    return total or None


def parse_percentage(value: str | None) -> float | None:
    """
    Parse ``"45.2%"`` into ``45.2``.
    """

    if not value:
        return None
    cleaned = value.strip().rstrip("%").strip()
    if not _PLAIN_NUMBER_REGEX.match(cleaned):
        return None
    return float(cleaned)


def parse_growth_rate(value: str | None) -> float | None:
    """
    Parse ``"+19.66%"`` or ``"-39.36%"``; changes beyond +/-1000% are noise.
    """

    parsed = parse_percentage(value)
    if parsed is None or abs(parsed) > GROWTH_RATE_LIMIT:
        return None
    return parsed


def parse_month_label(value: str | None) -> str | None:
    """
    Parse a graph axis label such as ``"2025/09"`` into ``"2025-09"``.
    """

    if not value:
        return None
    match = _MONTH_LABEL_REGEX.match(value.strip())
    if match is None or not 1 <= int(match.group(2)) <= 12:
        return None
    return f"{match.group(1)}-{match.group(2)}"


def parse_pages_per_visit(value: str | None) -> float | None:
    """
    Parse a plain decimal and accept it only inside the plausible pages/visit band.
    """

    if not value:
        return None
    cleaned = value.strip()
    if not _PLAIN_NUMBER_REGEX.match(cleaned):
        return None
    parsed = float(cleaned)
    if PAGES_PER_VISIT_MIN <= parsed <= PAGES_PER_VISIT_MAX:
        return parsed
    return None


def valid_bounce_rate(value: float | None) -> float | None:
    if value is None or not 0.0 <= value <= 100.0:
        return None
    return value


def format_duration(seconds: int | None) -> str | None:
    if seconds is None:
        return None
    return f"{seconds // 3600:02d}:{seconds % 3600 // 60:02d}:{seconds % 60:02d}"
