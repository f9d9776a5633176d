"""
Domain normalization, validation and batching helpers.

Canonical (display) form keeps a leading ``www.``; the cache key strips it so
``example.com`` and ``www.example.com`` resolve to the same cached snapshot.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from typing import TypeVar

T = TypeVar("T")

_SCHEME_REGEX = re.compile(r"^[a-z][a-z0-9+.\-]*://")
_DOMAIN_REGEX = re.compile(r"^(?:[a-z0-9](?:[a-z0-9\-]{0,61}[a-z0-9])?\.)+[a-z]{2,}$")
_INPUT_SPLIT_REGEX = re.compile(r"[\n\r,]+")
_WWW_PREFIX = "www."
_TRAILING_JUNK_REGEX = re.compile(r"[\s.]+$")


def normalize_domain(raw: str) -> str:
    """
    Strip scheme, path, query, fragment, port and trailing dots; lowercase.

    The result is idempotent: ``normalize_domain(normalize_domain(x)) ==
    normalize_domain(x)``.
    """

    normalized = (raw or "").strip().lower()
    normalized = _SCHEME_REGEX.sub("", normalized)
    for separator in ("/", "?", "#"):
        normalized = normalized.split(separator, 1)[0]
    normalized = normalized.split("@")[-1]
    normalized = normalized.split(":", 1)[0]
    return _TRAILING_JUNK_REGEX.sub("", normalized.strip())


def cache_key(domain: str) -> str:
    """
    Return the ``www.``-stripped form used for matching and caching.
    """

    normalized = normalize_domain(domain)
    if normalized.startswith(_WWW_PREFIX):
        return normalized[len(_WWW_PREFIX) :]
    return normalized


def domain_variants(domain: str) -> tuple[str, str]:
    """
    Return ``(bare, www-prefixed)`` forms of a domain.
    """

    bare = cache_key(domain)
    return bare, f"{_WWW_PREFIX}{bare}"


def is_valid_domain(domain: str) -> bool:
    """
    Conservative host-name check: alnum/hyphen labels, alphabetic TLD of 2+ chars.
    """

    if not domain or len(domain) > 253:
        return False
    return _DOMAIN_REGEX.match(domain) is not None


def dedupe(domains: Iterable[str]) -> list[str]:
    """
    Drop repeats by cache key, keeping the first-seen spelling in order.
    """

    seen: set[str] = set()
    unique: list[str] = []
    for domain in domains:
        key = cache_key(domain)
        if key in seen:
            continue
        seen.add(key)
        unique.append(domain)
    return unique


def chunk(items: Sequence[T], size: int) -> list[list[T]]:
    """
    Split items into consecutive groups of `size`; the last group may be short.
    """

    if size < 1:
        raise ValueError("Chunk size must be at least 1.")
    return [list(items[start : start + size]) for start in range(0, len(items), size)]


def normalize_domains(raw_domains: Iterable[str]) -> list[str]:
    """
    Normalize, silently drop invalid entries, and dedupe in first-seen order.
    """

    normalized: list[str] = []
    for raw in raw_domains:
        if not isinstance(raw, str):
            continue
        domain = normalize_domain(raw)
        if not is_valid_domain(domain):
            continue
        normalized.append(domain)
    return dedupe(normalized)


def parse_domain_input(text: str) -> list[str]:
    """
    Split pasted text (one per line and/or comma separated) into raw entries.
    """

    if not text or not text.strip():
        return []
    return [item.strip() for item in _INPUT_SPLIT_REGEX.split(text) if item.strip()]


def mention_pattern(domain: str) -> re.Pattern[str]:
    """
    Regex matching the bare or ``www.`` form as a whole host name.
    """

    bare = re.escape(cache_key(domain))
    return re.compile(
        rf"(?<![a-z0-9\-.])(?:www\.)?{bare}(?![a-z0-9\-]|\.[a-z0-9])",
        flags=re.IGNORECASE,
    )


def find_domain_mention(text: str, domain: str) -> int:
    """
    Return the offset of the first whole-host mention of `domain`, or -1.
    """

    if not text:
        return -1
    match = mention_pattern(domain).search(text)
    return match.start() if match else -1
