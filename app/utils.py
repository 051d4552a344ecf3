"""Utility helpers for the FlixMap service."""

from __future__ import annotations

import math
import re
import unicodedata
from collections import Counter
from typing import Any


WHITESPACE_RE = re.compile(r"\s+")
YEAR_RE = re.compile(r"^\d{4}")
CLOCK_RE = re.compile(r"^\d+(?::\d+){1,2}(?:\.\d+)?$")


def slugify(value: str) -> str:
    """Return a URL-friendly slug."""

    value = unicodedata.normalize("NFKD", value)
    value = value.encode("ascii", "ignore").decode("ascii")
    value = re.sub(r"[^a-zA-Z0-9]+", "-", value)
    value = value.strip("-")
    value = re.sub(r"-+", "-", value)
    return value.lower()


def compare_titles(first: str, second: str) -> float:
    """Return the Sørensen-Dice similarity of two strings in ``[0, 1]``.

    Whitespace is ignored and the comparison runs over character bigrams, so
    ``"Spider Man"`` and ``"Spider-Man"`` still score highly. Callers are
    expected to normalise case themselves.
    """

    first = WHITESPACE_RE.sub("", first)
    second = WHITESPACE_RE.sub("", second)
    if first == second:
        return 1.0
    if len(first) < 2 or len(second) < 2:
        return 0.0

    bigrams = Counter(first[index : index + 2] for index in range(len(first) - 1))
    intersection = 0
    for index in range(len(second) - 1):
        bigram = second[index : index + 2]
        if bigrams[bigram] > 0:
            bigrams[bigram] -= 1
            intersection += 1

    return (2.0 * intersection) / (len(first) + len(second) - 2)


def parse_timestamp(value: Any) -> int | None:
    """Normalise a timestamp into whole seconds.

    Accepts ints, floats, numeric strings and ``M:S`` / ``H:M:S`` text.
    Returns ``None`` when the value cannot be parsed. Fractions round down,
    so negative values stay negative for callers to reject.
    """

    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return math.floor(value)
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    parts = text.split(":")
    if len(parts) > 3:
        return None
    if len(parts) == 1:
        try:
            return parse_timestamp(float(text))
        except ValueError:
            return None

    if not CLOCK_RE.match(text):
        return None
    total = 0.0
    for part in parts:
        total = total * 60 + float(part)
    return int(total)


def parse_year(value: Any) -> int | None:
    """Return the leading four-digit year of a date-like value."""

    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if not isinstance(value, str):
        return None
    match = YEAR_RE.match(value.strip())
    if not match:
        return None
    return int(match.group(0))
