from __future__ import annotations

import re

# Word characters, whitespace and the Hebrew block survive normalisation.
_STRIP_RE = re.compile(r"[^A-Za-z0-9_\s\u0590-\u05FF]")
_SPACE_RE = re.compile(r"\s+")
_ADDRESS_SPLIT_RE = re.compile(r"[,\u060C]")


def normalize_text(value: str | None) -> str:
    if not value:
        return ""
    lowered = value.lower()
    stripped = _STRIP_RE.sub("", lowered)
    return _SPACE_RE.sub(" ", stripped).strip()


def levenshtein_distance(a: str, b: str) -> int:
    """Classic edit distance with unit insert, delete and substitute costs."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            if ca == cb:
                current.append(previous[j - 1])
            else:
                current.append(1 + min(previous[j - 1], previous[j], current[j - 1]))
        previous = current
    return previous[-1]


def similarity(a: str | None, b: str | None) -> float:
    """Percentage similarity (0-100) of two strings after normalisation."""
    norm_a = normalize_text(a)
    norm_b = normalize_text(b)
    if not norm_a or not norm_b:
        return 0.0
    if norm_a == norm_b:
        return 100.0

    distance = levenshtein_distance(norm_a, norm_b)
    max_len = max(len(norm_a), len(norm_b))
    return max(0.0, (max_len - distance) / max_len * 100)


def extract_city(address: str | None) -> str:
    """
    Last comma-delimited segment of an address, normalised.

    Splits before normalising, since normalisation strips the commas. The
    earlier catalog matcher normalised first, which made its city score
    identical to the full-address score.
    """
    if not address:
        return ""
    segments = [s for s in _ADDRESS_SPLIT_RE.split(address.lower()) if s.strip()]
    if not segments:
        return ""
    return normalize_text(segments[-1])
