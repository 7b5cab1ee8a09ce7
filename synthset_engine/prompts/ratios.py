"""Aspect-ratio keyword inference."""

from __future__ import annotations

import re

from ..sessions.models import DEFAULT_ASPECT_RATIO, SUPPORTED_ASPECT_RATIOS


_RATIO_RE = re.compile(r"(\d+)\s*[:/]\s*(\d+)")

_RATIO_VALUES = {key: int(key.split(":")[0]) / int(key.split(":")[1]) for key in SUPPORTED_ASPECT_RATIOS}

_KEYWORDS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("竖屏", "竖版", "vertical", "portrait", "tall"), "9:16"),
    (("横屏", "横版", "horizontal", "landscape", "widescreen", "wide"), "16:9"),
    (("正方形", "方形", "square"), "1:1"),
)


def infer_aspect_ratio(text: str | None) -> str:
    """Best supported ratio mentioned in ``text``, else the default."""
    if not text:
        return DEFAULT_ASPECT_RATIO
    for match in _RATIO_RE.finditer(text):
        width, height = int(match.group(1)), int(match.group(2))
        if width <= 0 or height <= 0:
            continue
        return nearest_supported_ratio(width / height)
    lowered = text.lower()
    for words, ratio in _KEYWORDS:
        if any(_mentions(lowered, word) for word in words):
            return ratio
    return DEFAULT_ASPECT_RATIO


def _mentions(text: str, word: str) -> bool:
    if word.isascii():
        return re.search(rf"\b{re.escape(word)}\b", text) is not None
    return word in text


def nearest_supported_ratio(value: float) -> str:
    best_key = DEFAULT_ASPECT_RATIO
    best_delta = float("inf")
    for key, ratio in _RATIO_VALUES.items():
        delta = abs(ratio - value)
        if delta < best_delta:
            best_key = key
            best_delta = delta
    return best_key
