"""Pull structured prompt lists out of free-form model text."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from ..errors import ParseError
from ..sessions.models import DEFAULT_ASPECT_RATIO, SUPPORTED_ASPECT_RATIOS


_DECODER = json.JSONDecoder()


@dataclass(frozen=True)
class ExpansionResult:
    prompts: list[str]
    aspect_ratio: str = DEFAULT_ASPECT_RATIO


def extract_json(text: str) -> Any:
    """Return the first well-formed JSON object or array embedded in ``text``.

    Tolerates surrounding prose and code fences. Every ``{`` or ``[`` is tried as a start
    position, in order, and the first one that decodes wins.
    """
    if not isinstance(text, str) or not text.strip():
        raise ParseError("Empty response from text model.")
    idx = 0
    length = len(text)
    while idx < length:
        if text[idx] not in "{[":
            idx += 1
            continue
        try:
            value, _ = _DECODER.raw_decode(text, idx)
        except json.JSONDecodeError:
            idx += 1
            continue
        return value
    raise ParseError(f"No JSON object found in response: {_preview(text)}")


def parse_expansion(text: str) -> ExpansionResult:
    """Parse the first embedded JSON value; it must carry the prompt list."""
    return _expansion_from_payload(extract_json(text))


def _expansion_from_payload(payload: Any) -> ExpansionResult:
    ratio: Any = None
    if isinstance(payload, dict):
        prompts = payload.get("prompts")
        ratio = payload.get("aspectRatio", payload.get("aspect_ratio"))
    else:
        prompts = payload
    if not isinstance(prompts, list):
        raise ParseError("Invalid prompt array in response.")
    if not prompts:
        raise ParseError("Prompt array in response is empty.")
    cleaned: list[str] = []
    for item in prompts:
        if not isinstance(item, str):
            raise ParseError(f"Prompt entries must be strings, got {type(item).__name__}.")
        cleaned.append(item.strip())
    return ExpansionResult(prompts=cleaned, aspect_ratio=normalize_aspect_ratio(ratio))


def normalize_aspect_ratio(value: Any) -> str:
    if isinstance(value, str):
        candidate = value.strip().replace(" ", "")
        if candidate in SUPPORTED_ASPECT_RATIOS:
            return candidate
    return DEFAULT_ASPECT_RATIO


def _preview(text: str, limit: int = 120) -> str:
    cleaned = " ".join(text.split())
    if len(cleaned) > limit:
        return cleaned[: limit - 1].rstrip() + "…"
    return cleaned
