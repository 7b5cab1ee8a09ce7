"""Shared helpers for Google GenAI backends."""

from __future__ import annotations

import os
from typing import Any, Callable, Sequence

from google import genai
from google.genai import types

from ..errors import MissingCredentials
from ..sessions.models import ImagePayload
from ..utils import decode_image_payload, to_data_url


ClientFactory = Callable[[str], Any]


def default_client_factory(api_key: str) -> Any:
    return genai.Client(api_key=api_key)


def resolve_gemini_api_key(explicit: str | None = None) -> str:
    api_key = explicit or os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
    if not api_key:
        raise MissingCredentials("GEMINI_API_KEY or GOOGLE_API_KEY not set.")
    return api_key


def reference_parts(reference_images: Sequence[ImagePayload]) -> list[types.Part]:
    parts: list[types.Part] = []
    for payload in reference_images:
        data, mime_type = decode_image_payload(payload)
        parts.append(types.Part(inline_data=types.Blob(data=data, mime_type=mime_type or "image/png")))
    return parts


def first_inline_image(response: Any) -> str | None:
    """Return the first inline image in a generate_content response as a data URL."""
    candidates = getattr(response, "candidates", None) or []
    for candidate in candidates:
        content = getattr(candidate, "content", None)
        parts = getattr(content, "parts", None) or getattr(candidate, "parts", None) or []
        for part in parts:
            inline_data = getattr(part, "inline_data", None)
            data = getattr(inline_data, "data", None) if inline_data else None
            if not data:
                continue
            mime_type = getattr(inline_data, "mime_type", None) or "image/png"
            if isinstance(data, str):
                # Already base64 text.
                return f"data:{mime_type};base64,{data}"
            if isinstance(data, (bytes, bytearray)):
                return to_data_url(bytes(data), mime_type)
    return None


def response_text(response: Any) -> str:
    text = getattr(response, "text", None)
    if isinstance(text, str) and text.strip():
        return text
    chunks: list[str] = []
    for candidate in getattr(response, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            chunk = getattr(part, "text", None)
            if isinstance(chunk, str) and chunk.strip():
                chunks.append(chunk)
    return "\n".join(chunks)
