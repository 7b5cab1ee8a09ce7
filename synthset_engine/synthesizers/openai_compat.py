"""OpenAI-compatible HTTP image synthesizer."""

from __future__ import annotations

import json
import socket
from typing import Any, Mapping, Sequence
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from ..errors import MissingCredentials, NoImageInResponse, SynthesisError
from ..models.registry import BACKEND_OPENAI_COMPATIBLE, ModelConfig
from ..sessions.models import ImagePayload


SIZE_SQUARE = "1024x1024"
SIZE_WIDE = "1792x1024"
SIZE_TALL = "1024x1792"

_RATIO_SIZES = {
    "16:9": SIZE_WIDE,
    "9:16": SIZE_TALL,
}


class OpenAICompatibleSynthesizer:
    """Talks to any ``/v1/images/generations`` endpoint.

    Reference images are ignored; only the prompt is sent.
    """

    backend_type = BACKEND_OPENAI_COMPATIBLE

    def __init__(self, timeout_s: float = 90.0) -> None:
        self.timeout_s = timeout_s

    def synthesize(
        self,
        prompt: str,
        reference_images: Sequence[ImagePayload],
        aspect_ratio: str,
        backend: ModelConfig,
    ) -> str:
        if not backend.endpoint or not backend.api_key:
            raise MissingCredentials("Missing endpoint or API key for custom model.")
        url = generations_url(backend.endpoint)
        payload = build_generation_payload(backend.model_id, prompt, aspect_ratio)
        response = _post_json(url, payload, backend.api_key, self.timeout_s)
        return extract_image(response)


def size_for_aspect_ratio(aspect_ratio: str | None) -> str:
    return _RATIO_SIZES.get(str(aspect_ratio or "").strip(), SIZE_SQUARE)


def generations_url(endpoint: str) -> str:
    return f"{endpoint.rstrip('/')}/v1/images/generations"


def build_generation_payload(model_id: str, prompt: str, aspect_ratio: str | None) -> dict[str, Any]:
    return {
        "model": model_id,
        "prompt": prompt,
        "n": 1,
        "size": size_for_aspect_ratio(aspect_ratio),
        "response_format": "b64_json",
    }


def extract_image(response: Mapping[str, Any]) -> str:
    data = response.get("data") if isinstance(response, Mapping) else None
    first = data[0] if isinstance(data, list) and data else None
    if isinstance(first, Mapping):
        b64 = first.get("b64_json")
        if isinstance(b64, str) and b64:
            return f"data:image/png;base64,{b64}"
        url = first.get("url")
        if isinstance(url, str) and url:
            return url
    raise NoImageInResponse("No image found in custom API response.")


def _post_json(url: str, payload: Mapping[str, Any], api_key: str, timeout_s: float) -> dict[str, Any]:
    body = json.dumps(payload).encode("utf-8")
    req = Request(
        url,
        data=body,
        headers={
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        },
        method="POST",
    )
    try:
        with urlopen(req, timeout=timeout_s) as response:
            raw = response.read().decode("utf-8")
    except HTTPError as exc:
        raw = exc.read().decode("utf-8", errors="replace") if exc.fp else str(exc)
        raise SynthesisError(f"Custom API error ({exc.code}): {raw}") from exc
    except URLError as exc:
        raise SynthesisError(f"Custom API request failed: {exc.reason}") from exc
    except (socket.timeout, TimeoutError) as exc:
        raise SynthesisError(f"Custom API request timed out after {timeout_s:.0f}s.") from exc
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise SynthesisError(f"Custom API returned non-JSON body: {raw[:200]}") from exc
    if not isinstance(parsed, dict):
        raise NoImageInResponse("No image found in custom API response.")
    return parsed
