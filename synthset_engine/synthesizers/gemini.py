"""Gemini native multimodal synthesizer."""

from __future__ import annotations

from typing import Any, Sequence

from google.genai import types

from ..errors import NoImageInResponse, PipelineError, SynthesisError
from ..models.registry import BACKEND_GEMINI, ModelConfig
from ..sessions.models import ImagePayload
from .google_utils import (
    ClientFactory,
    default_client_factory,
    first_inline_image,
    reference_parts,
    resolve_gemini_api_key,
)


DEFAULT_IMAGE_SIZE = "1K"


class GeminiSynthesizer:
    backend_type = BACKEND_GEMINI

    def __init__(self, client_factory: ClientFactory | None = None, image_size: str = DEFAULT_IMAGE_SIZE) -> None:
        self.client_factory = client_factory or default_client_factory
        self.image_size = image_size

    def synthesize(
        self,
        prompt: str,
        reference_images: Sequence[ImagePayload],
        aspect_ratio: str,
        backend: ModelConfig,
    ) -> str:
        api_key = resolve_gemini_api_key(backend.api_key)
        try:
            parts = build_message_parts(prompt, reference_images)
        except ValueError as exc:
            raise SynthesisError(f"Invalid reference image payload: {exc}") from exc
        config = build_content_config(aspect_ratio, self.image_size)
        try:
            client = self.client_factory(api_key)
            response = client.models.generate_content(
                model=backend.model_id,
                contents=types.Content(role="user", parts=parts),
                config=config,
            )
        except PipelineError:
            raise
        except Exception as exc:
            raise SynthesisError(f"Gemini request failed: {exc}") from exc
        image = first_inline_image(response)
        if image is None:
            raise NoImageInResponse("No image data found in response.")
        return image


def build_message_parts(prompt: str, reference_images: Sequence[ImagePayload]) -> list[types.Part]:
    # References first so the prompt can address them as "Ref 1", "Ref 2", ...
    parts = reference_parts(reference_images)
    parts.append(types.Part(text=prompt))
    return parts


def build_content_config(aspect_ratio: str | None, image_size: str | None) -> types.GenerateContentConfig:
    config_kwargs: dict[str, Any] = {"response_modalities": ["IMAGE"]}
    image_config: dict[str, Any] = {}
    if aspect_ratio:
        image_config["aspect_ratio"] = aspect_ratio
    if image_size:
        image_config["image_size"] = image_size
    if image_config:
        config_kwargs["image_config"] = types.ImageConfig(**image_config)
    return types.GenerateContentConfig(**config_kwargs)
