"""Synthesizer capability interface and registry."""

from __future__ import annotations

from typing import Iterable, Protocol, Sequence

from ..errors import ConfigError
from ..models.registry import ModelConfig
from ..sessions.models import ImagePayload


class ImageSynthesizer(Protocol):
    backend_type: str

    def synthesize(
        self,
        prompt: str,
        reference_images: Sequence[ImagePayload],
        aspect_ratio: str,
        backend: ModelConfig,
    ) -> str:
        """Return exactly one image payload (data URL or remote URL) or raise."""
        ...


class SynthesizerRegistry:
    def __init__(self, synthesizers: Iterable[ImageSynthesizer]) -> None:
        self._synthesizers = {synth.backend_type: synth for synth in synthesizers}

    def get(self, backend_type: str) -> ImageSynthesizer | None:
        return self._synthesizers.get(backend_type)

    def resolve(self, backend: ModelConfig) -> ImageSynthesizer:
        synthesizer = self.get(backend.type)
        if synthesizer is None:
            raise ConfigError(f"No synthesizer available for backend type '{backend.type}'.")
        return synthesizer

    def register(self, synthesizer: ImageSynthesizer) -> None:
        self._synthesizers[synthesizer.backend_type] = synthesizer

    def list(self) -> list[str]:
        return sorted(self._synthesizers.keys())
