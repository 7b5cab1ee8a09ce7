"""Backend model configurations."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Iterable, Mapping


BACKEND_GEMINI = "GEMINI"
BACKEND_OPENAI_COMPATIBLE = "OPENAI_COMPATIBLE"
BACKEND_DRYRUN = "DRYRUN"

BACKEND_TYPES = (BACKEND_GEMINI, BACKEND_OPENAI_COMPATIBLE, BACKEND_DRYRUN)


@dataclass(frozen=True)
class ModelConfig:
    id: str
    name: str
    type: str
    model_id: str
    endpoint: str | None = None
    api_key: str | None = None

    def __repr__(self) -> str:
        key = "***" if self.api_key else None
        return (
            f"ModelConfig(id={self.id!r}, name={self.name!r}, type={self.type!r}, "
            f"model_id={self.model_id!r}, endpoint={self.endpoint!r}, api_key={key!r})"
        )


DEFAULT_MODEL = ModelConfig(
    id="default-gemini",
    name="Nanobanana Pro (Default)",
    type=BACKEND_GEMINI,
    model_id="gemini-3-pro-image-preview",
)

DRYRUN_MODEL = ModelConfig(
    id="dryrun",
    name="Dry run (offline placeholders)",
    type=BACKEND_DRYRUN,
    model_id="dryrun-image-1",
)


class ModelConfigRegistry:
    def __init__(self, configs: Mapping[str, ModelConfig] | None = None, default_id: str | None = None) -> None:
        if configs:
            self._configs = dict(configs)
        else:
            self._configs = {DEFAULT_MODEL.id: DEFAULT_MODEL, DRYRUN_MODEL.id: DRYRUN_MODEL}
        self.default_id = default_id or next(iter(self._configs))

    @classmethod
    def from_env(cls) -> "ModelConfigRegistry":
        registry = cls()
        image_model = os.getenv("SYNTHSET_IMAGE_MODEL")
        if image_model:
            registry.add(
                ModelConfig(
                    id=DEFAULT_MODEL.id,
                    name=DEFAULT_MODEL.name,
                    type=BACKEND_GEMINI,
                    model_id=image_model,
                )
            )
        endpoint = os.getenv("SYNTHSET_OPENAI_ENDPOINT")
        if endpoint:
            registry.add(
                ModelConfig(
                    id="openai-compatible",
                    name="OpenAI-compatible endpoint",
                    type=BACKEND_OPENAI_COMPATIBLE,
                    model_id=os.getenv("SYNTHSET_OPENAI_MODEL") or "dall-e-3",
                    endpoint=endpoint,
                    api_key=os.getenv("SYNTHSET_OPENAI_API_KEY"),
                )
            )
        return registry

    def get(self, config_id: str) -> ModelConfig | None:
        return self._configs.get(config_id)

    def add(self, config: ModelConfig) -> None:
        if config.type not in BACKEND_TYPES:
            raise ValueError(f"Unknown backend type '{config.type}'.")
        self._configs[config.id] = config

    def default(self) -> ModelConfig:
        return self._configs[self.default_id]

    def list(self) -> Iterable[ModelConfig]:
        return self._configs.values()

    def by_type(self, backend_type: str) -> list[ModelConfig]:
        return [config for config in self._configs.values() if config.type == backend_type]
