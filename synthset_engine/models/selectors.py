"""Model config selection and fallback logic."""

from __future__ import annotations

from dataclasses import dataclass

from .registry import ModelConfig, ModelConfigRegistry


@dataclass(frozen=True)
class ModelConfigSelection:
    config: ModelConfig
    requested: str | None
    fallback_reason: str | None = None


class ModelConfigSelector:
    def __init__(self, registry: ModelConfigRegistry | None = None) -> None:
        self.registry = registry or ModelConfigRegistry()

    def select(self, requested: str | None) -> ModelConfigSelection:
        if requested:
            config = self.registry.get(requested)
            if config:
                return ModelConfigSelection(config=config, requested=requested)
            fallback_reason = f"Requested model '{requested}' is not configured."
        else:
            fallback_reason = "No model specified; using default."
        return ModelConfigSelection(
            config=self.registry.default(),
            requested=requested,
            fallback_reason=fallback_reason,
        )
