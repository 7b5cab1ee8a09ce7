from __future__ import annotations

import pytest

from synthset_engine.models.registry import (
    BACKEND_GEMINI,
    BACKEND_OPENAI_COMPATIBLE,
    DEFAULT_MODEL,
    ModelConfig,
    ModelConfigRegistry,
)
from synthset_engine.models.selectors import ModelConfigSelector


def test_selector_falls_back_when_requested_config_missing() -> None:
    selection = ModelConfigSelector(ModelConfigRegistry()).select("missing")

    assert selection.config == DEFAULT_MODEL
    assert selection.requested == "missing"
    assert selection.fallback_reason == "Requested model 'missing' is not configured."


def test_selector_no_request_uses_default_with_explanation() -> None:
    selection = ModelConfigSelector(ModelConfigRegistry()).select(None)

    assert selection.config.id == "default-gemini"
    assert selection.fallback_reason == "No model specified; using default."


def test_selector_returns_requested_config() -> None:
    selection = ModelConfigSelector(ModelConfigRegistry()).select("dryrun")
    assert selection.config.id == "dryrun"
    assert selection.fallback_reason is None


def test_registry_from_env(monkeypatch) -> None:
    monkeypatch.setenv("SYNTHSET_IMAGE_MODEL", "gemini-custom-image")
    monkeypatch.setenv("SYNTHSET_OPENAI_ENDPOINT", "https://images.example.com")
    monkeypatch.setenv("SYNTHSET_OPENAI_API_KEY", "sk-test")
    monkeypatch.delenv("SYNTHSET_OPENAI_MODEL", raising=False)

    registry = ModelConfigRegistry.from_env()

    assert registry.default().model_id == "gemini-custom-image"
    custom = registry.get("openai-compatible")
    assert custom is not None
    assert custom.type == BACKEND_OPENAI_COMPATIBLE
    assert custom.model_id == "dall-e-3"
    assert [config.id for config in registry.by_type(BACKEND_GEMINI)] == ["default-gemini"]


def test_registry_rejects_unknown_backend_type() -> None:
    with pytest.raises(ValueError):
        ModelConfigRegistry().add(ModelConfig(id="x", name="X", type="MYSTERY", model_id="m"))


def test_config_repr_masks_api_key() -> None:
    config = ModelConfig(id="x", name="X", type=BACKEND_GEMINI, model_id="m", api_key="sk-secret")
    assert "sk-secret" not in repr(config)
