"""Synthesizer registry."""

from __future__ import annotations

from .base import SynthesizerRegistry
from .dryrun import DryRunSynthesizer
from .gemini import GeminiSynthesizer
from .openai_compat import OpenAICompatibleSynthesizer


def default_registry() -> SynthesizerRegistry:
    return SynthesizerRegistry(
        [
            GeminiSynthesizer(),
            OpenAICompatibleSynthesizer(),
            DryRunSynthesizer(),
        ]
    )
