"""Prompt expansion: one scenario description into N domain-randomized variants."""

from __future__ import annotations

import json
import os
import random
from dataclasses import dataclass
from typing import Any, Protocol

from google.genai import types

from ..errors import ExpansionError
from ..sessions.models import DEFAULT_ASPECT_RATIO, SUPPORTED_ASPECT_RATIOS
from ..synthesizers.google_utils import (
    ClientFactory,
    default_client_factory,
    resolve_gemini_api_key,
    response_text,
)
from ..utils import stable_hash
from .json_extract import ExpansionResult, parse_expansion
from .ratios import infer_aspect_ratio


DEFAULT_EXPAND_MODEL = "gemini-3-flash-preview"


@dataclass(frozen=True)
class TextRequest:
    system_instruction: str
    prompt: str
    base_prompt: str
    count: int
    reference_count: int = 0


class TextGenerator(Protocol):
    name: str

    def generate(self, request: TextRequest) -> str:
        ...


def build_system_instruction(count: int) -> str:
    ratios = ", ".join(f'"{ratio}"' for ratio in SUPPORTED_ASPECT_RATIOS)
    return (
        "You are a professional synthetic data engineer specializing in Computer Vision training sets.\n"
        f"Your task is to generate {count} diverse prompt variations based on the user's requirement.\n"
        "\n"
        "CRITICAL CONSTRAINTS:\n"
        "1. Language & Translation:\n"
        "   - If the input is not in English (for example Chinese), accurately translate the Core Subject and "
        "its mandatory features into high-quality, descriptive English.\n"
        "   - ALL output prompts MUST be in English.\n"
        "2. Consistency (Immutable Core):\n"
        "   - Identify the Core Subject (e.g. \"damaged pantograph head with broken strip\").\n"
        f"   - The Core Subject and its physical characteristics MUST remain IDENTICAL across all {count} prompts.\n"
        "   - Do NOT change the subject's properties, pose, or structure unless the user asks to vary them.\n"
        "3. Domain Randomization (the ONLY allowed variables):\n"
        "   - Environment: e.g. railway bridge, tunnel, high-speed line, maintenance depot, station.\n"
        "   - Lighting: e.g. harsh midday sun, dim twilight, fluorescent work lights, backlighting, sunrise.\n"
        "   - Weather: e.g. heavy rain, drizzle, fog, clear sky, snow, overcast, dust.\n"
        "   - Camera Artifacts: e.g. clean lens, motion blur, lens smudges, mud splatter, water droplets, "
        "surveillance grain.\n"
        "4. Image Ratio:\n"
        "   - Look for ratio keywords in the input (\"16:9\", \"horizontal\", \"vertical\", \"9:16\", \"3:4\", "
        "\"landscape\").\n"
        f"   - Return the best matching supported ratio: [{ratios}].\n"
        f"   - If no ratio is mentioned, default to \"{DEFAULT_ASPECT_RATIO}\".\n"
        "5. Reference Mapping:\n"
        "   - Keep references like \"Ref 1\" or \"Ref 2\" when the user used them to map images to subjects.\n"
        "\n"
        "FORMAT:\n"
        "Return ONLY a JSON object. Each prompt follows: "
        "\"[English Core Subject], [Randomized Environment/Lighting/Weather/Artifacts]\".\n"
        '{"prompts": ["string", ...], "aspectRatio": "1:1" | "3:4" | "4:3" | "9:16" | "16:9"}'
    )


def build_user_prompt(base_prompt: str, count: int, reference_count: int = 0) -> str:
    line = f'Input: "{base_prompt}". Generate {count} variations in JSON format.'
    if reference_count > 0:
        refs = ", ".join(f"Ref {idx}" for idx in range(1, reference_count + 1))
        line += f" The user attached {reference_count} reference image(s): {refs}."
    return line


class PromptExpander:
    def __init__(self, generator: TextGenerator | None = None) -> None:
        self.generator = generator or GeminiTextGenerator()

    def expand(self, base_prompt: str, count: int, reference_count: int = 0) -> ExpansionResult:
        if count < 1:
            raise ValueError(f"count must be at least 1, got {count}.")
        request = TextRequest(
            system_instruction=build_system_instruction(count),
            prompt=build_user_prompt(base_prompt, count, reference_count),
            base_prompt=base_prompt,
            count=count,
            reference_count=reference_count,
        )
        try:
            text = self.generator.generate(request)
        except ExpansionError:
            raise
        except Exception as exc:
            raise ExpansionError(_describe(exc)) from exc
        if not isinstance(text, str) or not text.strip():
            raise ExpansionError("Empty response from AI.")
        return parse_expansion(text)


class GeminiTextGenerator:
    name = "gemini"

    def __init__(
        self,
        model: str | None = None,
        api_key: str | None = None,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self.model = model or os.getenv("SYNTHSET_EXPAND_MODEL") or DEFAULT_EXPAND_MODEL
        self.api_key = api_key
        self.client_factory = client_factory or default_client_factory

    def generate(self, request: TextRequest) -> str:
        client = self.client_factory(resolve_gemini_api_key(self.api_key))
        response = client.models.generate_content(
            model=self.model,
            contents=request.prompt,
            config=types.GenerateContentConfig(
                system_instruction=request.system_instruction,
                response_mime_type="application/json",
                response_schema=_expansion_schema(),
            ),
        )
        return response_text(response)


def _expansion_schema() -> types.Schema:
    return types.Schema(
        type=types.Type.OBJECT,
        properties={
            "prompts": types.Schema(
                type=types.Type.ARRAY,
                items=types.Schema(type=types.Type.STRING),
            ),
            "aspectRatio": types.Schema(
                type=types.Type.STRING,
                enum=list(SUPPORTED_ASPECT_RATIOS),
            ),
        },
        required=["prompts", "aspectRatio"],
    )


_DRYRUN_ENVIRONMENTS = (
    "on a railway bridge",
    "inside a railway tunnel",
    "along a high-speed rail line",
    "in a maintenance depot",
    "at a busy station platform",
)
_DRYRUN_LIGHTING = ("harsh midday sun", "dim twilight", "fluorescent work lights", "cinematic backlighting", "sunrise glow")
_DRYRUN_WEATHER = ("heavy rain", "light drizzle", "dense fog", "clear sky", "falling snow", "overcast", "dusty air")
_DRYRUN_ARTIFACTS = ("clean lens", "slight motion blur", "lens smudges", "mud splatter", "water droplets", "surveillance grain")


class DryRunTextGenerator:
    """Offline generator: deterministic variants wrapped in a code fence like a chatty model."""

    name = "dryrun"

    def generate(self, request: TextRequest) -> str:
        seed = stable_hash({"prompt": request.base_prompt, "count": request.count})
        rng = random.Random(seed)
        subject = request.base_prompt.strip() or "untitled subject"
        prompts = []
        for _ in range(request.count):
            prompts.append(
                f"{subject}, {rng.choice(_DRYRUN_ENVIRONMENTS)}, {rng.choice(_DRYRUN_LIGHTING)}, "
                f"{rng.choice(_DRYRUN_WEATHER)}, {rng.choice(_DRYRUN_ARTIFACTS)}"
            )
        payload: dict[str, Any] = {
            "prompts": prompts,
            "aspectRatio": infer_aspect_ratio(request.base_prompt),
        }
        return f"Here are your variations:\n```json\n{json.dumps(payload, ensure_ascii=False, indent=2)}\n```"


def _describe(exc: BaseException) -> str:
    return str(exc).strip() or type(exc).__name__
