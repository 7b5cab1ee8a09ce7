"""Dry-run synthesizer (offline placeholders)."""

from __future__ import annotations

import hashlib
from io import BytesIO
from typing import Sequence

from PIL import Image, ImageDraw, ImageFont

from ..models.registry import BACKEND_DRYRUN, ModelConfig
from ..sessions.models import ImagePayload
from ..utils import to_data_url


_RATIO_DIMS: dict[str, tuple[int, int]] = {
    "1:1": (512, 512),
    "3:4": (384, 512),
    "4:3": (512, 384),
    "9:16": (288, 512),
    "16:9": (512, 288),
}


class DryRunSynthesizer:
    backend_type = BACKEND_DRYRUN

    def __init__(self) -> None:
        self._font = None

    def synthesize(
        self,
        prompt: str,
        reference_images: Sequence[ImagePayload],
        aspect_ratio: str,
        backend: ModelConfig,
    ) -> str:
        width, height = resolve_dims(aspect_ratio)
        image = Image.new("RGB", (width, height), color_from_prompt(prompt))
        draw = ImageDraw.Draw(image)
        font = self._font or ImageFont.load_default()
        text = f"dryrun {aspect_ratio} refs={len(reference_images)}\n{prompt[:60]}"
        draw.text((12, 12), text, fill=(255, 255, 255), font=font)
        buf = BytesIO()
        image.save(buf, format="PNG")
        return to_data_url(buf.getvalue(), "image/png")


def resolve_dims(aspect_ratio: str | None) -> tuple[int, int]:
    return _RATIO_DIMS.get(str(aspect_ratio or "").strip(), _RATIO_DIMS["1:1"])


def color_from_prompt(prompt: str) -> tuple[int, int, int]:
    digest = hashlib.sha256(prompt.encode("utf-8")).digest()
    return digest[0], digest[1], digest[2]
