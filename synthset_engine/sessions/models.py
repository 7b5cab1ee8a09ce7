"""Session and generated-image records."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Sequence, Union

from ..errors import SessionValidationError
from ..utils import now_utc_iso, sanitize_payload


STATUS_IDLE = "idle"
STATUS_GENERATING = "generating"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STATUS_STOPPED = "stopped"

TERMINAL_STATUSES = frozenset({STATUS_COMPLETED, STATUS_FAILED, STATUS_STOPPED})

SUPPORTED_ASPECT_RATIOS = ("1:1", "3:4", "4:3", "9:16", "16:9")
DEFAULT_ASPECT_RATIO = "16:9"

MAX_REFERENCE_IMAGES = 4
UNTITLED_SESSION_NAME = "Untitled Task"

ImagePayload = Union[str, bytes]


@dataclass
class GeneratedImage:
    id: str
    url: str
    prompt: str
    timestamp: str = field(default_factory=now_utc_iso)
    tags: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "prompt": self.prompt,
            "timestamp": self.timestamp,
            "tags": list(self.tags),
        }


def image_id(session_id: str, index: int) -> str:
    return f"{session_id}_{index}"


@dataclass
class Session:
    id: str
    base_prompt: str
    total_target: int
    reference_images: list[ImagePayload] = field(default_factory=list)
    name: str = UNTITLED_SESSION_NAME
    generated_prompts: list[str] = field(default_factory=list)
    generated_images: list[GeneratedImage] = field(default_factory=list)
    status: str = STATUS_IDLE
    progress: int = 0
    logs: list[str] = field(default_factory=list)
    aspect_ratio: str | None = None
    created_at: str = field(default_factory=now_utc_iso)

    @classmethod
    def new(
        cls,
        base_prompt: str,
        reference_images: Sequence[ImagePayload] = (),
        total_target: int = 4,
        name: str | None = None,
    ) -> "Session":
        validate_session_args(reference_images, total_target)
        return cls(
            id=str(uuid.uuid4()),
            base_prompt=base_prompt,
            total_target=int(total_target),
            reference_images=list(reference_images),
            name=name or default_session_name(base_prompt),
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self, *, include_payloads: bool = True) -> dict[str, Any]:
        # Raw bytes never go into JSON; data URLs only when payloads are requested.
        references = [
            ref if include_payloads and isinstance(ref, str) else sanitize_payload(ref)
            for ref in self.reference_images
        ]
        return {
            "id": self.id,
            "name": self.name,
            "base_prompt": self.base_prompt,
            "reference_images": references,
            "total_target": self.total_target,
            "generated_prompts": list(self.generated_prompts),
            "generated_images": [image.to_dict() for image in self.generated_images],
            "status": self.status,
            "progress": self.progress,
            "logs": list(self.logs),
            "aspect_ratio": self.aspect_ratio,
            "created_at": self.created_at,
        }


def default_session_name(base_prompt: str) -> str:
    return base_prompt[:30] or UNTITLED_SESSION_NAME


def validate_session_args(reference_images: Sequence[ImagePayload], total_target: Any) -> None:
    if isinstance(total_target, bool) or not isinstance(total_target, int):
        raise SessionValidationError(f"total_target must be an integer, got {total_target!r}.")
    if total_target < 1:
        raise SessionValidationError(f"total_target must be at least 1, got {total_target}.")
    if len(reference_images) > MAX_REFERENCE_IMAGES:
        raise SessionValidationError(
            f"At most {MAX_REFERENCE_IMAGES} reference images are allowed, got {len(reference_images)}."
        )
