"""Shared utilities for the synthset engine."""

from __future__ import annotations

import base64
import hashlib
import json
import os
import re
from datetime import datetime, timezone
from pathlib import Path
import tomllib
from typing import Any, Mapping


_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(;[^,;]*)*?);base64,(?P<data>.*)$", re.DOTALL)


def now_utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def clock_stamp() -> str:
    return datetime.now().strftime("%H:%M:%S")


def stable_hash(payload: Mapping[str, Any]) -> str:
    serialized = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha256(serialized).hexdigest()


def sanitize_payload(payload: Any) -> Any:
    """Replace inline image data with placeholders so payloads stay loggable."""
    if payload is None:
        return None
    if isinstance(payload, str):
        if payload.startswith("data:") and ";base64," in payload:
            return f"<data-url:{len(payload)}>"
        return payload
    if isinstance(payload, (int, float, bool)):
        return payload
    if isinstance(payload, bytes):
        return f"<bytes:{len(payload)}>"
    if isinstance(payload, Mapping):
        sanitized: dict[str, Any] = {}
        for key, value in payload.items():
            lowered = str(key).lower()
            if lowered in {"b64_json", "image", "image_bytes", "data", "api_key", "apikey", "authorization"}:
                sanitized[str(key)] = "<omitted>"
                continue
            sanitized[str(key)] = sanitize_payload(value)
        return sanitized
    if isinstance(payload, (list, tuple)):
        return [sanitize_payload(item) for item in payload]
    return str(payload)


def split_data_url(value: str) -> tuple[str | None, str]:
    """Return (mime_type, base64_body) for a data URL, or (None, value) for raw base64."""
    match = _DATA_URL_RE.match(value.strip())
    if not match:
        return None, value.strip()
    return match.group("mime"), match.group("data")


def decode_image_payload(value: str | bytes) -> tuple[bytes, str | None]:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value), None
    mime_type, body = split_data_url(value)
    return base64.b64decode(body), mime_type


def to_data_url(data: bytes, mime_type: str | None = None) -> str:
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type or 'image/png'};base64,{encoded}"


def extension_from_mime(mime_type: str | None) -> str:
    normalized = str(mime_type or "").strip().lower()
    if normalized in {"image/jpeg", "image/jpg"}:
        return "jpg"
    if normalized == "image/webp":
        return "webp"
    return "png"


def read_json(path: Path, default: Any) -> Any:
    if not path.exists():
        return default
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except Exception:
        return default


def write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")


def getenv_flag(key: str, default: bool = False) -> bool:
    raw = os.getenv(key)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def load_dotenv(path: Path | None = None, override: bool = False) -> bool:
    env_path = path or _default_env_path()
    if not env_path.exists():
        return False
    for raw_line in env_path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[7:].strip()
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if not key:
            continue
        value = value.strip()
        if value and value[0] == value[-1] and value.startswith(("\"", "'")):
            value = value[1:-1]
        if not override and key in os.environ:
            continue
        os.environ[key] = value
    return True


def _default_env_path() -> Path:
    cwd = Path.cwd()
    repo_root = _find_repo_root(cwd)
    if repo_root:
        env_path = repo_root / ".env"
        if env_path.exists():
            return env_path
    module_root = _find_repo_root(Path(__file__).resolve().parent)
    if module_root:
        env_path = module_root / ".env"
        if env_path.exists():
            return env_path
    return cwd / ".env"


def _find_repo_root(start: Path) -> Path | None:
    for current in (start,) + tuple(start.parents):
        if (current / "synthset_engine").is_dir():
            return current
        pyproject = current / "pyproject.toml"
        if pyproject.exists():
            try:
                data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
            except Exception:
                continue
            if data.get("project", {}).get("name") == "synthset":
                return current
    return None
