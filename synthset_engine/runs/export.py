"""Write session outputs to disk and export a gallery page."""

from __future__ import annotations

import html
from pathlib import Path
from typing import Any

from ..sessions.models import Session
from ..utils import decode_image_payload, extension_from_mime, read_json, split_data_url, write_json


SESSION_MANIFEST = "session.json"


def write_session_outputs(session: Session, out_dir: Path) -> Path:
    """Store each image payload as a file and write the session manifest.

    Data-URL payloads are written byte-for-byte; remote URLs are recorded as-is.
    """
    out_dir.mkdir(parents=True, exist_ok=True)
    images: list[dict[str, Any]] = []
    for idx, image in enumerate(session.generated_images):
        entry = image.to_dict()
        if image.url.startswith("data:"):
            mime_type, _ = split_data_url(image.url)
            data, _ = decode_image_payload(image.url)
            path = out_dir / f"synth_{session.id}_{idx}.{extension_from_mime(mime_type)}"
            path.write_bytes(data)
            entry["url"] = path.name
            entry["file"] = path.name
        images.append(entry)
    manifest = session.to_dict(include_payloads=False)
    manifest["generated_images"] = images
    manifest_path = out_dir / SESSION_MANIFEST
    write_json(manifest_path, manifest)
    return manifest_path


def export_html(run_dir: Path, out_path: Path, tag: str | None = None) -> Path:
    manifest = read_json(run_dir / SESSION_MANIFEST, {})
    if not isinstance(manifest, dict):
        manifest = {}
    images = manifest.get("generated_images", [])
    if not isinstance(images, list):
        images = []

    cards: list[str] = []
    for image in images:
        if not isinstance(image, dict):
            continue
        tags = image.get("tags") if isinstance(image.get("tags"), list) else []
        if tag and tag not in tags:
            continue
        src = image.get("file") or image.get("url") or ""
        if image.get("file"):
            src = str((run_dir / str(src)).resolve())
        prompt = html.escape(str(image.get("prompt", "")))
        image_id = html.escape(str(image.get("id", "")))
        tag_line = html.escape(", ".join(str(item) for item in tags))
        cards.append(
            f"<div class='card'>"
            f"<div class='thumb'><img src='{html.escape(str(src))}' alt='generated image'></div>"
            f"<div class='meta'><div class='iid'>{image_id}</div>"
            f"<div class='prompt'>{prompt}</div>"
            f"<div class='tags'>{tag_line}</div></div>"
            f"</div>"
        )

    title = html.escape(str(manifest.get("name") or "Synthset Session"))
    status = html.escape(str(manifest.get("status") or ""))
    filter_line = f" · tag: {html.escape(tag)}" if tag else ""
    html_doc = f"""
<!doctype html>
<html>
<head>
  <meta charset='utf-8'>
  <title>Synthset Export</title>
  <style>
    body {{ font-family: Arial, sans-serif; background: #f6f6f6; margin: 0; padding: 20px; }}
    .grid {{ display: grid; grid-template-columns: repeat(auto-fill, minmax(240px, 1fr)); gap: 16px; }}
    .card {{ background: white; border-radius: 10px; overflow: hidden; box-shadow: 0 2px 8px rgba(0,0,0,0.08); }}
    .thumb {{ width: 100%; height: 200px; background: #eee; display: flex; align-items: center; justify-content: center; }}
    .thumb img {{ max-width: 100%; max-height: 100%; }}
    .meta {{ padding: 10px; }}
    .iid {{ font-weight: bold; font-size: 12px; color: #444; }}
    .prompt {{ font-size: 13px; margin: 8px 0; }}
    .tags {{ font-size: 12px; color: #0066cc; }}
  </style>
</head>
<body>
  <h1>Synthset Export</h1>
  <p>{title} · {status} · {len(cards)} image(s){filter_line}</p>
  <div class='grid'>
    {''.join(cards)}
  </div>
</body>
</html>
"""
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(html_doc, encoding="utf-8")
    return out_path
