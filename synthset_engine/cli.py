"""Synthset CLI entrypoints."""

from __future__ import annotations

import argparse
import dataclasses
import os
import re
import sys
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from .cli_progress import ProgressTicker
from .engine import SynthsetEngine
from .errors import ExpansionError
from .models.registry import (
    BACKEND_OPENAI_COMPATIBLE,
    DRYRUN_MODEL,
    ModelConfig,
    ModelConfigRegistry,
)
from .models.selectors import ModelConfigSelector
from .prompts.expander import DryRunTextGenerator, PromptExpander
from .runs.export import export_html, write_session_outputs
from .sessions.models import (
    MAX_REFERENCE_IMAGES,
    STATUS_COMPLETED,
    STATUS_STOPPED,
    Session,
)
from .utils import getenv_flag, load_dotenv, to_data_url

EXIT_INTERRUPTED = 130
_STAMP_RE = re.compile(r"^\[\d{2}:\d{2}:\d{2}\]\s*")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="synthset", description="Synthetic training image batches from one scenario")
    sub = parser.add_subparsers(dest="command")

    run = sub.add_parser("run", help="Expand a scenario and generate an image batch")
    run.add_argument("--prompt", required=True, help="Scenario description (any language)")
    run.add_argument("--count", type=int, default=4, help="Number of images to generate")
    run.add_argument("--ref", action="append", default=[], help="Reference image path (repeat up to 4 times)")
    run.add_argument("--model", help="Configured model id (default-gemini, dryrun, openai-compatible)")
    run.add_argument("--model-id", dest="model_id", help="Override the backend model string")
    run.add_argument("--endpoint", help="OpenAI-compatible base URL; selects the compatible backend")
    run.add_argument("--api-key", dest="api_key", help="API key for --endpoint")
    run.add_argument("--out", default="synthset-out", help="Output directory")
    run.add_argument("--events", help="Path to events.jsonl (default: <out>/events.jsonl)")
    run.add_argument("--dry-run", dest="dry_run", action="store_true", help="Offline placeholders, no API calls")

    expand = sub.add_parser("expand", help="Preview prompt variants without generating images")
    expand.add_argument("--prompt", required=True)
    expand.add_argument("--count", type=int, default=4)
    expand.add_argument("--dry-run", dest="dry_run", action="store_true")

    export = sub.add_parser("export", help="Export a run directory to HTML")
    export.add_argument("--run", required=True, help="Run directory containing session.json")
    export.add_argument("--out", required=True, help="Output HTML path")
    export.add_argument("--tag", help="Only include images carrying this tag")

    return parser


def _is_dry_run(args: argparse.Namespace) -> bool:
    return bool(getattr(args, "dry_run", False)) or getenv_flag("SYNTHSET_DRYRUN", False)


def _build_expander(dry_run: bool) -> PromptExpander:
    return PromptExpander(DryRunTextGenerator()) if dry_run else PromptExpander()


def _load_reference(path: Path) -> str:
    data = path.read_bytes()
    try:
        with Image.open(path) as image:
            image_format = image.format
    except UnidentifiedImageError as exc:
        raise ValueError(f"{path} is not a readable image.") from exc
    mime_type = Image.MIME.get(image_format or "", "image/png")
    return to_data_url(data, mime_type)


def _load_references(paths: list[str]) -> list[str]:
    if len(paths) > MAX_REFERENCE_IMAGES:
        raise ValueError(f"Maximum {MAX_REFERENCE_IMAGES} reference images allowed.")
    return [_load_reference(Path(raw).expanduser()) for raw in paths]


def _resolve_backend(args: argparse.Namespace) -> ModelConfig:
    if _is_dry_run(args):
        return DRYRUN_MODEL
    if args.endpoint:
        return ModelConfig(
            id="cli-openai-compatible",
            name="OpenAI-compatible (CLI)",
            type=BACKEND_OPENAI_COMPATIBLE,
            model_id=args.model_id or os.getenv("SYNTHSET_OPENAI_MODEL") or "dall-e-3",
            endpoint=args.endpoint,
            api_key=args.api_key or os.getenv("SYNTHSET_OPENAI_API_KEY"),
        )
    selection = ModelConfigSelector(ModelConfigRegistry.from_env()).select(args.model)
    if args.model and selection.fallback_reason:
        print(f"Model fallback: {selection.fallback_reason}")
    config = selection.config
    if args.model_id:
        config = dataclasses.replace(config, model_id=args.model_id)
    return config


def _status_label(session: Session) -> str:
    if not session.logs:
        return session.status
    return _STAMP_RE.sub("", session.logs[-1])


def _print_logs(session: Session) -> None:
    for line in session.logs:
        print(f"  {line}")


def _handle_run(args: argparse.Namespace) -> int:
    try:
        references = _load_references(args.ref)
    except (OSError, ValueError) as exc:
        print(f"Reference images rejected: {exc}")
        return 2
    out_dir = Path(args.out)
    events_path = Path(args.events) if args.events else out_dir / "events.jsonl"
    backend = _resolve_backend(args)
    engine = SynthsetEngine(expander=_build_expander(_is_dry_run(args)), events_path=events_path)
    try:
        session_id = engine.create_session(args.prompt, references, args.count)
    except ValueError as exc:
        print(f"Invalid session: {exc}")
        return 2
    print(f"Plan: {args.count} images via {backend.name} ({backend.model_id}), {len(references)} reference(s)")

    ticker = ProgressTicker("Starting")
    ticker.start_ticking()
    handle = engine.start(session_id, backend)
    interrupted = False
    while not handle.done:
        try:
            handle.wait(0.25)
        except KeyboardInterrupt:
            if interrupted:
                raise
            interrupted = True
            engine.cancel(session_id)
            ticker.update("Stopping after the current image...", engine.get_session(session_id).progress)
            continue
        session = engine.get_session(session_id)
        ticker.update(_status_label(session), session.progress)

    session = engine.get_session(session_id)
    ticker.stop(summary=f"{session.status.capitalize()}: {len(session.generated_images)}/{session.total_target} images")
    manifest_path = write_session_outputs(session, out_dir)
    print(f"Session log ({session.id}):")
    _print_logs(session)
    print(f"Wrote {manifest_path}")
    if session.status == STATUS_COMPLETED:
        return 0
    if session.status == STATUS_STOPPED:
        return EXIT_INTERRUPTED
    return 1


def _handle_expand(args: argparse.Namespace) -> int:
    engine = SynthsetEngine(expander=_build_expander(_is_dry_run(args)))
    try:
        result = engine.expand_only(args.prompt, args.count)
    except ValueError as exc:
        print(f"Invalid request: {exc}")
        return 2
    except ExpansionError as exc:
        print(f"Prompt expansion failed: {exc}")
        return 1
    print(f"Aspect ratio: {result.aspect_ratio}")
    for idx, prompt in enumerate(result.prompts, start=1):
        print(f"{idx:>3}. {prompt}")
    return 0


def _handle_export(args: argparse.Namespace) -> int:
    out_path = export_html(Path(args.run), Path(args.out), tag=args.tag)
    print(f"Exported to {out_path}")
    return 0


def main(argv: list[str] | None = None) -> None:
    load_dotenv()
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.command == "run":
        raise SystemExit(_handle_run(args))
    if args.command == "expand":
        raise SystemExit(_handle_expand(args))
    if args.command == "export":
        raise SystemExit(_handle_export(args))
    parser.print_help(sys.stderr)
    raise SystemExit(1)


if __name__ == "__main__":
    main()
