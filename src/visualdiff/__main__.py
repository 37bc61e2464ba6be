"""Command line interface for visual diffs."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Iterable, Optional

from .app_factory import create_coordinator, create_pipeline
from .core.diff import compute_diff, describe_summary
from .core.types import RENDER_MODES, ComparisonKey
from .errors import DiffError, StorageUnavailable
from .overlay import ArtifactRenderer
from .presets import Preset, get_preset, parse_color
from .report import write_json_report
from .settings import DiffSettings
from .utils.file_io import atomic_write_bytes

logger = logging.getLogger(__name__)


def _add_key_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("article_id", help="Article (or change log) identifier")
    parser.add_argument("source_version", type=int, help="Version the comparison starts from")
    parser.add_argument("target_version", type=int, help="Version the comparison ends at")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="visualdiff",
        description="Line level diffs between document versions, rendered as highlighted artifacts.",
    )
    parser.add_argument("--env-file", help="Load VISUAL_DIFF_* settings from this .env file")
    parser.add_argument("--log-level", help="Override VISUAL_DIFF_LOG_LEVEL")
    parser.add_argument("--version", action="store_true", help="Print version and exit")
    sub = parser.add_subparsers(dest="command")

    diff = sub.add_parser("diff", help="Compare two local documents")
    diff.add_argument("old", help="Path or URL of the earlier document")
    diff.add_argument("new", help="Path or URL of the later document")
    diff.add_argument("--json", dest="json_path", help="Write the full diff result to this JSON file")
    diff.add_argument("--output", help="Render the diff to this file")
    diff.add_argument("--mode", choices=RENDER_MODES, help="Render mode for --output")
    diff.add_argument("--preset", help="Highlight preset (default|subtle|bold)")
    diff.add_argument("--added-color", help="Added highlight colour (#RRGGBB or r,g,b)")
    diff.add_argument("--removed-color", help="Removed highlight colour")
    diff.add_argument("--modified-color", help="Modified highlight colour")

    summary = sub.add_parser("summary", help="Print word level change counts as JSON")
    summary.add_argument("old")
    summary.add_argument("new")

    generate = sub.add_parser("generate", help="Get or generate the stored artifact for a comparison")
    _add_key_arguments(generate)
    generate.add_argument("source", help="Reference to the source document")
    generate.add_argument("target", help="Reference to the target document")
    generate.add_argument("--mode", choices=RENDER_MODES)
    generate.add_argument("--no-wait", action="store_true", help="Return at once if another caller is generating")
    generate.add_argument("--wait-timeout", type=float, help="Seconds to wait for another caller")

    status = sub.add_parser("status", help="Show the stored state of a comparison")
    _add_key_arguments(status)

    reset = sub.add_parser("reset", help="Delete the stored state of a comparison")
    _add_key_arguments(reset)

    sub.add_parser("sweep", help="Fail generations that exceeded the timeout")
    return parser


def _preset_from_args(args: argparse.Namespace, settings: DiffSettings) -> Preset:
    preset = get_preset(args.preset or settings.preset)
    colors = preset.colors.with_overrides(
        added=parse_color(args.added_color),
        removed=parse_color(args.removed_color),
        modified=parse_color(args.modified_color),
    )
    if colors == preset.colors:
        return preset
    return Preset(
        name=preset.name,
        description=preset.description,
        colors=colors,
        fill_opacity=preset.fill_opacity,
        stroke_width=preset.stroke_width,
        padding_pts=preset.padding_pts,
    )


def _run_diff(args: argparse.Namespace, settings: DiffSettings) -> int:
    pipeline = create_pipeline(settings)
    with pipeline.resolver.open(args.old) as old_path, pipeline.resolver.open(args.new) as new_path:
        source = pipeline.extract(old_path)
        target = pipeline.extract(new_path)
        result = compute_diff(source.text, target.text)
        print(describe_summary(result))
        if args.json_path:
            write_json_report(result, args.json_path)
        if args.output:
            renderer = ArtifactRenderer(_preset_from_args(args, settings))
            artifact = renderer.render(
                result, source, target, args.mode or settings.render_mode, target_ref=args.new
            )
            atomic_write_bytes(Path(args.output), artifact.data)
            print(f"Wrote {args.output}")
    return 0


def _key(args: argparse.Namespace) -> ComparisonKey:
    return ComparisonKey(args.article_id, args.source_version, args.target_version)


def _print_json(data: object) -> None:
    print(json.dumps(data, indent=2, sort_keys=True, ensure_ascii=False))


def _run_with_coordinator(args: argparse.Namespace, settings: DiffSettings) -> int:
    coordinator = create_coordinator(settings)
    try:
        if args.command == "summary":
            _print_json(coordinator.summarize(args.old, args.new).to_dict())
            return 0
        if args.command == "sweep":
            print(f"Expired {coordinator.sweep()} generation(s)")
            return 0
        if args.command == "status":
            artifact = coordinator.get_status(_key(args))
            if artifact is None:
                print("No visual diff recorded for this comparison")
                return 1
            _print_json(artifact.to_dict())
            return 0
        if args.command == "reset":
            removed = coordinator.reset(_key(args))
            print("Reset" if removed else "Nothing to reset")
            return 0
        outcome = coordinator.get_or_generate(
            _key(args),
            args.source,
            args.target,
            wait=not args.no_wait,
            wait_timeout=args.wait_timeout,
            mode=args.mode,
        )
        _print_json(outcome.to_dict())
        if outcome.error is not None:
            return 1
        return 0
    finally:
        coordinator.close()


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.version:
        from . import __version__

        print(__version__)
        return 0
    if not args.command:
        parser.print_help()
        return 2

    try:
        settings = DiffSettings.from_env(dotenv_path=args.env_file)
    except ValueError as exc:
        parser.error(str(exc))
        return 2
    logging.basicConfig(
        level=(args.log_level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.command == "diff":
            return _run_diff(args, settings)
        return _run_with_coordinator(args, settings)
    except (KeyError, ValueError) as exc:
        parser.error(str(exc))
        return 2
    except DiffError as exc:
        print(f"Error ({exc.kind}): {exc.message}", file=sys.stderr)
        return 1
    except StorageUnavailable as exc:
        logger.error("%s", exc)
        return 3


if __name__ == "__main__":
    sys.exit(main())
