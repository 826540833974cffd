"""Command-line interface for caption-burner.

WHY: Most burn-ins are one-off jobs run from a terminal or a shell
script: time a transcript, check a style, render an ASS file to inspect,
or burn captions into a local video. The CLI exposes each step on its
own, plus a remote mode that drives a running API server.

HOW: argparse with one subcommand per task:
  segment         transcript text → timed captions JSON
  compile         captions JSON + style → ASS or SRT document
  validate-style  style → validation report (exit 1 if invalid)
  burn            local burn-in via ExportJobManager + ffmpeg
  submit          remote burn-in via BurnInClient
  serve           run the HTTP API with uvicorn
Async work runs via asyncio.run(). Status messages go to stderr; data
goes to stdout or --output.

RULES:
- Captions JSON may be a list or an object with a "captions" list
- --style takes a preset name, a JSON file path, or inline JSON
- Exit code 1 on any validation or job failure, 130 on Ctrl-C
- Status output goes to stderr (not stdout)
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import shutil
import sys
from pathlib import Path
from typing import Any, List, Optional

from caption_burner.api.client import BurnInAPIError, BurnInClient, ExportFailedError, ExportTimeoutError
from caption_burner.config import API_HOST, API_PORT, API_URL, EXPORTS_DIR
from caption_burner.core.ir import CaptionSegment, SegmentOptions
from caption_burner.core.segmenter import segment_transcript
from caption_burner.engine.transcoder import CODEC_MAP, CRF_MAP, OUTPUT_FORMATS
from caption_burner.export.jobs import JobStatus
from caption_burner.export.manager import ExportJobManager
from caption_burner.export.media import PathResolver
from caption_burner.formatters import FORMATTERS
from caption_burner.formatters.ass import AssFormatter
from caption_burner.styles.model import StyleValidationError, ensure_valid, resolve_style, validate
from caption_burner.styles.presets import PRESETS

_POLL_INTERVAL_S = 0.5


def _status(msg: str) -> None:
    """Print a status message to stderr.

    RULES:
    - All status messages go to stderr
    - Always flush after writing
    """
    print(msg, file=sys.stderr, flush=True)


def _fail(msg: str, code: int = 1) -> None:
    print("Error: {}".format(msg), file=sys.stderr)
    sys.exit(code)


def _write_result(text: str, output: Optional[str]) -> None:
    """Write text to --output if given, else to stdout."""
    if output:
        Path(output).write_text(text, encoding="utf-8")
        _status("Wrote {}".format(output))
    else:
        sys.stdout.write(text)
        sys.stdout.flush()


def _read_text(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8")


def _load_captions(path: str) -> List[Any]:
    """Load a captions list from a JSON file ("-" for stdin)."""
    try:
        data = json.loads(_read_text(path))
    except (OSError, json.JSONDecodeError) as exc:
        _fail("Could not read captions from {}: {}".format(path, exc))
    if isinstance(data, dict):
        data = data.get("captions")
    if not isinstance(data, list):
        _fail("Captions file must contain a list or an object with a 'captions' list")
    return data


def _load_style(value: Optional[str]) -> Any:
    """Interpret --style as a JSON file, inline JSON, or a preset name."""
    if value is None:
        return None
    if value.lstrip().startswith("{"):
        try:
            return json.loads(value)
        except json.JSONDecodeError as exc:
            _fail("Inline style is not valid JSON: {}".format(exc))
    candidate = Path(value)
    if candidate.is_file():
        try:
            return json.loads(candidate.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            _fail("Style file {} is not valid JSON: {}".format(value, exc))
    return value


def _output_options(args: argparse.Namespace) -> dict:
    return {
        "format": args.format,
        "codec": args.codec,
        "quality": args.quality,
        "resolution": args.resolution,
        "fps": args.fps,
    }


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------


def _cmd_segment(args: argparse.Namespace) -> None:
    options = SegmentOptions(
        max_segment_duration=args.max_segment_duration,
        min_segment_duration=args.min_segment_duration,
        words_per_minute=args.wpm,
    )
    try:
        segments = segment_transcript(_read_text(args.transcript), args.duration, options)
    except ValueError as exc:
        _fail(str(exc))
    _status("{} segment(s)".format(len(segments)))
    _write_result(json.dumps([s.to_dict() for s in segments], indent=2) + "\n", args.output)


def _cmd_compile(args: argparse.Namespace) -> None:
    segments = []
    for index, item in enumerate(_load_captions(args.captions)):
        try:
            segments.append(CaptionSegment.from_dict(item, index=index))
        except ValueError as exc:
            _fail("captions[{}]: {}".format(index, exc))

    try:
        style = ensure_valid(resolve_style(_load_style(args.style)))
    except StyleValidationError as exc:
        _fail("Invalid caption style:\n  " + "\n  ".join(exc.errors))

    if args.subtitle_format == "ass":
        formatter = AssFormatter(force_high_contrast=args.high_contrast)
    else:
        formatter = FORMATTERS[args.subtitle_format]()
    output = formatter.format(segments, style, args.resolution)[0]
    _write_result(output.content, args.output)


def _cmd_validate_style(args: argparse.Namespace) -> None:
    try:
        style = resolve_style(_load_style(args.style))
    except StyleValidationError as exc:
        _fail("; ".join(exc.errors))
    result = validate(style)
    if result.is_valid:
        _status("Style is valid.")
        if args.print_normalized:
            print(json.dumps(style, indent=2))
        return
    for error in result.errors:
        print(error)
    sys.exit(1)


async def _run_burn(args: argparse.Namespace) -> None:
    manager = ExportJobManager(
        resolver=PathResolver(),
        exports_dir=Path(args.exports_dir),
    )
    try:
        job = manager.create(
            str(Path(args.video)),
            _load_captions(args.captions),
            _load_style(args.style),
            output=_output_options(args),
            force_high_contrast=args.high_contrast,
        )
    except ValueError as exc:
        _fail(str(exc))

    _status("Export job {} started".format(job.job_id))
    waiter = asyncio.ensure_future(manager.wait(job.job_id))
    last_progress = -1
    while not waiter.done():
        current = manager.get(job.job_id)
        if current.progress != last_progress:
            _status("  {:3d}%".format(current.progress))
            last_progress = current.progress
        await asyncio.wait({waiter}, timeout=_POLL_INTERVAL_S)

    final = waiter.result()
    if final.status != JobStatus.COMPLETED or final.output_path is None:
        _fail("Export failed: {}".format(final.error))

    result_path = Path(final.output_path)
    if args.output:
        destination = Path(args.output)
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(result_path), str(destination))
        result_path = destination
    _status("Done!")
    print(result_path)


def _cmd_burn(args: argparse.Namespace) -> None:
    try:
        asyncio.run(_run_burn(args))
    except KeyboardInterrupt:
        _status("\nCancelled by user.")
        sys.exit(130)


async def _run_submit(args: argparse.Namespace) -> None:
    captions = _load_captions(args.captions)
    style = _load_style(args.style)
    output = {k: v for k, v in _output_options(args).items() if v is not None}

    async with BurnInClient(base_url=args.api_url) as client:
        video_id = await client.upload_video(Path(args.video), on_status=_status)
        job_id = await client.create_burn_in(
            video_id,
            captions,
            style=style,
            output=output or None,
            force_high_contrast=args.high_contrast,
        )
        _status("Export job {} started".format(job_id))
        await client.poll_until_complete(job_id, on_status=_status)

        destination = Path(args.output) if args.output else Path(args.video).with_name(
            "{}-captioned.{}".format(Path(args.video).stem, args.format or "mp4")
        )
        await client.download(job_id, destination, on_status=_status)
        print(destination)


def _cmd_submit(args: argparse.Namespace) -> None:
    try:
        asyncio.run(_run_submit(args))
    except KeyboardInterrupt:
        _status("\nCancelled by user.")
        sys.exit(130)
    except (BurnInAPIError, ExportFailedError, ExportTimeoutError) as exc:
        _fail(str(exc))
    except OSError as exc:
        _fail(str(exc))


def _cmd_serve(args: argparse.Namespace) -> None:
    import uvicorn

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run("caption_burner.server.app:app", host=args.host, port=args.port)


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def _add_burn_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("video", help="Path to the source video.")
    parser.add_argument("captions", help="Captions JSON file ('-' for stdin).")
    parser.add_argument(
        "--style",
        default=None,
        help="Preset name ({}), style JSON file, or inline JSON.".format(", ".join(sorted(PRESETS))),
    )
    parser.add_argument("--format", choices=OUTPUT_FORMATS, default=None, help="Container (default: mp4).")
    parser.add_argument("--codec", choices=sorted(CODEC_MAP), default=None, help="Video codec (default: h264).")
    parser.add_argument("--quality", choices=sorted(CRF_MAP), default=None, help="Quality (default: medium).")
    parser.add_argument("--resolution", default=None, help="Output size WIDTHxHEIGHT (default: source).")
    parser.add_argument("--fps", type=float, default=None, help="Output frame rate (default: source).")
    parser.add_argument(
        "--high-contrast",
        action="store_true",
        help="White text on black outline and box, ignoring style colors.",
    )
    parser.add_argument("--output", "-o", default=None, help="Where to save the captioned video.")


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the CLI.

    WHY: Separating parser construction from main() makes the CLI
    testable — tests can inspect the parser without running anything.
    """
    parser = argparse.ArgumentParser(
        prog="caption-burner",
        description="Time, style, and burn captions into videos.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("segment", help="Derive caption timing from a transcript.")
    p.add_argument("transcript", help="Transcript text file ('-' for stdin).")
    p.add_argument("--duration", type=float, required=True, help="Video duration in seconds.")
    p.add_argument("--max-segment-duration", type=float, default=5.0, help="Default: %(default)s.")
    p.add_argument("--min-segment-duration", type=float, default=1.0, help="Default: %(default)s.")
    p.add_argument("--wpm", type=float, default=150.0, help="Words per minute (default: %(default)s).")
    p.add_argument("--output", "-o", default=None, help="Write JSON here instead of stdout.")
    p.set_defaults(func=_cmd_segment)

    p = sub.add_parser("compile", help="Compile captions into an ASS or SRT document.")
    p.add_argument("captions", help="Captions JSON file ('-' for stdin).")
    p.add_argument("--style", default=None, help="Preset name, style JSON file, or inline JSON.")
    p.add_argument("--resolution", default=None, help="Target WIDTHxHEIGHT (default: 1080x1920).")
    p.add_argument(
        "--subtitle-format",
        choices=sorted(FORMATTERS),
        default="ass",
        help="Document format (default: %(default)s).",
    )
    p.add_argument("--high-contrast", action="store_true", help="Force white-on-black rendering.")
    p.add_argument("--output", "-o", default=None, help="Write the document here instead of stdout.")
    p.set_defaults(func=_cmd_compile)

    p = sub.add_parser("validate-style", help="Validate a caption style.")
    p.add_argument("style", help="Preset name, style JSON file, or inline JSON.")
    p.add_argument("--print-normalized", action="store_true", help="Print the normalized style if valid.")
    p.set_defaults(func=_cmd_validate_style)

    p = sub.add_parser("burn", help="Burn captions into a local video with ffmpeg.")
    _add_burn_arguments(p)
    p.add_argument(
        "--exports-dir",
        default=str(EXPORTS_DIR),
        help="Working directory for subtitle and output files (default: %(default)s).",
    )
    p.set_defaults(func=_cmd_burn)

    p = sub.add_parser("submit", help="Burn captions via a running caption-burner API.")
    _add_burn_arguments(p)
    p.add_argument("--api-url", default=API_URL, help="API base URL (default: %(default)s).")
    p.set_defaults(func=_cmd_submit)

    p = sub.add_parser("serve", help="Run the HTTP API.")
    p.add_argument("--host", default=API_HOST, help="Bind address (default: %(default)s).")
    p.add_argument("--port", type=int, default=API_PORT, help="Port (default: %(default)s).")
    p.add_argument("--verbose", "-v", action="store_true", help="Debug logging.")
    p.set_defaults(func=_cmd_serve)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the CLI.

    RULES:
    - argv=None means use sys.argv (normal CLI invocation)
    - Explicit argv is for testing
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
