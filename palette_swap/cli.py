"""Command-line interface for batch palette edits."""
from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List

from .frames_io import load_frames, save_frames_gif, save_frames_png
from .palette_ops import PaletteError
from .presets import PresetError, load_preset, save_preset
from .session import EditorSession, EditOutcome
from .settings import EditorSettings


logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Apply palette edits to images and GIFs")
    parser.add_argument("inputs", nargs="+", type=Path, help="Input GIF or image files")
    parser.add_argument("--preset", type=Path, default=None, help="Preset JSON to replay")
    parser.add_argument(
        "--sequence",
        action="store_true",
        help="Treat all inputs as frames of one animation instead of separate files",
    )
    parser.add_argument("--cleanup", type=float, default=None, help="Delete pixels below this opacity %%")
    parser.add_argument("--reduce", type=int, default=None, help="Reduce to this many colors")
    parser.add_argument("--crop", action="store_true", help="Crop transparent borders")
    parser.add_argument("--resize-percent", type=float, default=None, help="Nearest-neighbor resize in percent")
    parser.add_argument(
        "--out",
        type=Path,
        default=None,
        help="Destination folder (defaults to <input>/out)",
    )
    parser.add_argument(
        "--gif",
        action="store_true",
        help="Also write an animated GIF using the source frame delays",
    )
    parser.add_argument("--save-preset", type=Path, default=None, help="Write the resulting edit log here")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def _report(label: str, outcome: EditOutcome) -> None:
    marker = "+" if outcome.applied else "-"
    print(f"  {marker} {label}: {outcome.message}")


def _process(paths: List[Path], args: argparse.Namespace, preset: dict | None) -> EditorSession:
    settings = EditorSettings()
    loaded = load_frames(paths, settings.default_frame_delay)
    session = EditorSession(
        loaded.frames,
        loaded.width,
        loaded.height,
        settings=settings,
        frame_delays=loaded.delays,
        name=loaded.name,
    )
    if preset is not None:
        result = session.import_preset(preset)
        print(f"  {result.summary()}")
        for warning in result.warnings:
            print(f"    ! {warning}")
    if args.cleanup is not None:
        _report("cleanup", session.cleanup_transparency(args.cleanup))
    if args.reduce is not None:
        _report("reduce", session.reduce_colors(args.reduce))
    if args.crop:
        _report("crop", session.crop_to_content())
    if args.resize_percent is not None:
        _report("resize", session.resize_percent(args.resize_percent))
    return session


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        )

    missing = [path for path in args.inputs if not path.is_file()]
    if missing:
        parser.error(f"Input path not found: {missing[0]}")

    preset = None
    if args.preset:
        try:
            preset = load_preset(args.preset)
        except (OSError, PresetError) as exc:
            parser.error(f"Failed to read preset: {exc}")

    batches = [list(args.inputs)] if args.sequence else [[path] for path in args.inputs]
    successes = 0
    failures = 0
    for batch in batches:
        first = batch[0]
        out_dir = args.out or (first.parent / "out")
        print(f"{first.name}:")
        try:
            session = _process(batch, args, preset)
            written = save_frames_png(session.frames, session.width, session.height, out_dir, session.name)
            if args.gif:
                save_frames_gif(
                    session.frames, session.width, session.height, out_dir, session.name, session.frame_delays
                )
            if args.save_preset:
                save_preset(args.save_preset, session.export_preset(session.name))
        except (PresetError, PaletteError, OSError) as exc:
            failures += 1
            print(f"[FAIL] {first}: {exc}")
            logger.debug("Processing failed for %s", first, exc_info=True)
            continue
        successes += 1
        print(f"[OK] {first.name} -> {out_dir} ({len(written)} frame(s), {session.width}x{session.height})")

    print(f"Completed {successes} file(s), {failures} failure(s).")
    return 0 if failures == 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())
