"""Upscale a GIF or WebP file from the command line.

Usage:
    python scripts/upscale_file.py sprite.gif                 # 2x, writes sprite_upscaled.gif
    python scripts/upscale_file.py sprite.gif -s 4            # 4x
    python scripts/upscale_file.py walk.webp --loop 3         # Animated WebP -> GIF, 3 loops
    python scripts/upscale_file.py sprite.gif -o big.gif      # Explicit output path

Progress is printed as the conversion advances. Exits non-zero with the
error message when the conversion fails.
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from config import settings  # noqa: E402
from exceptions import MagnifyError  # noqa: E402
from pipeline.coordinator import Conversion  # noqa: E402
from pipeline.frames import SourceFile  # noqa: E402
from schemas import ProgressEvent, UpscaleConfig  # noqa: E402
from utils.format_detect import MIME_TYPES, format_from_extension  # noqa: E402


def print_event(event: ProgressEvent) -> None:
    if event.total:
        print(f"[{event.stage.value:>10}] {event.current}/{event.total} {event.message}")
    else:
        print(f"[{event.stage.value:>10}] {event.message}")


def main():
    parser = argparse.ArgumentParser(description="Upscale a pixel-art GIF or WebP")
    parser.add_argument("input", type=Path, help="GIF or WebP file to upscale")
    parser.add_argument(
        "-s", "--scale", type=int, default=settings.default_scale,
        help=f"Integer scale factor ({settings.min_scale}-{settings.max_scale})",
    )
    parser.add_argument("--loop", type=int, default=None, help="Loop count, 0 = forever (default: keep source)")
    parser.add_argument("--preserve-zero-delay", action="store_true", help="Keep 0 ms frame delays as 0")
    parser.add_argument("-o", "--output", type=Path, help="Output path (default: next to input)")
    parser.add_argument("-q", "--quiet", action="store_true", help="Only print the result")
    args = parser.parse_args()

    if not args.input.is_file():
        print(f"File not found: {args.input}")
        sys.exit(1)

    fmt = format_from_extension(args.input.name)
    source = SourceFile(
        data=args.input.read_bytes(),
        media_type=MIME_TYPES[fmt] if fmt else "",
        filename=args.input.name,
    )
    config = UpscaleConfig(
        scale=args.scale,
        loop_count=args.loop,
        preserve_zero_delay=True if args.preserve_zero_delay else None,
    )

    conversion = Conversion(source, config, listener=None if args.quiet else print_event)
    try:
        result = conversion.run()
    except MagnifyError as exc:
        print(f"Failed ({exc.error_code}): {exc.message}")
        sys.exit(1)

    output = args.output or args.input.with_name(result.filename)
    output.write_bytes(result.output_bytes)

    print()
    print(f"{result.message}")
    print(f"  {result.frame_count} frame(s), {result.width}x{result.height}, scale {result.scale}x")
    print(f"  {result.original_size:,} -> {result.output_size:,} bytes")
    print(f"  Saved to {output}")


if __name__ == "__main__":
    main()
