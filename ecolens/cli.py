from __future__ import annotations

import argparse
import asyncio
import logging
import os
from pathlib import Path

from .analysis import AnalysisResult
from .errors import DecodeError
from .report import build_report, format_bytes, save_report_json
from .session import DEFAULT_BASENAME, EditingSession
from .settings import OutputFormat, ResizeMode
from .source import load_source


log = logging.getLogger(__name__)


def _parse_quality(text: str) -> float:
    """
    Accept either:
      - "0.8"
      - "80"  (treated as percent)
    """
    q = float(text)
    if q > 1.0:
        q = q / 100.0
    if not 0.1 <= q <= 1.0:
        raise argparse.ArgumentTypeError("quality must be between 0.1 and 1.0 (or 10-100)")
    return q


def _parse_format(text: str) -> OutputFormat:
    try:
        return OutputFormat.parse(text)
    except ValueError as ex:
        raise argparse.ArgumentTypeError(str(ex)) from ex


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="ecolens",
        description="Resize and re-encode an image, and see what it saves",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    rs = sub.add_parser("resize", help="Resize one image")
    rs.add_argument("input", help="Image file to resize")
    # Also accepted after the subcommand; SUPPRESS keeps the root default when absent.
    rs.add_argument("-v", "--verbose", action="store_true", default=argparse.SUPPRESS, help="Debug logging")

    # Size
    size = rs.add_mutually_exclusive_group()
    size.add_argument("--width", type=int, default=None, help="Target width in pixels")
    size.add_argument("--height", type=int, default=None, help="Target height in pixels")
    size.add_argument("--scale", type=int, default=None, help="Scale percent (1-500)")
    size.add_argument("--size", type=str, default=None, help='Exact size "WIDTHxHEIGHT" (implies --no-lock)')
    rs.add_argument(
        "--no-lock",
        action="store_true",
        help="Do not keep the aspect ratio when only one of width/height is given",
    )

    # Encoding
    rs.add_argument("--format", type=_parse_format, default=OutputFormat.JPEG, help="jpeg, png or webp (default jpeg)")
    rs.add_argument("--quality", type=_parse_quality, default=0.8, help="0.1-1.0 or 10-100, default 0.8")

    # Output
    rs.add_argument("--out", default=".", help="Output directory (default: current directory)")
    rs.add_argument("--name", default=DEFAULT_BASENAME, help=f"Output basename (default: {DEFAULT_BASENAME})")
    rs.add_argument("--overwrite", action="store_true", help="Overwrite the output file if it exists")
    rs.add_argument("--dry-run", action="store_true", help="Estimate savings without writing files")
    rs.add_argument("--report", action="store_true", help="Write report.json next to the output")
    rs.add_argument("--analyze", action="store_true", help="Describe the result with the AI analysis service")

    return p


def _configure_logging(verbose: bool) -> None:
    name = os.getenv("ECOLENS_LOG_LEVEL", "INFO").strip().upper()
    level = logging.getLevelName(name)
    bad_level = not isinstance(level, int)

    if verbose:
        level = logging.DEBUG
    elif bad_level:
        level = logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    if bad_level and not verbose:
        log.warning("unknown ECOLENS_LOG_LEVEL %r, using INFO", name)


def _parse_size(text: str) -> tuple[int, int]:
    t = text.lower().strip()
    if "x" not in t:
        raise ValueError(f'size must look like "800x600", got {text!r}')
    a, b = t.split("x", 1)
    return int(a), int(b)


async def _run_resize(args: argparse.Namespace) -> int:
    source = load_source(Path(args.input))
    session = EditingSession(source, basename=str(args.name), delay=0)

    session.set_format(args.format)
    session.set_quality(args.quality)

    if args.size:
        w, h = _parse_size(args.size)
        session.set_maintain_aspect_ratio(False)
        session.set_width(w)
        session.set_height(h)
    else:
        session.set_maintain_aspect_ratio(not args.no_lock)
        if args.scale is not None:
            session.set_mode(ResizeMode.PERCENTAGE)
            session.set_percentage(args.scale)
        elif args.width is not None:
            session.set_width(args.width)
        elif args.height is not None:
            session.set_height(args.height)

    # Render at least once even if nothing above changed the pixels.
    session.refresh()
    await session.wait_idle()

    if session.error is not None:
        log.error("%s", session.error)
        return 1
    if session.payload is None:
        log.error("nothing to render for %dx%d", session.options.width, session.options.height)
        return 1

    out_dir = Path(args.out)
    out_path = None
    if not args.dry_run:
        out_path = session.save(out_dir, overwrite=bool(args.overwrite))

    analysis: AnalysisResult | None = None
    if args.analyze:
        analysis = await session.analyze()

    est = session.estimate
    dims = source.dimensions
    payload = session.payload

    print("\n=== EcoLens ===")
    print(f"Source     : {source.name} {dims.width}x{dims.height} ({format_bytes(est.original_bytes)})")
    print(f"Output     : {session.download_name()} {payload.width}x{payload.height}")
    print(f"New size   : ~{format_bytes(est.estimated_new_bytes)} ({est.percent_of_original}% of original)")
    print(f"Saved      : {format_bytes(est.saved_bytes)}")
    print(f"CO2 saved  : {est.saved_co2_grams:.3f} g (~{est.smartphone_charges} smartphone charges)")

    if analysis is not None:
        print("\nDescription:", analysis.description)
        print("Keywords   :", ", ".join(analysis.keywords))
        print("Eco tip    :", analysis.eco_tip)

    if out_path is not None:
        print("\nWritten    :", out_path)

    if args.report:
        report = build_report(session, out_path, analysis)
        report_path = out_dir / "report.json"
        save_report_json(report, report_path)
        print("Report     :", report_path)

    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    _configure_logging(bool(args.verbose))

    if args.command == "resize":
        if args.size:
            try:
                _parse_size(args.size)
            except ValueError as ex:
                parser.error(str(ex))

        try:
            return asyncio.run(_run_resize(args))
        except DecodeError as ex:
            log.error("%s: %s", args.input, ex)
            return 1
        except FileNotFoundError:
            log.error("no such file: %s", args.input)
            return 1

    parser.print_help()
    return 2
