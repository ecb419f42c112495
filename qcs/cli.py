#!/usr/bin/env python3
"""
cli.py

Main entry point for the Quick Crash Symbolicator (QCS).

Responsibilities:
  - Read a macOS crash report (file or stdin) via report.py
  - Extract the crashed bundle's image UUID, load address and arch
  - Verify the supplied .dSYM against that UUID (verifier.py)
  - Collect backtrace frames from every thread (backtrace.py)
  - Symbolicate them with atos in batches (symbolizer.py)
  - Write the report back with resolved frames substituted (rewriter.py)
  - Provide CLI interface

Any fatal condition (missing field, unknown arch, UUID mismatch) stops
the run with exit status 1 before anything is written. Finding no
symbols at all is not an error: the report is written back unchanged.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

from qcs.backtrace import ImageRecord, collect_frames, THREAD_SECTION_RE
from qcs.config import DEFAULT_TIMEOUT, DEFAULT_WORKERS, SymbolicateOptions
from qcs.errors import SymbolicationError
from qcs.report import (
    REPORT_ENCODING,
    REPORT_ERRORS,
    CrashReportInfo,
    parse_crash_report,
    read_report,
)
from qcs.rewriter import rewrite_report
from qcs.sections import iter_sections
from qcs.symbolizer import symbolize_frames
from qcs.verifier import verify_image


LOG = logging.getLogger("qcs")


# ---------------------------------------------------------------------------
# CLI helpers
# ---------------------------------------------------------------------------

def build_argparser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description=(
            "Quick Crash Symbolicator (QCS) - symbolicates a macOS crash "
            "report against the .dSYM of the crashed application."
        ),
    )
    p.add_argument(
        "input",
        metavar="CRASH_REPORT",
        help="Path to the crash report, or '-' to read from stdin.",
    )
    p.add_argument(
        "dsym",
        metavar="DSYM_PATH",
        help=(
            "Path to the application's .dSYM bundle "
            "(or directly to the DWARF file inside it)."
        ),
    )
    p.add_argument(
        "search_paths",
        metavar="SEARCH_PATH",
        nargs="*",
        help="Additional symbol search paths.",
    )
    p.add_argument(
        "-o",
        "--output",
        help="Write the symbolicated report to this file (default: stdout).",
    )
    p.add_argument(
        "--workers",
        type=int,
        default=DEFAULT_WORKERS,
        help=f"Number of worker threads for atos (default: {DEFAULT_WORKERS}).",
    )
    p.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT,
        help=(
            "Seconds allowed per lipo/dwarfdump/atos call, 0 to wait "
            f"forever (default: {DEFAULT_TIMEOUT:g})."
        ),
    )
    p.add_argument(
        "--summary",
        action="store_true",
        help="Print the fields extracted from the report only (no symbolication).",
    )
    p.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging.",
    )
    return p


def options_from_args(args: argparse.Namespace) -> SymbolicateOptions:
    return SymbolicateOptions(
        report_path=args.input,
        dsym_path=Path(args.dsym),
        search_paths=[Path(p) for p in args.search_paths],
        output=Path(args.output) if args.output else None,
        verbose=args.verbose,
        workers=args.workers,
        timeout=args.timeout or None,
        summary=args.summary,
    )


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

def build_images(info: CrashReportInfo, symbol_path: Path) -> Dict[str, ImageRecord]:
    """
    Image table for this run: only the crashed bundle's own binary.
    """
    return {
        info.bundle_id: ImageRecord(
            bundle_id=info.bundle_id,
            uuid=info.image_uuid,
            arch=info.arch,
            symbol_path=str(symbol_path),
            load_address=info.load_address,
        )
    }


def symbolicate_text(text: str, options: SymbolicateOptions) -> str:
    """
    Run the whole pipeline on report text and return the new text.

    Raises:
        SymbolicationError on any fatal condition.
    """
    info = parse_crash_report(text)

    symbol_path = options.symbol_path(info.executable_name)
    LOG.debug("Symbol path: %s", symbol_path)
    for search_path in options.search_paths:
        LOG.debug("Extra search path: %s", search_path)

    verify_image(symbol_path, info.image_uuid, info.arch, timeout=options.timeout)

    images = build_images(info, symbol_path)
    frames = collect_frames(text, images)
    resolved = symbolize_frames(
        frames,
        images,
        workers=options.workers,
        timeout=options.timeout,
    )
    return rewrite_report(text, resolved)


def summarize_text(text: str, options: SymbolicateOptions) -> List[str]:
    """
    Tab-separated "key<TAB>value" lines describing the report.
    """
    info = parse_crash_report(text)
    symbol_path = options.symbol_path(info.executable_name)
    images = build_images(info, symbol_path)
    thread_count = sum(1 for _ in iter_sections(text, THREAD_SECTION_RE, multiline=True))
    frames = collect_frames(text, images)

    rows = [
        ("report_version", str(info.report_version)),
        ("bundle_id", info.bundle_id),
        ("executable", info.executable_name),
        ("arch", info.arch),
        ("os_version", info.os_version),
        ("os_build", info.os_build or "None"),
        ("image_uuid", info.image_uuid),
        ("load_address", info.load_address),
        ("symbol_path", str(symbol_path)),
        ("threads", str(thread_count)),
        ("frames", str(len(frames))),
    ]
    return [f"{key}\t{value}" for key, value in rows]


def _write_stdout(text: str) -> None:
    # Bypass the text layer so undecodable report bytes come back as read.
    sys.stdout.flush()
    sys.stdout.buffer.write(text.encode(REPORT_ENCODING, REPORT_ERRORS))
    sys.stdout.buffer.flush()


def _write_output(text: str, output: Optional[Path]) -> None:
    if output is None:
        _write_stdout(text)
        return

    output.parent.mkdir(parents=True, exist_ok=True)
    with output.open("w", encoding=REPORT_ENCODING, errors=REPORT_ERRORS, newline="") as f:
        f.write(text)
    LOG.info("Symbolicated log written to: %s", output)


def run_symbolization(options: SymbolicateOptions) -> None:
    LOG.debug("Symbolicating...")
    text = read_report(options.report_path)

    if options.summary:
        _write_stdout("\n".join(summarize_text(text, options)) + "\n")
        return

    new_text = symbolicate_text(text, options)
    _write_output(new_text, options.output)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> None:
    args = build_argparser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(levelname)s] %(message)s",
    )

    options = options_from_args(args)

    if options.output is not None and options.output.is_dir():
        LOG.error("--output must be a file, but got a directory: %s", options.output)
        raise SystemExit(1)

    try:
        run_symbolization(options)
    except SymbolicationError as e:
        LOG.error("Error: %s", e)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
