# nozzleswap/cli.py
"""
Rewrite slicer tool changes into jam-safe swap sequences for a single-nozzle
multi-material printer.

Usage:
    nozzleswap print.gcode
    nozzleswap print.gcode --config options.json --report run_log.csv
    nozzleswap print.gcode --output swapped.gcode -v

Without --output the file is rewritten in place (temp file + rename in the
same directory, so a failed run never leaves a half-written print).
"""
from __future__ import annotations
import argparse
import dataclasses
import logging
import os
import sys
import tempfile
from pathlib import Path
from typing import List, Optional

from .config import load_config
from .errors import InvalidInputError, NozzleSwapError
from .gcode import split_lines
from .logger import ReportConfig, RunReport
from .policy import PurgeConfig, SWAP_MANUAL
from .rewriter import RewriteResult, rewrite
from .slicer_config import SlicerConfig

log = logging.getLogger("nozzleswap.cli")

def read_gcode(path: Path) -> str:
    # newline="" keeps \r\n and lone \r as they are in the file;
    # undecodable bytes round-trip as surrogates
    with open(path, "r", encoding="utf-8", errors="surrogateescape", newline="") as f:
        return f.read()

def write_atomic(path: Path, text: str) -> None:
    """Write ``text`` next to ``path`` and rename it over ``path``."""
    directory = path.parent if str(path.parent) else Path(".")
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", errors="surrogateescape", newline="") as f:
            f.write(text)
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise

def process_file(in_path: Path, out_path: Optional[Path] = None,
                 config: Optional[PurgeConfig] = None) -> RewriteResult:
    text = read_gcode(in_path)
    if not text.strip():
        raise InvalidInputError(f"{in_path} is empty")
    slicer = SlicerConfig.read(content for content, _ in split_lines(text))
    log.debug("Slicer header: %s", slicer)
    result = rewrite(text, config if config is not None else PurgeConfig(), slicer=slicer)
    write_atomic(out_path if out_path is not None else in_path, result.text)
    return result

def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="nozzleswap",
        description="Replace slicer tool changes with purge/swap sequences for a shared nozzle.")
    ap.add_argument("file", help="G-code file, rewritten in place unless --output is given")
    ap.add_argument("--config", dest="config", default=None, help="JSON options file")
    ap.add_argument("--report", dest="report", default=None, help="CSV run report (regions and warnings)")
    ap.add_argument("--output", dest="output", default=None, help="Write here instead of in place")
    ap.add_argument("--manual", action="store_true", help="Pause with M600 for a manual filament swap")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return ap

def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(levelname)s %(name)s: %(message)s")

    in_path = Path(args.file)
    if not in_path.exists():
        print(f"ERROR: input file not found: {in_path}", file=sys.stderr)
        return 1
    out_path = Path(args.output) if args.output else None

    try:
        config = load_config(Path(args.config)) if args.config else PurgeConfig()
        if args.manual:
            config = dataclasses.replace(config, swap_command=SWAP_MANUAL)
        result = process_file(in_path, out_path, config)
    except NozzleSwapError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"ERROR: Failed to rewrite {in_path}: {e}", file=sys.stderr)
        return 1

    if args.report:
        report_path = Path(args.report)
        try:
            with RunReport(ReportConfig(str(report_path.parent), report_path.name)) as report:
                report.log_result(result)
        except OSError as e:
            print(f"WARNING: Failed to write report: {e}", file=sys.stderr)
        else:
            print(f"✓ Saved run report: {report_path} ({report.rows} rows)")

    for w in result.warnings:
        print(f"WARNING: {w}", file=sys.stderr)
    target = out_path if out_path is not None else in_path
    print(f"✓ Saved {target}: {len(result.regions)} tool change(s) replaced, "
          f"{len(result.warnings)} warning(s)")
    return 0

if __name__ == "__main__":
    sys.exit(main())
