# nozzleswap/verify.py
"""
Verification / QA for nozzleswap output.

What it verifies:
1) Every synthesized block is closed (seal start has a seal end)
2) No slicer tool change block survives outside a synthesized block
   (wipe-tower prints keep their outer CP TOOLCHANGE frame, so only the
   UNLOAD part is checked there)
3) Every synthesized block selects a tool (T<n> or M600)
4) Running the rewrite again changes nothing
5) Report sanity (optional): columns present, warnings counted by code

This is a reproducibility and invariants check, not a print simulation.
"""
from __future__ import annotations
import argparse
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import pandas as pd

from .detector import SEAL_END_RE, SEAL_START_RE
from .gcode import parse_line, split_lines
from .logger import COLUMNS
from .policy import MARKER_STARTS, PurgeConfig, SWAP_MANUAL, UNLOAD_START
from .rewriter import rewrite
from .slicer_config import SlicerConfig

@dataclass
class CheckResult:
    name: str
    ok: bool
    detail: str = ""

def blocks_frame(text: str) -> pd.DataFrame:
    """One row per line with the synthesized-block it sits in (-1 outside)."""
    rows = []
    block = -1
    count = 0
    open_block = False
    for i, (content, _) in enumerate(split_lines(text)):
        stripped = content.strip()
        if not open_block and SEAL_START_RE.match(stripped):
            block = count
            count += 1
            open_block = True
        cmd = parse_line(content)
        rows.append({"line": i + 1, "block": block if open_block else -1,
                     "opcode": cmd.opcode or "", "text": stripped})
        if open_block and SEAL_END_RE.match(stripped):
            open_block = False
    return pd.DataFrame(rows, columns=["line", "block", "opcode", "text"])

def check_seals_closed(text: str) -> CheckResult:
    starts = sum(1 for c, _ in split_lines(text) if SEAL_START_RE.match(c.strip()))
    ends = sum(1 for c, _ in split_lines(text) if SEAL_END_RE.match(c.strip()))
    return CheckResult("Swap blocks closed", starts == ends, f"start={starts}, end={ends}")

def check_no_unsealed_markers(df: pd.DataFrame, wipe_tower: bool = False) -> CheckResult:
    patterns = [UNLOAD_START] if wipe_tower else list(MARKER_STARTS)
    outside = df[df["block"] < 0]
    hits = outside[outside["text"].apply(lambda t: any(re.match(p, t) for p in patterns))]
    detail = f"count={len(hits)}"
    if len(hits):
        detail += ", first at line " + str(int(hits["line"].iloc[0]))
    return CheckResult("No slicer tool change left", len(hits) == 0, detail)

def check_blocks_select_tool(df: pd.DataFrame) -> CheckResult:
    inside = df[df["block"] >= 0]
    if inside.empty:
        return CheckResult("Swap blocks select a tool", True, "no blocks")
    selects = inside["opcode"].str.match(r"^T\d+$") | (inside["opcode"] == SWAP_MANUAL)
    per_block = selects.groupby(inside["block"]).any()
    missing = per_block[~per_block].index.tolist()
    return CheckResult("Swap blocks select a tool", not missing,
                       f"blocks={len(per_block)}, missing={missing}")

def check_idempotent(text: str, config: Optional[PurgeConfig] = None) -> CheckResult:
    again = rewrite(text, config)
    return CheckResult("Second rewrite is a no-op", again.text == text,
                       f"regions found on second pass={len(again.regions)}")

def read_report(path: Path) -> pd.DataFrame:
    df = pd.read_csv(path, dtype={"code": str, "message": str})
    df["line"] = pd.to_numeric(df["line"], errors="coerce")
    return df

def warning_counts(report: pd.DataFrame) -> pd.Series:
    warnings = report[report["type"] == "WARNING"]
    return warnings["code"].astype(str).value_counts()

def check_report(report: pd.DataFrame) -> List[CheckResult]:
    cols_ok = set(COLUMNS).issubset(set(report.columns))
    out = [CheckResult("Report has required columns", cols_ok, f"needed={COLUMNS}")]
    if cols_ok:
        regions = int((report["type"] == "REGION").sum())
        counts = warning_counts(report).to_dict()
        out.append(CheckResult("Report summary (informational)", True,
                               f"regions={regions}, warnings={counts}"))
    return out

def verify_text(text: str, config: Optional[PurgeConfig] = None) -> List[CheckResult]:
    # the header settings are what the rewrite itself ran with
    slicer = SlicerConfig.read(content for content, _ in split_lines(text))
    config = slicer.apply_to(config if config is not None else PurgeConfig())
    df = blocks_frame(text)
    return [
        check_seals_closed(text),
        check_no_unsealed_markers(df, config.wipe_tower),
        check_blocks_select_tool(df),
        check_idempotent(text, config),
    ]

def print_result(r: CheckResult) -> None:
    status = "PASS" if r.ok else "FAIL"
    if r.detail:
        print(f"[{status}] {r.name}: {r.detail}")
    else:
        print(f"[{status}] {r.name}")

def main():
    ap = argparse.ArgumentParser(description="Verify nozzleswap output.")
    ap.add_argument("file", help="Rewritten G-code")
    ap.add_argument("--report", default=None, help="CSV run report")
    ap.add_argument("--wipe-tower", action="store_true", help="File was sliced with a wipe tower")
    args = ap.parse_args()

    path = Path(args.file)
    if not path.exists():
        raise SystemExit(f"Output not found: {path}")
    with open(path, "r", encoding="utf-8", errors="replace", newline="") as f:
        text = f.read()

    results = verify_text(text, PurgeConfig(wipe_tower=args.wipe_tower))
    if args.report:
        report_path = Path(args.report)
        if not report_path.exists():
            results.append(CheckResult("Report exists", False, f"missing: {report_path}"))
        else:
            results += check_report(read_report(report_path))

    for r in results:
        print_result(r)
    raise SystemExit(0 if all(r.ok for r in results) else 1)

if __name__ == "__main__":
    main()
