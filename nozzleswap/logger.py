# nozzleswap/logger.py
from __future__ import annotations
import csv
import os
import time
from dataclasses import dataclass
from typing import Optional

from .detector import ToolChangeRegion
from .errors import Diagnostic, Severity
from .rewriter import RewriteResult

COLUMNS = ["t_s", "type", "line", "code", "from_tool", "to_tool", "message"]

@dataclass
class ReportConfig:
    out_dir: str
    csv_name: str = "run_log.csv"
    include_info: bool = True

def _cell(value: Optional[int]) -> str:
    return "" if value is None else str(value)

class RunReport:
    """CSV run report: one row per replaced region and per diagnostic."""

    def __init__(self, cfg: ReportConfig):
        os.makedirs(cfg.out_dir or ".", exist_ok=True)
        self.path = os.path.join(cfg.out_dir, cfg.csv_name)
        self.cfg = cfg
        self.rows = 0
        self._t0 = time.time()
        self._f = open(self.path, "w", newline="", encoding="utf-8")
        self._w = csv.writer(self._f)
        self._w.writerow(COLUMNS)
        self._f.flush()

    def _ts(self) -> str:
        return f"{time.time() - self._t0:.3f}"

    def _row(self, kind: str, line, code: str, from_tool, to_tool, message: str):
        self._w.writerow([self._ts(), kind, _cell(line), code, _cell(from_tool), _cell(to_tool), message])
        self.rows += 1
        self._f.flush()

    def log_region(self, region: ToolChangeRegion):
        how = "closed by end of file" if not region.terminated else (
            "resumed by printing move" if region.resumed_by_motion else "end marker")
        self._row("REGION", region.start + 1, region.strategy.value, region.from_tool, region.to_tool,
                  f"lines {region.start + 1}-{region.end + 1} replaced ({len(region.lines)} lines, {how})")

    def log_diagnostic(self, d: Diagnostic):
        if d.severity is Severity.INFO and not self.cfg.include_info:
            return
        self._row(d.severity.value.upper(), d.line, d.code, d.from_tool, d.to_tool, d.message)

    def log_note(self, note: str):
        self._row("NOTE", None, "", None, None, note)

    def log_result(self, result: RewriteResult):
        for region in result.regions:
            self.log_region(region)
        for d in result.diagnostics:
            self.log_diagnostic(d)

    def close(self):
        self._f.close()

    def __enter__(self) -> "RunReport":
        return self

    def __exit__(self, *exc):
        self.close()
        return False
