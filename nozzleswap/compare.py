# nozzleswap/compare.py
"""
Before/after plot of a rewrite: filament fed by the extruder over the file,
per tool, with the synthesized swap blocks shaded.

    python -m nozzleswap.compare original.gcode swapped.gcode --out-dir figures
"""
from __future__ import annotations
import argparse
from pathlib import Path
from typing import List, Tuple

import numpy as np
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

from .detector import SEAL_END_RE, SEAL_START_RE
from .gcode import parse_line, split_lines
from .state import StateTracker

def extrusion_trace(text: str) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Walk the file once and return (line_index, cumulative_e, tool) for every
    command that moves the extruder. cumulative_e sums signed deltas, so
    retracts show as dips. tool is -1 while no tool is known.
    """
    tracker = StateTracker()
    idx: List[int] = []
    fed: List[float] = []
    tools: List[int] = []
    total = 0.0
    for i, (content, _) in enumerate(split_lines(text)):
        cmd = parse_line(content)
        if cmd.is_motion() and cmd.has("E"):
            total += tracker.extrusion_delta(cmd)
            idx.append(i)
            fed.append(total)
            tools.append(-1 if tracker.state.tool is None else tracker.state.tool)
        tracker.apply(cmd)
    return np.array(idx, dtype=int), np.array(fed, dtype=float), np.array(tools, dtype=int)

def seal_spans(text: str) -> List[Tuple[int, int]]:
    """(start, end) line indices of every synthesized block."""
    spans = []
    start = None
    for i, (content, _) in enumerate(split_lines(text)):
        stripped = content.strip()
        if start is None and SEAL_START_RE.match(stripped):
            start = i
        elif start is not None and SEAL_END_RE.match(stripped):
            spans.append((start, i))
            start = None
    return spans

def purge_per_block(text: str) -> np.ndarray:
    """Positive filament fed inside each synthesized block (mm)."""
    idx, fed, _ = extrusion_trace(text)
    if len(idx) == 0:
        return np.zeros(0)
    deltas = np.diff(np.concatenate([[0.0], fed]))
    out = []
    for start, end in seal_spans(text):
        mask = (idx >= start) & (idx <= end) & (deltas > 0)
        out.append(deltas[mask].sum())
    return np.array(out, dtype=float)

def plot_comparison(original_text: str, rewritten_text: str, output_dir: Path) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    o_idx, o_fed, _ = extrusion_trace(original_text)
    r_idx, r_fed, r_tools = extrusion_trace(rewritten_text)
    spans = seal_spans(rewritten_text)

    fig, axes = plt.subplots(2, 1, figsize=(14, 9))

    ax = axes[0]
    ax.plot(o_idx, o_fed, color='gray', linewidth=1, label='original')
    for tool in np.unique(r_tools):
        mask = r_tools == tool
        label = f'rewritten T{tool}' if tool >= 0 else 'rewritten (no tool)'
        ax.plot(r_idx[mask], r_fed[mask], '.', markersize=2, label=label)
    for start, end in spans:
        ax.axvspan(start, end, color='tab:orange', alpha=0.25)
    ax.set_xlabel('Line')
    ax.set_ylabel('Filament fed (mm)')
    ax.set_title(f'Extruder trace ({len(spans)} swap blocks)')
    ax.legend(loc='upper left', fontsize=8)
    ax.grid(True, alpha=0.3)

    ax = axes[1]
    purges = purge_per_block(rewritten_text)
    if len(purges):
        ax.bar(np.arange(1, len(purges) + 1), purges, color='tab:orange')
    ax.set_xlabel('Swap block')
    ax.set_ylabel('Purged filament (mm)')
    ax.set_title('Purge length per swap')
    ax.grid(True, alpha=0.3, axis='y')

    plt.tight_layout()
    out = output_dir / "comparison_extrusion.png"
    plt.savefig(out, dpi=150, bbox_inches='tight')
    plt.close(fig)
    print(f"Saved: {out}")
    return out

def main():
    ap = argparse.ArgumentParser(description="Plot original vs rewritten extruder traces.")
    ap.add_argument("original", help="Slicer G-code before the rewrite")
    ap.add_argument("rewritten", help="G-code after the rewrite")
    ap.add_argument("--out-dir", default="figures", help="Directory for the PNG")
    args = ap.parse_args()

    original = Path(args.original).read_text(encoding="utf-8", errors="replace")
    rewritten = Path(args.rewritten).read_text(encoding="utf-8", errors="replace")
    plot_comparison(original, rewritten, Path(args.out_dir))

if __name__ == "__main__":
    main()
