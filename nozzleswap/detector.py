# nozzleswap/detector.py
"""
Tool-change detection.

The detector is a small state machine fed one command at a time:

    NORMAL    -- start signal -->  IN_CHANGE  -- end marker / printing move / EOF -->  NORMAL
    NORMAL    -- seal start   -->  SEALED     -- seal end -->  NORMAL

Start signals come from strategies tried in priority order; the first one that
matches wins. Explicit slicer markers outrank a bare tool-select, so a marker
seen while a bare region is open takes that region over.

Blocks wrapped in the seal comments were written by an earlier run and pass
through untouched.
"""
from __future__ import annotations
import enum
import re
from dataclasses import dataclass, field
from typing import List, Optional, Pattern, Sequence, Tuple

from .errors import DiagnosticCollector
from .gcode import Command
from .policy import PurgeConfig, UNLOAD_END, UNLOAD_START
from .state import MachineState, StateTracker

SEAL_START = "; NOZZLESWAP START"
SEAL_END = "; NOZZLESWAP END"
SEAL_START_RE = re.compile(r"^;\s*NOZZLESWAP START(?:\s+T(\d+|\?)\s*->\s*T(\d+))?")
SEAL_END_RE = re.compile(r"^;\s*NOZZLESWAP END")

class DetectorState(enum.Enum):
    NORMAL = "normal"
    IN_CHANGE = "in_change"
    SEALED = "sealed"

class Strategy(enum.Enum):
    SEALED = "sealed"
    SURPLUS = "surplus"
    MARKER = "marker"
    BARE = "bare"

@dataclass
class Opening:
    strategy: Strategy
    end_patterns: Tuple[Pattern[str], ...] = ()
    to_tool: Optional[int] = None

@dataclass
class ToolChangeRegion:
    from_tool: Optional[int]
    to_tool: Optional[int]
    start: int                                   # 0-based line index
    end: int                                     # last consumed line index
    strategy: Strategy
    before: MachineState
    lines: List[str] = field(default_factory=list)
    end_patterns: Tuple[Pattern[str], ...] = ()
    tool_selected: bool = False
    terminated: bool = True
    resumed_by_motion: bool = False

    @property
    def pair(self) -> Tuple[Optional[int], Optional[int]]:
        return (self.from_tool, self.to_tool)

@dataclass
class Step:
    consumed: bool                               # line belongs to a region, do not emit it
    closed: Optional[ToolChangeRegion] = None
    sealed_tool: Optional[int] = None            # tool announced by a sealed block

def _compile(patterns: Sequence[str]) -> Tuple[Pattern[str], ...]:
    return tuple(re.compile(p) for p in patterns)

def _matches(text: str, patterns: Tuple[Pattern[str], ...]) -> bool:
    return bool(text) and any(p.match(text) for p in patterns)

# ---- start strategies

class SealedBlockStrategy:
    strategy = Strategy.SEALED

    def match(self, cmd: Command, state: MachineState) -> Optional[Opening]:
        m = SEAL_START_RE.match(cmd.marker_text())
        if not m:
            return None
        to_tool = int(m.group(2)) if m.group(2) is not None else None
        return Opening(Strategy.SEALED, to_tool=to_tool)

class MarkerStrategy:
    strategy = Strategy.MARKER

    def __init__(self, starts: Sequence[str], ends: Sequence[str]):
        self.starts = _compile(starts)
        self.ends = _compile(ends)

    def match(self, cmd: Command, state: MachineState) -> Optional[Opening]:
        if _matches(cmd.marker_text(), self.starts):
            return Opening(Strategy.MARKER, end_patterns=self.ends)
        return None

class SurplusBlockStrategy:
    """
    Counts toolchange blocks; blocks past the declared total (the final unload
    a wipe-tower print ends with) are dropped whole.
    """
    strategy = Strategy.SURPLUS

    def __init__(self, starts: Sequence[str], ends: Sequence[str], total: int):
        self.starts = _compile(starts)
        self.ends = _compile(ends)
        self.total = total
        self.seen = 0

    def match(self, cmd: Command, state: MachineState) -> Optional[Opening]:
        if not _matches(cmd.marker_text(), self.starts):
            return None
        self.seen += 1
        if self.seen > self.total:
            return Opening(Strategy.SURPLUS, end_patterns=self.ends)
        return None

class BareToolSelectStrategy:
    strategy = Strategy.BARE

    def __init__(self, ignored_tools: Sequence[int] = ()):
        self.ignored_tools = tuple(ignored_tools)

    def match(self, cmd: Command, state: MachineState) -> Optional[Opening]:
        if not cmd.is_tool_select() or cmd.tool in self.ignored_tools:
            return None
        if state.tool is None or cmd.tool == state.tool:
            return None
        return Opening(Strategy.BARE, to_tool=cmd.tool)

def default_strategies(config: PurgeConfig) -> list:
    strategies: list = [SealedBlockStrategy()]
    if config.wipe_tower:
        if config.total_toolchanges is not None:
            strategies.append(SurplusBlockStrategy(config.marker_starts, config.marker_ends,
                                                   config.total_toolchanges))
        strategies.append(MarkerStrategy((UNLOAD_START,), (UNLOAD_END,)))
    else:
        strategies.append(MarkerStrategy(config.marker_starts, config.marker_ends))
    strategies.append(BareToolSelectStrategy(config.ignored_tools))
    return strategies

class ToolChangeDetector:
    def __init__(self, config: PurgeConfig, diagnostics: Optional[DiagnosticCollector] = None,
                 strategies: Optional[list] = None):
        self.config = config
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticCollector()
        self.strategies = strategies if strategies is not None else default_strategies(config)
        self.state = DetectorState.NORMAL
        self.region: Optional[ToolChangeRegion] = None

    @property
    def in_change(self) -> bool:
        return self.state is DetectorState.IN_CHANGE

    def feed(self, cmd: Command, index: int, tracker: StateTracker) -> Step:
        """Classify one command. ``tracker`` must not have applied ``cmd`` yet."""
        if self.state is DetectorState.SEALED:
            if SEAL_END_RE.match(cmd.marker_text()):
                self.state = DetectorState.NORMAL
            return Step(consumed=False)

        if self.state is DetectorState.IN_CHANGE:
            return self._feed_in_change(cmd, index, tracker)

        opening = self._first_opening(cmd, tracker.state)
        if opening is None:
            return Step(consumed=False)

        if opening.strategy is Strategy.SEALED:
            self.state = DetectorState.SEALED
            return Step(consumed=False, sealed_tool=opening.to_tool)

        self.region = ToolChangeRegion(
            from_tool=tracker.state.tool,
            to_tool=opening.to_tool,
            start=index,
            end=index,
            strategy=opening.strategy,
            before=tracker.state.snapshot(),
            lines=[cmd.raw],
            end_patterns=opening.end_patterns,
            tool_selected=opening.strategy is Strategy.BARE,
        )
        self.state = DetectorState.IN_CHANGE
        return Step(consumed=True)

    def finish(self, last_index: int) -> Optional[ToolChangeRegion]:
        """End of stream: close whatever region is still open."""
        if self.state is not DetectorState.IN_CHANGE:
            return None
        r = self.region
        r.terminated = False
        r.end = last_index
        self.diagnostics.warn(
            "unterminated-region",
            "tool change region never closed; closed at end of file",
            line=r.start + 1, from_tool=r.from_tool, to_tool=r.to_tool,
        )
        return self._close()

    # ---- internals

    def _first_opening(self, cmd: Command, state: MachineState) -> Optional[Opening]:
        for strategy in self.strategies:
            opening = strategy.match(cmd, state)
            if opening is not None:
                return opening
        return None

    def _marker_strategy(self) -> Optional[MarkerStrategy]:
        for strategy in self.strategies:
            if isinstance(strategy, MarkerStrategy):
                return strategy
        return None

    def _feed_in_change(self, cmd: Command, index: int, tracker: StateTracker) -> Step:
        r = self.region
        text = cmd.marker_text()

        if _matches(text, r.end_patterns):
            r.lines.append(cmd.raw)
            r.end = index
            return Step(consumed=True, closed=self._close())

        if r.strategy is Strategy.BARE:
            marker = self._marker_strategy()
            opening = marker.match(cmd, tracker.state) if marker else None
            if opening is not None:
                self.diagnostics.warn(
                    "conflicting-signals",
                    "tool-change marker inside a change opened by a bare tool-select; the marker wins",
                    line=index + 1, from_tool=r.from_tool, to_tool=r.to_tool,
                )
                r.strategy = Strategy.MARKER
                r.end_patterns = opening.end_patterns
                r.lines.append(cmd.raw)
                r.end = index
                return Step(consumed=True)

        if (r.strategy is not Strategy.SURPLUS and r.tool_selected
                and tracker.is_printing_move(cmd)):
            r.resumed_by_motion = True
            return Step(consumed=False, closed=self._close())

        if cmd.is_tool_select() and cmd.tool not in self.config.ignored_tools:
            if r.tool_selected and cmd.tool != r.to_tool:
                self.diagnostics.warn(
                    "conflicting-signals",
                    f"tool change selects T{r.to_tool} then T{cmd.tool}; using T{cmd.tool}",
                    line=index + 1, from_tool=r.from_tool, to_tool=cmd.tool,
                )
            r.to_tool = cmd.tool
            r.tool_selected = True

        r.lines.append(cmd.raw)
        r.end = index
        return Step(consumed=True)

    def _close(self) -> ToolChangeRegion:
        r = self.region
        self.region = None
        self.state = DetectorState.NORMAL
        return r
