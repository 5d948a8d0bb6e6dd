# nozzleswap/rewriter.py
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .detector import Strategy, ToolChangeDetector, ToolChangeRegion
from .errors import Diagnostic, DiagnosticCollector, InvalidInputError, Severity
from .gcode import detect_line_ending, parse_line, split_lines
from .policy import PurgeConfig, SWAP_MANUAL
from .slicer_config import SlicerConfig
from .state import MachineState, StateTracker
from .synthesizer import PurgeSynthesizer

log = logging.getLogger("nozzleswap.rewriter")

@dataclass
class RewriteResult:
    text: str
    regions: List[ToolChangeRegion] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)

    @property
    def warnings(self) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.severity is Severity.WARNING]

    @property
    def changed(self) -> bool:
        return bool(self.regions)

def _check_input(text) -> None:
    if not isinstance(text, str):
        raise InvalidInputError(f"expected G-code text, got {type(text).__name__}")
    if not text.strip():
        raise InvalidInputError("input is empty")
    if "\x00" in text:
        raise InvalidInputError("input contains NUL bytes; not a text file")

class StreamRewriter:
    """
    Pure transformation: takes slicer G-code text and returns it with every
    tool change region replaced by a synthesized swap sequence. Lines outside
    regions are copied byte for byte, terminators included.
    """
    def __init__(self, config: PurgeConfig):
        self.cfg = config
        self.diagnostics = DiagnosticCollector()
        self.tracker = StateTracker(MachineState(tool=config.initial_tool),
                                    ignored_tools=config.ignored_tools)
        self.detector = ToolChangeDetector(config, self.diagnostics)
        self.synthesizer = PurgeSynthesizer(config, self.diagnostics)
        self.regions: List[ToolChangeRegion] = []

    def rewrite(self, text: str) -> RewriteResult:
        _check_input(text)
        ending = detect_line_ending(text)
        lines = split_lines(text)
        out: List[str] = []

        for index, (content, terminator) in enumerate(lines):
            cmd = parse_line(content)
            step = self.detector.feed(cmd, index, self.tracker)

            if step.closed is not None:
                out += self._splice(step.closed, ending)
            if step.sealed_tool is not None and self.cfg.swap_command == SWAP_MANUAL:
                self.tracker.state.tool = step.sealed_tool
            if not step.consumed:
                out.append(content + terminator)

            self.tracker.apply(cmd)

        region = self.detector.finish(len(lines) - 1)
        if region is not None:
            out += self._splice(region, ending)

        log.info("Rewrote %d tool change region(s), %d warning(s)",
                 len(self.regions), len(self.diagnostics.warnings))
        return RewriteResult(text="".join(out), regions=list(self.regions),
                             diagnostics=list(self.diagnostics.items))

    def _splice(self, region: ToolChangeRegion, ending: str) -> List[str]:
        self.regions.append(region)
        after = self.tracker.state

        if region.strategy is Strategy.SURPLUS:
            self.diagnostics.info(
                "surplus-toolchange",
                f"dropped toolchange block past the declared total ({len(region.lines)} lines)",
                line=region.start + 1, from_tool=region.from_tool, to_tool=region.to_tool,
            )
            return []

        if after.mode is not region.before.mode:
            self.diagnostics.warn(
                "mode-switch-in-region",
                f"slicer sequence switched extrusion mode to {after.mode.value}; "
                f"keeping {region.before.mode.value}",
                line=region.start + 1, from_tool=region.from_tool, to_tool=region.to_tool,
            )
        if after.positioning is not region.before.positioning:
            self.diagnostics.warn(
                "mode-switch-in-region",
                f"slicer sequence switched positioning to {after.positioning.value}; "
                f"keeping {region.before.positioning.value}",
                line=region.start + 1, from_tool=region.from_tool, to_tool=region.to_tool,
            )

        commands = self.synthesizer.synthesize(region, after)
        log.debug("T%s -> T%s at lines %d-%d (%s): %d lines replaced by %d",
                  region.from_tool, region.to_tool, region.start + 1, region.end + 1,
                  region.strategy.value, len(region.lines), len(commands))

        # the printer never runs the discarded lines: replay the synthesized
        # block on top of the state the region started from
        restored = region.before.snapshot()
        restored.temperatures.update(after.temperatures)
        if restored.precision is None:
            restored.precision = after.precision
        known = dict(restored.temperatures)
        self.tracker.state = restored
        for cmd in commands:
            self.tracker.apply(cmd)
        s = self.tracker.state
        # the block heats before selecting, so M104 landed on the outgoing tool
        s.temperatures = known
        if region.to_tool is not None:
            s.tool = region.to_tool
            if s.nozzle_temperature is not None and any(c.opcode in ("M104", "M109") for c in commands):
                s.temperatures[region.to_tool] = s.nozzle_temperature

        return [c.raw + ending for c in commands]

def rewrite(text: str, config: Optional[PurgeConfig] = None,
            slicer: Optional[SlicerConfig] = None) -> RewriteResult:
    """Rewrite ``text``; ``slicer`` header values fill what ``config`` leaves unset."""
    if config is None:
        config = PurgeConfig()
    if slicer is not None:
        config = slicer.apply_to(config)
    return StreamRewriter(config).rewrite(text)
