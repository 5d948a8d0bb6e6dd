# nozzleswap/synthesizer.py
from __future__ import annotations
from typing import Dict, List, Optional

from .detector import SEAL_END, SEAL_START, Strategy, ToolChangeRegion
from .errors import DiagnosticCollector
from .gcode import Command, render
from .policy import PurgeConfig, SWAP_MANUAL
from .state import ExtrusionMode, MachineState, PositionMode

DEFAULT_PRECISION = 3

def _tool_label(tool: Optional[int]) -> str:
    return "?" if tool is None else str(tool)

class PurgeSynthesizer:
    """
    Builds the jam-safe replacement for one tool change region:

        retract -> nozzle temperature -> tool select -> purge -> wipe/park
        -> travel back -> positioning, extrusion mode + register restore
        -> feed rate restore

    framed by seal comments so the block is recognised on a later run.
    """
    def __init__(self, config: PurgeConfig, diagnostics: Optional[DiagnosticCollector] = None):
        self.cfg = config
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticCollector()

    def synthesize(self, region: ToolChangeRegion, state: MachineState) -> List[Command]:
        """
        ``region.before`` is the state when the region opened; ``state`` is the
        state after the slicer's own (discarded) sequence, which is what the
        rest of the file was written against.
        """
        if region.strategy is Strategy.SURPLUS:
            return []

        before = region.before
        to_tool = region.to_tool if region.to_tool is not None else region.from_tool
        if region.to_tool is None:
            self.diagnostics.warn(
                "no-tool-select",
                "tool change region selects no tool; keeping the active tool",
                line=region.start + 1, from_tool=region.from_tool, to_tool=to_tool,
            )

        p = state.precision if state.precision is not None else DEFAULT_PRECISION
        absolute = before.mode is ExtrusionMode.ABSOLUTE
        out: List[Command] = [Command(
            raw=f"{SEAL_START} T{_tool_label(region.from_tool)} -> T{_tool_label(to_tool)}"
        )]

        purging = not (self.cfg.wipe_tower and not self.cfg.purge_on_wipe_tower)
        volume = self.cfg.volume_for((region.from_tool, to_tool))
        if purging and volume is None:
            # minimal swap: no purge data for this pair
            self.diagnostics.warn(
                "no-purge-config",
                f"no purge volume for T{_tool_label(region.from_tool)} -> T{_tool_label(to_tool)} "
                "and no default; swapping without purge",
                line=region.start + 1, from_tool=region.from_tool, to_tool=to_tool,
            )
            out += self._select_block(to_tool)
            motion = self._motion_block((region.from_tool, to_tool), before, state, p)
            out += motion
            if motion:
                if before.positioning is PositionMode.RELATIVE:
                    out.append(render("G91", comment="restore relative positioning"))
                if absolute:
                    out.append(render("M82", comment="restore absolute extrusion"))
                else:
                    out.append(render("M83", comment="restore relative extrusion"))
            if absolute:
                out.append(render("G92", {"E": state.e_position}, precision=p))
            out.append(Command(raw=SEAL_END))
            return out

        if absolute:
            out.append(render("M83", comment="relative extrusion for swap"))

        # (a) retract the outgoing filament
        if self.cfg.retract_length > 0:
            out.append(render("G1", {"E": -abs(self.cfg.retract_length), "F": self.cfg.retract_feed_rate},
                              comment="retract outgoing filament", precision=p))

        # (b) nozzle temperature for the incoming tool
        out += self._temperature_block(to_tool, before, state, p)

        # (c) tool select
        out += self._select_block(to_tool)

        # (d) purge
        if purging and volume > 0:
            out.append(render("G1", {"E": self.cfg.purge_length(volume), "F": self.cfg.purge_feed_rate},
                              comment=f"purge {volume:g} mm3", precision=p))

        # (e) wipe / park, then back to where the slicer left the nozzle
        motion = self._motion_block((region.from_tool, to_tool), before, state, p)
        out += motion

        # (f) positioning, extrusion mode and register as the rest of the file expects them
        if motion and before.positioning is PositionMode.RELATIVE:
            out.append(render("G91", comment="restore relative positioning"))
        if absolute:
            out.append(render("M82", comment="restore absolute extrusion"))
            out.append(render("G92", {"E": state.e_position}, precision=p))
        else:
            out.append(render("M83", comment="restore relative extrusion"))

        # (g) feed rate
        if before.feed_rate is not None:
            out.append(render("G1", {"F": before.feed_rate}, comment="restore feed rate", precision=p))

        out.append(Command(raw=SEAL_END))
        return out

    def _select_block(self, to_tool: Optional[int]) -> List[Command]:
        if self.cfg.swap_command == SWAP_MANUAL:
            return [render(SWAP_MANUAL, comment=f"swap to filament T{_tool_label(to_tool)}")]
        if to_tool is None:
            return []
        return [render(f"T{to_tool}")]

    def _motion_block(self, pair, before: MachineState, state: MachineState, p: int) -> List[Command]:
        """
        Optional lift, wipe move and travel back, all in absolute positioning.
        The travel goes to the position ``state`` records, which is where the
        slicer's own sequence left the nozzle.
        """
        wipe = self.cfg.wipe_for(pair)
        back: Dict[str, float] = {}
        for axis in ("X", "Y"):
            target = getattr(state, axis.lower())
            if target is not None and (wipe is not None or target != getattr(before, axis.lower())):
                back[axis] = target
        z = state.z if state.z is not None and state.z != before.z else None
        if wipe is None and not back and z is None:
            return []

        out: List[Command] = [render("G90", comment="absolute positioning for travel")]
        lift = wipe.z_hop if wipe is not None else None
        if lift:
            out.append(render("G91", comment="relative positioning for lift"))
            out.append(render("G1", {"Z": lift, "F": self.cfg.travel_feed_rate}, precision=p))
            out.append(render("G90"))
        if wipe is not None:
            out.append(render("G1", {"X": wipe.x, "Y": wipe.y, "F": self.cfg.travel_feed_rate},
                              comment="wipe", precision=p))
        if back:
            back["F"] = self.cfg.travel_feed_rate
            out.append(render("G1", back, comment="return to print", precision=p))
        if lift:
            out.append(render("G91"))
            out.append(render("G1", {"Z": -lift, "F": self.cfg.travel_feed_rate}, precision=p))
            out.append(render("G90"))
        if z is not None:
            out.append(render("G1", {"Z": z, "F": self.cfg.travel_feed_rate}, precision=p))
        return out

    def _temperature_block(self, to_tool: Optional[int], before: MachineState,
                           state: MachineState, p: int) -> List[Command]:
        if to_tool is None:
            return []
        target = self.cfg.temperatures.get(to_tool, state.temperatures.get(to_tool))
        if target is None:
            return []
        current = before.nozzle_temperature
        if current is not None and abs(target - current) < 1e-9:
            return []
        out = [render("M104", {"S": target}, precision=p)]
        if current is None or abs(target - current) > self.cfg.temperature_wait_threshold:
            out.append(render("M109", {"S": target}, comment="wait for incoming filament temperature",
                              precision=p))
        return out

def synthesize(region: ToolChangeRegion, state: MachineState, config: PurgeConfig,
               diagnostics: Optional[DiagnosticCollector] = None) -> List[Command]:
    return PurgeSynthesizer(config, diagnostics).synthesize(region, state)
