import pytest

from nozzleswap.detector import Strategy, ToolChangeRegion
from nozzleswap.errors import DiagnosticCollector
from nozzleswap.policy import PurgeConfig, WipeMove
from nozzleswap.state import ExtrusionMode, MachineState, PositionMode
from nozzleswap.synthesizer import PurgeSynthesizer, synthesize


def make_region(from_tool=0, to_tool=1, strategy=Strategy.MARKER, **before):
    state = dict(tool=from_tool, e_position=10.0, feed_rate=1500.0, nozzle_temperature=215.0)
    state.update(before)
    return ToolChangeRegion(from_tool, to_tool, start=4, end=9, strategy=strategy,
                            before=MachineState(**state), lines=["; CP TOOLCHANGE START"])


def after_state(**kwargs):
    state = dict(tool=1, e_position=0.0, precision=3)
    state.update(kwargs)
    return MachineState(**state)


def raws(commands):
    return [c.raw for c in commands]


def opcodes(commands):
    return [c.opcode for c in commands]


def test_purge_length_from_volume():
    assert PurgeConfig().purge_length(40.0) == pytest.approx(16.63, abs=0.01)
    assert PurgeConfig(filament_diameter=2.85).purge_length(40.0) == pytest.approx(6.27, abs=0.01)


def test_full_sequence_order():
    cfg = PurgeConfig(volumes={(0, 1): 40.0}, temperatures={1: 240.0})
    out = synthesize(make_region(), after_state(), cfg)
    assert opcodes(out) == [None, "M83", "G1", "M104", "M109", "T1", "G1", "M82", "G92", "G1", None]
    assert raws(out) == [
        "; NOZZLESWAP START T0 -> T1",
        "M83 ; relative extrusion for swap",
        "G1 E-2.000 F2100.000 ; retract outgoing filament",
        "M104 S240.000",
        "M109 S240.000 ; wait for incoming filament temperature",
        "T1",
        "G1 E16.630 F300.000 ; purge 40 mm3",
        "M82 ; restore absolute extrusion",
        "G92 E0.000",
        "G1 F1500.000 ; restore feed rate",
        "; NOZZLESWAP END",
    ]


def test_small_temperature_change_does_not_wait():
    cfg = PurgeConfig(volumes={(0, 1): 40.0}, temperatures={1: 220.0})
    ops = opcodes(synthesize(make_region(), after_state(), cfg))
    assert "M104" in ops
    assert "M109" not in ops


def test_same_temperature_emits_nothing():
    cfg = PurgeConfig(volumes={(0, 1): 40.0}, temperatures={1: 215.0})
    ops = opcodes(synthesize(make_region(), after_state(), cfg))
    assert "M104" not in ops and "M109" not in ops


def test_unknown_current_temperature_waits():
    cfg = PurgeConfig(volumes={(0, 1): 40.0}, temperatures={1: 220.0})
    ops = opcodes(synthesize(make_region(nozzle_temperature=None), after_state(), cfg))
    assert ops.count("M109") == 1


def test_stream_temperature_used_when_config_has_none():
    cfg = PurgeConfig(volumes={(0, 1): 40.0})
    out = synthesize(make_region(), after_state(temperatures={1: 250.0}), cfg)
    assert "M109 S250.000 ; wait for incoming filament temperature" in raws(out)


def test_relative_stream_keeps_relative():
    cfg = PurgeConfig(volumes={(0, 1): 40.0})
    out = synthesize(make_region(mode=ExtrusionMode.RELATIVE), after_state(), cfg)
    ops = opcodes(out)
    assert "M82" not in ops and "G92" not in ops
    assert ops.count("M83") == 1
    assert raws(out)[-3:-1] == ["M83 ; restore relative extrusion", "G1 F1500.000 ; restore feed rate"]


def test_lifted_wipe_restores_relative_extrusion():
    cfg = PurgeConfig(volumes={(0, 1): 40.0}, default_wipe=WipeMove(5.0, 5.0, z_hop=1.0))
    out = raws(synthesize(make_region(mode=ExtrusionMode.RELATIVE), after_state(), cfg))
    last_mode = [r for r in out if r.split()[0] in ("G90", "G91", "M82", "M83")][-1]
    assert last_mode == "M83 ; restore relative extrusion"
    assert out.index("G1 X5.000 Y5.000 F9000.000 ; wipe") < out.index(last_mode)


def test_wipe_in_relative_positioning_stream():
    cfg = PurgeConfig(volumes={(0, 1): 40.0}, default_wipe=WipeMove(5.0, 5.0))
    region = make_region(positioning=PositionMode.RELATIVE)
    out = raws(synthesize(region, after_state(positioning=PositionMode.RELATIVE), cfg))
    wipe = out.index("G1 X5.000 Y5.000 F9000.000 ; wipe")
    assert out[wipe - 1] == "G90 ; absolute positioning for travel"
    assert out.index("G91 ; restore relative positioning") > wipe
    assert out.index("G91 ; restore relative positioning") < out.index("M82 ; restore absolute extrusion")


def test_wipe_returns_to_slicer_position():
    cfg = PurgeConfig(volumes={(0, 1): 40.0}, default_wipe=WipeMove(1.0, 2.0))
    out = raws(synthesize(make_region(x=1.0, y=1.0, z=0.2), after_state(x=1.0, y=1.0, z=0.2), cfg))
    wipe = out.index("G1 X1.000 Y2.000 F9000.000 ; wipe")
    assert out[wipe + 1] == "G1 X1.000 Y1.000 F9000.000 ; return to print"
    assert not any(r.startswith("G1 Z") for r in out)


def test_discarded_travel_is_replayed_without_wipe():
    cfg = PurgeConfig(volumes={(0, 1): 40.0})
    out = raws(synthesize(make_region(x=10.0, y=0.0, z=0.2), after_state(x=50.0, y=0.0, z=0.6), cfg))
    assert "G1 X50.000 F9000.000 ; return to print" in out
    assert "G1 Z0.600 F9000.000" in out
    assert out.index("G1 Z0.600 F9000.000") < out.index("M82 ; restore absolute extrusion")


def test_default_volume_for_unknown_pair():
    cfg = PurgeConfig(volumes={(1, 0): 80.0}, default_volume=40.0)
    out = synthesize(make_region(), after_state(), cfg)
    assert "G1 E16.630 F300.000 ; purge 40 mm3" in raws(out)


def test_no_purge_config_falls_back_to_tool_select():
    diagnostics = DiagnosticCollector()
    out = synthesize(make_region(), after_state(e_position=3.5), PurgeConfig(), diagnostics)
    assert raws(out) == ["; NOZZLESWAP START T0 -> T1", "T1", "G92 E3.500", "; NOZZLESWAP END"]
    assert [d.code for d in diagnostics.warnings] == ["no-purge-config"]


def test_no_purge_config_still_returns_to_slicer_position():
    region = make_region(x=10.0, y=0.0, positioning=PositionMode.RELATIVE)
    out = synthesize(region, after_state(x=50.0, y=0.0, e_position=3.5), PurgeConfig())
    assert raws(out) == [
        "; NOZZLESWAP START T0 -> T1",
        "T1",
        "G90 ; absolute positioning for travel",
        "G1 X50.000 F9000.000 ; return to print",
        "G91 ; restore relative positioning",
        "M82 ; restore absolute extrusion",
        "G92 E3.500",
        "; NOZZLESWAP END",
    ]


def test_wipe_with_lift():
    cfg = PurgeConfig(volumes={(0, 1): 40.0}, default_wipe=WipeMove(5.0, 200.0, z_hop=0.4))
    out = raws(synthesize(make_region(), after_state(), cfg))
    i = out.index("G1 X5.000 Y200.000 F9000.000 ; wipe")
    assert out[i - 3:i] == ["G91 ; relative positioning for lift", "G1 Z0.400 F9000.000", "G90"]
    assert out[i + 1:i + 4] == ["G91", "G1 Z-0.400 F9000.000", "G90"]
    assert out.index("G1 E16.630 F300.000 ; purge 40 mm3") < i


def test_pair_wipe_overrides_default():
    cfg = PurgeConfig(volumes={(0, 1): 40.0}, default_wipe=WipeMove(5.0, 5.0),
                      wipes={(0, 1): WipeMove(10.0, 10.0)})
    assert "G1 X10.000 Y10.000 F9000.000 ; wipe" in raws(synthesize(make_region(), after_state(), cfg))


def test_manual_swap():
    cfg = PurgeConfig(volumes={(0, 1): 40.0}, swap_command="M600")
    out = synthesize(make_region(), after_state(), cfg)
    assert "M600 ; swap to filament T1" in raws(out)
    assert "T1" not in opcodes(out)


def test_wipe_tower_skips_purge():
    cfg = PurgeConfig(volumes={(0, 1): 40.0}, wipe_tower=True)
    out = synthesize(make_region(), after_state(), cfg)
    assert not any(c.opcode == "G1" and c.get("E", 0) > 0 for c in out)
    cfg = PurgeConfig(volumes={(0, 1): 40.0}, wipe_tower=True, purge_on_wipe_tower=True)
    out = synthesize(make_region(), after_state(), cfg)
    assert any(c.opcode == "G1" and c.get("E", 0) > 0 for c in out)


def test_precision_follows_stream():
    cfg = PurgeConfig(volumes={(0, 1): 40.0})
    out = raws(synthesize(make_region(), after_state(precision=5), cfg))
    assert "G1 E16.63007 F300.00000 ; purge 40 mm3" in out


def test_region_without_tool_select_keeps_tool():
    diagnostics = DiagnosticCollector()
    cfg = PurgeConfig(default_volume=20.0)
    out = PurgeSynthesizer(cfg, diagnostics).synthesize(make_region(to_tool=None), after_state(tool=0))
    assert out[0].raw == "; NOZZLESWAP START T0 -> T0"
    assert "T0" in opcodes(out)
    assert [d.code for d in diagnostics.warnings] == ["no-tool-select"]


def test_surplus_region_synthesizes_nothing():
    cfg = PurgeConfig(volumes={(0, 1): 40.0})
    assert synthesize(make_region(strategy=Strategy.SURPLUS), after_state(), cfg) == []
