"""Small slicer outputs shared by the tests."""
from nozzleswap.policy import PurgeConfig

# absolute extrusion, one marker-framed change T0 -> T1
MARKER_CHANGE = """\
M82
M104 S215
G1 X0.000 Y0.000 F1800
T0
G1 X10.000 Y0.000 E1.50000 F1200
; CP TOOLCHANGE START
G1 E0.50000 F2400
T1
G92 E0
; CP TOOLCHANGE END
G1 X20.000 Y0.000 E3.00000
"""

MARKER_CHANGE_REWRITTEN = """\
M82
M104 S215
G1 X0.000 Y0.000 F1800
T0
G1 X10.000 Y0.000 E1.50000 F1200
; NOZZLESWAP START T0 -> T1
M83 ; relative extrusion for swap
G1 E-2.000 F2100.000 ; retract outgoing filament
M104 S240.000
M109 S240.000 ; wait for incoming filament temperature
T1
G1 E16.630 F300.000 ; purge 40 mm3
M82 ; restore absolute extrusion
G92 E0.000
G1 F1200.000 ; restore feed rate
; NOZZLESWAP END
G1 X20.000 Y0.000 E3.00000
"""

def marker_config(**kwargs) -> PurgeConfig:
    opts = dict(volumes={(0, 1): 40.0, (1, 0): 60.0}, temperatures={0: 215.0, 1: 240.0})
    opts.update(kwargs)
    return PurgeConfig(**opts)

# PrusaSlicer without a wipe tower
PRUSA_TOOLCHANGES = """\
G1 X149.27 Y134.713 E.46499
M204 P2500
;--------------------
; CP TOOLCHANGE START
; toolchange #1
; material : PETG -> PETG
;--------------------
M220 B
M220 S100
; CP TOOLCHANGE UNLOAD
;WIDTH:1
;WIDTH:0.5
G4 S0
M486 S-1
; ...
G1 X103.329
; CP TOOLCHANGE WIPE
; ...
G92 E0
; CP TOOLCHANGE END
;------------------

G1 X102.279 Y135.586 F7200
; ...
;--------------------
; CP TOOLCHANGE START
; toolchange #2
; material : PETG -> PETG
;--------------------
M220 B
M220 S100
; CP TOOLCHANGE UNLOAD
;WIDTH:1
;WIDTH:0.5
G4 S0
M486 S-1
; ...
G1 X106.954
; CP TOOLCHANGE WIPE
; ...
G92 E0
; CP TOOLCHANGE END
;------------------
"""

# PrusaSlicer with a wipe tower; the second block is the final unload
PRUSA_UNLOADS = """\
M204 P2500
;--------------------
; CP TOOLCHANGE START
; toolchange #1
;--------------------
M220 S100
; CP TOOLCHANGE UNLOAD
G4 S0
; ...
G1 X103.329
; CP TOOLCHANGE WIPE
G92 E0
; CP TOOLCHANGE END
;------------------
G1 X198.749 Y158.4 E.03097
M204 P2500
M486 S-1
;HEIGHT:0.15
;TYPE:Wipe tower
;WIDTH:0.5
;--------------------
; CP TOOLCHANGE START
M220 S100
; CP TOOLCHANGE UNLOAD
G4 S0
M220 R
G1 X102.529 Y135.836 F18000
G4 S0
G92 E0
; CP TOOLCHANGE END
;------------------
G1 E-.8 F2100
"""

PRUSA_UNLOADS_REWRITTEN = """\
M204 P2500
;--------------------
; CP TOOLCHANGE START
; toolchange #1
;--------------------
M220 S100
; NOZZLESWAP START T? -> T?
M83 ; relative extrusion for swap
G1 E-2.000 F2100.000 ; retract outgoing filament
M600 ; swap to filament T?
G90 ; absolute positioning for travel
G1 X103.329 F9000.000 ; return to print
M82 ; restore absolute extrusion
G92 E0.000
; NOZZLESWAP END
G92 E0
; CP TOOLCHANGE END
;------------------
G1 X198.749 Y158.4 E.03097
M204 P2500
M486 S-1
;HEIGHT:0.15
;TYPE:Wipe tower
;WIDTH:0.5
;--------------------
;------------------
G1 E-.8 F2100
"""

PRUSA_HEADER = """\
; total toolchanges = 4
; estimated first layer printing time (normal mode) = 6m 47s
; estimated first layer printing time (silent mode) = 6m 51s

; prusaslicer_config = begin
; arc_fitting = emit_center
; filament_diameter = 1.75,1.75
; temperature = 215,240
; wipe_tower = 1
; wiping_volumes_matrix = 0,140,70,0
; prusaslicer_config = end
"""
