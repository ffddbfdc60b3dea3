# --- src/circuitsim_core/constants.py ---
import logging

logger = logging.getLogger(__name__)

# --- Numerical Constants for the MNA Solver ---

#: Conductance from every non-ground node to ground. Keeps nodes that are only
#: reached through open elements from making the MNA matrix singular.
#: Value: 1e-12 Siemens.
GMIN_SIEMENS: float = 1.0e-12

#: Source internal resistance (ohm) at or below which a source is treated as
#: ideal and given an auxiliary current row.
IDEAL_SOURCE_RESISTANCE_THRESHOLD: float = 1.0e-9

#: Replacement for non-positive resistances so a conductance can be formed.
MIN_RESISTANCE_OHMS: float = 1.0e-9

#: Voltmeter resistance (ohm) at or above which the meter is ideal (no stamp).
IDEAL_VOLTMETER_RESISTANCE: float = 1.0e10

#: Floor applied to capacitance before forming a companion model.
MIN_CAPACITANCE_FARADS: float = 1.0e-18

#: Floor applied to inductance before forming a companion model.
MIN_INDUCTANCE_HENRIES: float = 1.0e-12

#: Currents below this magnitude are reported as exactly zero at terminals.
TERMINAL_CURRENT_EPSILON: float = 1.0e-12

#: Wire currents below this magnitude are reported as exactly zero.
WIRE_CURRENT_EPSILON: float = 1.0e-9

# --- Newton Iteration ---

#: Maximum outer Newton iterations for circuits containing junctions.
NEWTON_MAX_ITERATIONS: int = 40

#: Convergence tolerance on junction voltage updates (volts).
NEWTON_VOLTAGE_TOLERANCE: float = 1.0e-6

#: Inner Newton on the junction series resistance.
JUNCTION_INNER_MAX_ITERATIONS: int = 8
JUNCTION_INNER_TOLERANCE: float = 1.0e-14

#: Thermal voltage kT/q at roughly 300 K (volts).
THERMAL_VOLTAGE: float = 0.025865

#: Clamp applied to the argument of exp() in the junction equation.
JUNCTION_EXPONENT_LIMIT: float = 80.0

# --- Short Circuit Detection ---

#: Fraction of the bounded short current E/r that marks a source as shorted.
SHORT_CURRENT_RATIO: float = 0.95

#: Terminal voltage at or below max(abs, rel * |E|) marks a source as shorted.
SHORT_TERMINAL_VOLTAGE_ABS: float = 0.05
SHORT_TERMINAL_VOLTAGE_REL: float = 0.05

#: Wires on a shorted node carrying at least this share of the short current
#: are marked as part of the short.
SHORT_WIRE_CURRENT_RATIO: float = 0.2
SHORT_WIRE_MIN_CURRENT: float = 1.0e-6

# --- Time Stepping ---

#: Default external step (seconds).
DEFAULT_DT: float = 0.01

#: AC sampling policy: samples per source period and a hard cap on substeps.
AC_SAMPLES_PER_PERIOD: int = 20
AC_MIN_SUBSTEPS: int = 2
AC_MAX_SUBSTEPS: int = 64

#: Adaptive step policy.
DEFAULT_MIN_ADAPTIVE_DT: float = 1.0e-5
DEFAULT_MAX_ADAPTIVE_DT: float = 0.01
ADAPTIVE_EASY_ITERATIONS: int = 2
ADAPTIVE_GROWTH_WINDOW: int = 3
ADAPTIVE_GROWTH_FACTOR: float = 2.0

# --- Topology Validation ---

#: Voltage mismatch (volts) above which ideal sources in a loop conflict.
SOURCE_CONFLICT_TOLERANCE: float = 1.0e-6

logger.debug("Defined core constants: GMIN_SIEMENS, NEWTON_MAX_ITERATIONS, AC_SAMPLES_PER_PERIOD")
