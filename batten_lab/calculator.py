"""
Calculator Module
=================
Bend-profile metrics of a batten from one bending test.

The algorithm is written once as expression trees over the measurement
field names. ``calculate`` evaluates the trees; the formula mirror renders
the very same trees as spreadsheet formulas.

Conventions used in batten tuning:
- quarter-point net deflections are floored at 0
- the midpoint net deflection is floored at 0.1 mm, because it is the
  denominator of the front/back ratios and of the EI estimate
- camber is 0 when the test length is 0
- EI is 0 when the *unfloored* midpoint net deflection is exactly 0
"""

import logging

from .expression import Var, Max, IfZero
from .measurement import Measurement, NetDeflection, BattenResult

logger = logging.getLogger(__name__)

STANDARD_GRAVITY = 9.80665  # m/s^2
MIDPOINT_FLOOR = 0.1  # mm
MM_PER_M = 1000
# Simply supported beam, centre load: deflection = F * L^3 / (48 * EI)
CENTRE_LOAD_FACTOR = 48

TEST_WEIGHT = Var("test_weight")
TEST_LENGTH = Var("test_length")

# Net deflections as shown in the diagnostic row (may be 0 or negative)
NET_14_RAW = Var("weighted_14") - Var("self_14")
NET_12_RAW = Var("weighted_12") - Var("self_12")
NET_34_RAW = Var("weighted_34") - Var("self_34")

# Floored values used inside the ratios
NET_14 = Max(0, NET_14_RAW)
NET_12 = Max(MIDPOINT_FLOOR, NET_12_RAW)
NET_34 = Max(0, NET_34_RAW)

FRONT_PERCENT = NET_14 / NET_12 * 100
BACK_PERCENT = NET_34 / NET_12 * 100
CAMBER_PERCENT = IfZero(TEST_LENGTH, 0, NET_12 / TEST_LENGTH * 100)
AVERAGE_EI = IfZero(
    NET_12_RAW,
    0,
    TEST_WEIGHT * STANDARD_GRAVITY * (TEST_LENGTH / MM_PER_M) ** 3
    / (CENTRE_LOAD_FACTOR * (NET_12 / MM_PER_M)),
)

NET_DEFLECTION_EXPRESSIONS = {
    "net_14": NET_14_RAW,
    "net_12": NET_12_RAW,
    "net_34": NET_34_RAW,
}

RESULT_EXPRESSIONS = {
    "front_percent": FRONT_PERCENT,
    "back_percent": BACK_PERCENT,
    "camber_percent": CAMBER_PERCENT,
    "average_ei": AVERAGE_EI,
}


def net_deflections(measurement: Measurement) -> NetDeflection:
    """Unfloored ``weighted - self`` at each marked point."""
    values = measurement.as_values()
    return NetDeflection(**{name: expr.evaluate(values)
                            for name, expr in NET_DEFLECTION_EXPRESSIONS.items()})


def calculate(measurement: Measurement) -> BattenResult:
    """
    Compute front bend %, back bend %, camber % and average EI (N*m^2).

    The measurement must already be normalized (all fields finite, see
    ``Measurement.normalized``). No validation happens here and nothing is
    raised: division hazards are guarded and degrade to 0.
    """
    values = measurement.as_values()

    if logger.isEnabledFor(logging.DEBUG):
        raw_mid = NET_12_RAW.evaluate(values)
        if raw_mid < MIDPOINT_FLOOR:
            logger.debug(f"Midpoint net deflection {raw_mid} floored to {MIDPOINT_FLOOR} mm")
        if raw_mid == 0:
            logger.debug("Midpoint net deflection is 0, average EI reported as 0")
        if measurement.test_length == 0:
            logger.debug("Test length is 0, camber reported as 0")

    return BattenResult(**{name: expr.evaluate(values)
                           for name, expr in RESULT_EXPRESSIONS.items()})
