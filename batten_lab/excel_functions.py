"""
Excel Functions Module
======================
The spreadsheet functions a report formula may call, under their ``xl_``
names. The set covers the report's own formulas (MAX, IF) and what a user
typically adds when editing a report: totals and means of a deflection row
(SUM, AVERAGE, MIN), magnitudes (ABS) and display rounding (ROUND).

Blank cells read as ``None``. A single blank reference counts as 0; blanks
and text inside a range are skipped by the aggregates. ``IF`` receives its
branches as zero-argument callables and calls only the selected one.
"""

import math


def _to_number(value):
    """Coerce a scalar the way spreadsheet arithmetic does (blank/text -> 0)."""
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0


def _numbers(*args):
    """Numbers found in the arguments, descending into ranges."""
    found = []
    for arg in args:
        if isinstance(arg, (list, tuple)):
            found.extend(_numbers(*arg))
        elif arg is not None and not isinstance(arg, str):
            found.append(_to_number(arg))
    return found


def cell_value(cells, sheet, row, col):
    """One cell; blank reads as 0."""
    value = cells.get((sheet, row, col))
    return 0 if value is None else value


def cell_range(cells, sheet, r1, c1, r2, c2):
    """Row-major values of a rectangular range; blanks stay ``None``."""
    return [cells.get((sheet, r, c))
            for r in range(r1, r2 + 1)
            for c in range(c1, c2 + 1)]


# ============================================================
# Aggregates
# ============================================================

def xl_sum(*args):
    return sum(_numbers(*args))


def xl_average(*args):
    """AVERAGE; 0 for an empty selection instead of #DIV/0!."""
    values = _numbers(*args)
    return sum(values) / len(values) if values else 0


def xl_min(*args):
    values = _numbers(*args)
    return min(values) if values else 0


def xl_max(*args):
    values = _numbers(*args)
    return max(values) if values else 0


# ============================================================
# Scalars
# ============================================================

def xl_abs(value):
    return abs(_to_number(value))


def xl_round(value, digits=0):
    """ROUND: halves go away from zero (Python's round goes to even)."""
    scale = 10.0 ** int(_to_number(digits))
    number = _to_number(value)
    return math.copysign(math.floor(abs(number) * scale + 0.5) / scale, number)


def xl_if(condition, when_true=True, when_false=False):
    branch = when_true if condition else when_false
    return branch() if callable(branch) else branch
