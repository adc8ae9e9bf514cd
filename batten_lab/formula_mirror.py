"""
Formula Mirror Module
=====================
Renders the calculator's expressions as spreadsheet formulas over a fixed
cell layout, paired with the calculator's own numbers as cached values.

The net-deflection cells show the plain ``weighted - self`` subtraction
(no floor), while the percentage and EI formulas carry the floors and
zero guards inline. A spreadsheet that recalculates these formulas
reproduces ``calculate`` exactly.
"""

import logging
from dataclasses import dataclass, asdict
from typing import Mapping, NamedTuple

from openpyxl.utils.cell import absolute_coordinate, coordinate_from_string
from openpyxl.utils.exceptions import CellCoordinatesException

from .calculator import (
    NET_DEFLECTION_EXPRESSIONS,
    RESULT_EXPRESSIONS,
    calculate,
    net_deflections,
)
from .measurement import MEASUREMENT_FIELDS, Measurement

logger = logging.getLogger(__name__)

DERIVED_EXPRESSIONS = {**NET_DEFLECTION_EXPRESSIONS, **RESULT_EXPRESSIONS}


class FormulaCell(NamedTuple):
    cell_ref: str
    formula: str
    cached_value: float


def _check_cell(ref: str) -> str:
    try:
        coordinate_from_string(ref)
    except CellCoordinatesException as e:
        raise ValueError(f"Invalid cell reference {ref!r}: {e}") from e
    return ref.upper()


@dataclass(frozen=True)
class CellLayout:
    """
    Placement of every raw and derived quantity on one sheet.

    Attributes:
        sheet: Worksheet title
        inputs: measurement field -> cell (e.g. ``"test_weight": "B6"``)
        derived: derived quantity -> cell (``"net_14"``, ..., ``"average_ei"``)
    """
    sheet: str
    inputs: Mapping[str, str]
    derived: Mapping[str, str]

    def __post_init__(self):
        missing = [f for f in MEASUREMENT_FIELDS if f not in self.inputs]
        missing += [q for q in DERIVED_EXPRESSIONS if q not in self.derived]
        if missing:
            raise ValueError(f"Cell layout has no cell for: {', '.join(missing)}")
        object.__setattr__(self, "inputs",
                           {k: _check_cell(v) for k, v in self.inputs.items()})
        object.__setattr__(self, "derived",
                           {k: _check_cell(v) for k, v in self.derived.items()})
        used = list(self.inputs.values()) + list(self.derived.values())
        if len(set(used)) != len(used):
            raise ValueError("Cell layout assigns the same cell twice")

    def input_refs(self) -> dict:
        """Measurement field -> absolute reference (``$B$6``)."""
        return {name: absolute_coordinate(ref) for name, ref in self.inputs.items()}

    def derived_cells(self) -> list:
        """``(cell, quantity, expression)`` in report order: net row first, then results."""
        return [(self.derived[name], name, expr) for name, expr in DERIVED_EXPRESSIONS.items()]


REPORT_LAYOUT = CellLayout(
    sheet="Report",
    inputs={
        "test_weight": "B6",
        "test_length": "D6",
        "self_14": "A10",
        "self_12": "B10",
        "self_34": "C10",
        "weighted_14": "A14",
        "weighted_12": "B14",
        "weighted_34": "C14",
    },
    derived={
        "net_14": "A17",
        "net_12": "B17",
        "net_34": "C17",
        "front_percent": "F7",
        "back_percent": "G7",
        "camber_percent": "H7",
        "average_ei": "I7",
    },
)


def engine_values(measurement: Measurement) -> dict:
    """Calculator outputs keyed by derived quantity name."""
    values = asdict(net_deflections(measurement))
    values.update(calculate(measurement).to_dict())
    return values


def render_formulas(measurement: Measurement, layout: CellLayout = REPORT_LAYOUT) -> list:
    """
    Render every derived cell of ``layout``.

    Returns:
        list of FormulaCell(cell_ref, formula, cached_value); formulas start
        with ``=`` and cached values come straight from the calculator.
    """
    refs = layout.input_refs()
    cached = engine_values(measurement)
    cells = []
    for cell_ref, quantity, expr in layout.derived_cells():
        formula = "=" + expr.render(refs)
        cells.append(FormulaCell(cell_ref, formula, cached[quantity]))
        logger.debug(f"{layout.sheet}!{cell_ref}: {formula} -> {cached[quantity]}")
    return cells
