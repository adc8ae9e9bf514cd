"""
Report Checker Module
=====================
Recomputes an exported report without a spreadsheet application.

The workbook is opened twice, once for formulas and once for the cached
values. The raw readings are read from the layout's input cells, every
derived formula is evaluated with the formula translator, and the result is
compared with the calculator over the same readings and with the value
cached in the file.
"""

import math
import os
import logging
import zipfile
from dataclasses import dataclass
from typing import Optional

from openpyxl import load_workbook
from openpyxl.utils.cell import coordinate_to_tuple
from openpyxl.utils.exceptions import InvalidFileException

from .formula_mirror import REPORT_LAYOUT, CellLayout, engine_values
from .formula_translator import FormulaError, evaluate_formula
from .measurement import Measurement, finite_or_zero
from .report_writer import ReportError

logger = logging.getLogger(__name__)

REL_TOLERANCE = 1e-6
ABS_TOLERANCE = 1e-9


def _close(a, b) -> bool:
    return math.isclose(a, b, rel_tol=REL_TOLERANCE, abs_tol=ABS_TOLERANCE)


@dataclass(frozen=True)
class CellCheck:
    cell_ref: str
    quantity: str
    formula: str
    cached_value: Optional[float]
    formula_value: float
    engine_value: float

    @property
    def matches(self) -> bool:
        """The formula computes what the calculator computes."""
        return _close(self.formula_value, self.engine_value)

    @property
    def stale(self) -> bool:
        """The cached value is missing or out of date."""
        if not isinstance(self.cached_value, (int, float)):
            return True
        return not _close(self.cached_value, self.formula_value)


def read_measurement(ws, layout: CellLayout = REPORT_LAYOUT) -> Measurement:
    """Read the raw readings; blanks and text count as 0."""
    return Measurement.from_dict({name: ws[ref].value for name, ref in layout.inputs.items()})


def check_report(path: str, layout: CellLayout = REPORT_LAYOUT) -> list:
    """
    Check every derived cell of an exported report.

    Returns:
        list of CellCheck in layout order
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Report not found: {path}")

    wb = wb_data = None
    try:
        wb = load_workbook(path)
        wb_data = load_workbook(path, data_only=True)
        if layout.sheet not in wb.sheetnames:
            raise ReportError(f"Sheet '{layout.sheet}' not found in {path}")
        ws = wb[layout.sheet]
        ws_data = wb_data[layout.sheet]

        measurement = read_measurement(ws, layout)
        engine = engine_values(measurement)

        cells = {}
        for name, ref in layout.inputs.items():
            row, col = coordinate_to_tuple(ref)
            cells[(layout.sheet, row, col)] = finite_or_zero(getattr(measurement, name))

        checks = []
        for cell_ref, quantity, _ in layout.derived_cells():
            formula = ws[cell_ref].value
            if not isinstance(formula, str) or not formula.startswith("="):
                raise ReportError(f"{layout.sheet}!{cell_ref} holds no formula")
            try:
                formula_value = evaluate_formula(formula, cells, layout.sheet)
            except FormulaError as e:
                raise ReportError(f"{layout.sheet}!{cell_ref}: {e}") from e
            if isinstance(formula_value, bool) or not isinstance(formula_value, (int, float)):
                raise ReportError(f"{layout.sheet}!{cell_ref} does not evaluate to a number: "
                                  f"{formula_value!r}")
            # later formulas may refer to earlier derived cells
            row, col = coordinate_to_tuple(cell_ref)
            cells[(layout.sheet, row, col)] = formula_value

            check = CellCheck(
                cell_ref=cell_ref,
                quantity=quantity,
                formula=formula,
                cached_value=ws_data[cell_ref].value,
                formula_value=formula_value,
                engine_value=engine[quantity],
            )
            if not check.matches:
                logger.warning(f"{cell_ref} ({quantity}): formula gives {formula_value}, "
                               f"calculator gives {engine[quantity]}")
            checks.append(check)
    except (zipfile.BadZipFile, InvalidFileException) as e:
        raise ReportError(f"Cannot open {path} as a workbook: {e}") from e
    finally:
        for book in (wb, wb_data):
            if book is not None:
                book.close()

    logger.info(f"Checked {len(checks)} formula cells in {path}")
    return checks
