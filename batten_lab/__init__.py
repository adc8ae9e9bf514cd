"""Batten Lab.

Bend-profile metrics for battens from a three-point bending test:

  * **calculate** – front bend %, back bend %, camber % and average EI
    from the self-weight and loaded deflections at 1/4, 1/2 and 3/4 span.
  * **render_formulas** – the same arithmetic as spreadsheet formulas over
    the report's cell layout, with the calculator's values cached.
  * **export_report** / **check_report** – write the ``.xlsx`` report and
    recompute an exported one.
  * **ProfileStore** – named measurements kept in a JSON file.
"""

from .measurement import Measurement, NetDeflection, BattenResult
from .calculator import calculate, net_deflections
from .formula_mirror import CellLayout, FormulaCell, REPORT_LAYOUT, render_formulas
from .report_writer import ReportError, export_report
from .report_checker import CellCheck, check_report
from .profiles import ProfileStore, SavedProfile, ProfileMeta
from .comparison import compare_measurements, compare_profiles

__all__ = [
    "Measurement",
    "NetDeflection",
    "BattenResult",
    "calculate",
    "net_deflections",
    "CellLayout",
    "FormulaCell",
    "REPORT_LAYOUT",
    "render_formulas",
    "ReportError",
    "export_report",
    "CellCheck",
    "check_report",
    "ProfileStore",
    "SavedProfile",
    "ProfileMeta",
    "compare_measurements",
    "compare_profiles",
]
