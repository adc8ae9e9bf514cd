"""
Report Writer Module
====================
Builds the single-sheet ``.xlsx`` report of a bending test.

The sheet holds the raw readings, the net-deflection row and the four
results. Derived cells are live formulas (see ``formula_mirror``) so the
workbook recomputes if the raw readings are edited. openpyxl writes formula
cells without a value, so after saving the package is rewritten to store
the calculator's numbers as cached values; the workbook is also flagged for
a full recalculation on load.
"""

import io
import os
import math
import re
import zipfile
import datetime
import logging
import xml.etree.ElementTree as ET

from openpyxl import Workbook
from openpyxl.drawing.image import Image
from openpyxl.drawing.spreadsheet_drawing import OneCellAnchor, TwoCellAnchor, AnchorMarker
from openpyxl.drawing.xdr import XDRPositiveSize2D
from openpyxl.styles import Font, PatternFill, Alignment, Border, Side
from openpyxl.utils.units import pixels_to_EMU
from PIL import Image as PILImage, UnidentifiedImageError

from .chart import render_deflection_chart
from .formula_mirror import REPORT_LAYOUT, render_formulas
from .measurement import Measurement

logger = logging.getLogger(__name__)

SHEET_PART = "xl/worksheets/sheet1.xml"
SHEET_MAIN_NS = "http://schemas.openxmlformats.org/spreadsheetml/2006/main"
RELATIONSHIPS_NS = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"

# Logo block in row 1
LOGO_HEIGHT_PX = 80
LOGO_GAP_PX = 25
LOGO_PADDING_PX = 25
LOGO_BLOCK_HPT = (LOGO_HEIGHT_PX + LOGO_PADDING_PX * 2) * 0.75
MAX_LOGOS = 2

# Chart spans columns F..K, rows 9..22 (zero-based markers)
CHART_FROM = (5, 8)
CHART_TO = (11, 22)

COLUMN_WIDTHS = {"A": 18, "B": 10, "C": 10, "D": 10, "E": 3, "F": 14,
                 "G": 14, "H": 12, "I": 12, "J": 3, "K": 3, "L": 3}
ROW_HEIGHTS = {1: LOGO_BLOCK_HPT, 2: 0, 3: 0, 4: 22, 6: 18, 8: 18, 12: 18, 16: 18}

NUMBER_FORMATS = {
    "F7": '0.0"%"',
    "G7": '0.0"%"',
    "H7": '0.00"%"',
    "I7": '0.000" N*m^2"',
    "A17": '0.0" mm"',
    "B17": '0.0" mm"',
    "C17": '0.0" mm"',
}

_UNSAFE_FILE_CHARS = re.compile(r'[\\/:*?"<>|]+')


class ReportError(RuntimeError):
    """Raised when the report package cannot be assembled."""


# ------------------------------------------------------------------
# Styles
# ------------------------------------------------------------------

_THIN = Side(style="thin", color="D1D5DB")
BORDER_THIN = Border(top=_THIN, bottom=_THIN, left=_THIN, right=_THIN)
CENTER = Alignment(horizontal="center", vertical="center")

STYLES = {
    "header": {
        "font": Font(bold=True, color="FFFFFF", size=12),
        "fill": PatternFill(start_color="0A8A8C", end_color="0A8A8C", fill_type="solid"),
        "alignment": CENTER,
    },
    "section": {
        "font": Font(bold=True, color="4B5563", size=9),
        "fill": PatternFill(start_color="F1DDD3", end_color="F1DDD3", fill_type="solid"),
        "alignment": Alignment(horizontal="left", vertical="center"),
    },
    "sub_header": {
        "font": Font(bold=True, color="6B7280", size=9),
        "fill": PatternFill(start_color="F7E8E1", end_color="F7E8E1", fill_type="solid"),
        "alignment": CENTER,
    },
    "value": {
        "font": Font(bold=True, color="111827", size=11),
        "alignment": CENTER,
    },
    "value_red": {
        "font": Font(bold=True, color="A12B2B", size=11),
        "alignment": CENTER,
    },
    "result_header": {
        "font": Font(bold=True, color="4B5563", size=9),
        "fill": PatternFill(start_color="F1DDD3", end_color="F1DDD3", fill_type="solid"),
        "alignment": CENTER,
    },
    "result_value": {
        "font": Font(bold=True, color="111827", size=12),
        "alignment": CENTER,
    },
    "result_value_red": {
        "font": Font(bold=True, color="A12B2B", size=12),
        "alignment": CENTER,
    },
}

# style name -> cells
STYLE_MAP = {
    "header": ["A4", "B4", "C4", "D4", "F4", "G4", "H4", "I4"],
    "section": ["A6", "C6", "A8", "B8", "C8", "D8", "A12", "B12", "C12", "D12",
                "A16", "B16", "C16", "D16"],
    "value": ["B6", "D6", "A10", "B10", "C10", "A14", "B14", "C14"],
    "sub_header": ["A9", "B9", "C9", "A13", "B13", "C13"],
    "value_red": ["A17", "B17", "C17"],
    "result_header": ["F6", "G6", "H6", "I6"],
    "result_value": ["F7", "G7"],
    "result_value_red": ["H7", "I7"],
}

MERGED_RANGES = ["A4:D4", "F4:I4", "A8:D8", "A12:D12", "A16:D16"]

LABELS = {
    "A4": "MEASUREMENTS",
    "F4": "RESULTS",
    "A6": "Test Weight (kg)",
    "C6": "Length (mm)",
    "A8": "SELF WEIGHTED (mm)",
    "A9": "1/4", "B9": "1/2", "C9": "3/4",
    "A12": "WEIGHTED (mm)",
    "A13": "1/4", "B13": "1/2", "C13": "3/4",
    "A16": "NET DEFLECTION (Δ)",
    "F6": "FRONT BEND", "G6": "BACK BEND", "H6": "CAMBER", "I6": "AVG EI",
}


def _apply_style(ws, cell_refs, style: dict):
    for ref in cell_refs:
        cell = ws[ref]
        for attr, value in style.items():
            setattr(cell, attr, value)
        cell.border = BORDER_THIN


# ------------------------------------------------------------------
# Images
# ------------------------------------------------------------------

def _logo_image(path: str):
    """Load a logo scaled to the logo block height, keeping its aspect ratio."""
    if not os.path.exists(path):
        raise ReportError(f"Logo not found: {path}")
    try:
        with PILImage.open(path) as pil_img:
            original_width, original_height = pil_img.size
    except (UnidentifiedImageError, OSError) as e:
        raise ReportError(f"Cannot read logo {path}: {e}") from e

    img = Image(path)
    img.height = LOGO_HEIGHT_PX
    img.width = round(original_width / original_height * LOGO_HEIGHT_PX)
    return img


def _add_logos(ws, logo_paths):
    if len(logo_paths) > MAX_LOGOS:
        raise ReportError(f"At most {MAX_LOGOS} logos fit in the header, got {len(logo_paths)}")
    x_offset = LOGO_PADDING_PX
    for path in logo_paths:
        img = _logo_image(path)
        marker = AnchorMarker(col=0, colOff=pixels_to_EMU(x_offset),
                              row=0, rowOff=pixels_to_EMU(LOGO_PADDING_PX))
        size = XDRPositiveSize2D(pixels_to_EMU(img.width), pixels_to_EMU(img.height))
        img.anchor = OneCellAnchor(_from=marker, ext=size)
        ws.add_image(img)
        x_offset += img.width + LOGO_GAP_PX


def _add_chart(ws, measurement: Measurement):
    img = Image(io.BytesIO(render_deflection_chart(measurement)))
    img.anchor = TwoCellAnchor(
        _from=AnchorMarker(col=CHART_FROM[0], row=CHART_FROM[1]),
        to=AnchorMarker(col=CHART_TO[0], row=CHART_TO[1]),
    )
    ws.add_image(img)


# ------------------------------------------------------------------
# Workbook assembly
# ------------------------------------------------------------------

def build_report_workbook(measurement: Measurement, logos=(), chart: bool = True):
    """
    Lay out the report sheet.

    Returns:
        (workbook, formula_cells) where formula_cells is the output of
        ``render_formulas`` for the cells written to the sheet.
    """
    measurement = measurement.normalized()
    layout = REPORT_LAYOUT
    formula_cells = render_formulas(measurement, layout)

    wb = Workbook()
    ws = wb.active
    ws.title = layout.sheet

    for ref, text in LABELS.items():
        ws[ref] = text
    for name, ref in layout.inputs.items():
        ws[ref] = getattr(measurement, name)
    for cell_ref, formula, _ in formula_cells:
        ws[cell_ref] = formula

    for cell_range in MERGED_RANGES:
        ws.merge_cells(cell_range)

    for letter, width in COLUMN_WIDTHS.items():
        ws.column_dimensions[letter].width = width
    for row, height in ROW_HEIGHTS.items():
        if height:
            ws.row_dimensions[row].height = height
        else:
            # openpyxl drops a zero height on save
            ws.row_dimensions[row].hidden = True

    for style_name, refs in STYLE_MAP.items():
        _apply_style(ws, refs, STYLES[style_name])
    for ref, fmt in NUMBER_FORMATS.items():
        ws[ref].number_format = fmt

    if logos:
        _add_logos(ws, list(logos))
    if chart:
        _add_chart(ws, measurement)

    wb.calculation.fullCalcOnLoad = True
    return wb, formula_cells


def _fill_formula_values(sheet_xml: bytes, cached: dict) -> bytes:
    """Write ``<v>`` values into the formula cells named in ``cached``."""
    ET.register_namespace("", SHEET_MAIN_NS)
    ET.register_namespace("r", RELATIONSHIPS_NS)
    root = ET.fromstring(sheet_xml)
    cell_tag = f"{{{SHEET_MAIN_NS}}}c"
    formula_tag = f"{{{SHEET_MAIN_NS}}}f"
    value_tag = f"{{{SHEET_MAIN_NS}}}v"

    filled = 0
    for cell in root.iter(cell_tag):
        ref = cell.get("r")
        if ref not in cached or cell.find(formula_tag) is None:
            continue
        value = cell.find(value_tag)
        number = float(cached[ref])
        if not math.isfinite(number):
            # no cached value; the spreadsheet shows its own error on load
            if value is not None:
                cell.remove(value)
        else:
            if value is None:
                value = ET.SubElement(cell, value_tag)
            value.text = repr(number)
        filled += 1

    if filled != len(cached):
        raise ReportError(f"Only {filled} of {len(cached)} formula cells found in {SHEET_PART}")
    return ET.tostring(root, encoding="UTF-8", xml_declaration=True)


def store_cached_values(package: bytes, cached: dict) -> bytes:
    """Rewrite a saved ``.xlsx`` package so formula cells carry cached values."""
    out = io.BytesIO()
    with zipfile.ZipFile(io.BytesIO(package)) as src:
        if SHEET_PART not in src.namelist():
            raise ReportError(f"Workbook package has no {SHEET_PART}")
        with zipfile.ZipFile(out, "w", zipfile.ZIP_DEFLATED) as dst:
            for item in src.infolist():
                data = src.read(item.filename)
                if item.filename == SHEET_PART:
                    data = _fill_formula_values(data, cached)
                dst.writestr(item, data)
    return out.getvalue()


def report_file_name(file_name=None, today=None) -> str:
    """
    Sanitize a user supplied report name.

    Characters not allowed in file names are removed; an empty result falls
    back to ``BattenLab_<date>``; ``.xlsx`` is appended when missing.
    """
    base = _UNSAFE_FILE_CHARS.sub("", (file_name or "").strip()).strip()
    if not base:
        base = f"BattenLab_{(today or datetime.date.today()).isoformat()}"
    if not base.lower().endswith(".xlsx"):
        base = f"{base}.xlsx"
    return base


def export_report(measurement: Measurement, output_dir: str, file_name=None,
                  logos=(), chart: bool = True) -> str:
    """
    Write the report workbook.

    Args:
        measurement: Raw readings (normalized here, non-finite values become 0)
        output_dir: Directory for the report, created if missing
        file_name: Optional name, sanitized with ``report_file_name``
        logos: Up to two image paths shown in the header row
        chart: Whether to embed the deflection chart

    Returns:
        Path of the written report
    """
    wb, formula_cells = build_report_workbook(measurement, logos=logos, chart=chart)

    buffer = io.BytesIO()
    wb.save(buffer)
    wb.close()
    cached = {cell_ref: value for cell_ref, _, value in formula_cells}
    package = store_cached_values(buffer.getvalue(), cached)

    os.makedirs(output_dir, exist_ok=True)
    path = os.path.join(output_dir, report_file_name(file_name))
    with open(path, "wb") as f:
        f.write(package)
    logger.info(f"Report written: {path}")
    return path
