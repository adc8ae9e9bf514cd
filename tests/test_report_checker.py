"""Tests for recomputing exported reports."""

import os
import sys

import pytest
from openpyxl import load_workbook

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, os.path.dirname(__file__))

from batten_lab.calculator import calculate
from batten_lab.report_checker import CellCheck, check_report, read_measurement
from batten_lab.report_writer import ReportError, export_report
from sample_measurements import SCENARIO, BOUNDARY


@pytest.fixture()
def report_path(tmp_path):
    return export_report(SCENARIO, str(tmp_path), file_name="check", chart=False)


def _edit(path, **values):
    """Overwrite cells with openpyxl and save (cached formula values are lost)."""
    wb = load_workbook(path)
    ws = wb["Report"]
    for ref, value in values.items():
        ws[ref] = value
    wb.save(path)
    wb.close()


def test_fresh_report_matches(report_path):
    checks = check_report(report_path)
    assert [c.cell_ref for c in checks] == ["A17", "B17", "C17", "F7", "G7", "H7", "I7"]
    assert all(c.matches for c in checks)
    assert not any(c.stale for c in checks)


def test_fresh_report_values(report_path):
    checks = {c.quantity: c for c in check_report(report_path)}
    result = calculate(SCENARIO)
    assert checks["average_ei"].formula_value == pytest.approx(result.average_ei)
    assert checks["net_12"].cached_value == 52


def test_boundary_report_matches(tmp_path):
    path = export_report(BOUNDARY, str(tmp_path), chart=False)
    checks = check_report(path)
    assert all(c.matches and not c.stale for c in checks)


def test_edited_reading_recomputes(report_path):
    _edit(report_path, B14=70)
    checks = {c.quantity: c for c in check_report(report_path)}
    edited = calculate(SCENARIO.with_updates(weighted_12=70))
    assert checks["front_percent"].formula_value == pytest.approx(edited.front_percent)
    assert all(c.matches for c in checks.values())
    # openpyxl does not recompute, so the saved file has no cached values
    assert all(c.stale for c in checks.values())


def test_edited_formula_is_a_mismatch(report_path, caplog):
    _edit(report_path, F7="=A14*2")
    with caplog.at_level("WARNING", logger="batten_lab.report_checker"):
        checks = {c.cell_ref: c for c in check_report(report_path)}
    assert not checks["F7"].matches
    assert checks["G7"].matches
    assert "F7" in caplog.text


def test_text_reading_counts_as_zero(report_path):
    _edit(report_path, B6="heavy")
    wb = load_workbook(report_path)
    assert read_measurement(wb["Report"]).test_weight == 0
    wb.close()
    checks = {c.quantity: c for c in check_report(report_path)}
    assert checks["average_ei"].formula_value == 0
    assert checks["average_ei"].matches


def test_value_instead_of_formula(report_path):
    _edit(report_path, I7=7.86)
    with pytest.raises(ReportError):
        check_report(report_path)


def test_missing_sheet(report_path):
    wb = load_workbook(report_path)
    wb["Report"].title = "Other"
    wb.save(report_path)
    wb.close()
    with pytest.raises(ReportError):
        check_report(report_path)


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        check_report(str(tmp_path / "missing.xlsx"))


def test_cell_check_properties():
    check = CellCheck("F7", "front_percent", "=1", None, 1.0, 1.0)
    assert check.matches
    assert check.stale
    check = CellCheck("F7", "front_percent", "=1", 1.0 + 1e-12, 1.0, 1.0 + 1e-3)
    assert not check.matches
    assert not check.stale


def test_python_in_a_formula_is_not_run(report_path, tmp_path):
    marker = tmp_path / "marker"
    _edit(report_path, A17=(
        '=(().__class__.__base__.__subclasses__)()[0].__init__.__globals__["system"]'
        f'("touch {marker}")'
    ))
    with pytest.raises(ReportError, match="A17"):
        check_report(report_path)
    assert not marker.exists()


def test_unsupported_function(report_path):
    _edit(report_path, F7="=SUMPRODUCT(A10:C10,A14:C14)")
    with pytest.raises(ReportError, match="F7"):
        check_report(report_path)


def test_formula_error_in_cell(report_path):
    _edit(report_path, G7="=1/0")
    with pytest.raises(ReportError, match="G7"):
        check_report(report_path)


def test_text_result(report_path):
    _edit(report_path, H7='="flat"')
    with pytest.raises(ReportError, match="H7"):
        check_report(report_path)


def test_not_a_workbook(tmp_path):
    path = tmp_path / "bad.xlsx"
    path.write_text("not a zip")
    with pytest.raises(ReportError):
        check_report(str(path))


def test_extreme_length_report(tmp_path):
    # (length / 1000)^3 overflows; the EI cell is written without a cached value
    path = export_report(SCENARIO.with_updates(test_length=1e110), str(tmp_path), chart=False)
    wb = load_workbook(path, data_only=True)
    assert wb["Report"]["I7"].value is None
    assert wb["Report"]["F7"].value == pytest.approx(calculate(SCENARIO).front_percent)
    wb.close()
