"""Tests for the formula_translator and excel_functions modules."""

import os
import sys
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from batten_lab import excel_functions as xl
from batten_lab.formula_translator import (
    FormulaError,
    FormulaTranslator,
    evaluate_formula,
    translate_formula,
)


class TestFormulaTranslator(unittest.TestCase):
    def setUp(self):
        self.translator = FormulaTranslator("Sheet1")

    def test_simple_addition(self):
        result = self.translator.translate("=A1+B1")
        self.assertIn("cell_value(cells, 'Sheet1', 1, 1)", result)
        self.assertIn("cell_value(cells, 'Sheet1', 1, 2)", result)
        self.assertIn("+", result)

    def test_dollar_sign_references(self):
        result = self.translator.translate("=$A$1+$B2")
        self.assertIn("cell_value(cells, 'Sheet1', 1, 1)", result)
        self.assertIn("cell_value(cells, 'Sheet1', 2, 2)", result)

    def test_sum_function(self):
        result = self.translator.translate("=SUM(A1:A10)")
        self.assertIn("xl_sum", result)
        self.assertIn("cell_range(cells, 'Sheet1', 1, 1, 10, 1)", result)
        self.assertEqual(len(self.translator.referenced_cells), 10)

    def test_cross_sheet_reference(self):
        result = self.translator.translate("=Sheet2!A1+B1")
        self.assertIn("cell_value(cells, 'Sheet2', 1, 1)", result)
        self.assertIn("cell_value(cells, 'Sheet1', 1, 2)", result)
        self.assertEqual(len(self.translator.referenced_cells), 2)

    def test_quoted_sheet_reference(self):
        self.translator.translate("='My Sheet'!A1")
        self.assertIn(("My Sheet", 1, 1), self.translator.referenced_cells)

    def test_cross_sheet_range(self):
        self.translator.translate("=SUM(Sheet2!A1:A5)")
        self.assertTrue(all(r[0] == "Sheet2" for r in self.translator.referenced_cells))
        self.assertEqual(len(self.translator.referenced_cells), 5)

    def test_power_operator(self):
        self.assertIn("**", self.translator.translate("=A1^2"))

    def test_comparison_operators(self):
        self.assertIn(">=", self.translator.translate("=IF(A1>=10,1,0)"))
        self.assertIn("!=", self.translator.translate("=IF(A1<>0,1,0)"))
        self.assertIn("==", self.translator.translate("=IF(A1=0,1,0)"))

    def test_if_branches_are_lazy(self):
        result = self.translator.translate('=IF(A1>10,"Yes","No")')
        self.assertEqual(
            result,
            "xl_if(cell_value(cells, 'Sheet1', 1, 1) > 10.0, lambda: ('Yes'), lambda: ('No'))",
        )

    def test_numbers_become_float_literals(self):
        self.assertEqual(self.translator.translate("=2^3"), "2.0 ** 3.0")

    def test_function_name_is_not_a_cell(self):
        result = self.translator.translate("=ROUND(A1,1)")
        self.assertTrue(result.startswith("xl_round("))
        self.assertEqual(self.translator.referenced_cells, [("Sheet1", 1, 1)])
        with self.assertRaises(FormulaError):
            self.translator.translate("=LOG10(A1)")

    def test_referenced_cells_reset_per_formula(self):
        self.translator.translate("=A1+B2+Sheet2!C3")
        self.assertEqual(self.translator.referenced_cells,
                         [("Sheet1", 1, 1), ("Sheet1", 2, 2), ("Sheet2", 3, 3)])
        self.translator.translate("=D4")
        self.assertEqual(self.translator.referenced_cells, [("Sheet1", 4, 4)])

    def test_unknown_function_is_rejected(self):
        with self.assertRaises(FormulaError):
            translate_formula("=SUMPRODUCT(A1:A3,B1:B3)", "Sheet1")
        with self.assertRaises(FormulaError):
            translate_formula("=__import__(\"os\")", "Sheet1")

    def test_python_syntax_is_rejected(self):
        for formula in (
            "=(().__class__.__base__.__subclasses__)()[0].__name__",
            "=A1.real",
            "=A1[0]",
            "=$",
        ):
            with self.assertRaises(FormulaError, msg=formula):
                self.translator.translate(formula)


class TestEvaluateFormula(unittest.TestCase):
    def setUp(self):
        self.cells = {
            ("Report", 1, 1): 2.0,
            ("Report", 2, 1): 3.0,
            ("Report", 3, 1): None,
            ("Other", 1, 1): 10.0,
        }

    def evaluate(self, formula):
        return evaluate_formula(formula, self.cells)

    def test_arithmetic(self):
        self.assertEqual(self.evaluate("=A1+A2*2"), 8.0)
        self.assertEqual(self.evaluate("=(A1+A2)*2"), 10.0)
        self.assertEqual(self.evaluate("=A2^2"), 9.0)

    def test_blank_cell_reads_as_zero(self):
        self.assertEqual(self.evaluate("=A3+1"), 1)
        self.assertEqual(self.evaluate("=Z99"), 0)

    def test_functions(self):
        self.assertEqual(self.evaluate("=SUM(A1:A3)"), 5.0)
        self.assertEqual(self.evaluate("=AVERAGE(A1:A3)"), 2.5)
        self.assertEqual(self.evaluate("=MAX(0.1,A1-A2)"), 0.1)
        self.assertEqual(self.evaluate("=MIN(A1,A2)"), 2.0)
        self.assertEqual(self.evaluate("=MAX(A1;A2)"), 3.0)

    def test_cross_sheet(self):
        self.assertEqual(self.evaluate("=Other!A1/A1"), 5.0)
        self.assertEqual(self.evaluate("='Other'!$A$1-1"), 9.0)

    def test_if_does_not_evaluate_the_other_branch(self):
        self.assertEqual(self.evaluate("=IF(A3=0,0,1/A3)"), 0)
        self.assertEqual(self.evaluate("=IF(A1=0,0,1/A1)"), 0.5)

    def test_nested_if(self):
        formula = '=IF(A1>1,IF(A1>2,"big","mid"),"small")'
        self.assertEqual(self.evaluate(formula), "mid")
        self.cells[("Report", 1, 1)] = 0.5
        self.assertEqual(self.evaluate(formula), "small")

    def test_percent_literal(self):
        self.assertEqual(self.evaluate("=A1*50%"), 1.0)

    def test_text(self):
        self.assertEqual(self.evaluate('="a ""b"""&"c"'), 'a "b"c')

    def test_booleans(self):
        self.assertEqual(self.evaluate("=IF(TRUE,1,2)"), 1)
        self.assertEqual(self.evaluate("=IF(FALSE,1,2)"), 2)

    def test_unknown_function_fails(self):
        with self.assertRaises(FormulaError):
            self.evaluate("=FOO(A1)")

    def test_injected_expression_fails(self):
        with self.assertRaises(FormulaError):
            self.evaluate("=(().__class__.__base__.__subclasses__)()[0].__name__")

    def test_spreadsheet_errors(self):
        with self.assertRaises(FormulaError):
            self.evaluate("=1/A3")
        with self.assertRaises(FormulaError):
            self.evaluate("=10^400")
        with self.assertRaises(FormulaError):
            self.evaluate("=ROUND(1,400)")
        with self.assertRaises(FormulaError):
            self.evaluate("=MAX(A1")
        with self.assertRaises(FormulaError):
            self.evaluate("=A1+")


class TestExcelFunctions(unittest.TestCase):
    def test_round_half_away_from_zero(self):
        self.assertEqual(xl.xl_round(2.5), 3)
        self.assertEqual(xl.xl_round(-2.5), -3)
        self.assertEqual(xl.xl_round(12.34, 1), 12.3)

    def test_abs(self):
        self.assertEqual(xl.xl_abs(-2.5), 2.5)
        self.assertEqual(xl.xl_abs(None), 0)

    def test_text_and_blanks_skipped_in_aggregates(self):
        self.assertEqual(xl.xl_sum([1, None, "x", 2]), 3)
        self.assertEqual(xl.xl_max([None, "x"]), 0)

    def test_if_calls_only_the_selected_branch(self):
        self.assertEqual(xl.xl_if(True, lambda: 1, lambda: 1 / 0), 1)
        self.assertEqual(xl.xl_if(0, 1, 2), 2)


if __name__ == "__main__":
    unittest.main()
