"""
Formula Translator Module
=========================
Translates spreadsheet formulas into Python expressions and evaluates them
against a mapping of cell values.

Cells are keyed by ``(sheet, row, col)`` with 1-based row/column numbers.
This is how an exported report is recomputed without a spreadsheet
application, and how the rendered formulas are checked against the
calculator.

Formulas come from user-editable workbooks. Only recognised tokens are
translated: any other character, or a function outside ``EXCEL_FUNC_MAP``,
raises ``FormulaError`` before anything is evaluated, so the generated
expression can only name cell lookups and ``xl_`` functions.

Known differences from a spreadsheet: ``^`` follows Python's ``**``
(right associative, binds tighter than unary minus) and ``&`` only joins
text operands.
"""

import re
import logging
from openpyxl.utils import column_index_from_string

from . import excel_functions

logger = logging.getLogger(__name__)

# Excel functions mapped to Python equivalents
EXCEL_FUNC_MAP = {
    'SUM': 'xl_sum',
    'AVERAGE': 'xl_average',
    'MIN': 'xl_min',
    'MAX': 'xl_max',
    'ABS': 'xl_abs',
    'ROUND': 'xl_round',
    'IF': 'xl_if',
}

# Functions whose arguments after the first are evaluated on demand
LAZY_FUNCS = {'IF'}

_CELL_RE = r"\$?([A-Za-z]{1,3})\$?(\d{1,7})"


class FormulaError(ValueError):
    """Raised for a formula that cannot be translated or evaluated."""


def _parse_cell(col_str: str, row_str: str):
    return int(row_str), column_index_from_string(col_str.upper())


class FormulaTranslator:
    """Translates a spreadsheet formula to a Python expression."""

    def __init__(self, current_sheet: str):
        self.current_sheet = current_sheet
        self.referenced_cells = []  # (sheet, row, col) list

    def translate(self, formula: str) -> str:
        """
        Translate a formula to a Python expression.

        Args:
            formula: Formula string, with or without the leading '='

        Returns:
            Python expression string over ``cells``
        """
        self.referenced_cells = []
        if formula.startswith('='):
            formula = formula[1:]
        # Percentage literals like 12.5%
        formula = re.sub(r'(\d+\.?\d*)\%', lambda m: str(float(m.group(1)) / 100), formula)
        tokens = self._tokenize(formula)
        return ''.join(self._translate_tokens(tokens))

    def _tokenize(self, formula: str) -> list:
        """
        Tokenize a formula into a list of (type, value) tuples.
        Types: 'SHEET_RANGE', 'SHEET_REF', 'RANGE', 'CELL', 'FUNC', 'NUMBER',
               'STRING', 'BOOL', 'OP', 'COMMA', 'PAREN', 'UNKNOWN'
        """
        tokens = []
        i = 0
        s = formula

        while i < len(s):
            if s[i] == ' ':
                i += 1
                continue

            # String literal ("" is an escaped quote)
            if s[i] == '"':
                j = i + 1
                while j < len(s):
                    if s[j] == '"':
                        if s[j + 1:j + 2] == '"':
                            j += 2
                            continue
                        break
                    j += 1
                text = s[i + 1:j].replace('""', '"')
                tokens.append(('STRING', repr(text)))
                i = j + 1
                continue

            # Sheet-qualified reference: 'Sheet Name'!A1[:B2] or Sheet!A1[:B2]
            m = re.match(
                r"(?:'([^']+)'|([A-Za-z_]\w*))\!" + _CELL_RE + r"(?::" + _CELL_RE + r")?",
                s[i:]
            )
            if m and (m.group(1) or m.group(2).upper() not in EXCEL_FUNC_MAP):
                tokens.append(('SHEET_RANGE' if m.group(5) else 'SHEET_REF', m.group(0)))
                i += m.end()
                continue

            # Range reference: A1:B10
            m = re.match(_CELL_RE + ":" + _CELL_RE, s[i:])
            if m and (i == 0 or not s[i - 1].isalpha()):
                tokens.append(('RANGE', m.group(0)))
                i += m.end()
                continue

            # Cell reference: A1, $A$1, etc. (but not LOG10( style function names)
            m = re.match(_CELL_RE, s[i:])
            if m and (i == 0 or not s[i - 1].isalpha()):
                end_pos = i + m.end()
                if not (end_pos < len(s) and s[end_pos] == '('):
                    tokens.append(('CELL', m.group(0)))
                    i += m.end()
                    continue

            # Function name; the paren is consumed separately
            m = re.match(r"([A-Za-z_][\w.]*)\s*\(", s[i:])
            if m:
                tokens.append(('FUNC', m.group(1)))
                i += len(m.group(1))
                continue

            m = re.match(r"(\d+\.?\d*(?:[eE][+-]?\d+)?)", s[i:])
            if m:
                tokens.append(('NUMBER', m.group(0)))
                i += m.end()
                continue

            m = re.match(r"(TRUE|FALSE)\b", s[i:], re.IGNORECASE)
            if m:
                tokens.append(('BOOL', m.group(0)))
                i += m.end()
                continue

            if s[i:i+2] in ('<>', '<=', '>='):
                tokens.append(('OP', s[i:i+2]))
                i += 2
                continue
            if s[i] in '+-*/^&=<>':
                tokens.append(('OP', s[i]))
                i += 1
                continue

            # Semicolon is the argument separator in some locales
            if s[i] in ',;':
                tokens.append(('COMMA', ','))
                i += 1
                continue

            if s[i] in '()':
                tokens.append(('PAREN', s[i]))
                i += 1
                continue

            tokens.append(('UNKNOWN', s[i]))
            i += 1

        return tokens

    def _translate_tokens(self, tokens: list) -> list:
        """Translate a list of tokens to Python expression parts."""
        result = []
        # One frame per open parenthesis: [function name or None, argument index]
        frames = []
        pending_func = None

        for ttype, tval in tokens:
            if ttype == 'FUNC':
                pending_func = tval.upper()
                result.append(self._translate_func(tval))
            elif ttype == 'PAREN' and tval == '(':
                frames.append([pending_func, 0])
                pending_func = None
                result.append('(')
            elif ttype == 'PAREN':
                func, arg_index = frames.pop() if frames else (None, 0)
                if func in LAZY_FUNCS and arg_index > 0:
                    result.append(')')
                result.append(')')
            elif ttype == 'COMMA':
                frame = frames[-1] if frames else None
                if frame and frame[0] in LAZY_FUNCS:
                    if frame[1] > 0:
                        result.append(')')
                    frame[1] += 1
                    result.append(', lambda: (')
                else:
                    result.append(', ')
            elif ttype == 'SHEET_RANGE':
                result.append(self._translate_sheet_range(tval))
            elif ttype == 'SHEET_REF':
                result.append(self._translate_sheet_ref(tval))
            elif ttype == 'RANGE':
                result.append(self._translate_range(tval, self.current_sheet))
            elif ttype == 'CELL':
                result.append(self._translate_cell(tval, self.current_sheet))
            elif ttype == 'BOOL':
                result.append('True' if tval.upper() == 'TRUE' else 'False')
            elif ttype == 'OP':
                result.append(self._translate_op(tval))
            elif ttype == 'NUMBER':
                # float literals keep ^ from growing unbounded integers
                result.append(repr(float(tval)))
            elif ttype == 'STRING':
                result.append(tval)
            else:
                raise FormulaError(f"Unsupported character {tval!r} in formula")

        return result

    def _translate_op(self, op: str) -> str:
        """Translate a spreadsheet operator to Python."""
        op_map = {
            '=': ' == ',
            '<>': ' != ',
            '^': ' ** ',
            '&': ' + ',
        }
        return op_map.get(op, f' {op} ')

    def _translate_cell(self, ref: str, sheet: str) -> str:
        """Translate a cell reference like A1, $A$1 to a cell_value() lookup."""
        m = re.match(_CELL_RE, ref)
        row, col = _parse_cell(m.group(1), m.group(2))
        self.referenced_cells.append((sheet, row, col))
        return f"cell_value(cells, {sheet!r}, {row}, {col})"

    def _translate_range(self, ref: str, sheet: str) -> str:
        """Translate a range reference like A1:B10 to a cell_range() list."""
        m = re.match(_CELL_RE + ":" + _CELL_RE, ref)
        r1, c1 = _parse_cell(m.group(1), m.group(2))
        r2, c2 = _parse_cell(m.group(3), m.group(4))
        for r in range(r1, r2 + 1):
            for c in range(c1, c2 + 1):
                self.referenced_cells.append((sheet, r, c))
        return f"cell_range(cells, {sheet!r}, {r1}, {c1}, {r2}, {c2})"

    def _split_sheet(self, ref: str):
        sheet, _, address = ref.rpartition('!')
        if sheet.startswith("'") and sheet.endswith("'"):
            sheet = sheet[1:-1]
        return sheet, address

    def _translate_sheet_ref(self, ref: str) -> str:
        """Translate a sheet-qualified cell reference like 'Sheet'!A1."""
        sheet, address = self._split_sheet(ref)
        return self._translate_cell(address, sheet)

    def _translate_sheet_range(self, ref: str) -> str:
        """Translate a sheet-qualified range like 'Sheet'!A1:B10."""
        sheet, address = self._split_sheet(ref)
        return self._translate_range(address, sheet)

    def _translate_func(self, func_name: str) -> str:
        """Translate a spreadsheet function name to Python."""
        upper_name = func_name.upper()
        if upper_name not in EXCEL_FUNC_MAP:
            raise FormulaError(f"Unsupported function: {func_name}")
        return EXCEL_FUNC_MAP[upper_name]


def translate_formula(formula: str, current_sheet: str) -> tuple:
    """
    Convenience function to translate a formula.

    Returns:
        (python_expression, list_of_referenced_cells)
    """
    translator = FormulaTranslator(current_sheet)
    python_expr = translator.translate(formula)
    return python_expr, translator.referenced_cells


def _namespace(cells) -> dict:
    names = {name: getattr(excel_functions, name)
             for name in dir(excel_functions)
             if name.startswith('xl_') or name in ('cell_value', 'cell_range')}
    names['cells'] = cells
    names['__builtins__'] = {}
    return names


def evaluate_formula(formula: str, cells, sheet: str = "Report"):
    """
    Evaluate a formula against ``cells``.

    Args:
        formula: Spreadsheet formula (leading '=' optional)
        cells: Mapping of (sheet, row, col) -> value
        sheet: Sheet that unqualified references point to

    Returns:
        The computed value

    Raises:
        FormulaError: unsupported syntax or function, or a spreadsheet
            error such as division by zero
    """
    python_expr, _ = translate_formula(formula, sheet)
    logger.debug(f"{formula} -> {python_expr}")
    try:
        return eval(python_expr, _namespace(cells))
    except (ArithmeticError, TypeError, ValueError, SyntaxError, RecursionError) as e:
        raise FormulaError(f"Cannot evaluate {formula}: {e}") from e
