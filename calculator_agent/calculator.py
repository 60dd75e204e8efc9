"""Arithmetic skill of the calculator agent."""

import ast
import operator
import re

_BINARY = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}
_UNARY = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}
MAX_EXPONENT = 1000

# Runs of characters that can appear in an arithmetic expression
_EXPRESSION = re.compile(r"[\d\.\s\+\-\*/%\(\)]+")


class CalculationError(ValueError):
    """The text does not hold an expression we can evaluate."""


def extract_expression(text: str) -> str:
    """Pull the arithmetic expression out of free text.

    "What is 384 * 35?" -> "384 * 35". Thousands separators are dropped.
    """
    cleaned = re.sub(r"(?<=\d),(?=\d{3})", "", text).replace("×", "*").replace("÷", "/")
    candidates = [
        m.group().strip() for m in _EXPRESSION.finditer(cleaned)
        if re.search(r"\d", m.group())
    ]
    if not candidates:
        raise CalculationError(f"no arithmetic expression found in {text!r}")
    return max(candidates, key=len)


def _eval(node: ast.AST) -> int | float:
    if isinstance(node, ast.Expression):
        return _eval(node.body)
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) \
            and not isinstance(node.value, bool):
        return node.value
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY:
        left, right = _eval(node.left), _eval(node.right)
        if isinstance(node.op, ast.Pow) and abs(right) > MAX_EXPONENT:
            raise CalculationError("exponent too large")
        return _BINARY[type(node.op)](left, right)
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY:
        return _UNARY[type(node.op)](_eval(node.operand))
    raise CalculationError(f"unsupported syntax: {type(node).__name__}")


def format_number(value: int | float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def evaluate(expression: str) -> str:
    """Evaluate an arithmetic expression and return the result as text.

    Raises:
        CalculationError: On anything that is not plain arithmetic, or on
            division by zero.
    """
    try:
        tree = ast.parse(expression.strip(), mode="eval")
    except SyntaxError as e:
        raise CalculationError(f"cannot parse {expression!r}") from e
    try:
        return format_number(_eval(tree))
    except ZeroDivisionError as e:
        raise CalculationError("division by zero") from e
    except OverflowError as e:
        raise CalculationError("result is too large") from e


def solve(text: str) -> str:
    """Find the expression in ``text`` and evaluate it."""
    return evaluate(extract_expression(text))
