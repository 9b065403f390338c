"""Restricted arithmetic evaluator for payhead formulas.

Formulas are written with the payroll calculator keypad, so a few display
glyphs are translated before parsing:

    √  -> sqrt        ×, standalone x -> *
    ÷  -> /           −  -> -
    ^  -> **

The sanitized text is parsed with ``ast`` and walked node by node. Only
numbers, variable names, parentheses, unary +/-, binary + - * / ** and the
functions ``sqrt`` and ``abs`` are accepted; nothing is ever passed to
``eval``. Arithmetic runs on ``Decimal``.
"""

from __future__ import annotations

import ast
import logging
import re
from decimal import Decimal
from typing import Callable, Iterable, Mapping

from payrun_engine.calculators.types import (
    BASE_VARIABLE_NAMES,
    BaseVariables,
    EvaluationMode,
    PayheadRecord,
    VariableAmount,
    VariableFormula,
)

logger = logging.getLogger(__name__)

_GLYPHS: tuple[tuple[str, str], ...] = (
    ("√", "sqrt"),
    ("×", "*"),
    ("÷", "/"),
    ("−", "-"),
    ("^", "**"),
)

# "x" used as a multiplication sign, never a letter inside a variable name
_STANDALONE_X = re.compile(r"(?<![A-Za-z_])x(?![A-Za-z_])")

_FUNCTIONS: dict[str, Callable[[Decimal], Decimal]] = {
    "sqrt": lambda v: v.sqrt(),
    "abs": abs,
}

# Largest magnitude a breakdown amount can hold (NUMERIC(12,2))
MAX_AMOUNT = Decimal("1E10")

_BINARY_OPS: dict[type[ast.operator], Callable[[Decimal, Decimal], Decimal]] = {
    ast.Add: lambda a, b: a + b,
    ast.Sub: lambda a, b: a - b,
    ast.Mult: lambda a, b: a * b,
    ast.Div: lambda a, b: a / b,
    ast.Pow: lambda a, b: a**b,
}


class EvaluationError(Exception):
    """Raised when a formula cannot be evaluated."""

    def __init__(self, formula: str, reason: str, payhead_id: int | None = None):
        self.formula = formula
        self.reason = reason
        self.payhead_id = payhead_id
        msg = f"Cannot evaluate '{formula}': {reason}"
        if payhead_id is not None:
            msg = f"Payhead {payhead_id}: {msg}"
        super().__init__(msg)


def sanitize_formula(formula: str) -> str:
    """Translate keypad glyphs into evaluator operators."""
    sanitized = str(formula)
    for glyph, replacement in _GLYPHS:
        sanitized = sanitized.replace(glyph, replacement)
    return _STANDALONE_X.sub("*", sanitized)


def _parse(formula: str) -> ast.Expression:
    source = sanitize_formula(formula).strip()
    if not source:
        raise EvaluationError(formula, "empty formula")
    try:
        return ast.parse(source, mode="eval")
    except SyntaxError as e:
        raise EvaluationError(formula, f"syntax error: {e.msg}") from e


def evaluate(formula: str, variables: Mapping[str, Decimal]) -> Decimal:
    """Evaluate a formula against a variable environment.

    Raises:
        EvaluationError: undefined variable, rejected arithmetic (division by
            zero, square root of a negative), invalid syntax, or a result too
            large to store as an amount
    """
    tree = _parse(formula)

    def _eval(node: ast.AST) -> Decimal:
        if isinstance(node, ast.Constant):
            if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
                raise EvaluationError(formula, f"unsupported literal {node.value!r}")
            return Decimal(str(node.value))

        if isinstance(node, ast.Name):
            if node.id not in variables:
                raise EvaluationError(formula, f"undefined variable '{node.id}'")
            return Decimal(variables[node.id])

        if isinstance(node, ast.UnaryOp):
            operand = _eval(node.operand)
            if isinstance(node.op, ast.USub):
                return -operand
            if isinstance(node.op, ast.UAdd):
                return operand
            raise EvaluationError(formula, f"unsupported operator {type(node.op).__name__}")

        if isinstance(node, ast.BinOp):
            op = _BINARY_OPS.get(type(node.op))
            if op is None:
                raise EvaluationError(formula, f"unsupported operator {type(node.op).__name__}")
            left, right = _eval(node.left), _eval(node.right)
            try:
                return op(left, right)
            except ArithmeticError as e:
                raise EvaluationError(formula, f"arithmetic error: {e.__class__.__name__}") from e

        if isinstance(node, ast.Call):
            if not isinstance(node.func, ast.Name) or node.func.id not in _FUNCTIONS:
                raise EvaluationError(formula, "unsupported function call")
            if len(node.args) != 1 or node.keywords:
                raise EvaluationError(formula, f"{node.func.id}() takes exactly one argument")
            try:
                return _FUNCTIONS[node.func.id](_eval(node.args[0]))
            except ArithmeticError as e:
                raise EvaluationError(formula, f"arithmetic error: {e.__class__.__name__}") from e

        raise EvaluationError(formula, f"unsupported expression {type(node).__name__}")

    result = _eval(tree.body)
    if abs(result) >= MAX_AMOUNT:
        raise EvaluationError(formula, f"result {result} is out of range")
    return result


def formula_variables(formula: str) -> set[str]:
    """Return the variable names a formula references (functions excluded)."""
    try:
        tree = _parse(formula)
    except EvaluationError:
        return set()

    names: set[str] = set()
    for node in ast.walk(tree):
        if isinstance(node, ast.Name) and node.id not in _FUNCTIONS:
            names.add(node.id)
    return names


def calculate_all_payheads(
    base_variables: BaseVariables | Mapping[str, Decimal],
    formulas: Iterable[VariableFormula],
    mode: EvaluationMode = EvaluationMode.STRICT,
) -> list[VariableAmount]:
    """Evaluate formulas in order, feeding each result to the ones after it.

    The environment starts as the base variables; every computed amount is
    stored under its declared variable name (shadowing a base variable of the
    same name) before the next formula runs.
    """
    if isinstance(base_variables, BaseVariables):
        env: dict[str, Decimal] = base_variables.as_dict()
    else:
        env = dict(base_variables)

    calculated: list[VariableAmount] = []
    failed = False

    for item in formulas:
        try:
            amount = evaluate(item.formula, env)
        except EvaluationError as e:
            if mode is EvaluationMode.STRICT:
                logger.error("Payhead %s failed to evaluate: %s", item.payhead_id, e.reason)
            else:
                logger.debug("Payhead %s evaluated to 0: %s", item.payhead_id, e.reason)
            failed = True
            amount = Decimal("0")

        calculated.append(
            VariableAmount(
                payhead_id=item.payhead_id,
                variable=item.variable,
                amount=amount,
                link_id=item.link_id,
            )
        )
        if item.variable:
            env[item.variable] = amount

    if failed and mode is EvaluationMode.STRICT:
        return []
    return calculated


def find_forward_references(catalogue: Iterable[PayheadRecord]) -> dict[int, set[str]]:
    """Find payheads referencing variables declared later in catalogue order.

    Evaluation is a single forward pass, so such references (including
    circular ones) always fail with an undefined variable.

    Returns payhead_id -> offending variable names.
    """
    payheads = list(catalogue)
    position = {ph.variable: i for i, ph in enumerate(payheads) if ph.variable}
    problems: dict[int, set[str]] = {}

    for i, ph in enumerate(payheads):
        if not ph.calculation or ph.static_formula is not None:
            continue
        later = {
            name
            for name in formula_variables(ph.calculation)
            if name in position
            and position[name] >= i
            and name != ph.variable
            and name not in BASE_VARIABLE_NAMES
        }
        if later:
            problems[ph.id] = later

    return problems
