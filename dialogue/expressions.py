"""
Conditional expression evaluator.

Expressions come from ``if (...)`` / ``else if (...)`` lines. The grammar is
flat: there is no operator precedence beyond parentheses.

    1. Known variable names are substituted with their literal values
       (strings quoted, booleans as true/false, ints as digits).
    2. Parenthesis groups are resolved innermost-last-first and replaced
       with true/false.
    3. ``&&`` splits into parts that must all be true, else ``||`` splits
       into parts of which one must be true, else a leading ``!`` negates.
    4. Comparisons ``>= <= == != > <`` (first match in that order) compare
       numerically, then as booleans, then as ordinal strings.
    5. A lone value is a boolean literal, a number (true when non-zero) or
       a string (true when non-empty).
"""

from __future__ import annotations

import logging
import math
import operator
import re
from typing import Callable, Optional

from dialogue.errors import ExpressionEvalError
from dialogue.variables import VariableStore, parse_bool

logger = logging.getLogger(__name__)

IDENTIFIER_PATTERN = re.compile(r"\b(\w+)\b")

# Two-character operators must be checked before their one-character prefixes
COMPARISON_OPERATORS = (">=", "<=", "==", "!=", ">", "<")

_COMPARE: dict[str, Callable[[object, object], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    ">": operator.gt,
    "<": operator.lt,
    ">=": operator.ge,
    "<=": operator.le,
}


def parse_number(text: str) -> Optional[float]:
    """Parse a numeric literal; None for anything else (including nan)."""
    try:
        value = float(text)
    except ValueError:
        return None
    if math.isnan(value):
        return None
    return value


class ExpressionEvaluator:
    """
    Evaluates conditional strings against a VariableStore.

    Pure with respect to the store: evaluating the same expression twice
    without changing variables gives the same answer.
    """

    def __init__(self, variables: VariableStore):
        self.variables = variables

    def evaluate(self, expression: str) -> bool:
        """
        Evaluate an expression.

        Raises:
            ExpressionEvalError: On unmatched parentheses or an unsupported operator.
        """
        if not expression or not expression.strip():
            return False

        return self._evaluate(self.substitute(expression))

    def evaluate_safe(self, expression: str) -> bool:
        """Evaluate an expression, logging failures and treating them as false."""
        try:
            return self.evaluate(expression)
        except ExpressionEvalError as e:
            logger.error("Error evaluating conditional '%s': %s", expression, e)
            return False

    def substitute(self, expression: str) -> str:
        """Replace known variable names with their literal values."""

        def replace(match: re.Match) -> str:
            name = match.group(1)
            value, found = self.variables.try_get(name)
            if not found:
                return match.group(0)
            if isinstance(value, bool):
                return "true" if value else "false"
            if isinstance(value, str):
                return f'"{value}"'
            return str(value)

        return IDENTIFIER_PATTERN.sub(replace, expression)

    def _evaluate(self, expression: str) -> bool:
        expression = expression.strip()

        # Resolve parenthesis groups, last opening bracket first
        open_index = expression.rfind("(")
        while open_index != -1:
            close_index = expression.find(")", open_index)
            if close_index == -1:
                raise ExpressionEvalError("Unmatched parentheses")

            inner = self._evaluate(expression[open_index + 1:close_index])
            expression = (
                expression[:open_index]
                + ("true" if inner else "false")
                + expression[close_index + 1:]
            )
            open_index = expression.rfind("(")

        if "&&" in expression:
            results = [self._evaluate(part) for part in expression.split("&&")]
            return all(results)

        if "||" in expression:
            results = [self._evaluate(part) for part in expression.split("||")]
            return any(results)

        if expression.startswith("!"):
            return not self._evaluate(expression[1:])

        for op in COMPARISON_OPERATORS:
            if op in expression:
                return self._compare(expression, op)

        as_bool = parse_bool(expression)
        if as_bool is not None:
            return as_bool

        as_number = parse_number(expression)
        if as_number is not None:
            return as_number != 0

        return bool(expression.strip('"'))

    def _compare(self, expression: str, op: str) -> bool:
        parts = expression.split(op)
        if len(parts) != 2:
            return False

        left = parts[0].strip().strip('"')
        right = parts[1].strip().strip('"')

        compare = _COMPARE.get(op)
        if compare is None:
            raise ExpressionEvalError(f"Unsupported operator: {op}")

        left_num, right_num = parse_number(left), parse_number(right)
        if left_num is not None and right_num is not None:
            return compare(left_num, right_num)

        left_bool, right_bool = parse_bool(left), parse_bool(right)
        if left_bool is not None and right_bool is not None and op in ("==", "!="):
            return compare(left_bool, right_bool)

        return compare(left, right)
