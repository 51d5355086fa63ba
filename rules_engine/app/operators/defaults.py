"""
Built-in operators.
"""

from enum import Enum
from typing import Any, List

from .operator import Operator


class BuiltinOperator(str, Enum):
    """Built-in operator names as used in rule definitions."""
    EQUAL = "equal"
    NOT_EQUAL = "notEqual"
    IN = "in"
    NOT_IN = "notIn"
    CONTAINS = "contains"
    DOES_NOT_CONTAIN = "doesNotContain"
    LESS_THAN = "lessThan"
    LESS_THAN_INCLUSIVE = "lessThanInclusive"
    GREATER_THAN = "greaterThan"
    GREATER_THAN_INCLUSIVE = "greaterThanInclusive"


def is_sequence(fact_value: Any) -> bool:
    return isinstance(fact_value, (list, tuple))


def is_number(fact_value: Any) -> bool:
    """Numbers and numeric strings; booleans and None are rejected."""
    if isinstance(fact_value, bool) or fact_value is None:
        return False
    if isinstance(fact_value, (int, float)):
        return fact_value == fact_value  # NaN
    if isinstance(fact_value, str):
        try:
            float(fact_value)
        except ValueError:
            return False
        return True
    return False


def _number(value: Any) -> Any:
    return float(value) if isinstance(value, str) else value


def default_operators() -> List[Operator]:
    """Fresh instances of the built-in operators."""
    return [
        Operator(BuiltinOperator.EQUAL.value, lambda a, b: a == b),
        Operator(BuiltinOperator.NOT_EQUAL.value, lambda a, b: a != b),
        Operator(BuiltinOperator.IN.value, lambda a, b: a in b),
        Operator(BuiltinOperator.NOT_IN.value, lambda a, b: a not in b),
        Operator(BuiltinOperator.CONTAINS.value, lambda a, b: b in a, is_sequence),
        Operator(BuiltinOperator.DOES_NOT_CONTAIN.value, lambda a, b: b not in a, is_sequence),
        Operator(BuiltinOperator.LESS_THAN.value, lambda a, b: _number(a) < _number(b), is_number),
        Operator(BuiltinOperator.LESS_THAN_INCLUSIVE.value, lambda a, b: _number(a) <= _number(b), is_number),
        Operator(BuiltinOperator.GREATER_THAN.value, lambda a, b: _number(a) > _number(b), is_number),
        Operator(BuiltinOperator.GREATER_THAN_INCLUSIVE.value, lambda a, b: _number(a) >= _number(b), is_number),
    ]
