"""
Value comparators, one per value kind.

Each comparator takes the patient's value (None means "no value"), the
operator and the filter value, and answers whether the criterion holds.
A missing value matches only ``is_null``. Operators a kind does not support
raise ``UnsupportedOperator`` so the caller can decide what to do with them.
"""

import math
from typing import Any, Callable, Iterable, List, Optional

from .clinical_sections import parse_datetime


class UnsupportedOperator(ValueError):
    """Operator has no meaning for the field's value kind."""


Comparator = Callable[[Any, str, Any], bool]

NULL_OPERATORS = ("is_null", "is_not_null")

# negative operator -> the positive form it negates
NEGATED_OPERATORS = {
    "not_equals": "equals",
    "not_contains": "contains",
    "not_in": "in",
}


def js_truthy(value: Any) -> bool:
    """Truthiness as the stored JSON documents were written with: [] and {} are true."""
    if value is None or value is False:
        return False
    if isinstance(value, (int, float)):
        return value != 0 and not math.isnan(value)
    if isinstance(value, str):
        return value != ""
    return True


def as_list(value: Any) -> List[Any]:
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return [value]


def to_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return None if math.isnan(number) else number


def _has_value(value: Any) -> bool:
    return value is not None and value != ""


def _null_check(value: Any, operator: str) -> bool:
    return (not _has_value(value)) if operator == "is_null" else _has_value(value)


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value).strip().lower()


# =============================================================================
# STRING
# =============================================================================

def compare_string(field_value: Any, operator: str, filter_value: Any) -> bool:
    if operator in NULL_OPERATORS:
        return _null_check(field_value, operator)
    if not _has_value(field_value):
        return False

    value = _text(field_value)
    if operator == "equals":
        return value == _text(filter_value)
    if operator == "not_equals":
        return value != _text(filter_value)
    if operator == "contains":
        return _text(filter_value) in value
    if operator == "not_contains":
        return _text(filter_value) not in value
    if operator == "starts_with":
        return value.startswith(_text(filter_value))
    if operator == "ends_with":
        return value.endswith(_text(filter_value))
    if operator == "in":
        return value in {_text(option) for option in as_list(filter_value)}
    if operator == "not_in":
        return value not in {_text(option) for option in as_list(filter_value)}
    raise UnsupportedOperator(operator)


# =============================================================================
# NUMBER
# =============================================================================

def _range(filter_value: Any) -> Optional[tuple]:
    if not isinstance(filter_value, (list, tuple)) or len(filter_value) != 2:
        return None
    low, high = to_number(filter_value[0]), to_number(filter_value[1])
    if low is None or high is None:
        return None
    return low, high


def compare_number(field_value: Any, operator: str, filter_value: Any) -> bool:
    if operator in NULL_OPERATORS:
        return _null_check(field_value, operator)
    number = to_number(field_value)
    if number is None:
        return False

    if operator == "between":
        bounds = _range(filter_value)
        return bounds is not None and bounds[0] <= number <= bounds[1]

    if operator not in _NUMERIC_TESTS:
        raise UnsupportedOperator(operator)
    target = to_number(filter_value)
    if target is None:
        return False
    return _NUMERIC_TESTS[operator](number, target)


_NUMERIC_TESTS = {
    "equals": lambda a, b: a == b,
    "not_equals": lambda a, b: a != b,
    "greater_than": lambda a, b: a > b,
    "less_than": lambda a, b: a < b,
    "greater_than_or_equal": lambda a, b: a >= b,
    "less_than_or_equal": lambda a, b: a <= b,
}


# =============================================================================
# BOOLEAN
# =============================================================================

def compare_boolean(field_value: Any, operator: str, filter_value: Any) -> bool:
    actual = js_truthy(field_value)
    if operator in NULL_OPERATORS:
        return _null_check(field_value, operator)
    expected = filter_value is True or (isinstance(filter_value, str) and filter_value.strip().lower() == "true")
    if operator == "equals":
        return actual == expected
    if operator == "not_equals":
        return actual != expected
    raise UnsupportedOperator(operator)


# =============================================================================
# DATE
# =============================================================================

def compare_date(field_value: Any, operator: str, filter_value: Any) -> bool:
    if operator in NULL_OPERATORS:
        return _null_check(field_value, operator)
    moment = parse_datetime(field_value)
    if moment is None:
        return False

    if operator == "between":
        if not isinstance(filter_value, (list, tuple)) or len(filter_value) != 2:
            return False
        start, end = parse_datetime(filter_value[0]), parse_datetime(filter_value[1])
        return start is not None and end is not None and start <= moment <= end

    target = parse_datetime(filter_value)
    if operator in ("equals", "not_equals"):
        # same calendar day
        same_day = target is not None and moment.date() == target.date()
        return same_day if operator == "equals" else not same_day
    if operator not in _NUMERIC_TESTS:
        raise UnsupportedOperator(operator)
    if target is None:
        return False
    return _NUMERIC_TESTS[operator](moment, target)


# =============================================================================
# MULTI-VALUED FIELDS
# =============================================================================

def compare_any(values: Iterable[Any], operator: str, filter_value: Any, comparator: Comparator) -> bool:
    """
    Evaluate a criterion against every element of a multi-valued field.

    Positive operators hold if any element satisfies them. Negative operators
    hold only if no element satisfies the positive form. ``is_null`` holds when
    no element has a value.
    """
    values = list(values)
    if operator == "is_null":
        return not any(comparator(v, "is_not_null", None) for v in values)
    if operator == "is_not_null":
        return any(comparator(v, "is_not_null", None) for v in values)
    if operator in NEGATED_OPERATORS:
        positive = NEGATED_OPERATORS[operator]
        return not any(comparator(v, positive, filter_value) for v in values)
    return any(comparator(v, operator, filter_value) for v in values)
