"""
Tests for the value comparators

Run with: python -m pytest backend/research_cohort/matching/test_comparators.py -v
"""

import pytest

from research_cohort.matching.comparators import (
    UnsupportedOperator,
    compare_any,
    compare_boolean,
    compare_date,
    compare_number,
    compare_string,
    js_truthy,
    to_number,
)


def test_string_operators_are_case_insensitive():
    assert compare_string("Irreversible Pulpitis", "contains", "PULPITIS")
    assert compare_string("Caries", "equals", "caries")
    assert compare_string("Caries", "not_equals", "abscess")
    assert compare_string("Lower left molar", "starts_with", "lower")
    assert compare_string("Lower left molar", "ends_with", "MOLAR")
    assert not compare_string("Caries", "not_contains", "car")


def test_string_in_and_not_in():
    assert compare_string("Caries", "in", ["caries", "abscess"])
    assert not compare_string("Healthy", "in", ["caries", "abscess"])
    assert compare_string("Healthy", "not_in", ["caries"])
    # a scalar filter value is a one-element list
    assert compare_string("Caries", "in", "caries")


def test_missing_value_matches_only_is_null():
    for operator in ("equals", "not_equals", "contains", "not_contains", "in", "not_in"):
        assert not compare_string(None, operator, "x"), operator
    assert compare_string(None, "is_null", None)
    assert compare_string("", "is_null", None)
    assert not compare_string(None, "is_not_null", None)
    assert compare_string("x", "is_not_null", None)


def test_string_unsupported_operator_raises():
    with pytest.raises(UnsupportedOperator):
        compare_string("x", "greater_than", "y")


def test_numeric_comparisons():
    assert compare_number(31, "greater_than", 30)
    assert not compare_number(30, "greater_than", 30)
    assert compare_number(30, "greater_than_or_equal", "30")
    assert compare_number("7", "less_than", 8)
    assert compare_number(5, "less_than_or_equal", 5)
    assert compare_number(5, "equals", "5.0")
    assert compare_number(5, "not_equals", 6)


def test_between_requires_two_element_list():
    assert compare_number(35, "between", [30, 40])
    assert compare_number(30, "between", ["30", "40"])
    assert not compare_number(45, "between", [30, 40])
    # malformed ranges never match
    assert not compare_number(35, "between", "30,40")
    assert not compare_number(35, "between", [30])
    assert not compare_number(35, "between", [30, "forty"])


def test_non_numeric_values_do_not_match():
    assert not compare_number(35, "greater_than", "abc")
    assert not compare_number("abc", "greater_than", 1)
    assert not compare_number(None, "greater_than", 1)
    assert compare_number(None, "is_null", None)


def test_to_number():
    assert to_number("4.5") == 4.5
    assert to_number(True) is None
    assert to_number("nan") is None
    assert to_number([1]) is None


def test_js_truthiness():
    assert js_truthy(True)
    assert js_truthy("yes")
    assert js_truthy([])
    assert js_truthy({})
    assert not js_truthy(None)
    assert not js_truthy(False)
    assert not js_truthy(0)
    assert not js_truthy("")
    assert not js_truthy(float("nan"))


def test_boolean_comparison_uses_truthiness():
    assert compare_boolean(True, "equals", "true")
    assert compare_boolean("present", "equals", True)
    assert compare_boolean(None, "equals", "false")
    assert compare_boolean(0, "not_equals", "true")
    assert not compare_boolean(False, "equals", True)
    with pytest.raises(UnsupportedOperator):
        compare_boolean(True, "contains", "t")


def test_date_comparisons():
    assert compare_date("2024-03-01T10:00:00Z", "greater_than", "2024-02-01")
    assert compare_date("2024-03-01", "less_than", "2024-03-02T00:00:00+00:00")
    assert compare_date("2024-03-01T23:00:00Z", "equals", "2024-03-01")
    assert compare_date("2024-03-15", "between", ["2024-03-01", "2024-03-31"])
    assert not compare_date("2024-04-15", "between", ["2024-03-01", "2024-03-31"])
    assert not compare_date("not a date", "greater_than", "2024-01-01")
    assert compare_date(None, "is_null", None)


def test_any_of_positive_operators():
    statuses = ["healthy", "Caries", None]
    assert compare_any(statuses, "in", ["caries"], compare_string)
    assert compare_any(statuses, "contains", "car", compare_string)
    assert not compare_any(statuses, "equals", "abscess", compare_string)


def test_none_of_negative_operators():
    statuses = ["healthy", "caries"]
    assert not compare_any(statuses, "not_equals", "caries", compare_string)
    assert compare_any(statuses, "not_equals", "abscess", compare_string)
    assert not compare_any(statuses, "not_in", ["caries"], compare_string)
    assert not compare_any(statuses, "not_contains", "heal", compare_string)


def test_empty_list_semantics():
    assert not compare_any([], "equals", "caries", compare_string)
    assert compare_any([], "not_equals", "caries", compare_string)
    assert compare_any([], "is_null", None, compare_string)
    assert compare_any([None, ""], "is_null", None, compare_string)
    assert not compare_any([], "is_not_null", None, compare_string)
