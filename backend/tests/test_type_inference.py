"""
Unit tests for column type inference.
"""
import pytest
from chartsense.services.type_inference import (
    infer_column_type,
    infer_types,
    is_missing,
    parse_date,
    to_number,
)


@pytest.mark.unit
def test_boolean_beats_number():
    """Columns of true/false literals are boolean even though they are not text."""
    assert infer_column_type([True, False, True]) == 'boolean'
    assert infer_column_type(["true", "false", None]) == 'boolean'


@pytest.mark.unit
def test_numeric_strings_are_numbers():
    assert infer_column_type(["1", "2.5", "-3", "1e3"]) == 'number'
    assert infer_column_type([1, 2.5, 3]) == 'number'


@pytest.mark.unit
def test_dates():
    assert infer_column_type(["2024-01-01", "2024-02-15", "2024-03-31"]) == 'date'


@pytest.mark.unit
def test_mixed_values_fall_back_to_string():
    assert infer_column_type(["1", "two", "3"]) == 'string'
    assert infer_column_type(["2024-01-01", "not a date"]) == 'string'


@pytest.mark.unit
def test_all_empty_column_is_string():
    assert infer_column_type([None, "", None]) == 'string'
    assert infer_column_type([]) == 'string'


@pytest.mark.unit
def test_missing_values_are_ignored():
    assert infer_column_type([None, "10", "", "20"]) == 'number'


@pytest.mark.unit
def test_to_number():
    assert to_number("42") == 42.0
    assert to_number(" 3.5 ") == 3.5
    assert to_number(7) == 7.0
    assert to_number(True) is None
    assert to_number("1,000") is None
    assert to_number("$5") is None
    assert to_number("nan") is None
    assert to_number("inf") is None
    assert to_number("") is None


@pytest.mark.unit
def test_parse_date_rejects_short_and_non_string():
    assert parse_date("2024-05-01") is not None
    assert parse_date("1/2") is None
    assert parse_date(20240501) is None
    assert parse_date("hello world") is None


@pytest.mark.unit
def test_is_missing():
    assert is_missing(None)
    assert is_missing("")
    assert not is_missing(0)
    assert not is_missing(False)


@pytest.mark.unit
def test_infer_types_uses_only_the_sample():
    """Rows past the sample window never change the inferred type."""
    rows = [{"value": str(i)} for i in range(5)] + [{"value": "oops"}]
    assert infer_types(rows, ["value"], sample_size=5) == {"value": 'number'}
    assert infer_types(rows, ["value"], sample_size=10) == {"value": 'string'}


@pytest.mark.unit
def test_infer_types_is_deterministic():
    rows = [{"a": "1", "b": "x", "c": "2024-01-01"}, {"a": "2", "b": "y", "c": "2024-01-02"}]
    first = infer_types(rows, ["a", "b", "c"])
    second = infer_types(rows, ["a", "b", "c"])
    assert first == second == {"a": 'number', "b": 'string', "c": 'date'}
