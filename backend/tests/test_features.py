"""
Unit tests for dataset feature extraction.
"""
import pytest
from chartsense.services.normalizer import build_table
from chartsense.services.features import data_completeness, extract_features, numeric_values


def sales_table():
    rows = [
        {"region": ["North", "South", "East"][i % 3], "sales": 100 + i * 10, "units": i}
        for i in range(12)
    ]
    return build_table(["region", "sales", "units"], rows)


@pytest.mark.unit
def test_column_counts():
    features = extract_features(sales_table())

    assert features.num_numeric_columns == 2
    assert features.num_string_columns == 1
    assert features.num_date_columns == 0
    assert features.num_boolean_columns == 0
    assert features.total_columns == 3
    assert features.total_rows == 12
    assert features.has_multiple_metrics is True
    assert features.has_categorical_data is True


@pytest.mark.unit
def test_keyword_flags():
    features = extract_features(sales_table())
    assert features.has_metric_keywords is True
    assert features.has_date_keywords is False
    assert features.has_time_series is False


@pytest.mark.unit
def test_time_series_from_date_column_or_name():
    dated = build_table(["day", "value"], [{"day": "2024-01-0%d" % i, "value": i} for i in range(1, 6)])
    assert extract_features(dated).has_time_series is True

    named = build_table(["year", "value"], [{"year": 2000 + i, "value": i} for i in range(5)])
    features = extract_features(named)
    assert features.num_date_columns == 0
    assert features.has_time_series is True


@pytest.mark.unit
def test_completeness_of_half_empty_table():
    """Half of the cells missing gives a completeness of exactly 0.5."""
    table = build_table(
        ["a", "b"],
        [{"a": 1, "b": None}, {"a": None, "b": "x"}, {"a": 3, "b": ""}, {"a": "", "b": "y"}]
    )
    assert data_completeness(table) == 0.5
    assert extract_features(table).data_completeness == 0.5


@pytest.mark.unit
def test_empty_table_is_complete():
    table = build_table(["a"], [])
    assert data_completeness(table) == 1.0


@pytest.mark.unit
def test_value_range_and_variance():
    table = build_table(["x"], [{"x": v} for v in (1, 2, 3, 4)])
    features = extract_features(table)

    assert features.value_range == pytest.approx(3.0)
    # Population variance of 1..4
    assert features.value_variance == pytest.approx(1.25)


@pytest.mark.unit
def test_unique_value_ratio():
    table = build_table(["a", "b"], [{"a": str(i), "b": "same"} for i in range(4)])
    assert extract_features(table).unique_value_ratio == pytest.approx((1.0 + 0.25) / 2)


@pytest.mark.unit
def test_numeric_values_skips_non_numbers():
    table = build_table(["x", "y"], [{"x": 1, "y": "a"}, {"x": None, "y": "b"}, {"x": 2.5, "y": "c"}])
    assert numeric_values(table, "x") == [1.0, 2.5]


@pytest.mark.unit
def test_extraction_is_deterministic():
    table = sales_table()
    assert extract_features(table) == extract_features(table)
