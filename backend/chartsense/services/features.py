"""
Dataset feature extraction.

Builds the fixed-shape FeatureVector that drives the chart recommendation
rules. Every measure is a plain mean or ratio over the whole table.
"""
import logging
import re
import numpy as np
from typing import List
from chartsense.core.schemas import FeatureVector, TypedTable
from chartsense.core.performance import track_performance
from chartsense.services.semantics import DEFAULT_POLICY, ColumnPolicy, distinct_count
from chartsense.services.type_inference import is_missing, to_number

logger = logging.getLogger(__name__)

DATE_KEYWORDS = re.compile(r'date|time|year|month|day|week|quarter|period', re.IGNORECASE)
TIME_KEYWORDS = re.compile(r'time|hour|minute|second|timestamp', re.IGNORECASE)
CATEGORY_KEYWORDS = re.compile(r'category|type|class|group|status|label|name', re.IGNORECASE)
METRIC_KEYWORDS = re.compile(
    r'value|amount|price|cost|revenue|sales|count|total|sum|avg|average|metric|score|rating',
    re.IGNORECASE
)

CATEGORICAL_MAX_UNIQUE_SHARE = 0.5


def numeric_values(table: TypedTable, column: str) -> List[float]:
    """All values of ``column`` that convert to a finite number, in row order."""
    values = []
    for row in table.rows:
        number = to_number(row.get(column))
        if number is not None:
            values.append(number)
    return values


def data_completeness(table: TypedTable) -> float:
    """Share of non-missing cells; 1.0 for a table without cells."""
    total = len(table.rows) * len(table.columns)
    if total == 0:
        return 1.0
    filled = sum(
        1 for row in table.rows for col in table.columns
        if not is_missing(row.get(col))
    )
    return filled / total


def _has_categorical_data(table: TypedTable, string_columns: List[str]) -> bool:
    row_count = len(table.rows)
    return any(
        distinct_count(table.rows, col) < row_count * CATEGORICAL_MAX_UNIQUE_SHARE
        for col in string_columns
    )


@track_performance("extract_features")
def extract_features(table: TypedTable, policy: ColumnPolicy = DEFAULT_POLICY) -> FeatureVector:
    """Compute the dataset-wide feature vector for ``table``."""
    columns = table.columns
    row_count = len(table.rows)

    numeric_columns = table.columns_of_type('number')
    string_columns = table.columns_of_type('string')
    date_columns = table.columns_of_type('date')
    boolean_columns = table.columns_of_type('boolean')

    if columns:
        ratios = [distinct_count(table.rows, col) / max(row_count, 1) for col in columns]
        unique_value_ratio = float(np.mean(ratios))
    else:
        unique_value_ratio = 0.0

    ranges = []
    variances = []
    for col in numeric_columns:
        values = numeric_values(table, col)
        if values:
            array = np.asarray(values, dtype=float)
            ranges.append(float(array.max() - array.min()))
            variances.append(float(array.var()))

    has_time_series = bool(date_columns) or any(policy.looks_temporal(col) for col in columns)

    features = FeatureVector(
        num_numeric_columns=len(numeric_columns),
        num_string_columns=len(string_columns),
        num_date_columns=len(date_columns),
        num_boolean_columns=len(boolean_columns),
        total_columns=len(columns),
        total_rows=row_count,
        has_time_series=has_time_series,
        has_categorical_data=_has_categorical_data(table, string_columns),
        has_multiple_metrics=len(numeric_columns) > 1,
        data_completeness=data_completeness(table),
        unique_value_ratio=unique_value_ratio,
        value_range=float(np.mean(ranges)) if ranges else 0.0,
        value_variance=float(np.mean(variances)) if variances else 0.0,
        has_date_keywords=any(DATE_KEYWORDS.search(col) for col in columns),
        has_time_keywords=any(TIME_KEYWORDS.search(col) for col in columns),
        has_category_keywords=any(CATEGORY_KEYWORDS.search(col) for col in columns),
        has_metric_keywords=any(METRIC_KEYWORDS.search(col) for col in columns),
    )
    logger.debug(
        f"Extracted features: {features.num_numeric_columns} numeric, "
        f"{features.num_string_columns} string, {features.num_date_columns} date columns"
    )
    return features
