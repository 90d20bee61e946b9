"""
Chart recommendation service.

A fixed-priority rule cascade: each chart type has its own rule that picks
axes through ordered fallback chains and assigns a fixed confidence. Bar
charts are the preferred default for categorical data with a metric; the
other types fill in when the data shape supports them.
"""
import logging
from typing import List, Optional
from chartsense.core.schemas import ChartCandidate, ChartPayload, FeatureVector, TypedTable
from chartsense.core.performance import track_performance
from chartsense.services.features import extract_features
from chartsense.services.materializer import materialize
from chartsense.services.semantics import (
    BAR_MAX_CATEGORIES,
    DEFAULT_POLICY,
    PIE_MAX_CATEGORIES,
    ColumnPolicy,
    all_of,
    anything,
    distinct_count,
    excluding,
    first_match,
    good_columns,
    is_good_categorical,
)

logger = logging.getLogger(__name__)

BAR_CONFIDENCE = 0.95
LINE_TIME_SERIES_CONFIDENCE = 0.95
LINE_SEQUENTIAL_CONFIDENCE = 0.75
LINE_FALLBACK_CONFIDENCE = 0.65
PIE_CONFIDENCE = 0.65
SCATTER_CONFIDENCE = 0.8
SCATTER_FALLBACK_CONFIDENCE = 0.6
AREA_CONFIDENCE = 0.7

LINE_MIN_ROWS = 10
SCATTER_MIN_ROWS = 20


def _time_axis(table: TypedTable, policy: ColumnPolicy) -> Optional[str]:
    date_columns = table.columns_of_type('date')
    if date_columns:
        return date_columns[0]
    not_identifier = lambda col: not policy.is_identifier(col)
    return first_match(table.columns, [all_of(policy.looks_temporal, not_identifier)])


def _bar_rule(table: TypedTable, features: FeatureVector, policy: ColumnPolicy) -> Optional[ChartCandidate]:
    if not features.has_categorical_data or features.num_numeric_columns == 0:
        return None

    rows = table.rows
    not_identifier = lambda col: not policy.is_identifier(col)
    readable = lambda col: is_good_categorical(col, rows, BAR_MAX_CATEGORIES)
    varied = lambda col: distinct_count(rows, col) > 1

    category_col = first_match(table.columns_of_type('string'), [
        all_of(not_identifier, readable),
        all_of(not_identifier, varied),
        readable,
        varied,
        anything,
    ])
    value_col = first_match(table.columns_of_type('number'), [
        policy.is_good_metric,
        lambda col: not policy.is_placeholder(col),
        anything,
    ])

    if not category_col or not value_col:
        return None
    if not policy.is_good_metric(category_col) or not policy.is_good_metric(value_col):
        return None

    return ChartCandidate(
        chart_type='bar',
        confidence=BAR_CONFIDENCE,
        x_axis=category_col,
        y_axis=value_col,
        title=f"{value_col} by {category_col}",
        reasoning="Categorical data with numeric metrics - ideal for bar charts showing comparisons",
    )


def _line_rule(table: TypedTable, features: FeatureVector, policy: ColumnPolicy) -> Optional[ChartCandidate]:
    numeric_columns = table.columns_of_type('number')
    good_numeric = good_columns(numeric_columns, policy)

    if features.has_time_series and numeric_columns:
        time_col = _time_axis(table, policy) or (good_numeric or numeric_columns)[0]
        value_col = first_match(good_numeric, [excluding(time_col)])
        if not value_col:
            return None
        return ChartCandidate(
            chart_type='line',
            confidence=LINE_TIME_SERIES_CONFIDENCE,
            x_axis=time_col,
            y_axis=value_col,
            title=f"{value_col} over Time",
            reasoning="Time series data detected - line chart shows trends over time",
        )

    if len(numeric_columns) < 2 or features.total_rows <= LINE_MIN_ROWS:
        return None

    if len(good_numeric) >= 2:
        x_col, y_col = good_numeric[:2]
        confidence = LINE_SEQUENTIAL_CONFIDENCE
    else:
        x_col, y_col = numeric_columns[:2]
        confidence = LINE_FALLBACK_CONFIDENCE

    return ChartCandidate(
        chart_type='line',
        confidence=confidence,
        x_axis=x_col,
        y_axis=y_col,
        title=f"{y_col} vs {x_col}",
        reasoning="Multiple numeric columns with sufficient data points for trend analysis",
    )


def _pie_rule(table: TypedTable, features: FeatureVector, policy: ColumnPolicy) -> Optional[ChartCandidate]:
    # Pie only fills in when there is no metric for a bar chart
    string_columns = table.columns_of_type('string')
    if features.num_numeric_columns > 0 or not features.has_categorical_data or not string_columns:
        return None

    rows = table.rows
    not_identifier = lambda col: not policy.is_identifier(col)
    few_slices = lambda col: is_good_categorical(col, rows, PIE_MAX_CATEGORIES, max_row_share=None)

    category_col = first_match(string_columns, [all_of(not_identifier, few_slices), anything])
    if not category_col or policy.is_identifier(category_col) or not few_slices(category_col):
        return None

    unique_count = distinct_count(rows, category_col)
    return ChartCandidate(
        chart_type='pie',
        confidence=PIE_CONFIDENCE,
        data_key='value',
        x_axis=category_col,
        title=f"Distribution of {category_col}",
        reasoning=f"Categorical distribution with {unique_count} categories - suitable for pie chart",
    )


def _scatter_rule(table: TypedTable, features: FeatureVector, policy: ColumnPolicy) -> Optional[ChartCandidate]:
    numeric_columns = table.columns_of_type('number')
    if len(numeric_columns) < 2 or features.total_rows < SCATTER_MIN_ROWS:
        return None

    good_numeric = good_columns(numeric_columns, policy)
    if len(good_numeric) >= 2:
        x_col, y_col = good_numeric[:2]
        confidence = SCATTER_CONFIDENCE
    else:
        x_col, y_col = numeric_columns[:2]
        confidence = SCATTER_FALLBACK_CONFIDENCE

    return ChartCandidate(
        chart_type='scatter',
        confidence=confidence,
        x_axis=x_col,
        y_axis=y_col,
        title=f"{x_col} vs {y_col}",
        reasoning="Two numeric variables with sufficient data points - ideal for correlation analysis",
    )


def _area_rule(table: TypedTable, features: FeatureVector, policy: ColumnPolicy) -> Optional[ChartCandidate]:
    numeric_columns = table.columns_of_type('number')
    if not features.has_time_series or not numeric_columns:
        return None

    time_col = _time_axis(table, policy)
    if not time_col:
        return None
    value_col = first_match(numeric_columns, [
        all_of(lambda col: not policy.is_identifier(col), excluding(time_col)),
        excluding(time_col),
    ])
    if not value_col or policy.is_identifier(value_col):
        return None

    return ChartCandidate(
        chart_type='area',
        confidence=AREA_CONFIDENCE,
        x_axis=time_col,
        y_axis=value_col,
        title=f"{value_col} Trend (Area)",
        reasoning="Time series data - area chart emphasizes volume and trends",
    )


RULES = (_bar_rule, _line_rule, _pie_rule, _scatter_rule, _area_rule)


@track_performance("recommend_charts")
def recommend(
    table: TypedTable,
    features: Optional[FeatureVector] = None,
    policy: ColumnPolicy = DEFAULT_POLICY
) -> List[ChartCandidate]:
    """
    Rank chart candidates for a table.

    Args:
        table: Normalized table
        features: Precomputed feature vector; extracted from the table when omitted
        policy: Column name heuristics

    Returns:
        Zero to five candidates sorted by confidence, highest first. Equal
        confidences keep rule order.
    """
    if features is None:
        features = extract_features(table, policy)

    candidates = []
    for rule in RULES:
        candidate = rule(table, features, policy)
        if candidate is not None:
            candidates.append(candidate)

    candidates.sort(key=lambda c: c.confidence, reverse=True)
    logger.info(
        f"Recommended {len(candidates)} charts",
        extra={'chart_types': [c.chart_type for c in candidates]}
    )
    return candidates


def generate_all_candidate_types(
    table: TypedTable,
    policy: ColumnPolicy = DEFAULT_POLICY
) -> List[ChartPayload]:
    """
    Build the fixed dashboard: bar, pie, scatter and line, whichever the data allows.

    Axes come from the materializer's defaults, which prefer good columns and
    fall back to any column of the right type.
    """
    string_count = len(table.columns_of_type('string'))
    numeric_count = len(table.columns_of_type('number'))

    attempts = []
    if string_count and numeric_count:
        attempts.append('bar')
    if string_count:
        attempts.append('pie')
    if numeric_count >= 2:
        attempts.extend(['scatter', 'line'])

    visualizations = []
    for chart_type in attempts:
        payload = materialize(table, chart_type, policy=policy)
        if payload is not None:
            visualizations.append(payload)
    return visualizations
