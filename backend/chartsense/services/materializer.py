"""
Chart data materialization.

Turns a chart type plus an optional axis binding into a render-ready
ChartPayload: rows are grouped, counted or filtered for the chart type and
truncated to a type-specific limit. Requests that cannot be charted return
None instead of raising.
"""
import hashlib
import logging
from collections import Counter
from typing import Dict, List, Optional, Union
from chartsense.core.schemas import CHART_TYPES, ChartPayload, TypedTable
from chartsense.core.performance import track_performance
from chartsense.services.semantics import (
    DEFAULT_POLICY,
    ColumnPolicy,
    all_of,
    anything,
    excluding,
    first_match,
    to_label,
)
from chartsense.services.type_inference import is_missing, to_number

logger = logging.getLogger(__name__)

ROW_LIMITS = {
    'bar': 20,
    'pie': 15,
    'scatter': 200,
    'line': 100,
    'area': 100,
}

UNKNOWN_CATEGORY = "Unknown"

DataRow = Dict[str, Union[int, float, str]]


def chart_id(chart_type: str, x_axis: Optional[str], y_axis: Optional[str]) -> str:
    """Stable id derived from the chart type and its axes."""
    digest = hashlib.sha1(f"{x_axis}\x00{y_axis}".encode('utf-8')).hexdigest()[:10]
    return f"{chart_type}-{digest}"


def default_category_axis(table: TypedTable, policy: ColumnPolicy = DEFAULT_POLICY) -> Optional[str]:
    """First good string column, then a non-identifier, then any named one, then any string column."""
    not_identifier = lambda col: not policy.is_identifier(col)
    not_placeholder = lambda col: not policy.is_placeholder(col)
    return first_match(table.columns_of_type('string'), [
        policy.is_good_metric,
        not_identifier,
        not_placeholder,
        anything,
    ])


def default_value_axis(
    table: TypedTable,
    exclude: Optional[str] = None,
    policy: ColumnPolicy = DEFAULT_POLICY
) -> Optional[str]:
    """First good numeric column other than ``exclude``, with the same fallbacks."""
    not_identifier = lambda col: not policy.is_identifier(col)
    not_placeholder = lambda col: not policy.is_placeholder(col)
    other = excluding(exclude)
    return first_match(table.columns_of_type('number'), [
        all_of(policy.is_good_metric, other),
        all_of(not_identifier, other),
        all_of(not_placeholder, other),
        other,
    ])


def _bar_rows(table: TypedTable, x_axis: str, y_axis: str) -> List[DataRow]:
    groups: Dict[str, List[float]] = {}
    for row in table.rows:
        category = to_label(row.get(x_axis)).strip() or UNKNOWN_CATEGORY
        value = to_number(row.get(y_axis))
        groups.setdefault(category, []).append(value if value is not None else 0.0)

    return [
        {x_axis: category, y_axis: sum(values) / len(values)}
        for category, values in list(groups.items())[:ROW_LIMITS['bar']]
    ]


def _pie_rows(table: TypedTable, x_axis: str) -> List[DataRow]:
    counts = Counter()
    for row in table.rows:
        label = to_label(row.get(x_axis)).strip()
        if label and label != UNKNOWN_CATEGORY:
            counts[label] += 1

    # Counter keeps first-seen order, sorted() keeps it for equal counts
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [{'name': name, 'value': count} for name, count in ranked[:ROW_LIMITS['pie']]]


def _pair_rows(table: TypedTable, chart_type: str, x_axis: str, y_axis: str) -> List[DataRow]:
    # Line and area charts may run along a date or label axis
    label_x = chart_type in ('line', 'area') and table.column_types[x_axis] != 'number'

    data = []
    limit = ROW_LIMITS[chart_type]
    for row in table.rows:
        y_value = to_number(row.get(y_axis))
        if y_value is None:
            continue
        raw_x = row.get(x_axis)
        if label_x:
            if is_missing(raw_x):
                continue
            x_value = to_label(raw_x)
        else:
            x_value = to_number(raw_x)
            if x_value is None:
                continue
        data.append({x_axis: x_value, y_axis: y_value})
        if len(data) >= limit:
            break
    return data


@track_performance("materialize_chart")
def materialize(
    table: TypedTable,
    chart_type: str,
    x_axis: Optional[str] = None,
    y_axis: Optional[str] = None,
    data_key: Optional[str] = None,
    policy: ColumnPolicy = DEFAULT_POLICY
) -> Optional[ChartPayload]:
    """
    Build the payload for one chart.

    Omitted axes are filled from the same fallback chains the recommender
    uses. Returns None for an unknown chart type, an axis that is not a
    column of the table, an axis that cannot be resolved, or an empty result.
    """
    if chart_type not in CHART_TYPES:
        return None
    # Pie payloads always key their slices by 'value'
    axes = (x_axis, y_axis) if chart_type == 'pie' else (x_axis, y_axis, data_key)
    for axis in axes:
        if axis is not None and axis not in table.columns:
            logger.debug(f"Cannot materialize {chart_type}: unknown column")
            return None

    if chart_type == 'bar':
        x_axis = x_axis or default_category_axis(table, policy)
        y_axis = y_axis or default_value_axis(table, policy=policy)
        if not x_axis or not y_axis:
            return None
        data = _bar_rows(table, x_axis, y_axis)
        title = f"{y_axis} by {x_axis}"

    elif chart_type == 'pie':
        x_axis = x_axis or default_category_axis(table, policy)
        if not x_axis:
            return None
        data = _pie_rows(table, x_axis)
        data_key = 'value'
        title = f"Distribution of {x_axis}"

    else:
        x_axis = x_axis or default_value_axis(table, exclude=y_axis, policy=policy)
        y_axis = y_axis or default_value_axis(table, exclude=x_axis, policy=policy)
        if not x_axis or not y_axis:
            return None
        data = _pair_rows(table, chart_type, x_axis, y_axis)
        if chart_type == 'scatter':
            title = f"{y_axis} vs {x_axis}"
        else:
            title = f"{y_axis} over {x_axis}"

    if not data:
        return None

    return ChartPayload(
        id=chart_id(chart_type, x_axis, y_axis),
        type=chart_type,
        title=title,
        x_axis=x_axis,
        y_axis=y_axis,
        data_key=data_key,
        data=data,
    )
