"""
Descriptive statistics for a table.

Produces per-column summaries, pairwise Pearson correlations between
numeric columns and a short list of plain-language findings. Runs on the
Typed Table independently of the recommender; the narrative insight
generator and the metrics endpoint consume the result.
"""
import logging
import math
from collections import Counter
from typing import Dict, List, Optional
import numpy as np
import pandas as pd
from chartsense.core.schemas import ColumnMetrics, ExtractedMetrics, TopValue, TypedTable
from chartsense.core.performance import track_performance
from chartsense.services.features import data_completeness
from chartsense.services.semantics import to_label
from chartsense.services.type_inference import is_missing, to_number

logger = logging.getLogger(__name__)

TOP_VALUES_LIMIT = 10

LOW_COMPLETENESS = 0.8
HIGH_NULL_PERCENTAGE = 20
HIGH_VARIATION = 1
STRONG_CORRELATION = 0.7


def pearson(x: List[float], y: List[float]) -> float:
    """
    Pearson correlation rounded to 3 places.

    Returns 0 for mismatched or empty inputs and for constant series.
    """
    if len(x) != len(y) or not x:
        return 0.0
    r = pd.Series(x, dtype=float).corr(pd.Series(y, dtype=float))
    if not math.isfinite(r):
        return 0.0
    return round(float(r), 3)


def summarize_column(table: TypedTable, column: str) -> ColumnMetrics:
    """Null, distinct and type-specific statistics for one column."""
    column_type = table.column_types[column]
    values = [row.get(column) for row in table.rows]
    present = [v for v in values if not is_missing(v)]
    null_count = len(values) - len(present)
    null_percentage = (null_count / len(values) * 100) if values else 0.0

    metrics = ColumnMetrics(
        type=column_type,
        null_count=null_count,
        null_percentage=round(null_percentage, 2),
        unique_count=len({to_label(v) for v in present}),
    )

    if column_type == 'number':
        numbers = [n for n in (to_number(v) for v in present) if n is not None]
        if numbers:
            array = np.asarray(numbers, dtype=float)
            metrics.min = float(array.min())
            metrics.max = float(array.max())
            metrics.mean = round(float(array.mean()), 2)
            metrics.median = round(float(np.median(array)), 2)
            # Population standard deviation
            metrics.std_dev = round(float(array.std()), 2)
            metrics.sum = round(float(array.sum()), 2)

    if column_type == 'string' and present:
        counts = Counter(to_label(v) for v in present)
        ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
        metrics.top_values = [
            TopValue(value=value, count=count, percentage=round(count / len(present) * 100, 2))
            for value, count in ranked[:TOP_VALUES_LIMIT]
        ]

    return metrics


def correlation_matrix(table: TypedTable) -> Dict[str, Dict[str, float]]:
    """Symmetric map of Pearson correlations over rows where both values are numeric."""
    numeric_columns = table.columns_of_type('number')
    correlations: Dict[str, Dict[str, float]] = {}

    for i, first in enumerate(numeric_columns):
        for second in numeric_columns[i + 1:]:
            xs, ys = [], []
            for row in table.rows:
                x = to_number(row.get(first))
                y = to_number(row.get(second))
                if x is not None and y is not None:
                    xs.append(x)
                    ys.append(y)
            if len(xs) > 1:
                value = pearson(xs, ys)
                correlations.setdefault(first, {})[second] = value
                correlations.setdefault(second, {})[first] = value

    return correlations


def key_insights(
    table: TypedTable,
    completeness: float,
    column_metrics: Dict[str, ColumnMetrics],
    correlations: Dict[str, Dict[str, float]]
) -> List[str]:
    insights = []

    if completeness < LOW_COMPLETENESS:
        insights.append(f"Data completeness is {completeness * 100:.1f}% - consider data cleaning")

    for column, metrics in column_metrics.items():
        if metrics.null_percentage > HIGH_NULL_PERCENTAGE:
            insights.append(f"{column} has {metrics.null_percentage:.1f}% missing values")

        if metrics.type == 'number' and metrics.std_dev is not None and metrics.mean:
            variation = metrics.std_dev / metrics.mean
            if variation > HIGH_VARIATION:
                insights.append(f"{column} shows high variability (CV: {variation:.2f})")

        if metrics.type == 'string' and metrics.unique_count == len(table.rows):
            insights.append(f"{column} appears to be a unique identifier")

    for first, partners in correlations.items():
        for second, value in partners.items():
            # Each pair is reported once
            if abs(value) > STRONG_CORRELATION and first < second:
                direction = 'positive' if value > 0 else 'negative'
                insights.append(
                    f"Strong {direction} correlation ({value:.2f}) between {first} and {second}"
                )

    return insights


@track_performance("extract_metrics")
def extract_metrics(table: TypedTable) -> ExtractedMetrics:
    """Build the full statistics bundle for a table."""
    completeness = data_completeness(table)
    column_metrics = {col: summarize_column(table, col) for col in table.columns}
    correlations = correlation_matrix(table)

    metrics = ExtractedMetrics(
        row_count=len(table.rows),
        column_count=len(table.columns),
        data_completeness=round(completeness * 100, 2),
        column_metrics=column_metrics,
        correlations=correlations or None,
        key_insights=key_insights(table, completeness, column_metrics, correlations),
    )
    logger.debug(f"Extracted metrics with {len(metrics.key_insights)} key insights")
    return metrics


def numeric_summary(metrics: ExtractedMetrics) -> Dict[str, Dict[str, Optional[float]]]:
    """Mean/min/max per numeric column, the shape the insight prompts use."""
    return {
        column: {'mean': m.mean, 'min': m.min, 'max': m.max}
        for column, m in metrics.column_metrics.items()
        if m.type == 'number'
    }
