"""
Chart feedback log.

Each rating a user gives a chart is appended as one JSON line together
with the dataset features it was made on. The log is only ever read back
for the stats endpoint and for export; recommendations never depend on it.
"""
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import List, Optional, Union
from pydantic import ValidationError
from chartsense.core.config import get_settings
from chartsense.core.schemas import (
    CHART_TYPES,
    FeatureVector,
    FeedbackSample,
    FeedbackSummary,
    TrainingMatrix,
)

logger = logging.getLogger(__name__)

DEFAULT_RATING = 3
PATTERN_SHARE = 0.3

# Feature order of exported training vectors
FEATURE_ORDER = (
    'num_numeric_columns',
    'num_string_columns',
    'num_date_columns',
    'num_boolean_columns',
    'total_columns',
    'total_rows',
    'has_time_series',
    'has_categorical_data',
    'has_multiple_metrics',
    'data_completeness',
    'unique_value_ratio',
    'value_range',
    'value_variance',
    'has_date_keywords',
    'has_time_keywords',
    'has_category_keywords',
    'has_metric_keywords',
)


def build_sample(
    features: FeatureVector,
    recommended_chart: str,
    user_selected_chart: Optional[str] = None,
    rating: Optional[int] = None
) -> FeedbackSample:
    """A missing selection means the user kept the recommended chart."""
    return FeedbackSample(
        features=features,
        recommended_chart=recommended_chart,
        user_selected_chart=user_selected_chart or recommended_chart,
        user_rating=rating or DEFAULT_RATING,
        timestamp=datetime.now(timezone.utc),
    )


class FeedbackSink:
    """Append-only JSON-lines store of feedback samples."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = Lock()

    def record(self, sample: FeedbackSample) -> None:
        line = sample.model_dump_json(by_alias=True)
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open('a', encoding='utf-8') as handle:
                handle.write(line + "\n")
        logger.info(
            f"Feedback recorded: recommended {sample.recommended_chart}, "
            f"selected {sample.user_selected_chart}, rating {sample.user_rating}"
        )

    def load(self) -> List[FeedbackSample]:
        """All readable samples; malformed lines are skipped with a warning."""
        if not self.path.exists():
            return []

        samples = []
        with self.path.open('r', encoding='utf-8') as handle:
            for line_number, line in enumerate(handle, start=1):
                if not line.strip():
                    continue
                try:
                    samples.append(FeedbackSample.model_validate_json(line))
                except ValidationError as e:
                    logger.warning(f"Skipping malformed feedback line {line_number}: {e.error_count()} errors")
        return samples

    def summarize(self) -> FeedbackSummary:
        """Totals, average rating, per-type acceptance and recurring preferences."""
        samples = self.load()
        if not samples:
            return FeedbackSummary(total_samples=0, average_rating=0.0, chart_type_accuracy={}, common_patterns=[])

        total = len(samples)
        average_rating = round(sum(s.user_rating for s in samples) / total, 2)

        accuracy = {}
        for chart_type in CHART_TYPES:
            recommended = [s for s in samples if s.recommended_chart == chart_type]
            accepted = sum(1 for s in recommended if s.user_selected_chart == chart_type)
            accuracy[chart_type] = accepted / len(recommended) if recommended else 0.0

        patterns = []
        bar_on_categories = sum(
            1 for s in samples if s.user_selected_chart == 'bar' and s.features.has_categorical_data
        )
        if bar_on_categories > total * PATTERN_SHARE:
            patterns.append("Users prefer bar charts for categorical data with metrics")

        line_on_time = sum(
            1 for s in samples if s.user_selected_chart == 'line' and s.features.has_time_series
        )
        if line_on_time > total * PATTERN_SHARE:
            patterns.append("Users prefer line charts for time series data")

        return FeedbackSummary(
            total_samples=total,
            average_rating=average_rating,
            chart_type_accuracy=accuracy,
            common_patterns=patterns,
        )

    def export_training_matrix(self) -> TrainingMatrix:
        """Flatten samples into numeric vectors labelled with the chart the user chose."""
        features = []
        labels = []
        for sample in self.load():
            features.append([float(getattr(sample.features, name)) for name in FEATURE_ORDER])
            labels.append(sample.user_selected_chart)
        return TrainingMatrix(features=features, labels=labels)


_sink: Optional[FeedbackSink] = None


def get_feedback_sink() -> FeedbackSink:
    global _sink
    if _sink is None:
        _sink = FeedbackSink(get_settings().feedback_log_path)
    return _sink


def reset_feedback_sink():
    """Forget the cached sink (for testing)."""
    global _sink
    _sink = None
