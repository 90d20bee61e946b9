"""
Timing metrics for the analysis pipeline.

Every decoder and engine stage is wrapped with ``track_performance`` so
``GET /api/metrics`` can report how long each stage takes.
"""
import inspect
import time
import logging
import threading
from collections import defaultdict
from functools import wraps
from typing import Any, Dict, List, Optional
from chartsense.core.logging import correlation_id_var

logger = logging.getLogger(__name__)

MAX_SAMPLES_PER_METRIC = 1000

_metrics_lock = threading.Lock()
_metrics: Dict[str, List[Dict[str, Any]]] = defaultdict(list)


def _percentile(sorted_values: List[float], fraction: float) -> float:
    index = min(int(len(sorted_values) * fraction), len(sorted_values) - 1)
    return sorted_values[index]


class PerformanceMonitor:
    """Collect and summarize stage durations."""

    @staticmethod
    def record_metric(name: str, value: float, metadata: Optional[Dict[str, Any]] = None):
        """
        Record one sample for a metric.

        Args:
            name: Metric name (e.g. 'parse_file', 'recommend_charts')
            value: Sample value, usually a duration in seconds
            metadata: Optional context such as correlation_id or status
        """
        with _metrics_lock:
            samples = _metrics[name]
            samples.append({
                'value': value,
                'timestamp': time.time(),
                'metadata': metadata or {}
            })
            if len(samples) > MAX_SAMPLES_PER_METRIC:
                del samples[:-MAX_SAMPLES_PER_METRIC]

    @staticmethod
    def get_stats(metric_name: str) -> Optional[Dict[str, float]]:
        """Return count/min/max/mean/percentiles for a metric, or None if unseen."""
        with _metrics_lock:
            samples = _metrics.get(metric_name)
            if not samples:
                return None
            values = sorted(s['value'] for s in samples)

        return {
            'count': len(values),
            'min': values[0],
            'max': values[-1],
            'mean': sum(values) / len(values),
            'p50': _percentile(values, 0.5),
            'p95': _percentile(values, 0.95),
            'p99': _percentile(values, 0.99),
        }

    @staticmethod
    def get_all_metrics() -> Dict[str, Dict[str, float]]:
        with _metrics_lock:
            names = list(_metrics.keys())
        return {name: PerformanceMonitor.get_stats(name) for name in names}

    @staticmethod
    def clear_metrics():
        """Clear all metrics (useful for testing)."""
        with _metrics_lock:
            _metrics.clear()


def _correlation_id(args, kwargs) -> Optional[str]:
    request = kwargs.get('request')
    if request is None and args and hasattr(args[0], 'state'):
        request = args[0]
    if request is not None and hasattr(request, 'state'):
        return getattr(request.state, 'correlation_id', None)
    # Engine functions never see the request; the middleware set the id for this context
    return correlation_id_var.get()


def _finish(metric_name: str, start_time: float, correlation_id: Optional[str], error: Optional[Exception] = None):
    duration = time.perf_counter() - start_time
    if error is None:
        PerformanceMonitor.record_metric(
            metric_name, duration, {'correlation_id': correlation_id, 'status': 'success'}
        )
        logger.debug(
            f"{metric_name} completed in {duration:.3f}s",
            extra={'metric': metric_name, 'duration': duration}
        )
    else:
        PerformanceMonitor.record_metric(
            metric_name, duration,
            {'correlation_id': correlation_id, 'status': 'error', 'error': str(error)}
        )
        logger.error(
            f"{metric_name} failed after {duration:.3f}s: {error}",
            extra={'metric': metric_name, 'duration': duration}
        )


def track_performance(metric_name: str):
    """
    Decorator that records the wall time of sync or async functions.

    Usage:
        @track_performance("extract_features")
        def extract_features(...):
            ...
    """
    def decorator(func):
        if inspect.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                start_time = time.perf_counter()
                correlation_id = _correlation_id(args, kwargs)
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    _finish(metric_name, start_time, correlation_id, e)
                    raise
                _finish(metric_name, start_time, correlation_id)
                return result
            return async_wrapper

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            start_time = time.perf_counter()
            correlation_id = _correlation_id(args, kwargs)
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                _finish(metric_name, start_time, correlation_id, e)
                raise
            _finish(metric_name, start_time, correlation_id)
            return result
        return sync_wrapper

    return decorator
