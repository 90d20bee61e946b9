"""
Metrics endpoint for performance monitoring.
"""
from fastapi import APIRouter
from chartsense.core.performance import PerformanceMonitor
from chartsense.core.cache import get_table_cache

router = APIRouter()


@router.get("/metrics")
async def get_metrics():
    """
    Timing statistics for every tracked operation, plus table cache statistics.
    """
    return {
        'performance': PerformanceMonitor.get_all_metrics(),
        'cache': {
            'table_cache': get_table_cache().get_stats(),
        }
    }
