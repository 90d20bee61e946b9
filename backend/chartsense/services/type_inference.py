"""
Column type inference.

Each column is classified as number, string, date or boolean from a sample
of its leading non-empty values. Rules run in strict precedence order and
the first one that matches every sampled value wins.
"""
import logging
import math
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence
import pandas as pd
from chartsense.core.performance import track_performance

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_SIZE = 100

# Shorter strings ("1/2", "3-4") parse as dates far too easily
MIN_DATE_LENGTH = 6

BOOLEAN_LITERALS = ("true", "false")


def is_missing(value: Any) -> bool:
    """A cell is missing when it is None or an empty string."""
    return value is None or value == ""


def is_boolean_literal(value: Any) -> bool:
    return isinstance(value, bool) or value in BOOLEAN_LITERALS


def to_number(value: Any) -> Optional[float]:
    """
    Convert a cell to a finite float, or None when it is not numeric.

    Booleans are not numbers here. Strings are parsed without locale rules,
    so thousands separators and currency symbols are rejected.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None
    if isinstance(value, str):
        text = value.strip()
        if not text or '_' in text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def parse_date(value: Any) -> Optional[datetime]:
    """Parse a string cell as a calendar date, or return None."""
    if not isinstance(value, str):
        return None
    text = value.strip()
    if len(text) < MIN_DATE_LENGTH:
        return None
    try:
        parsed = pd.to_datetime(text, errors='coerce')
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(parsed):
        return None
    return parsed.to_pydatetime()


def infer_column_type(values: Sequence[Any]) -> str:
    """Classify one column from its sampled values."""
    sample = [v for v in values if not is_missing(v)]
    if not sample:
        return 'string'

    if all(is_boolean_literal(v) for v in sample):
        return 'boolean'

    if all(to_number(v) is not None for v in sample):
        return 'number'

    if all(parse_date(v) is not None for v in sample):
        return 'date'

    return 'string'


@track_performance("infer_types")
def infer_types(
    rows: List[Dict[str, Any]],
    columns: List[str],
    sample_size: int = DEFAULT_SAMPLE_SIZE
) -> Dict[str, str]:
    """
    Infer a type for every column from the first ``sample_size`` rows.

    Only the sample has to agree; later rows may hold values of another
    type. All-empty columns resolve to string.
    """
    head = rows[:sample_size]
    types = {col: infer_column_type([row.get(col) for row in head]) for col in columns}
    logger.debug(f"Inferred column types from {len(head)} sampled rows: {types}")
    return types
