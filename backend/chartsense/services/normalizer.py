"""
Tabular normalization.

Every decoder hands its output to this module, which produces the one
canonical TypedTable: clean unique headers, row records holding only
None/bool/int/float/str, and an inferred type per column. The table is
validated once here and treated as read-only everywhere else.
"""
import json
import logging
import math
import re
from datetime import date, datetime, time
from typing import Any, Dict, Iterable, List
import numpy as np
import pandas as pd
from chartsense.core.schemas import CellValue, TypedTable
from chartsense.services.semantics import PLACEHOLDER_PATTERNS, to_label
from chartsense.services.type_inference import DEFAULT_SAMPLE_SIZE, infer_types, is_missing

logger = logging.getLogger(__name__)

# Header cells that carry no name: decoder placeholders, pandas "Unnamed: 3"
# and bare spreadsheet references such as "B2"
_NAMELESS_HEADERS = [re.compile(p, re.IGNORECASE) for p in PLACEHOLDER_PATTERNS] + [
    re.compile(r'^unnamed:\s*\d+$', re.IGNORECASE),
    re.compile(r'^[A-Z]\d+$'),
]

HEADER_SCAN_ROWS = 10
HEADER_HINT_MAX_LENGTH = 50
HEADER_HINT_PREFIX = 20


def to_cell(value: Any) -> CellValue:
    """Convert a decoded value to the closed set of cell types."""
    if value is None:
        return None
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if isinstance(value, (int, np.integer)):
        return int(value)
    if isinstance(value, (float, np.floating)):
        number = float(value)
        return number if math.isfinite(number) else None
    if isinstance(value, str):
        return value
    if value is pd.NaT:
        return None
    if isinstance(value, (pd.Timestamp, datetime)):
        if value.time() == time(0, 0):
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, (date, time)):
        return value.isoformat()
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    return str(value)


def clean_header(value: Any) -> str:
    """Collapse whitespace and newlines in a header cell."""
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    return ' '.join(str(value).split())


def is_nameless(header: str) -> bool:
    return not header or any(p.search(header) for p in _NAMELESS_HEADERS)


def name_column(header: str, index: int, values: Iterable[Any]) -> str:
    """
    Give a nameless header a readable name.

    The first short value of the column is used as a hint, so a blank
    header above "North" becomes ``Column_2_North``.
    """
    if not is_nameless(header):
        return header
    for value in values:
        if is_missing(value):
            continue
        hint = to_label(value).strip()
        if 0 < len(hint) < HEADER_HINT_MAX_LENGTH:
            return f"Column_{index + 1}_{hint[:HEADER_HINT_PREFIX]}"
        break
    return f"Column_{index + 1}"


def dedupe_headers(headers: List[str]) -> List[str]:
    """Suffix repeated names with _2, _3, ... in order of appearance."""
    seen: Dict[str, int] = {}
    result = []
    for header in headers:
        name = header
        while name in seen:
            seen[header] += 1
            name = f"{header}_{seen[header]}"
        seen.setdefault(name, 1)
        result.append(name)
    return result


def build_table(
    columns: List[str],
    rows: List[Dict[str, Any]],
    sample_size: int = DEFAULT_SAMPLE_SIZE
) -> TypedTable:
    """Fill missing keys, drop blank rows and infer column types."""
    records = []
    for row in rows:
        record = {col: to_cell(row.get(col)) for col in columns}
        if any(not is_missing(v) for v in record.values()):
            records.append(record)

    column_types = infer_types(records, columns, sample_size)
    return TypedTable(columns=columns, rows=records, column_types=column_types)


def normalize_dataframe(df: pd.DataFrame, sample_size: int = DEFAULT_SAMPLE_SIZE) -> TypedTable:
    """Build a TypedTable from a decoded DataFrame."""
    df = df.dropna(how='all', axis=0).dropna(how='all', axis=1)

    raw_columns = list(df.columns)
    head = df.head(HEADER_SCAN_ROWS)
    headers = [
        name_column(clean_header(col), i, [to_cell(v) for v in head.iloc[:, i]])
        for i, col in enumerate(raw_columns)
    ]
    columns = dedupe_headers(headers)

    renamed = [(raw, new) for raw, new in zip(raw_columns, columns) if clean_header(raw) != new]
    if renamed:
        logger.info(f"Renamed {len(renamed)} columns without usable headers")

    rows = [
        dict(zip(columns, values))
        for values in df.itertuples(index=False, name=None)
    ]
    return build_table(columns, rows, sample_size)


def normalize_records(records: List[Dict[str, Any]], sample_size: int = DEFAULT_SAMPLE_SIZE) -> TypedTable:
    """
    Build a TypedTable from a list of JSON objects.

    Columns are the union of keys in first-seen order.
    """
    keys: List[str] = []
    seen = set()
    for record in records:
        for key in record:
            if key not in seen:
                seen.add(key)
                keys.append(key)

    columns = dedupe_headers([clean_header(k) or f"Column_{i + 1}" for i, k in enumerate(keys)])
    rows = [
        {col: record.get(key) for key, col in zip(keys, columns)}
        for record in records
    ]
    return build_table(columns, rows, sample_size)


def normalize_grid(
    header: List[Any],
    body: List[List[Any]],
    sample_size: int = DEFAULT_SAMPLE_SIZE
) -> TypedTable:
    """Build a TypedTable from a header row and data rows of unequal length."""
    width = max([len(header)] + [len(r) for r in body]) if body else len(header)
    padded = [list(r) + [None] * (width - len(r)) for r in body]
    header = list(header) + [None] * (width - len(header))
    frame = pd.DataFrame(padded, columns=range(width), dtype=object)
    # Blank header cells get a placeholder name that normalize_dataframe renames
    frame.columns = [clean_header(h) or f"column{i + 1}" for i, h in enumerate(header)]
    return normalize_dataframe(frame, sample_size)

