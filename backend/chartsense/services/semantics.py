"""
Column semantics heuristics.

Name patterns decide whether a column holds row identifiers, decoder
placeholder headers, time-like values or metrics. Distribution checks decide
whether a string column makes a readable bar or pie category. The patterns
live in a ``ColumnPolicy`` so they can be tuned and tested on their own.
"""
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Pattern, Sequence, Tuple

IDENTIFIER_PATTERNS = (
    r'^sl_?no$',
    r'^id$',
    r'_id$',
    r'^serial_?no',
    r'^index$',
)

# Headers produced by decoders when a file has no real header
PLACEHOLDER_PATTERNS = (
    r'^empty\d+$',
    r'^column\d+$',
)

TEMPORAL_NAME_PATTERN = r'date|time|year|month|day|week|quarter'

BAR_MAX_CATEGORIES = 20
PIE_MAX_CATEGORIES = 10
MAX_CATEGORY_ROW_SHARE = 0.7


def _compile(patterns: Iterable[str]) -> Tuple[Pattern, ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


@dataclass(frozen=True)
class ColumnPolicy:
    identifier_patterns: Tuple[Pattern, ...] = field(default_factory=lambda: _compile(IDENTIFIER_PATTERNS))
    placeholder_patterns: Tuple[Pattern, ...] = field(default_factory=lambda: _compile(PLACEHOLDER_PATTERNS))
    temporal_name_pattern: Pattern = field(default_factory=lambda: re.compile(TEMPORAL_NAME_PATTERN, re.IGNORECASE))

    def is_identifier(self, name: str) -> bool:
        return any(p.search(name) for p in self.identifier_patterns)

    def is_placeholder(self, name: str) -> bool:
        return any(p.search(name) for p in self.placeholder_patterns)

    def is_good_metric(self, name: str) -> bool:
        return not self.is_identifier(name) and not self.is_placeholder(name)

    def looks_temporal(self, name: str) -> bool:
        return bool(self.temporal_name_pattern.search(name))


DEFAULT_POLICY = ColumnPolicy()


def is_identifier_column(name: str, policy: ColumnPolicy = DEFAULT_POLICY) -> bool:
    """True for row counters such as ``id``, ``customer_id`` or ``sl_no``."""
    return policy.is_identifier(name)


def is_placeholder_name(name: str, policy: ColumnPolicy = DEFAULT_POLICY) -> bool:
    return policy.is_placeholder(name)


def is_good_metric(name: str, policy: ColumnPolicy = DEFAULT_POLICY) -> bool:
    return policy.is_good_metric(name)


def looks_temporal(name: str, policy: ColumnPolicy = DEFAULT_POLICY) -> bool:
    return policy.looks_temporal(name)


def to_label(value: Any) -> str:
    """Render a cell as the text a chart axis would show."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def distinct_count(rows: Sequence[Dict[str, Any]], column: str) -> int:
    """Distinct rendered values; nulls and empty strings count as one value."""
    return len({to_label(row.get(column)) for row in rows})


def is_good_categorical(
    column: str,
    rows: Sequence[Dict[str, Any]],
    max_unique: int = BAR_MAX_CATEGORIES,
    max_row_share: Optional[float] = MAX_CATEGORY_ROW_SHARE
) -> bool:
    """
    A column is a readable category when it has between 2 and ``max_unique``
    distinct values and, unless ``max_row_share`` is None, fewer distinct
    values than that share of the rows.
    """
    unique = distinct_count(rows, column)
    if not 2 <= unique <= max_unique:
        return False
    return max_row_share is None or unique < len(rows) * max_row_share


Predicate = Callable[[str], bool]


def first_match(candidates: Sequence[str], predicates: Sequence[Predicate]) -> Optional[str]:
    """
    Walk ``predicates`` in order and return the first candidate accepted by
    the earliest predicate that accepts any.
    """
    for predicate in predicates:
        for candidate in candidates:
            if predicate(candidate):
                return candidate
    return None


def anything(_: str) -> bool:
    return True


def excluding(*names: Optional[str]) -> Predicate:
    blocked = {n for n in names if n is not None}
    return lambda col: col not in blocked


def all_of(*predicates: Predicate) -> Predicate:
    return lambda col: all(p(col) for p in predicates)


def good_columns(columns: Sequence[str], policy: ColumnPolicy = DEFAULT_POLICY) -> List[str]:
    """Columns that are not identifiers."""
    return [col for col in columns if not policy.is_identifier(col)]
