"""
PDF table extraction.

pdfplumber finds ruled tables; the largest one wins. When a PDF has no
detectable table, its text lines are split on common delimiters and the
line with the most fields among the first few becomes the header.
"""
import io
import math
import re
import logging
from typing import Any, List, Optional, Tuple, Union
import pdfplumber
from chartsense.core.schemas import TypedTable
from chartsense.services.normalizer import normalize_grid
from chartsense.services.semantics import DEFAULT_POLICY

logger = logging.getLogger(__name__)

# A comma between a digit and three more digits is a thousands separator
FIELD_SPLIT = re.compile(r'(?:[\t|;]|(?<!\d),|,(?!\d{3}(?!\d)))+| {2,}')
EDGE_ARTIFACTS = re.compile(r'^[#\-\s]+|[#\-\s]+$')
SEPARATOR_LINE = re.compile(r'^[-=_\s]+$')
NUMBER_NOISE = re.compile(r'[$,\s]')

HEADER_SCAN_LINES = 15


class PDFExtractionError(ValueError):
    """The PDF holds no table or text that could be read as rows."""


def _to_amount(text: str) -> Optional[Union[int, float]]:
    candidate = NUMBER_NOISE.sub('', text)
    if not candidate:
        return None
    try:
        number = float(candidate)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return int(number) if number.is_integer() and '.' not in candidate else number


def clean_pdf_value(value: Any) -> Any:
    """
    Trim extraction artifacts and turn amounts such as "$1,200" or
    "-1,200.50" into numbers.

    A leading minus belongs to the number; it is only stripped as an
    artifact from text cells. Empty cells become None.
    """
    if value is None:
        return None
    raw = str(value).strip().strip('#').strip()
    amount = _to_amount(raw)
    if amount is not None:
        return amount

    text = EDGE_ARTIFACTS.sub('', raw).strip()
    if not text:
        return None
    amount = _to_amount(text)
    return text if amount is None else amount


def split_fields(line: str) -> List[str]:
    return [field.strip() for field in FIELD_SPLIT.split(line) if field.strip()]


def _clean_header(name: str, index: int) -> str:
    name = EDGE_ARTIFACTS.sub('', name).strip()
    if not name or DEFAULT_POLICY.is_placeholder(name):
        return f"Column_{index + 1}"
    return name


def find_text_header(lines: List[str]) -> Tuple[Optional[int], List[str]]:
    """Index and fields of the widest line (at least two fields) near the top."""
    header_index = None
    headers: List[str] = []
    for i, line in enumerate(lines[:HEADER_SCAN_LINES]):
        fields = split_fields(line)
        if len(fields) >= 2 and len(fields) > len(headers):
            header_index = i
            headers = fields
    return header_index, headers


def parse_text_table(text: str) -> Tuple[List[str], List[List[Any]]]:
    """
    Split extracted text into a header and value rows.

    Raises:
        PDFExtractionError: If no line yields a value
    """
    lines = [line for line in text.splitlines() if line.strip()]
    if not lines:
        raise PDFExtractionError("PDF contains no extractable text")

    header_index, fields = find_text_header(lines)
    if header_index is not None:
        headers = [_clean_header(name, i) for i, name in enumerate(fields)]
        body_lines = lines[header_index + 1:]
    else:
        headers = ['Content']
        body_lines = lines

    rows = []
    for line in body_lines:
        values = split_fields(line)
        if not values:
            continue
        if len(values) == 1 and SEPARATOR_LINE.match(values[0]):
            continue
        row = [clean_pdf_value(values[j]) if j < len(values) else None for j in range(len(headers))]
        if any(v is not None for v in row):
            rows.append(row)

    if not rows:
        raise PDFExtractionError("Could not extract table data from PDF")
    return headers, rows


def _largest_table(pdf) -> Optional[List[List[Any]]]:
    best = None
    best_size = 0
    for page in pdf.pages:
        for table in page.extract_tables() or []:
            if not table or len(table) < 2:
                continue
            size = (len(table) - 1) * max(len(r) for r in table)
            if size > best_size:
                best, best_size = table, size
    return best


def extract_pdf_table(contents: bytes, sample_size: int) -> TypedTable:
    """
    Decode a PDF into a TypedTable.

    Blocking; callers on the event loop should run it in a worker thread.

    Raises:
        PDFExtractionError: If neither a table nor delimited text is found
    """
    with pdfplumber.open(io.BytesIO(contents)) as pdf:
        table = _largest_table(pdf)
        if table is not None:
            logger.info(f"Extracted PDF table with {len(table) - 1} rows")
            header, *body = table
            cleaned = [[clean_pdf_value(v) for v in row] for row in body]
            return normalize_grid([_clean_header(str(h or ''), i) for i, h in enumerate(header)], cleaned, sample_size)

        text = "\n".join(page.extract_text() or '' for page in pdf.pages)

    logger.info("No ruled table in PDF, falling back to text parsing")
    headers, rows = parse_text_table(text)
    return normalize_grid(headers, rows, sample_size)
