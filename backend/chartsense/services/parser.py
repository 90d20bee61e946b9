import json
import asyncio
import logging
import pandas as pd
from fastapi import HTTPException
from io import BytesIO
from pathlib import Path
from typing import Optional
from openpyxl import load_workbook
from chartsense.core.config import get_settings
from chartsense.core.sanitization import sanitize_filename, validate_column_name
from chartsense.core.performance import track_performance
from chartsense.core.schemas import TypedTable
from chartsense.services.normalizer import normalize_dataframe, normalize_records
from chartsense.services.pdf_parser import PDFExtractionError, extract_pdf_table

logger = logging.getLogger(__name__)

# Extension -> file type reported on the analysis
ALLOWED_EXTENSIONS = {
    '.csv': 'csv',
    '.xlsx': 'xlsx',
    '.xls': 'xlsx',
    '.json': 'json',
    '.pdf': 'pdf',
}

MIME_TYPE_MAP = {
    'text/csv': '.csv',
    'application/vnd.ms-excel': '.xls',
    'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet': '.xlsx',
    'application/json': '.json',
    'application/pdf': '.pdf',
}

DANGEROUS_MIME_TYPES = (
    'application/x-executable',
    'application/x-sharedlib',
    'application/x-msdownload',
    'text/html',
    'application/javascript',
)


def validate_file_extension(filename: str) -> str:
    """
    Validate and return the lowercased file extension.

    Raises:
        HTTPException: 400 for a missing or unsupported extension
    """
    if not filename:
        raise HTTPException(status_code=400, detail="Filename is required")

    file_ext = Path(filename).suffix.lower()

    if not file_ext:
        raise HTTPException(
            status_code=400,
            detail="File must have an extension. Supported formats: CSV, XLSX, XLS, JSON, PDF"
        )

    if file_ext not in ALLOWED_EXTENSIONS:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file format: {file_ext}. Allowed formats: {', '.join(ALLOWED_EXTENSIONS)}"
        )

    return file_ext


def validate_mime_type(content_type: Optional[str], file_ext: str) -> None:
    """
    Reject MIME types that can never hold a table.

    A MIME type that merely disagrees with the extension is logged, since
    browsers and OSes often send the wrong one.
    """
    if not content_type:
        return

    expected_ext = MIME_TYPE_MAP.get(content_type.lower())
    if expected_ext and expected_ext != file_ext:
        logger.warning(f"MIME type {content_type} doesn't match extension {file_ext}")

    if content_type.lower() in DANGEROUS_MIME_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"File type '{content_type}' is not allowed. Only CSV, Excel, JSON and PDF files are supported."
        )


def file_type_for(filename: str) -> str:
    return ALLOWED_EXTENSIONS[validate_file_extension(filename)]


def find_header_row(df: pd.DataFrame, max_scan_rows: int = 10) -> int:
    """
    Pick the row that looks most like column headers.

    Header rows are mostly non-numeric, mostly unique text. Metadata rows
    above a table ("Quarterly report", blank lines) score lower.

    Returns:
        Row index to use as header (0 = first row)
    """
    if len(df) < 2:
        return 0

    best_header_row = 0
    best_score = 0.0

    for row_idx in range(min(max_scan_rows, len(df))):
        row = df.iloc[row_idx]
        non_null_count = int(row.notna().sum())
        if non_null_count == 0:
            continue

        string_count = sum(1 for v in row if isinstance(v, str) and v.strip())
        unique_count = len(set(str(v).strip().lower() for v in row if pd.notna(v)))
        numeric_count = sum(1 for v in row if isinstance(v, (int, float)) and not pd.isna(v))

        # Sparse rows are usually titles, so weigh by how much of the row is filled
        coverage = non_null_count / len(row)
        score = (
            (string_count / non_null_count) * 0.4
            + (unique_count / non_null_count) * 0.3
            + (1 - numeric_count / non_null_count) * 0.1
            + coverage * 0.2
        )
        if row_idx == 0:
            score += 0.05

        if score > best_score:
            best_score = score
            best_header_row = row_idx

    return best_header_row


def apply_header_row(raw: pd.DataFrame) -> pd.DataFrame:
    """Use the detected header row as column names and drop everything above it."""
    raw = raw.dropna(how='all', axis=0).reset_index(drop=True)
    if raw.empty:
        return raw
    header_row = find_header_row(raw)
    if header_row > 0:
        logger.info(f"Auto-detected header at row {header_row}, skipping {header_row} metadata rows")
    df = raw.iloc[header_row + 1:].reset_index(drop=True)
    df.columns = list(raw.iloc[header_row])
    return df


def unmerge_excel_cells(contents: bytes) -> Optional[pd.DataFrame]:
    """
    Read the largest worksheet with openpyxl, filling merged ranges.

    Every cell of a merged range takes the top-left value. Returns a
    header-less grid, or None when openpyxl cannot read the workbook.
    """
    try:
        wb = load_workbook(BytesIO(contents), data_only=True)
    except Exception as e:
        logger.warning(f"openpyxl parsing failed, falling back to pandas: {e}")
        return None

    ws = max((wb[name] for name in wb.sheetnames), key=lambda sheet: sheet.max_row, default=wb.active)

    merged_ranges = list(ws.merged_cells.ranges)
    for merged_range in merged_ranges:
        top_left_value = ws.cell(merged_range.min_row, merged_range.min_col).value
        ws.unmerge_cells(str(merged_range))
        for row in range(merged_range.min_row, merged_range.max_row + 1):
            for col in range(merged_range.min_col, merged_range.max_col + 1):
                ws.cell(row, col, top_left_value)

    if merged_ranges:
        logger.info(f"Unmerged {len(merged_ranges)} cell ranges in sheet '{ws.title}'")

    return pd.DataFrame(list(ws.values))


def _read_excel_with_pandas(contents: bytes) -> pd.DataFrame:
    excel_file = pd.ExcelFile(BytesIO(contents))
    sheets = {name: pd.read_excel(excel_file, sheet_name=name, header=None) for name in excel_file.sheet_names}
    largest = max(sheets, key=lambda name: len(sheets[name]))
    if len(sheets) > 1:
        logger.info(f"Multi-sheet Excel file detected. Selected '{largest}' from {len(sheets)} sheets")
    return sheets[largest]


def decode_csv(contents: bytes, sample_size: int) -> TypedTable:
    encoding = 'utf-8'
    try:
        raw = pd.read_csv(BytesIO(contents), header=None)
    except UnicodeDecodeError:
        encoding = 'latin1'
        raw = pd.read_csv(BytesIO(contents), header=None, encoding=encoding)

    header_row = find_header_row(raw)
    if header_row > 0:
        logger.info(f"Auto-detected header at row {header_row}, skipping {header_row} metadata rows")

    # Re-read so pandas types the data rows without the header text mixed in
    df = pd.read_csv(BytesIO(contents), header=header_row, encoding=encoding)
    return normalize_dataframe(df, sample_size)


def decode_excel(contents: bytes, file_ext: str, sample_size: int) -> TypedTable:
    raw = unmerge_excel_cells(contents) if file_ext == '.xlsx' else None
    if raw is None:
        raw = _read_excel_with_pandas(contents)
    return normalize_dataframe(apply_header_row(raw), sample_size)


def decode_json(contents: bytes, sample_size: int) -> TypedTable:
    """Accept an array of objects or one object."""
    data = json.loads(contents.decode('utf-8-sig'))
    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
        raise HTTPException(status_code=400, detail="JSON must be an object or an array of objects")
    if not data:
        raise HTTPException(status_code=400, detail="JSON file contains no data")
    return normalize_records(data, sample_size)


@track_performance("parse_file")
async def parse_file(contents: bytes, filename: str, content_type: Optional[str] = None) -> TypedTable:
    """
    Decode an uploaded file into a TypedTable.

    Validates extension and MIME type first. PDF decoding runs in a worker
    thread since pdfplumber is blocking.

    Raises:
        HTTPException: 400 with a readable detail on any decoding failure
    """
    file_ext = validate_file_extension(filename)
    validate_mime_type(content_type, file_ext)

    if len(contents) == 0:
        raise HTTPException(status_code=400, detail="File is empty")

    sample_size = get_settings().type_sample_size
    safe_filename = sanitize_filename(filename)

    try:
        if file_ext == '.csv':
            table = decode_csv(contents, sample_size)
        elif file_ext in ('.xlsx', '.xls'):
            table = decode_excel(contents, file_ext, sample_size)
        elif file_ext == '.json':
            table = decode_json(contents, sample_size)
        else:
            table = await asyncio.to_thread(extract_pdf_table, contents, sample_size)
    except HTTPException:
        raise
    except PDFExtractionError as e:
        raise HTTPException(status_code=400, detail=f"Unable to read a table from this PDF: {e}")
    except (ValueError, UnicodeDecodeError) as e:
        logger.error(f"Error parsing {file_ext} file {safe_filename}: {e}")
        raise HTTPException(
            status_code=400,
            detail=f"Unable to parse {file_ext.lstrip('.').upper()} file. Please ensure the file is properly formatted."
        )
    except Exception as e:
        logger.error(f"Unexpected error parsing file {safe_filename}: {e}", exc_info=True)
        raise HTTPException(
            status_code=400,
            detail="An error occurred while parsing the file. Please check the file format and try again."
        )

    if not table.rows or not table.columns:
        raise HTTPException(status_code=400, detail="File appears to be empty or contains no data")

    logger.info(f"Successfully parsed file: {safe_filename}, shape: ({len(table.rows)}, {len(table.columns)})")
    return table


def validate_file_content(table: TypedTable) -> None:
    """
    Enforce row, column and cell size limits on a decoded table.

    Raises:
        HTTPException: 400 if any limit is exceeded or a column name is unsafe
    """
    settings = get_settings()

    if len(table.rows) > settings.max_file_rows:
        raise HTTPException(
            status_code=400,
            detail=f"File contains too many rows ({len(table.rows):,}). Maximum allowed: {settings.max_file_rows:,} rows."
        )

    if len(table.columns) > settings.max_file_columns:
        raise HTTPException(
            status_code=400,
            detail=f"File contains too many columns ({len(table.columns)}). Maximum allowed: {settings.max_file_columns} columns."
        )

    for col in table.columns:
        if not validate_column_name(col):
            raise HTTPException(
                status_code=400,
                detail=f"Invalid column name: '{col}'. Column names must not contain path traversal or control characters."
            )

    for col in table.columns:
        if table.column_types[col] != 'string':
            continue
        longest = max((len(v) for v in (row.get(col) for row in table.rows) if isinstance(v, str)), default=0)
        if longest > settings.max_cell_size_bytes:
            raise HTTPException(
                status_code=400,
                detail=f"File contains extremely large text values in column '{col}'. Maximum allowed: {settings.max_cell_size_bytes} bytes per cell."
            )
