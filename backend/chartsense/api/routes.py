import uuid
import logging
from datetime import datetime, timezone
from fastapi import APIRouter, UploadFile, File, HTTPException, Request
from chartsense.core.rate_limit import limiter, upload_rate_limit
from chartsense.services.parser import parse_file, validate_file_content, file_type_for
from chartsense.services.features import extract_features
from chartsense.services.recommender import recommend, generate_all_candidate_types
from chartsense.services.metrics import extract_metrics
from chartsense.services.ai_insights import analyze_data_with_ai
from chartsense.services.feedback import get_feedback_sink
from chartsense.core.schemas import AnalysisResult, DataFile, FeedbackSummary
from chartsense.core.errors import ErrorCodes, api_error
from chartsense.core.config import get_settings
from chartsense.core.sanitization import sanitize_filename, sanitize_for_logging
from chartsense.core.cache import get_table_cache, generate_table_cache_key
from chartsense.core.storage import get_storage

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check():
    return {"status": "ok"}


async def _read_upload(file: UploadFile, request: Request) -> bytes:
    """
    Read the upload in chunks, stopping as soon as it passes the size limit.
    """
    settings = get_settings()
    chunk_size = 1024 * 1024
    chunks = []
    file_size = 0

    await file.seek(0)
    while True:
        chunk = await file.read(chunk_size)
        if not chunk:
            break
        file_size += len(chunk)
        if file_size > settings.max_file_size_bytes:
            raise api_error(
                request, 413, ErrorCodes.FILE_TOO_LARGE,
                f"Maximum size is {settings.max_file_size_mb}MB."
            )
        chunks.append(chunk)

    if file_size == 0:
        raise api_error(request, 400, ErrorCodes.FILE_EMPTY)
    return b"".join(chunks)


async def _process_upload(file: UploadFile, request: Request, skip_ai: bool = False) -> dict:
    """Decode, analyze and store one upload (internal function without rate limiting)."""
    settings = get_settings()
    filename = file.filename or ''
    safe_filename = sanitize_filename(filename) if filename else 'unknown'

    try:
        file_type = file_type_for(filename)
    except HTTPException as e:
        raise api_error(request, 400, ErrorCodes.INVALID_FILE_TYPE, e.detail)

    contents = await _read_upload(file, request)
    logger.info(
        f"Processing file: {sanitize_for_logging(safe_filename)}, size: {len(contents) / 1024:.2f}KB"
    )

    # 1. Decode (with caching)
    cache_key = generate_table_cache_key(contents, safe_filename)
    table_cache = get_table_cache()
    table = table_cache.get(cache_key)
    if table is not None:
        logger.info(f"Using cached table: {sanitize_for_logging(safe_filename)}")
    else:
        try:
            table = await parse_file(contents, filename, file.content_type)
            validate_file_content(table)
        except HTTPException as e:
            raise api_error(request, 400, ErrorCodes.PARSE_ERROR, str(e.detail))
        table_cache.set(cache_key, table)

    # 2. Recommend and build the dashboard
    features = extract_features(table)
    recommendations = recommend(table, features)
    visualizations = generate_all_candidate_types(table)

    # 3. Metrics and narrative insights
    metrics = extract_metrics(table)
    ai_insights = await analyze_data_with_ai(table, metrics, safe_filename, skip_ai=skip_ai)

    analysis_id = str(uuid.uuid4())
    result = AnalysisResult(
        file=DataFile(
            id=analysis_id,
            filename=safe_filename,
            file_type=file_type,
            uploaded_at=datetime.now(timezone.utc),
            row_count=len(table.rows),
            column_count=len(table.columns),
        ),
        parsed_data=table,
        visualizations=visualizations,
        recommendations=recommendations,
        ai_insights=ai_insights,
        metrics=metrics,
    )

    stored = get_storage().set(
        analysis_id,
        result.model_dump(mode="json", by_alias=True),
        settings.analysis_ttl_seconds
    )
    if not stored:
        raise api_error(request, 500, ErrorCodes.PROCESSING_ERROR, "The analysis could not be saved.")

    logger.info(
        f"Successfully processed file: {sanitize_for_logging(safe_filename)}, "
        f"{len(visualizations)} charts, {len(recommendations)} recommendations"
    )
    return {"id": analysis_id}


@router.post("/upload")
@limiter.limit(upload_rate_limit)
async def upload_file(
    request: Request,
    file: UploadFile = File(...),
    skip_ai: bool = False
):
    """
    Upload a CSV, Excel, JSON or PDF file and analyze it.

    Args:
        file: File to analyze
        skip_ai: If True, use the deterministic insight bundle instead of calling an AI provider

    Returns the id of the stored analysis. Rate limited per IP address (configurable).
    """
    try:
        return await _process_upload(file, request, skip_ai=skip_ai)
    except HTTPException:
        raise
    except Exception as e:
        safe_filename = sanitize_for_logging(sanitize_filename(file.filename) if file.filename else 'unknown')
        logger.error(f"Unexpected error processing file {safe_filename}: {e}", exc_info=True)
        raise api_error(request, 500, ErrorCodes.UNKNOWN_ERROR)


@router.get("/ml/stats", response_model=FeedbackSummary)
async def feedback_stats():
    """Summary of chart feedback collected so far."""
    return get_feedback_sink().summarize()
