"""
Endpoints that work on a stored analysis.
"""
import logging
from fastapi import APIRouter, Request
from pydantic import ValidationError
from chartsense.core.schemas import (
    CHART_TYPES,
    AnalysisResult,
    ChartPayload,
    ChartRequest,
    DataChatRequest,
    ExtractedMetrics,
    FeedbackRequest,
)
from chartsense.core.errors import ErrorCodes, api_error
from chartsense.core.sanitization import sanitize_for_logging
from chartsense.core.storage import get_storage
from chartsense.services.features import extract_features
from chartsense.services.materializer import materialize
from chartsense.services.metrics import extract_metrics
from chartsense.services.ai_insights import InsightsUnavailable, answer_data_question
from chartsense.services.feedback import build_sample, get_feedback_sink

logger = logging.getLogger(__name__)

router = APIRouter()


def load_analysis(request: Request, analysis_id: str) -> AnalysisResult:
    stored = get_storage().get(analysis_id)
    if stored is None:
        raise api_error(request, 404, ErrorCodes.ANALYSIS_NOT_FOUND)
    try:
        return AnalysisResult.model_validate(stored)
    except ValidationError as e:
        logger.error(f"Stored analysis {sanitize_for_logging(analysis_id)} is unreadable: {e}")
        raise api_error(request, 404, ErrorCodes.ANALYSIS_NOT_FOUND)


@router.get("/analysis/{analysis_id}", response_model=AnalysisResult)
async def get_analysis(analysis_id: str, request: Request):
    return load_analysis(request, analysis_id)


@router.get("/analysis/{analysis_id}/metrics", response_model=ExtractedMetrics)
async def get_analysis_metrics(analysis_id: str, request: Request):
    analysis = load_analysis(request, analysis_id)
    return analysis.metrics or extract_metrics(analysis.parsed_data)


@router.get("/analysis/{analysis_id}/columns")
async def get_columns(analysis_id: str, request: Request):
    """Column names with their inferred types, in table order."""
    table = load_analysis(request, analysis_id).parsed_data
    return {"columns": [{"name": col, "type": table.column_types[col]} for col in table.columns]}


@router.get("/analysis/{analysis_id}/recommendations")
async def get_recommendations(analysis_id: str, request: Request):
    analysis = load_analysis(request, analysis_id)
    features = extract_features(analysis.parsed_data)
    return {
        "features": features.model_dump(by_alias=True),
        "recommendations": [c.model_dump(by_alias=True) for c in analysis.recommendations],
    }


@router.post("/analysis/{analysis_id}/chart", response_model=ChartPayload)
async def generate_chart(analysis_id: str, chart_request: ChartRequest, request: Request):
    """
    Build one chart from a stored table.

    Omitted axes are picked the same way the dashboard picks them.
    """
    table = load_analysis(request, analysis_id).parsed_data

    if chart_request.chart_type not in CHART_TYPES:
        raise api_error(
            request, 400, ErrorCodes.INVALID_CHART_REQUEST,
            f"Valid chartType is required ({', '.join(CHART_TYPES)})."
        )

    for axis in (chart_request.x_axis, chart_request.y_axis):
        if axis is not None and axis not in table.columns:
            raise api_error(
                request, 400, ErrorCodes.INVALID_CHART_REQUEST,
                f"Column '{sanitize_for_logging(axis)}' does not exist."
            )

    payload = materialize(
        table,
        chart_request.chart_type,
        x_axis=chart_request.x_axis,
        y_axis=chart_request.y_axis,
        data_key=chart_request.data_key,
    )
    if payload is None:
        raise api_error(
            request, 400, ErrorCodes.INVALID_CHART_REQUEST,
            "Try different columns."
        )
    return payload


@router.post("/analysis/{analysis_id}/feedback")
async def submit_feedback(analysis_id: str, feedback: FeedbackRequest, request: Request):
    analysis = load_analysis(request, analysis_id)

    chart = next((v for v in analysis.visualizations if v.id == feedback.chart_id), None)
    if chart is None:
        raise api_error(request, 404, ErrorCodes.CHART_NOT_FOUND)

    sample = build_sample(
        extract_features(analysis.parsed_data),
        recommended_chart=chart.type,
        user_selected_chart=feedback.user_selected_chart,
        rating=feedback.rating,
    )
    get_feedback_sink().record(sample)
    return {"success": True}


@router.post("/data-chat/{analysis_id}")
async def data_chat(analysis_id: str, chat_request: DataChatRequest, request: Request):
    """Answer a free-form question about a stored dataset."""
    analysis = load_analysis(request, analysis_id)
    metrics = analysis.metrics or extract_metrics(analysis.parsed_data)
    logger.info(f"Data chat question: {sanitize_for_logging(chat_request.question)}")

    try:
        answer = await answer_data_question(analysis.parsed_data, metrics, chat_request.question)
    except InsightsUnavailable as e:
        raise api_error(request, 503, ErrorCodes.AI_UNAVAILABLE, str(e))
    return {"answer": answer}
