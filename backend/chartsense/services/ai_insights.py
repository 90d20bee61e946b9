"""
Narrative insights using Groq (primary) and Gemini (fallback).

The providers only see the computed statistics bundle and a handful of
sample rows. Every failure, missing key or timeout degrades to a
deterministic insight bundle built from the same statistics, so uploads
never fail because of an LLM.
"""
import os
import re
import json
import asyncio
import logging
from typing import Any, Dict, List, Optional
from groq import Groq
from chartsense.core.config import get_settings
from chartsense.core.performance import track_performance
from chartsense.core.sanitization import sanitize_for_prompt
from chartsense.core.schemas import AIInsights, DataQuality, ExtractedMetrics, TypedTable
from chartsense.services.metrics import numeric_summary

logger = logging.getLogger(__name__)

# Provider clients (singletons)
_groq_client: Optional[Groq] = None
_gemini_model = None  # Lazy loaded to avoid import if not needed

INSIGHT_SAMPLE_ROWS = 15
CHAT_SAMPLE_ROWS = 25

FALLBACK_RECOMMENDATIONS = [
    "Review data for missing or null values",
    "Consider data normalization for better analysis",
    "Explore correlations between numerical columns",
]

FALLBACK_TRENDS = [
    "Dataset contains structured data ready for analysis",
    "Multiple data types present indicating rich information",
    "Further statistical analysis recommended",
]

CHAT_ERROR_ANSWER = (
    "Sorry, I encountered an error processing your question. "
    "Please try again with a different question."
)
CHAT_EMPTY_ANSWER = "I couldn't generate an answer. Please try rephrasing your question."

INSIGHTS_SYSTEM_PROMPT = (
    "You are an expert data analyst. Respond with a single JSON object and nothing else."
)
CHAT_SYSTEM_PROMPT = (
    "You are a data analysis assistant. Answer using ONLY the dataset information provided."
)


class InsightsUnavailable(Exception):
    """No narrative provider is configured."""


def get_groq_client() -> Optional[Groq]:
    """Get or create Groq client singleton."""
    global _groq_client
    if _groq_client is None:
        api_key = os.getenv("GROQ_API_KEY")
        if api_key:
            _groq_client = Groq(api_key=api_key)
            logger.info("Groq AI client initialized")
    return _groq_client


def get_gemini_model():
    """Get or create Gemini model singleton."""
    global _gemini_model
    if _gemini_model is None:
        api_key = os.getenv("GEMINI_API_KEY")
        if api_key:
            try:
                import google.generativeai as genai
                genai.configure(api_key=api_key)
                settings = get_settings()
                _gemini_model = genai.GenerativeModel(settings.gemini_model)
                logger.info(f"Gemini AI fallback initialized with model: {settings.gemini_model}")
            except Exception as e:
                logger.warning(f"Gemini initialization failed: {e}")
    return _gemini_model


def reset_clients():
    """Drop cached provider clients (useful for testing)."""
    global _groq_client, _gemini_model
    _groq_client = None
    _gemini_model = None


def providers_available() -> bool:
    return get_groq_client() is not None or get_gemini_model() is not None


def _call_groq(prompt: str, system_prompt: str, max_tokens: int = 1200) -> Optional[str]:
    """Call Groq API."""
    client = get_groq_client()
    if not client:
        return None

    settings = get_settings()
    response = client.chat.completions.create(
        model=settings.groq_model,
        messages=[
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": prompt}
        ],
        max_tokens=max_tokens,
        temperature=0.3,
        timeout=settings.insight_timeout_seconds
    )
    return response.choices[0].message.content


def _call_gemini(prompt: str, system_prompt: str) -> Optional[str]:
    """Call Gemini API (fallback)."""
    model = get_gemini_model()
    if not model:
        return None

    settings = get_settings()
    response = model.generate_content(
        f"{system_prompt}\n\n{prompt}",
        request_options={"timeout": settings.insight_timeout_seconds}
    )
    return response.text


def _call_ai_with_fallback(prompt: str, system_prompt: str, max_tokens: int = 1200) -> Optional[str]:
    """
    Call AI with automatic fallback.

    Order: Groq -> Gemini -> None
    """
    try:
        result = _call_groq(prompt, system_prompt, max_tokens)
        if result:
            logger.debug("AI response from Groq")
            return result
    except Exception as e:
        error_str = str(e).lower()
        if "rate" in error_str or "limit" in error_str or "429" in error_str:
            logger.warning(f"Groq rate limited, trying Gemini fallback: {e}")
        else:
            logger.warning(f"Groq error, trying fallback: {e}")

    try:
        result = _call_gemini(prompt, system_prompt)
        if result:
            logger.info("AI response from Gemini (fallback)")
            return result
    except Exception as e:
        logger.error(f"Gemini fallback also failed: {e}")

    return None


def fallback_insights(table: TypedTable, metrics: ExtractedMetrics) -> AIInsights:
    """Deterministic insight bundle built only from the computed statistics."""
    row_count = len(table.rows)
    column_count = len(table.columns)
    types = ", ".join(table.column_types[col] for col in table.columns)

    return AIInsights(
        summary=f"Dataset contains {row_count} rows and {column_count} columns.",
        key_insights=[
            f"The dataset includes {column_count} different data fields",
            f"Total of {row_count} records available for analysis",
            f"Data types include: {types}",
        ],
        recommendations=list(FALLBACK_RECOMMENDATIONS),
        data_quality=DataQuality(
            completeness=metrics.data_completeness,
            accuracy="Medium" if metrics.key_insights else "High",
        ),
        trends=metrics.key_insights[:3] or list(FALLBACK_TRENDS),
    )


def _column_analysis(table: TypedTable, metrics: ExtractedMetrics) -> List[Dict[str, Any]]:
    analysis = []
    for col in table.columns:
        col_metrics = metrics.column_metrics[col]
        entry = {
            "name": sanitize_for_prompt(col, 50),
            "type": col_metrics.type,
            "missingPercentage": col_metrics.null_percentage,
            "uniqueValues": col_metrics.unique_count,
        }
        if col_metrics.type == 'number' and col_metrics.mean is not None:
            entry["statistics"] = {
                "min": col_metrics.min,
                "max": col_metrics.max,
                "mean": col_metrics.mean,
                "median": col_metrics.median,
                "stdDev": col_metrics.std_dev,
                "sum": col_metrics.sum,
            }
        elif col_metrics.top_values:
            entry["topValues"] = [
                {"value": sanitize_for_prompt(t.value, 50), "percentage": t.percentage}
                for t in col_metrics.top_values[:5]
            ]
        analysis.append(entry)
    return analysis


def _sample_rows(table: TypedTable, limit: int) -> List[Dict[str, Any]]:
    return [
        {sanitize_for_prompt(k, 50): (sanitize_for_prompt(v, 100) if isinstance(v, str) else v) for k, v in row.items()}
        for row in table.rows[:limit]
    ]


def build_insights_prompt(table: TypedTable, metrics: ExtractedMetrics, filename: str) -> str:
    """Prompt for the dataset-level narrative."""
    key_findings = "\n".join(metrics.key_insights) or "None"
    return f"""Analyze this dataset and give specific, quantified, business-relevant findings.

DATASET OVERVIEW:
- Filename: {sanitize_for_prompt(filename, 100)}
- Total Records: {len(table.rows)}
- Total Columns: {len(table.columns)}
- Data Completeness: {metrics.data_completeness}%

COLUMN ANALYSIS:
{json.dumps(_column_analysis(table, metrics), indent=2, default=str)}

KEY FINDINGS:
{key_findings}

SAMPLE DATA (first {INSIGHT_SAMPLE_ROWS} rows):
{json.dumps(_sample_rows(table, INSIGHT_SAMPLE_ROWS), indent=2, default=str)}

Return JSON with exactly these keys:
{{
  "summary": "3-4 sentence executive summary",
  "keyInsights": ["5 to 8 specific insights with numbers"],
  "recommendations": ["3 to 5 actionable recommendations"],
  "dataQuality": {{"completeness": {metrics.data_completeness}, "accuracy": "High/Medium/Low"}},
  "trends": ["3 to 5 trends or distribution patterns"]
}}"""


def build_chat_prompt(table: TypedTable, metrics: ExtractedMetrics, question: str) -> str:
    """Prompt for a free-form question about the dataset."""
    descriptions = []
    for col in table.columns:
        col_metrics = metrics.column_metrics[col]
        line = f'"{sanitize_for_prompt(col, 50)}" ({col_metrics.type})'
        if col_metrics.type == 'number' and col_metrics.mean is not None:
            line += f" - Range: {col_metrics.min} to {col_metrics.max}, Mean: {col_metrics.mean}"
        elif col_metrics.top_values:
            top = col_metrics.top_values[0]
            line += f' - Top value: "{sanitize_for_prompt(top.value, 50)}" ({top.percentage}%)'
        descriptions.append(line)

    missing = {
        sanitize_for_prompt(col, 50): m.null_count
        for col, m in metrics.column_metrics.items()
    }
    numeric = {
        sanitize_for_prompt(col, 50): stats
        for col, stats in numeric_summary(metrics).items()
    }
    key_findings = "\n".join(metrics.key_insights[:5]) or "None"

    return f"""DATASET OVERVIEW:
- Total Rows: {len(table.rows)}
- Total Columns: {len(table.columns)}

COLUMN INFORMATION:
{chr(10).join(descriptions)}

STATISTICAL SUMMARY (calculated from all {len(table.rows)} rows):
- Missing Values per Column: {json.dumps(missing)}
- Numerical Column Statistics: {json.dumps(numeric)}

KEY FINDINGS:
{key_findings}

SAMPLE DATA (first {CHAT_SAMPLE_ROWS} rows):
{json.dumps(_sample_rows(table, CHAT_SAMPLE_ROWS), indent=2, default=str)}

USER QUESTION: {sanitize_for_prompt(question, 2000)}

Answer with specific numbers and column names. If the data cannot answer the question, say what is missing."""


def parse_insights(text: str, completeness: float) -> AIInsights:
    """
    Parse a provider reply into AIInsights.

    Code fences are stripped. Completeness always comes from the computed
    statistics, never from the model.
    """
    match = re.search(r'\{.*\}', text, re.DOTALL)
    if not match:
        raise ValueError("No JSON object in AI response")
    payload = json.loads(match.group(0))
    payload.setdefault("dataQuality", {})
    payload["dataQuality"]["completeness"] = completeness
    payload["dataQuality"].setdefault("accuracy", "Medium")
    return AIInsights.model_validate(payload)


def _generate_insights(table: TypedTable, metrics: ExtractedMetrics, filename: str) -> AIInsights:
    text = _call_ai_with_fallback(build_insights_prompt(table, metrics, filename), INSIGHTS_SYSTEM_PROMPT)
    if not text:
        raise ValueError("Empty response from AI providers")
    return parse_insights(text, metrics.data_completeness)


@track_performance("analyze_data_with_ai")
async def analyze_data_with_ai(
    table: TypedTable,
    metrics: ExtractedMetrics,
    filename: str,
    skip_ai: bool = False
) -> AIInsights:
    """
    Produce narrative insights, falling back to the deterministic bundle.

    The blocking provider SDK calls run in a worker thread under the
    configured timeout.
    """
    if skip_ai or not providers_available():
        logger.debug("AI insights skipped or no providers configured (set GROQ_API_KEY or GEMINI_API_KEY)")
        return fallback_insights(table, metrics)

    settings = get_settings()
    try:
        return await asyncio.wait_for(
            asyncio.to_thread(_generate_insights, table, metrics, filename),
            timeout=settings.insight_timeout_seconds
        )
    except asyncio.TimeoutError:
        logger.warning(f"AI insights timed out after {settings.insight_timeout_seconds}s, using fallback")
    except Exception as e:
        logger.error(f"AI insights failed, using fallback: {e}")
    return fallback_insights(table, metrics)


@track_performance("answer_data_question")
async def answer_data_question(table: TypedTable, metrics: ExtractedMetrics, question: str) -> str:
    """
    Answer a question about the dataset.

    Raises:
        InsightsUnavailable: If neither GROQ_API_KEY nor GEMINI_API_KEY is set
    """
    if not providers_available():
        raise InsightsUnavailable("No AI provider configured. Set GROQ_API_KEY or GEMINI_API_KEY.")

    settings = get_settings()
    prompt = build_chat_prompt(table, metrics, question)
    try:
        answer = await asyncio.wait_for(
            asyncio.to_thread(_call_ai_with_fallback, prompt, CHAT_SYSTEM_PROMPT, 800),
            timeout=settings.insight_timeout_seconds
        )
    except asyncio.TimeoutError:
        logger.warning("Data chat timed out")
        return CHAT_ERROR_ANSWER
    except Exception as e:
        logger.error(f"Data chat error: {e}", exc_info=True)
        return CHAT_ERROR_ANSWER
    return answer.strip() if answer else CHAT_EMPTY_ANSWER
