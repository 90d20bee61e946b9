"""
Error codes and user-facing messages for API failures.
"""
from typing import Dict, Optional
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse


class ErrorCodes:
    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    FILE_EMPTY = "FILE_EMPTY"
    INVALID_FILE_TYPE = "INVALID_FILE_TYPE"
    PARSE_ERROR = "PARSE_ERROR"
    PROCESSING_ERROR = "PROCESSING_ERROR"
    ANALYSIS_NOT_FOUND = "ANALYSIS_NOT_FOUND"
    CHART_NOT_FOUND = "CHART_NOT_FOUND"
    INVALID_CHART_REQUEST = "INVALID_CHART_REQUEST"
    AI_UNAVAILABLE = "AI_UNAVAILABLE"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    TIMEOUT = "TIMEOUT"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    ErrorCodes.FILE_TOO_LARGE: {
        "message": "Your file is too large",
        "detail": "The upload exceeds the size limit for a single file.",
        "suggestion": "💡 Export only the columns you need, or split the file into smaller parts."
    },
    ErrorCodes.FILE_EMPTY: {
        "message": "Your file looks empty",
        "detail": "No rows of data were found in the uploaded file.",
        "suggestion": "💡 Check that the file was saved with its data and upload it again."
    },
    ErrorCodes.INVALID_FILE_TYPE: {
        "message": "Unsupported file type",
        "detail": "We can read CSV, Excel (.xlsx, .xls), JSON and PDF files.",
        "suggestion": "💡 Most spreadsheet tools can export a sheet as CSV from the File menu."
    },
    ErrorCodes.PARSE_ERROR: {
        "message": "We couldn't read a table from your file",
        "detail": "The file may be corrupted or its contents are not laid out as rows and columns.",
        "suggestion": "💡 Save the file again as a fresh CSV and make sure the first row holds the column names."
    },
    ErrorCodes.PROCESSING_ERROR: {
        "message": "Something went wrong while analyzing your data",
        "detail": "The table was read but could not be analyzed.",
        "suggestion": "💡 Remove completely empty rows or columns and try again."
    },
    ErrorCodes.ANALYSIS_NOT_FOUND: {
        "message": "Analysis not found",
        "detail": "This analysis does not exist or has expired.",
        "suggestion": "💡 Upload the file again to start a new analysis."
    },
    ErrorCodes.CHART_NOT_FOUND: {
        "message": "Chart not found",
        "detail": "The chart you rated is not part of this analysis.",
        "suggestion": "💡 Reload the analysis and try again."
    },
    ErrorCodes.INVALID_CHART_REQUEST: {
        "message": "Could not generate this chart",
        "detail": "The chart type or the selected axes don't fit this data.",
        "suggestion": "💡 Bar and pie charts need a text column; scatter and line charts need two numeric columns."
    },
    ErrorCodes.AI_UNAVAILABLE: {
        "message": "Data chat is not available",
        "detail": "No AI provider is configured on this server.",
        "suggestion": "💡 Set GROQ_API_KEY or GEMINI_API_KEY and restart the server."
    },
    ErrorCodes.RATE_LIMIT_EXCEEDED: {
        "message": "Too many requests",
        "detail": "You are sending requests faster than the service allows.",
        "suggestion": "💡 Wait about a minute and try again."
    },
    ErrorCodes.TIMEOUT: {
        "message": "This is taking longer than expected",
        "detail": "Processing did not finish within the time limit.",
        "suggestion": "💡 Try a smaller sample of your data, such as the first few thousand rows."
    },
    ErrorCodes.UNKNOWN_ERROR: {
        "message": "Something unexpected happened",
        "detail": "We hit an error we weren't expecting.",
        "suggestion": "💡 Try again in a moment. If it keeps happening, try a different file."
    }
}


def get_error_response(error_code: str, additional_detail: Optional[str] = None) -> Dict[str, str]:
    """
    Build the error body for an error code.

    Args:
        error_code: One of the ErrorCodes constants
        additional_detail: Optional text appended to the detail

    Returns:
        Dictionary with code, message, detail and suggestion
    """
    error_info = ERROR_MESSAGES.get(error_code, ERROR_MESSAGES[ErrorCodes.UNKNOWN_ERROR])

    response = {
        "code": error_code,
        "message": error_info["message"],
        "detail": error_info["detail"],
        "suggestion": error_info["suggestion"]
    }

    if additional_detail:
        response["detail"] = f"{response['detail']} {additional_detail}"

    return response


def api_error(request: Request, status_code: int, error_code: str, additional_detail: Optional[str] = None) -> HTTPException:
    """HTTPException carrying the error body and the request's correlation id."""
    error_info = get_error_response(error_code, additional_detail)
    error_info['correlation_id'] = getattr(request.state, 'correlation_id', 'unknown')
    return HTTPException(status_code=status_code, detail=error_info)


def error_json_response(
    status_code: int,
    error_code: str,
    correlation_id: str,
    headers: Optional[Dict[str, str]] = None
) -> JSONResponse:
    """Error body as a top-level JSON response, for handlers outside the routes."""
    error_info = get_error_response(error_code)
    error_info['correlation_id'] = correlation_id
    return JSONResponse(
        status_code=status_code,
        content=error_info,
        headers={"X-Correlation-ID": correlation_id, **(headers or {})}
    )
