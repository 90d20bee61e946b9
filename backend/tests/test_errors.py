"""
Unit tests for error responses.
"""
import pytest
from types import SimpleNamespace
from chartsense.core.errors import ErrorCodes, ERROR_MESSAGES, api_error, get_error_response


@pytest.mark.unit
def test_every_code_has_a_message():
    codes = [v for k, v in vars(ErrorCodes).items() if k.isupper()]
    assert set(codes) == set(ERROR_MESSAGES)


@pytest.mark.unit
def test_get_error_response():
    response = get_error_response(ErrorCodes.FILE_EMPTY)

    assert response["code"] == "FILE_EMPTY"
    assert response["message"] == "Your file looks empty"
    assert set(response) == {"code", "message", "detail", "suggestion"}


@pytest.mark.unit
def test_additional_detail_is_appended():
    response = get_error_response(ErrorCodes.FILE_TOO_LARGE, "Maximum size is 10MB.")
    assert response["detail"].endswith(" Maximum size is 10MB.")


@pytest.mark.unit
def test_unknown_code_falls_back():
    response = get_error_response("NOT_A_CODE")

    assert response["code"] == "NOT_A_CODE"
    assert response["message"] == ERROR_MESSAGES[ErrorCodes.UNKNOWN_ERROR]["message"]


@pytest.mark.unit
def test_api_error_carries_correlation_id():
    request = SimpleNamespace(state=SimpleNamespace(correlation_id="abc-123"))
    exc = api_error(request, 404, ErrorCodes.ANALYSIS_NOT_FOUND)

    assert exc.status_code == 404
    assert exc.detail["code"] == "ANALYSIS_NOT_FOUND"
    assert exc.detail["correlation_id"] == "abc-123"


@pytest.mark.unit
def test_api_error_without_correlation_id():
    request = SimpleNamespace(state=SimpleNamespace())
    assert api_error(request, 500, ErrorCodes.UNKNOWN_ERROR).detail["correlation_id"] == "unknown"
