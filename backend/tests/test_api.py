"""
Integration tests for API endpoints.
"""
import uuid
import pytest
from io import BytesIO
from fastapi.testclient import TestClient
from main import app
from chartsense.core.config import reload_settings
from chartsense.services import ai_insights
from chartsense.services.feedback import reset_feedback_sink

SALES_CSV = b"date,revenue,region\n2024-01-01,1000,North\n2024-01-02,1200,South\n2024-01-03,1100,East"


@pytest.fixture
def client():
    """Create a test client with a fresh rate limit window."""
    app.state.limiter.reset()
    return TestClient(app)


@pytest.fixture
def feedback_log(tmp_path, monkeypatch):
    path = tmp_path / "training-data.jsonl"
    monkeypatch.setenv("FEEDBACK_LOG_PATH", str(path))
    reload_settings()
    reset_feedback_sink()
    yield path
    monkeypatch.delenv("FEEDBACK_LOG_PATH")
    reload_settings()
    reset_feedback_sink()


def upload(client, content=SALES_CSV, filename="sales.csv", content_type="text/csv", headers=None):
    return client.post(
        "/api/upload",
        params={"skip_ai": "true"},
        files={"file": (filename, BytesIO(content), content_type)},
        headers=headers or {}
    )


@pytest.fixture
def analysis_id(client):
    response = upload(client)
    assert response.status_code == 200
    return response.json()["id"]


@pytest.mark.integration
def test_health_check(client):
    """Test the health check endpoint."""
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.integration
def test_root_endpoint(client):
    response = client.get("/")
    assert response.status_code == 200
    assert "message" in response.json()


@pytest.mark.integration
def test_upload_returns_analysis_id(client):
    response = upload(client)

    assert response.status_code == 200
    uuid.UUID(response.json()["id"])


@pytest.mark.integration
def test_get_analysis(client, analysis_id):
    """The stored analysis serializes with camelCase keys."""
    response = client.get(f"/api/analysis/{analysis_id}")

    assert response.status_code == 200
    data = response.json()
    assert data["file"]["id"] == analysis_id
    assert data["file"]["fileType"] == "csv"
    assert data["file"]["rowCount"] == 3
    assert data["parsedData"]["columns"] == ["date", "revenue", "region"]
    assert data["parsedData"]["columnTypes"] == {"date": "date", "revenue": "number", "region": "string"}
    assert [v["type"] for v in data["visualizations"]] == ["bar", "pie"]
    assert [r["chartType"] for r in data["recommendations"]] == ["line", "area"]
    assert data["aiInsights"]["dataQuality"]["completeness"] == 100.0
    assert data["metrics"]["rowCount"] == 3


@pytest.mark.integration
def test_unknown_analysis(client):
    response = client.get("/api/analysis/does-not-exist")

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "ANALYSIS_NOT_FOUND"


@pytest.mark.integration
def test_analysis_metrics(client, analysis_id):
    response = client.get(f"/api/analysis/{analysis_id}/metrics")

    assert response.status_code == 200
    data = response.json()
    assert data["columnMetrics"]["revenue"]["mean"] == 1100.0
    assert data["dataCompleteness"] == 100.0


@pytest.mark.integration
def test_analysis_columns(client, analysis_id):
    response = client.get(f"/api/analysis/{analysis_id}/columns")

    assert response.status_code == 200
    assert response.json() == {"columns": [
        {"name": "date", "type": "date"},
        {"name": "revenue", "type": "number"},
        {"name": "region", "type": "string"},
    ]}


@pytest.mark.integration
def test_analysis_recommendations(client, analysis_id):
    response = client.get(f"/api/analysis/{analysis_id}/recommendations")

    assert response.status_code == 200
    data = response.json()
    assert data["features"]["totalRows"] == 3
    assert data["features"]["hasTimeSeries"] is True
    assert data["recommendations"][0]["xAxis"] == "date"


@pytest.mark.integration
def test_generate_chart(client, analysis_id):
    response = client.post(
        f"/api/analysis/{analysis_id}/chart",
        json={"chartType": "bar", "xAxis": "region", "yAxis": "revenue"}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["type"] == "bar"
    assert data["xAxis"] == "region"
    assert data["data"][0] == {"region": "North", "revenue": 1000.0}


@pytest.mark.integration
def test_generate_chart_with_default_axes(client, analysis_id):
    response = client.post(f"/api/analysis/{analysis_id}/chart", json={"chartType": "pie"})

    assert response.status_code == 200
    assert response.json()["dataKey"] == "value"


@pytest.mark.integration
@pytest.mark.parametrize("body", [
    {"chartType": "histogram"},
    {},
    {"chartType": "bar", "xAxis": "missing"},
    {"chartType": "scatter", "xAxis": "revenue"},
])
def test_generate_chart_rejects_bad_requests(client, analysis_id, body):
    response = client.post(f"/api/analysis/{analysis_id}/chart", json=body)

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "INVALID_CHART_REQUEST"


@pytest.mark.integration
def test_feedback_and_stats(client, analysis_id, feedback_log):
    charts = client.get(f"/api/analysis/{analysis_id}").json()["visualizations"]

    response = client.post(
        f"/api/analysis/{analysis_id}/feedback",
        json={"chartId": charts[0]["id"], "userSelectedChart": "pie", "rating": 4}
    )
    assert response.status_code == 200
    assert response.json() == {"success": True}
    assert feedback_log.exists()

    stats = client.get("/api/ml/stats").json()
    assert stats["totalSamples"] == 1
    assert stats["averageRating"] == 4.0
    assert stats["chartTypeAccuracy"]["bar"] == 0.0


@pytest.mark.integration
def test_feedback_for_unknown_chart(client, analysis_id, feedback_log):
    response = client.post(
        f"/api/analysis/{analysis_id}/feedback",
        json={"chartId": "bar-0000000000"}
    )
    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "CHART_NOT_FOUND"


@pytest.mark.integration
def test_feedback_rating_out_of_range(client, analysis_id, feedback_log):
    response = client.post(
        f"/api/analysis/{analysis_id}/feedback",
        json={"chartId": "bar-0000000000", "rating": 9}
    )
    assert response.status_code == 422


@pytest.mark.integration
def test_data_chat_without_provider(client, analysis_id, monkeypatch):
    monkeypatch.delenv("GROQ_API_KEY", raising=False)
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    ai_insights.reset_clients()

    response = client.post(f"/api/data-chat/{analysis_id}", json={"question": "Which region sells most?"})

    assert response.status_code == 503
    assert response.json()["detail"]["code"] == "AI_UNAVAILABLE"


@pytest.mark.integration
def test_data_chat_answer(client, analysis_id, monkeypatch):
    async def fake_answer(table, metrics, question):
        return f"{len(table.rows)} rows"

    monkeypatch.setattr("chartsense.api.analysis.answer_data_question", fake_answer)
    response = client.post(f"/api/data-chat/{analysis_id}", json={"question": "How many rows?"})

    assert response.status_code == 200
    assert response.json() == {"answer": "3 rows"}


@pytest.mark.integration
def test_upload_invalid_file_type(client):
    response = upload(client, b"some content", "test.txt", "text/plain")

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["code"] == "INVALID_FILE_TYPE"
    assert "Unsupported file format" in detail["detail"]


@pytest.mark.integration
def test_upload_empty_file(client):
    response = upload(client, b"", "empty.csv")

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "FILE_EMPTY"


@pytest.mark.integration
def test_upload_unparseable_file(client):
    response = upload(client, b"5", "data.json", "application/json")

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "PARSE_ERROR"


@pytest.mark.integration
def test_upload_file_too_large(client, monkeypatch):
    monkeypatch.setenv("MAX_FILE_SIZE_MB", "1")
    reload_settings()
    try:
        content = b"name,value\n" + b"row,1\n" * 200000
        response = upload(client, content, "large.csv")
    finally:
        monkeypatch.delenv("MAX_FILE_SIZE_MB")
        reload_settings()

    assert response.status_code == 413
    assert response.json()["detail"]["code"] == "FILE_TOO_LARGE"


@pytest.mark.integration
def test_error_response_structure(client):
    """Errors carry code, message, detail, suggestion and the correlation id."""
    correlation_id = str(uuid.uuid4())
    response = upload(client, b"invalid", "test.txt", "text/plain", headers={"X-Correlation-ID": correlation_id})

    detail = response.json()["detail"]
    assert set(detail) == {"code", "message", "detail", "suggestion", "correlation_id"}
    assert detail["correlation_id"] == correlation_id
    assert response.headers["X-Correlation-ID"] == correlation_id


@pytest.mark.integration
def test_correlation_id_generated(client):
    response = client.get("/api/health")

    assert "X-Correlation-ID" in response.headers
    uuid.UUID(response.headers["X-Correlation-ID"])
    assert "X-Response-Time" in response.headers


@pytest.mark.integration
def test_security_headers(client):
    response = client.get("/api/health")

    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert "Content-Security-Policy" in response.headers


@pytest.mark.integration
def test_metrics_endpoint(client, analysis_id):
    response = client.get("/api/metrics")

    assert response.status_code == 200
    data = response.json()
    assert "parse_file" in data["performance"] or data["cache"]["table_cache"]["hits"] > 0
    assert "recommend_charts" in data["performance"]
    assert "table_cache" in data["cache"]
