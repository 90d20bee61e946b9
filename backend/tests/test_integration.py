"""
Comprehensive integration tests for full request flow.
"""
import json
import uuid
import pytest
from io import BytesIO
from fastapi.testclient import TestClient
from openpyxl import Workbook
from main import app
from chartsense.core.cache import get_table_cache


@pytest.fixture
def client():
    """Create a test client with a fresh rate limit window."""
    app.state.limiter.reset()
    return TestClient(app)


@pytest.fixture
def sample_csv():
    return b"date,revenue,region\n2024-01-01,1000,North\n2024-01-02,1200,South\n2024-01-03,1100,East"


@pytest.fixture
def sample_excel():
    wb = Workbook()
    ws = wb.active
    ws.append(["Department", "Headcount", "Budget"])
    for i in range(24):
        ws.append([["Sales", "Support", "Engineering"][i % 3], 5 + i, 1000 + i * 50])
    buffer = BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def upload(client, filename, content, content_type, headers=None):
    return client.post(
        "/api/upload",
        params={"skip_ai": "true"},
        files={"file": (filename, BytesIO(content), content_type)},
        headers=headers or {}
    )


@pytest.mark.integration
def test_full_upload_flow(client, sample_csv):
    """Upload, fetch the analysis, then build a custom chart from it."""
    correlation_id = str(uuid.uuid4())
    response = upload(client, "sales.csv", sample_csv, "text/csv", headers={"X-Correlation-ID": correlation_id})

    assert response.status_code == 200
    assert response.headers.get("X-Correlation-ID") == correlation_id
    analysis_id = response.json()["id"]

    analysis = client.get(f"/api/analysis/{analysis_id}").json()
    assert analysis["file"]["filename"] == "sales.csv"
    assert len(analysis["parsedData"]["rows"]) == 3
    assert analysis["parsedData"]["rows"][0] == {"date": "2024-01-01", "revenue": 1000, "region": "North"}

    line = client.post(
        f"/api/analysis/{analysis_id}/chart",
        json={"chartType": "line", "xAxis": "date", "yAxis": "revenue"}
    )
    assert line.status_code == 200
    assert [p["date"] for p in line.json()["data"]] == ["2024-01-01", "2024-01-02", "2024-01-03"]


@pytest.mark.integration
def test_excel_upload_recommends_bar(client, sample_excel):
    response = upload(
        client, "departments.xlsx", sample_excel,
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    )
    assert response.status_code == 200

    analysis = client.get(f"/api/analysis/{response.json()['id']}").json()
    assert analysis["file"]["fileType"] == "xlsx"
    top = analysis["recommendations"][0]
    assert top["chartType"] == "bar"
    assert (top["xAxis"], top["yAxis"]) == ("Department", "Headcount")
    assert [v["type"] for v in analysis["visualizations"]] == ["bar", "pie", "scatter", "line"]


@pytest.mark.integration
def test_json_upload(client):
    records = [{"status": ["open", "closed"][i % 2], "priority": ["low", "high", "medium"][i % 3]} for i in range(12)]
    response = upload(client, "tickets.json", json.dumps(records).encode(), "application/json")
    assert response.status_code == 200

    analysis = client.get(f"/api/analysis/{response.json()['id']}").json()
    assert analysis["parsedData"]["columnTypes"] == {"status": "string", "priority": "string"}
    assert [r["chartType"] for r in analysis["recommendations"]] == ["pie"]
    assert [v["type"] for v in analysis["visualizations"]] == ["pie"]


@pytest.mark.integration
def test_caching_behavior(client, sample_csv):
    """A repeated upload is served from the table cache but stored as a new analysis."""
    content = sample_csv + b"\n2024-01-04,900,West"
    first = upload(client, "cached.csv", content, "text/csv")
    hits_before = get_table_cache().get_stats()["hits"]
    second = upload(client, "cached.csv", content, "text/csv")

    assert first.status_code == second.status_code == 200
    assert first.json()["id"] != second.json()["id"]
    assert get_table_cache().get_stats()["hits"] == hits_before + 1


@pytest.mark.integration
def test_rate_limiting(client, sample_csv):
    limit = app.state.settings.rate_limit_per_minute
    statuses = [upload(client, "sales.csv", sample_csv, "text/csv").status_code for _ in range(limit + 1)]

    assert statuses[:limit] == [200] * limit
    assert statuses[-1] == 429

    response = upload(client, "sales.csv", sample_csv, "text/csv")
    assert response.json()["code"] == "RATE_LIMIT_EXCEEDED"
    assert "Retry-After" in response.headers


@pytest.mark.integration
def test_time_series_detection(client):
    rows = "\n".join(f"2024-02-{d:02d},{100 + d * 3}" for d in range(1, 21))
    response = upload(client, "daily.csv", f"day,visits\n{rows}".encode(), "text/csv")

    analysis = client.get(f"/api/analysis/{response.json()['id']}").json()
    assert analysis["parsedData"]["columnTypes"]["day"] == "date"
    assert analysis["recommendations"][0]["chartType"] == "line"
    assert analysis["recommendations"][0]["xAxis"] == "day"


@pytest.mark.integration
def test_response_time_header(client, sample_csv):
    response = upload(client, "sales.csv", sample_csv, "text/csv")

    assert "X-Response-Time" in response.headers
    assert float(response.headers["X-Response-Time"]) >= 0
