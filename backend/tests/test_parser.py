"""
Unit tests for the parser service.
"""
import json
import pytest
import pandas as pd
from io import BytesIO
from fastapi import HTTPException
from openpyxl import Workbook
from chartsense.core.config import reload_settings
from chartsense.core.schemas import TypedTable
from chartsense.services.normalizer import build_table
from chartsense.services.parser import (
    file_type_for,
    find_header_row,
    parse_file,
    validate_file_content,
    validate_file_extension,
    validate_mime_type,
)


def excel_bytes(rows, merge=None):
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)
    if merge:
        ws.merge_cells(merge)
    buffer = BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


@pytest.mark.asyncio
@pytest.mark.unit
async def test_parse_csv():
    """Test parsing a valid CSV file."""
    csv_content = b"name,age,city\nJohn,30,New York\nJane,25,London"
    table = await parse_file(csv_content, "test.csv")

    assert table.columns == ["name", "age", "city"]
    assert len(table.rows) == 2
    assert table.rows[0] == {"name": "John", "age": 30, "city": "New York"}
    assert table.column_types == {"name": 'string', "age": 'number', "city": 'string'}


@pytest.mark.asyncio
@pytest.mark.unit
async def test_parse_csv_with_encoding_issue():
    """Test parsing CSV with encoding issues falls back to latin1."""
    csv_content = "name,value\nJosé,100\nMaría,200".encode('latin1')
    table = await parse_file(csv_content, "test.csv")

    assert table.columns == ["name", "value"]
    assert table.rows[0]["name"] == "José"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_parse_csv_skips_metadata_rows():
    csv_content = b"Quarterly report,,\n,,\nregion,sales,cost\nNorth,10,4\nSouth,20,8\n"
    table = await parse_file(csv_content, "report.csv")

    assert table.columns == ["region", "sales", "cost"]
    assert len(table.rows) == 2
    assert table.column_types["sales"] == 'number'


@pytest.mark.asyncio
@pytest.mark.unit
async def test_parse_empty_file():
    with pytest.raises(HTTPException) as exc_info:
        await parse_file(b"", "test.csv")
    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
@pytest.mark.unit
async def test_parse_invalid_file_extension():
    with pytest.raises(HTTPException) as exc_info:
        await parse_file(b"a,b\n1,2", "test.txt")
    assert exc_info.value.status_code == 400
    assert "Unsupported file format" in exc_info.value.detail


@pytest.mark.asyncio
@pytest.mark.unit
async def test_parse_rejects_dangerous_mime_type():
    with pytest.raises(HTTPException) as exc_info:
        await parse_file(b"a,b\n1,2", "test.csv", content_type="text/html")
    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
@pytest.mark.unit
async def test_parse_json_array():
    content = json.dumps([{"a": 1, "b": "x"}, {"a": 2, "c": True}]).encode()
    table = await parse_file(content, "data.json")

    assert table.columns == ["a", "b", "c"]
    assert table.column_types == {"a": 'number', "b": 'string', "c": 'boolean'}


@pytest.mark.asyncio
@pytest.mark.unit
async def test_parse_json_single_object():
    table = await parse_file(b'{"a": 1, "b": "x"}', "data.json")
    assert len(table.rows) == 1


@pytest.mark.asyncio
@pytest.mark.unit
@pytest.mark.parametrize("content", [b"5", b"[]", b"[1, 2]", b"{not json"])
async def test_parse_json_rejects_other_shapes(content):
    with pytest.raises(HTTPException) as exc_info:
        await parse_file(content, "data.json")
    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
@pytest.mark.unit
async def test_parse_excel_with_merged_title():
    """A merged title row above the header is skipped and the header detected."""
    content = excel_bytes(
        [["Sales report", None, None], ["Region", "Sales", "Cost"], ["North", 10, 4], ["South", 20, 8]],
        merge="A1:C1"
    )
    table = await parse_file(content, "report.xlsx")

    assert table.columns == ["Region", "Sales", "Cost"]
    assert table.rows == [
        {"Region": "North", "Sales": 10, "Cost": 4},
        {"Region": "South", "Sales": 20, "Cost": 8},
    ]


@pytest.mark.asyncio
@pytest.mark.unit
async def test_parse_corrupt_excel():
    with pytest.raises(HTTPException) as exc_info:
        await parse_file(b"definitely not a workbook", "broken.xlsx")
    assert exc_info.value.status_code == 400


@pytest.mark.unit
def test_validate_file_extension():
    assert validate_file_extension("test.csv") == ".csv"
    assert validate_file_extension("TEST.XLSX") == ".xlsx"
    assert validate_file_extension("report.pdf") == ".pdf"

    with pytest.raises(HTTPException):
        validate_file_extension("test.txt")
    with pytest.raises(HTTPException):
        validate_file_extension("noextension")
    with pytest.raises(HTTPException):
        validate_file_extension("")


@pytest.mark.unit
def test_file_type_for():
    assert file_type_for("a.csv") == 'csv'
    assert file_type_for("a.xls") == 'xlsx'
    assert file_type_for("a.json") == 'json'


@pytest.mark.unit
def test_validate_mime_type():
    validate_mime_type("text/csv", ".csv")
    validate_mime_type(None, ".csv")
    # Mismatch is only logged
    validate_mime_type("application/json", ".csv")

    with pytest.raises(HTTPException):
        validate_mime_type("application/x-executable", ".csv")


@pytest.mark.unit
def test_find_header_row():
    df = pd.DataFrame([
        ["Report", None, None],
        ["name", "age", "city"],
        ["John", 30, "NYC"],
    ])
    assert find_header_row(df) == 1


@pytest.mark.unit
def test_validate_file_content_limits(monkeypatch):
    monkeypatch.setenv("MAX_FILE_ROWS", "1000")
    reload_settings()
    try:
        big = build_table(["v"], [{"v": i} for i in range(1001)])
        with pytest.raises(HTTPException) as exc_info:
            validate_file_content(big)
        assert "too many rows" in exc_info.value.detail

        validate_file_content(build_table(["v"], [{"v": 1}]))

        unsafe = TypedTable(columns=["../etc"], rows=[{"../etc": 1}], column_types={"../etc": 'number'})
        with pytest.raises(HTTPException):
            validate_file_content(unsafe)
    finally:
        monkeypatch.delenv("MAX_FILE_ROWS")
        reload_settings()
