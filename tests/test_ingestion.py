from datetime import date, datetime, timezone

import pytest
from openpyxl import Workbook

from license_analyzer.ingestion import (
    IngestionError,
    installations_from_rows,
    load_installations,
    load_sessions,
    parse_timestamp,
    read_rows,
    sessions_from_rows,
)
from license_analyzer.models import UNKNOWN, UNKNOWN_DATE


def test_parse_timestamp_variants():
    assert parse_timestamp(datetime(2024, 3, 1, 10, 0)) == datetime(2024, 3, 1, 10, 0)
    assert parse_timestamp(date(2024, 3, 1)) == datetime(2024, 3, 1)
    assert parse_timestamp("2024-03-01 10:15:00") == datetime(2024, 3, 1, 10, 15)
    assert parse_timestamp("2024-03-01T10:15:00+02:00") == datetime(2024, 3, 1, 8, 15)
    assert parse_timestamp(datetime(2024, 3, 1, 10, tzinfo=timezone.utc)) == datetime(2024, 3, 1, 10)
    for blank in (None, "", "  ", "NULL", "null", "not a date"):
        assert parse_timestamp(blank) is None


@pytest.mark.parametrize("fragment", ["10", "March", "10:30", "March 2024", "2024"])
def test_partial_dates_are_rejected(fragment):
    assert parse_timestamp(fragment) is None


def test_date_only_strings_default_to_midnight():
    assert parse_timestamp("01/03/2024") == datetime(2024, 1, 3)
    assert parse_timestamp("2024-03-01") == datetime(2024, 3, 1)


def test_installations_use_sentinels():
    rows = [
        {"SoftwareName": "Slack 4.36", "LastModifiedDate": "2024-03-01", "Publisher": "Slack",
         "Edition": None, "MachineName": "PC-1", "LastLoggedOnUser": "  "},
        {"SoftwareName": None, "LastModifiedDate": "garbage"},
    ]
    first, second = installations_from_rows(rows)
    assert first.raw_software_name == "Slack 4.36"
    assert first.observed_at == datetime(2024, 3, 1)
    assert first.edition == UNKNOWN
    assert first.username == UNKNOWN
    assert first.normalized_software_name == ""
    assert second.raw_software_name == UNKNOWN
    assert second.observed_at == UNKNOWN_DATE
    assert second.machine_name == UNKNOWN


def test_sessions_mapping():
    rows = [
        {"SoftwareName": "MATLAB", "LOGIN_DATE_TIME": "2024-03-01 09:00", "LOGOUT_DATE_TIME": "NULL", "SESSION_ID": 7},
        {"SoftwareName": "MATLAB", "LOGIN_DATE_TIME": "bad", "LOGOUT_DATE_TIME": "2024-03-01 10:00", "SESSION_ID": 8},
        {"SoftwareName": "", "LOGIN_DATE_TIME": "2024-03-01 09:00"},
        {"SoftwareName": "Visio", "LOGIN_DATE_TIME": "2024-03-01 09:00", "LOGOUT_DATE_TIME": "2024-03-01 09:30"},
    ]
    sessions = sessions_from_rows(rows)
    assert [s.software_name for s in sessions] == ["MATLAB", "MATLAB", "Visio"]
    assert sessions[0].is_open and sessions[0].session_id == "7"
    assert sessions[1].login_at is None
    assert sessions[2].logout_at == datetime(2024, 3, 1, 9, 30)
    assert sessions[2].session_id == UNKNOWN


def test_missing_required_column_is_fatal():
    with pytest.raises(IngestionError):
        sessions_from_rows([{"SoftwareName": "A"}])
    with pytest.raises(IngestionError):
        installations_from_rows([{"Publisher": "A"}])


def test_read_xlsx(tmp_path):
    wb = Workbook()
    ws = wb.active
    ws.append(["SoftwareName", "LOGIN_DATE_TIME", "LOGOUT_DATE_TIME", "SESSION_ID"])
    ws.append(["AutoCAD", datetime(2024, 3, 1, 9, 0), datetime(2024, 3, 1, 11, 0), 1])
    ws.append([None, None, None, None])
    ws.append(["AutoCAD", "2024-03-01 10:00", None, 2])
    path = tmp_path / "sessions.xlsx"
    wb.save(path)

    sessions = load_sessions(path)
    assert len(sessions) == 2
    assert sessions[0].login_at == datetime(2024, 3, 1, 9, 0)
    assert sessions[1].is_open


def test_read_csv(tmp_path):
    path = tmp_path / "installs.csv"
    path.write_text(
        "SoftwareName,LastModifiedDate,Publisher,Edition,MachineName,LastLoggedOnUser\n"
        "Visual Studio 2019,2024-03-01,Microsoft,Enterprise,PC-1,alice\n"
        ",,,,,\n",
        encoding="utf-8",
    )
    records = load_installations(path)
    assert len(records) == 1
    assert records[0].machine_name == "PC-1"


def test_read_rows_errors(tmp_path):
    with pytest.raises(IngestionError):
        read_rows(tmp_path / "missing.xlsx")
    other = tmp_path / "data.json"
    other.write_text("{}", encoding="utf-8")
    with pytest.raises(IngestionError):
        read_rows(other)
    empty = tmp_path / "empty.csv"
    empty.write_text("", encoding="utf-8")
    with pytest.raises(IngestionError):
        read_rows(empty)
