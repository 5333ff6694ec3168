"""Reading installation and session exports into record objects.

Cells that are missing or unreadable never surface as ``None`` for string
fields: they become ``"Unknown"``. Unreadable installation dates become
`UNKNOWN_DATE`; unreadable session logins become ``None`` and are dropped by
the overlap engine.
"""

from __future__ import annotations

import csv
import logging
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping, Optional

from dateutil import parser as dt_parser
from openpyxl import load_workbook

from .models import UNKNOWN, UNKNOWN_DATE, InstallationRecord, SessionInterval

_LOGGER = logging.getLogger("license_analyzer.ingestion")

Row = Mapping[str, Any]

INSTALLATION_COLUMNS = ("SoftwareName", "LastModifiedDate", "Publisher", "Edition", "MachineName", "LastLoggedOnUser")
SESSION_COLUMNS = ("SoftwareName", "LOGIN_DATE_TIME", "LOGOUT_DATE_TIME", "SESSION_ID")

_NULL_TOKENS = frozenset({"", "null", "none", "nan", "n/a"})
# Two unrelated fill-in dates: a value is only a full date if both parses agree on it.
_FILL_DATES = (datetime(2000, 1, 1), datetime(1999, 12, 31))


class IngestionError(RuntimeError):
    """Raised when a source file cannot be read as a table at all."""


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Resolve a cell value to a naive datetime, or ``None``.

    Strings must carry a full date; fragments such as ``"10"`` or ``"March"``
    would otherwise borrow the missing parts from today and are rejected.
    Timezone-aware values are converted to UTC before the zone is dropped.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        resolved = value
    elif isinstance(value, date):
        resolved = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if text.lower() in _NULL_TOKENS:
            return None
        try:
            resolved, other = (dt_parser.parse(text, default=fill) for fill in _FILL_DATES)
        except (ValueError, OverflowError):
            return None
        if resolved.date() != other.date():
            return None
    if resolved.tzinfo is not None:
        resolved = resolved.astimezone(timezone.utc).replace(tzinfo=None)
    return resolved


def _text(row: Row, column: str) -> str:
    value = row.get(column)
    if value is None:
        return UNKNOWN
    text = str(value).strip()
    return text if text else UNKNOWN


def read_rows(path: Path) -> list[dict[str, Any]]:
    """Return the rows of the first sheet of an ``.xlsx`` file or of a ``.csv`` file."""
    path = Path(path)
    if not path.exists():
        raise IngestionError(f"input file not found: {path}")
    suffix = path.suffix.lower()
    if suffix in {".xlsx", ".xlsm"}:
        rows = list(_iter_xlsx(path))
    elif suffix == ".csv":
        rows = list(_iter_csv(path))
    else:
        raise IngestionError(f"unsupported input format: {path.suffix or path.name}")
    _LOGGER.info("Read %s rows from %s", len(rows), path)
    return rows


def _iter_xlsx(path: Path) -> Iterator[dict[str, Any]]:
    try:
        workbook = load_workbook(path, read_only=True, data_only=True)
    except Exception as exc:  # noqa: BLE001 - openpyxl raises a variety of errors
        raise IngestionError(f"cannot open workbook {path}: {exc}") from exc
    try:
        sheet = workbook.worksheets[0] if workbook.worksheets else None
        if sheet is None:
            raise IngestionError(f"data sheet not found in {path}")
        values = sheet.iter_rows(values_only=True)
        header = next(values, None)
        if not header or not any(cell is not None for cell in header):
            raise IngestionError(f"missing header row in {path}")
        columns = [str(cell).strip() if cell is not None else "" for cell in header]
        for raw in values:
            if raw is None or all(cell is None for cell in raw):
                continue
            yield {name: cell for name, cell in zip(columns, raw) if name}
    finally:
        workbook.close()


def _iter_csv(path: Path) -> Iterator[dict[str, Any]]:
    with path.open("r", encoding="utf-8-sig", newline="") as fh:
        reader = csv.DictReader(fh)
        if not reader.fieldnames:
            raise IngestionError(f"missing header row in {path}")
        for row in reader:
            if not any((value or "").strip() for value in row.values() if isinstance(value, str)):
                continue
            yield {(key or "").strip(): value for key, value in row.items() if key}


def _require_columns(rows: list[Row], required: Iterable[str], kind: str) -> None:
    if not rows:
        return
    present = set().union(*(row.keys() for row in rows))
    missing = [name for name in required if name not in present]
    if missing:
        raise IngestionError(f"{kind} data is missing columns: {', '.join(missing)}")


def installations_from_rows(rows: Iterable[Row]) -> list[InstallationRecord]:
    rows = list(rows)
    _require_columns(rows, ("SoftwareName",), "installation")
    records: list[InstallationRecord] = []
    undated = 0
    for row in rows:
        observed_at = parse_timestamp(row.get("LastModifiedDate"))
        if observed_at is None:
            undated += 1
            observed_at = UNKNOWN_DATE
        records.append(
            InstallationRecord(
                observed_at=observed_at,
                raw_software_name=_text(row, "SoftwareName"),
                publisher=_text(row, "Publisher"),
                edition=_text(row, "Edition"),
                machine_name=_text(row, "MachineName"),
                username=_text(row, "LastLoggedOnUser"),
            )
        )
    if undated:
        _LOGGER.info("%s installation rows have no readable date", undated)
    return records


def sessions_from_rows(rows: Iterable[Row]) -> list[SessionInterval]:
    rows = list(rows)
    _require_columns(rows, ("SoftwareName", "LOGIN_DATE_TIME"), "session")
    sessions: list[SessionInterval] = []
    for row in rows:
        name = row.get("SoftwareName")
        if name is None or not str(name).strip():
            continue
        sessions.append(
            SessionInterval(
                software_name=str(name).strip(),
                session_id=_text(row, "SESSION_ID"),
                login_at=parse_timestamp(row.get("LOGIN_DATE_TIME")),
                logout_at=parse_timestamp(row.get("LOGOUT_DATE_TIME")),
            )
        )
    return sessions


def load_installations(path: Path) -> list[InstallationRecord]:
    return installations_from_rows(read_rows(path))


def load_sessions(path: Path) -> list[SessionInterval]:
    return sessions_from_rows(read_rows(path))
