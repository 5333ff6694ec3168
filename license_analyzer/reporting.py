"""CSV, Excel and console renderings of aggregated results.

Rows are written in the order they are given; the aggregator is responsible
for sorting.
"""

from __future__ import annotations

import csv
import logging
from datetime import date
from pathlib import Path
from typing import Any, Iterable, Sequence

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from .models import UNKNOWN_DATE, DailyPeak, EntitlementGroup, SoftwarePeak

_LOGGER = logging.getLogger("license_analyzer.reporting")

ENTITLEMENT_HEADERS = (
    "EvaluationDate",
    "SoftwareName",
    "Publisher",
    "Edition",
    "NumberOfConsumedEntitlements",
    "Username",
)
DAILY_PEAK_HEADERS = ("Date", "SoftwareName", "PeakConcurrentUsers")
SOFTWARE_PEAK_HEADERS = ("Software Name", "Peak Concurrent Users", "Peak Time")

_FORMULA_PREFIXES = ("=", "+", "-", "@")


def format_date(value: date, fmt: str = "%Y-%m-%d") -> str:
    if value == UNKNOWN_DATE.date():
        return "Unknown"
    return value.strftime(fmt)


def entitlement_rows(groups: Iterable[EntitlementGroup]) -> list[list[Any]]:
    return [
        [
            format_date(group.date),
            group.software_name,
            group.publisher,
            group.edition,
            group.machine_count,
            group.username,
        ]
        for group in groups
    ]


def daily_peak_rows(peaks: Iterable[DailyPeak], date_format: str = "%d/%m/%Y") -> list[list[Any]]:
    return [[format_date(peak.date, date_format), peak.software_name, peak.peak_users] for peak in peaks]


def software_peak_rows(peaks: Iterable[SoftwarePeak]) -> list[list[Any]]:
    return [
        [peak.software_name, peak.peak_users, peak.peak_at.strftime("%Y-%m-%d %H:%M:%S")]
        for peak in peaks
    ]


def write_csv(path: Path, headers: Sequence[str], rows: Iterable[Sequence[Any]]) -> int:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    count = 0
    with path.open("w", encoding="utf-8", newline="") as fh:
        writer = csv.writer(fh)
        writer.writerow(headers)
        for row in rows:
            writer.writerow(row)
            count += 1
    _LOGGER.info("Wrote %s rows to %s", count, path)
    return count


def write_entitlement_csv(groups: Iterable[EntitlementGroup], path: Path) -> int:
    return write_csv(path, ENTITLEMENT_HEADERS, entitlement_rows(groups))


def write_concurrency_csv(peaks: Iterable[DailyPeak], path: Path) -> int:
    return write_csv(path, DAILY_PEAK_HEADERS, daily_peak_rows(peaks))


def _xlsx_safe(value: Any) -> Any:
    # keep spreadsheet apps from evaluating user-supplied text
    if isinstance(value, str) and value.startswith(_FORMULA_PREFIXES):
        return f"'{value}"
    return value


def write_xlsx(path: Path, title: str, headers: Sequence[str], rows: Iterable[Sequence[Any]]) -> int:
    wb = Workbook()
    ws = wb.active
    ws.title = title[:31] or "Report"
    ws.append(list(headers))
    header_font = Font(bold=True)
    for cell in ws[1]:
        cell.font = header_font

    max_lengths = [len(h) for h in headers]
    count = 0
    for raw in rows:
        row = [_xlsx_safe(val) for val in raw]
        ws.append(row)
        for idx, val in enumerate(row):
            if val is None or idx >= len(max_lengths):
                continue
            max_lengths[idx] = max(max_lengths[idx], min(len(str(val)), 80))
        count += 1

    for idx, width in enumerate(max_lengths, start=1):
        ws.column_dimensions[get_column_letter(idx)].width = width + 2

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(path)
    _LOGGER.info("Wrote %s rows to %s", count, path)
    return count


def render_table(title: str, headers: Sequence[str], rows: Sequence[Sequence[Any]]) -> str:
    """Plain-text table with a title line and left-aligned columns."""
    cells = [[str(h) for h in headers]] + [["" if v is None else str(v) for v in row] for row in rows]
    widths = [max(len(row[idx]) for row in cells) for idx in range(len(headers))]
    rule = "+" + "+".join("-" * (w + 2) for w in widths) + "+"

    def _line(row: Sequence[str]) -> str:
        return "| " + " | ".join(val.ljust(widths[idx]) for idx, val in enumerate(row)) + " |"

    lines = [title, rule, _line(cells[0]), rule]
    lines.extend(_line(row) for row in cells[1:])
    lines.append(rule)
    return "\n".join(lines)
