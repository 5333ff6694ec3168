"""Reductions of normalized installations and concurrency samples into report rows."""

from __future__ import annotations

from collections import defaultdict
from datetime import date
from typing import Iterable

from ..models import (
    ConcurrencySample,
    DailyPeak,
    EntitlementGroup,
    InstallationRecord,
    SoftwarePeak,
)

EntitlementKey = tuple[date, str, str, str, str]


def group_entitlements(
    records: Iterable[InstallationRecord],
    *,
    use_raw_name: bool = False,
) -> list[EntitlementGroup]:
    """Count distinct machines per (date, software, publisher, edition, user).

    Unclassified records are skipped unless ``use_raw_name`` is set, in which
    case every record is grouped under its original name.
    """
    machines: dict[EntitlementKey, set[str]] = defaultdict(set)
    for record in records:
        if use_raw_name:
            name = record.raw_software_name
        elif record.is_classified:
            name = record.normalized_software_name
        else:
            continue
        key = (record.observed_date, name, record.publisher, record.edition, record.username)
        bucket = machines[key]
        if record.machine_name:
            bucket.add(record.machine_name)

    return [
        EntitlementGroup(
            date=key[0],
            software_name=key[1],
            publisher=key[2],
            edition=key[3],
            username=key[4],
            machine_count=len(machines[key]),
            machines=tuple(sorted(machines[key])),
        )
        for key in sorted(machines)
    ]


def multiple_entitlements(groups: Iterable[EntitlementGroup]) -> list[EntitlementGroup]:
    return [group for group in groups if group.is_multiple]


def daily_peaks(samples: Iterable[ConcurrencySample]) -> list[DailyPeak]:
    """Maximum concurrent users per (day, software), with the first instant it was hit."""
    best: dict[tuple[date, str], ConcurrencySample] = {}
    for sample in samples:
        key = (sample.timestamp.date(), sample.software_name)
        current = best.get(key)
        if current is None or _beats(sample, current):
            best[key] = sample
    return [
        DailyPeak(
            date=key[0],
            software_name=key[1],
            peak_users=best[key].concurrent_users,
            peak_at=best[key].timestamp,
        )
        for key in sorted(best)
    ]


def software_peaks(samples: Iterable[ConcurrencySample]) -> list[SoftwarePeak]:
    best: dict[str, ConcurrencySample] = {}
    for sample in samples:
        current = best.get(sample.software_name)
        if current is None or _beats(sample, current):
            best[sample.software_name] = sample
    return [
        SoftwarePeak(name, best[name].concurrent_users, best[name].timestamp)
        for name in sorted(best)
    ]


def _beats(candidate: ConcurrencySample, current: ConcurrencySample) -> bool:
    if candidate.concurrent_users != current.concurrent_users:
        return candidate.concurrent_users > current.concurrent_users
    return candidate.timestamp < current.timestamp
