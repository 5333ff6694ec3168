"""Run-level orchestration of the entitlement and concurrency analyses."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from .analysis import (
    compute_concurrency,
    daily_peaks,
    group_entitlements,
    multiple_entitlements,
    software_peaks,
)
from .models import (
    ConcurrencySample,
    DailyPeak,
    EntitlementGroup,
    InstallationRecord,
    NormalizationError,
    SessionInterval,
    SoftwarePeak,
)
from .services.dispatcher import NormalizationDispatcher
from .services.progress import StatusSink, normalization_to_status, notify, sweep_to_status

_LOGGER = logging.getLogger("license_analyzer.pipeline")


class AllClassificationsFailed(RuntimeError):
    """Every row of a run failed classification."""

    def __init__(self, errors: Sequence[NormalizationError]) -> None:
        first = errors[0].cause if errors else None
        super().__init__(f"all {len(errors)} rows failed classification (first error: {first})")
        self.errors = list(errors)


@dataclass
class EntitlementReport:
    raw_groups: list[EntitlementGroup]
    groups: list[EntitlementGroup]
    anomalies: list[EntitlementGroup]
    records: list[InstallationRecord]
    errors: list[NormalizationError] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    cancelled: bool = False


@dataclass
class ConcurrencyReport:
    samples: list[ConcurrencySample]
    daily_peaks: list[DailyPeak]
    software_peaks: list[SoftwarePeak]
    session_count: int
    dropped: int


def run_entitlement_analysis(
    rows: Sequence[InstallationRecord],
    dispatcher: NormalizationDispatcher,
    *,
    status: Optional[StatusSink] = None,
) -> EntitlementReport:
    """Normalize names, then group installations into consumed entitlements.

    Failed rows are left out of the normalized groups and listed in
    ``errors``. Raises `AllClassificationsFailed` when no row succeeded.
    """
    raw_groups = group_entitlements(rows, use_raw_name=True)
    result = dispatcher.normalize_all(rows, progress=normalization_to_status(status))
    if result.errors:
        notify(status, f"Encountered {len(result.errors)} errors during processing")
    if result.all_failed and not result.cancelled:
        raise AllClassificationsFailed(result.errors)

    groups = group_entitlements(result.records)
    anomalies = multiple_entitlements(groups)
    if anomalies:
        _LOGGER.warning("%s user/software groups consume more than one entitlement", len(anomalies))
    return EntitlementReport(
        raw_groups=raw_groups,
        groups=groups,
        anomalies=anomalies,
        records=result.records,
        errors=result.errors,
        skipped=result.skipped,
        cancelled=result.cancelled,
    )


def run_concurrency_analysis(
    sessions: Sequence[SessionInterval],
    *,
    status: Optional[StatusSink] = None,
) -> ConcurrencyReport:
    dropped = sum(1 for session in sessions if session.login_at is None)
    if dropped:
        notify(status, f"Skipping {dropped} sessions without a readable login time")
    samples = compute_concurrency(sessions, progress=sweep_to_status(status))
    notify(status, "Analysis complete!")
    return ConcurrencyReport(
        samples=samples,
        daily_peaks=daily_peaks(samples),
        software_peaks=software_peaks(samples),
        session_count=len(sessions) - dropped,
        dropped=dropped,
    )
