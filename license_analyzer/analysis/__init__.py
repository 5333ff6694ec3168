"""Analytical engines: session overlap sweep and report aggregation."""

from .aggregation import daily_peaks, group_entitlements, multiple_entitlements, software_peaks
from .overlap import compute_concurrency, compute_concurrency_by_scan

__all__ = [
    "compute_concurrency",
    "compute_concurrency_by_scan",
    "daily_peaks",
    "group_entitlements",
    "multiple_entitlements",
    "software_peaks",
]
