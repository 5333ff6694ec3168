"""Software license usage analysis.

Normalizes free-text installation names through a classification service and
computes concurrent session counts per software title.
"""

from .config import AppConfig, load_app_config
from .models import (
    UNKNOWN,
    UNKNOWN_DATE,
    ConcurrencySample,
    DailyPeak,
    EntitlementGroup,
    InstallationRecord,
    NormalizationError,
    NormalizationJob,
    SessionInterval,
    SoftwarePeak,
)
from .pipeline import AllClassificationsFailed, run_concurrency_analysis, run_entitlement_analysis

__all__ = [
    "AppConfig",
    "load_app_config",
    "UNKNOWN",
    "UNKNOWN_DATE",
    "ConcurrencySample",
    "DailyPeak",
    "EntitlementGroup",
    "InstallationRecord",
    "NormalizationError",
    "NormalizationJob",
    "SessionInterval",
    "SoftwarePeak",
    "AllClassificationsFailed",
    "run_concurrency_analysis",
    "run_entitlement_analysis",
]

__version__ = "1.0.0"
