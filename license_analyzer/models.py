"""Record types shared by ingestion, the analytical engines and reporting."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional

UNKNOWN = "Unknown"
# Installation rows with an unreadable date are kept and reported under this instant.
UNKNOWN_DATE = datetime.min


@dataclass(slots=True)
class InstallationRecord:
    """One observed software installation."""

    observed_at: datetime
    raw_software_name: str
    publisher: str = UNKNOWN
    edition: str = UNKNOWN
    machine_name: str = UNKNOWN
    username: str = UNKNOWN
    normalized_software_name: str = ""

    @property
    def is_classified(self) -> bool:
        return bool(self.normalized_software_name)

    @property
    def observed_date(self) -> date:
        return self.observed_at.date()


@dataclass(frozen=True, slots=True)
class SessionInterval:
    """A login session of one software title.

    ``login_at`` is ``None`` when the source timestamp could not be resolved;
    ``logout_at`` is ``None`` while the session is still open.
    """

    software_name: str
    session_id: str
    login_at: Optional[datetime]
    logout_at: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.logout_at is None

    def is_active_at(self, instant: datetime) -> bool:
        if self.login_at is None or self.login_at > instant:
            return False
        return self.logout_at is None or self.logout_at >= instant


@dataclass(frozen=True, slots=True)
class ConcurrencySample:
    timestamp: datetime
    software_name: str
    concurrent_users: int


@dataclass(frozen=True, slots=True)
class NormalizationJob:
    index: int
    raw_software_name: str


@dataclass(frozen=True, slots=True)
class NormalizationError:
    """A row whose classification failed; ``index`` points back to the input row."""

    index: int
    raw_software_name: str
    cause: Exception


@dataclass(frozen=True, slots=True)
class EntitlementGroup:
    date: date
    software_name: str
    publisher: str
    edition: str
    username: str
    machine_count: int
    machines: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_multiple(self) -> bool:
        return self.machine_count > 1


@dataclass(frozen=True, slots=True)
class DailyPeak:
    date: date
    software_name: str
    peak_users: int
    peak_at: datetime


@dataclass(frozen=True, slots=True)
class SoftwarePeak:
    software_name: str
    peak_users: int
    peak_at: datetime
