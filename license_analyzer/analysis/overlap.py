"""Concurrent-session counts per software title.

Samples are taken at every distinct login/logout instant across all sessions.
A session counts as active at instant ``t`` when ``login <= t <= logout``
(an open session has no upper bound), so at a hand-off instant where one
session logs out and another logs in, both are counted.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from datetime import datetime
from typing import Iterable, Optional

from ..models import ConcurrencySample, SessionInterval
from ..services.progress import SweepProgress, notify

_LOGGER = logging.getLogger("license_analyzer.overlap")


def resolved_sessions(sessions: Iterable[SessionInterval]) -> list[SessionInterval]:
    """Drop sessions whose login instant is unknown."""
    retained: list[SessionInterval] = []
    dropped = 0
    for session in sessions:
        if session.login_at is None:
            dropped += 1
            continue
        retained.append(session)
    if dropped:
        _LOGGER.info("Dropped %s sessions without a login timestamp", dropped)
    return retained


def time_points(sessions: Iterable[SessionInterval]) -> list[datetime]:
    points: set[datetime] = set()
    for session in sessions:
        if session.login_at is not None:
            points.add(session.login_at)
        if session.logout_at is not None:
            points.add(session.logout_at)
    return sorted(points)


def compute_concurrency(
    sessions: Iterable[SessionInterval],
    progress: Optional[SweepProgress] = None,
) -> list[ConcurrencySample]:
    """Sweep merged login/logout events and emit the active count at each instant.

    Logins at ``t`` are applied before sampling ``t``; logouts at ``t`` only
    after it, which realises the inclusive-both-ends rule. Only non-zero
    counts are emitted. Output is ordered by timestamp, then software name.
    """
    retained = resolved_sessions(sessions)
    points = time_points(retained)

    logins: dict[datetime, list[str]] = defaultdict(list)
    logouts: dict[datetime, list[str]] = defaultdict(list)
    for session in retained:
        if session.logout_at is not None and session.logout_at < session.login_at:
            # inverted interval: never active, but its instants are still sampled
            continue
        logins[session.login_at].append(session.software_name)
        if session.logout_at is not None:
            logouts[session.logout_at].append(session.software_name)

    active: Counter[str] = Counter()
    samples: list[ConcurrencySample] = []
    total = len(points)
    for processed, instant in enumerate(points, start=1):
        for name in logins.get(instant, ()):
            active[name] += 1
        for name in sorted(active):
            samples.append(ConcurrencySample(instant, name, active[name]))
        for name in logouts.get(instant, ()):
            active[name] -= 1
            if active[name] <= 0:
                del active[name]
        notify(progress, processed, total, logger=_LOGGER)

    _LOGGER.info(
        "Computed %s concurrency samples from %s sessions over %s instants",
        len(samples),
        len(retained),
        total,
    )
    return samples


def compute_concurrency_by_scan(
    sessions: Iterable[SessionInterval],
    progress: Optional[SweepProgress] = None,
) -> list[ConcurrencySample]:
    """Reference implementation: test every session at every instant."""
    retained = resolved_sessions(sessions)
    points = time_points(retained)
    samples: list[ConcurrencySample] = []
    total = len(points)
    for processed, instant in enumerate(points, start=1):
        counts = Counter(s.software_name for s in retained if s.is_active_at(instant))
        for name in sorted(counts):
            samples.append(ConcurrencySample(instant, name, counts[name]))
        notify(progress, processed, total, logger=_LOGGER)
    return samples
