"""Progress callbacks and the free-text status sink.

Sinks are observational only: anything they raise is logged and dropped so a
broken console or log handler cannot fail a run.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

StatusSink = Callable[[str], None]
NormalizationProgress = Callable[[int, int, str, str], None]
SweepProgress = Callable[[int, int], None]

_LOGGER = logging.getLogger("license_analyzer.progress")


def notify(callback: Optional[Callable[..., Any]], *args: Any, logger: Optional[logging.Logger] = None) -> None:
    if callback is None:
        return
    try:
        callback(*args)
    except Exception as exc:  # noqa: BLE001 - sinks must never break the core
        (logger or _LOGGER).warning("Progress callback failed: %s", exc)


def _percent(done: int, total: int) -> float:
    return (done / total * 100.0) if total else 100.0


def normalization_status(completed: int, total: int, raw_name: str, normalized_name: str) -> str:
    outcome = normalized_name or "[unclassified]"
    return (
        f"AI processing and data cleansing: ({_percent(completed, total):.1f}%) "
        f"{completed}/{total}: {raw_name} => {outcome}"
    )


def concurrency_status(processed: int, total: int) -> str:
    return f"Processing concurrent users: {_percent(processed, total):.1f}% ({processed}/{total})"


def normalization_to_status(sink: Optional[StatusSink]) -> NormalizationProgress:
    """Adapt a status sink into a dispatcher progress callback."""

    def _callback(completed: int, total: int, raw_name: str, normalized_name: str) -> None:
        message = normalization_status(completed, total, raw_name, normalized_name)
        _LOGGER.debug(message)
        notify(sink, message)

    return _callback


def sweep_to_status(sink: Optional[StatusSink]) -> SweepProgress:
    """Adapt a status sink into an overlap-engine progress callback."""

    def _callback(processed: int, total: int) -> None:
        message = concurrency_status(processed, total)
        _LOGGER.debug(message)
        notify(sink, message)

    return _callback
