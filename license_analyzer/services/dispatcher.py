"""Bounded-concurrency normalization of installation records.

Jobs are admitted in batches of ``batch_size`` and executed by at most
``concurrency`` worker threads; the next batch is admitted only once the
previous one has drained. A failing job is recorded and never aborts its
siblings. Progress callbacks run on a separate reporter thread.
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass, field, replace
from typing import Any, Optional, Sequence

from ..models import InstallationRecord, NormalizationError, NormalizationJob
from .classifier import Classifier
from .progress import NormalizationProgress, notify

_LOGGER = logging.getLogger("license_analyzer.dispatcher")


@dataclass(slots=True)
class _QueuedJob:
    job: NormalizationJob
    record: InstallationRecord


@dataclass
class NormalizationResult:
    """Outcome of one `NormalizationDispatcher.normalize_all` run."""

    records: list[InstallationRecord]
    errors: list[NormalizationError]
    total: int
    skipped: list[int] = field(default_factory=list)
    cancelled: bool = False

    @property
    def all_failed(self) -> bool:
        return bool(self.errors) and not self.records


@dataclass
class _RunState:
    total: int
    progress: Optional[NormalizationProgress]
    events: Optional[queue.Queue[Optional[tuple[int, int, str, str]]]] = None
    successes: list[tuple[int, InstallationRecord]] = field(default_factory=list)
    errors: list[NormalizationError] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    completed: int = 0
    admitted: int = 0
    in_flight: int = 0


class NormalizationDispatcher:
    """Fan classification calls out over a fixed pool of worker threads."""

    def __init__(
        self,
        classifier: Classifier,
        *,
        concurrency: int = 50,
        batch_size: int = 100,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.classifier = classifier
        self.concurrency = max(1, int(concurrency or 1))
        self.batch_size = max(1, int(batch_size or 1))
        self._logger = logger or _LOGGER
        self._lock = threading.RLock()
        self._cancel = threading.Event()
        self._running = False
        self._peak_in_flight = 0
        self._peak_admitted = 0
        self._state: _RunState | None = None

    def cancel(self) -> None:
        """Stop admitting work; jobs already running finish normally.

        Calling this before `normalize_all` starts cancels that run up front.
        """
        if not self._cancel.is_set():
            self._logger.info("Normalization cancelled")
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def normalize_all(
        self,
        rows: Sequence[InstallationRecord],
        progress: Optional[NormalizationProgress] = None,
    ) -> NormalizationResult:
        rows = list(rows)
        with self._lock:
            if self._running:
                raise RuntimeError("dispatcher is already running")
            self._running = True
            self._peak_in_flight = 0
            self._peak_admitted = 0
            state = _RunState(total=len(rows), progress=progress)
            if progress is not None:
                state.events = queue.Queue()
            self._state = state

        jobs: queue.Queue[Optional[_QueuedJob]] = queue.Queue()
        worker_count = min(self.concurrency, self.batch_size, max(1, len(rows)))
        workers = [
            threading.Thread(
                target=self._worker_loop,
                args=(jobs, state),
                name=f"normalize-{idx + 1}",
                daemon=True,
            )
            for idx in range(worker_count)
        ]
        reporter = None
        if state.events is not None:
            reporter = threading.Thread(target=self._report_loop, args=(state,), name="normalize-progress", daemon=True)
            reporter.start()
        for worker in workers:
            worker.start()
        self._logger.info(
            "Normalizing %s rows: concurrency=%s batch_size=%s",
            len(rows),
            self.concurrency,
            self.batch_size,
        )
        try:
            for start in range(0, len(rows), self.batch_size):
                if self._cancel.is_set():
                    with self._lock:
                        state.skipped.extend(range(start, len(rows)))
                    break
                batch = rows[start : start + self.batch_size]
                with self._lock:
                    state.admitted += len(batch)
                    self._peak_admitted = max(self._peak_admitted, state.admitted - state.completed - len(state.skipped))
                for offset, record in enumerate(batch):
                    index = start + offset
                    jobs.put(_QueuedJob(NormalizationJob(index, record.raw_software_name), record))
                jobs.join()
        finally:
            for _ in workers:
                jobs.put(None)
            for worker in workers:
                worker.join()
            if reporter is not None:
                state.events.put(None)
                reporter.join()
            with self._lock:
                cancelled = self._cancel.is_set()
                # cleared on exit: a cancel that arrives before the run starts still applies to it
                self._cancel.clear()
                self._running = False

        ordered = sorted(state.successes, key=lambda item: (item[1].observed_at, item[0]))
        result = NormalizationResult(
            records=[record for _, record in ordered],
            errors=sorted(state.errors, key=lambda err: err.index),
            total=len(rows),
            skipped=sorted(state.skipped),
            cancelled=cancelled,
        )
        if result.errors:
            self._logger.warning("Encountered %s errors during normalization", len(result.errors))
        self._logger.info(
            "Normalization finished: %s ok, %s failed, %s skipped",
            len(result.records),
            len(result.errors),
            len(result.skipped),
        )
        return result

    def stats(self) -> dict[str, Any]:
        with self._lock:
            state = self._state
            return {
                "concurrency": self.concurrency,
                "batch_size": self.batch_size,
                "running": self._running,
                "cancelled": self._cancel.is_set(),
                "peak_in_flight": self._peak_in_flight,
                "peak_admitted": self._peak_admitted,
                "total": state.total if state else 0,
                "completed": state.completed if state else 0,
                "failed": len(state.errors) if state else 0,
                "skipped": len(state.skipped) if state else 0,
            }

    def _worker_loop(self, jobs: "queue.Queue[Optional[_QueuedJob]]", state: _RunState) -> None:
        while True:
            item = jobs.get()
            try:
                if item is None:
                    return
                if self._cancel.is_set():
                    with self._lock:
                        state.skipped.append(item.job.index)
                    continue
                self._execute(item, state)
            finally:
                jobs.task_done()

    def _execute(self, item: _QueuedJob, state: _RunState) -> None:
        job = item.job
        with self._lock:
            state.in_flight += 1
            self._peak_in_flight = max(self._peak_in_flight, state.in_flight)
        normalized = ""
        cause: Exception | None = None
        try:
            normalized = self.classifier.classify(job.raw_software_name)
        except Exception as exc:  # noqa: BLE001 - captured per row
            cause = exc
        finally:
            with self._lock:
                state.in_flight -= 1

        with self._lock:
            state.completed += 1
            if cause is None:
                state.successes.append((job.index, replace(item.record, normalized_software_name=normalized)))
            else:
                self._logger.debug("Row %s (%r) failed: %s", job.index, job.raw_software_name, cause)
                state.errors.append(NormalizationError(job.index, job.raw_software_name, cause))
            if state.events is not None:
                # enqueued under the lock so the reporter sees completed counts in order
                state.events.put((state.completed, state.total, job.raw_software_name, normalized))

    def _report_loop(self, state: _RunState) -> None:
        """Hand queued progress events to the caller's callback, in completion order."""
        while True:
            event = state.events.get()
            if event is None:
                return
            notify(state.progress, *event, logger=self._logger)
