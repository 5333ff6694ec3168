"""Shared pytest fixtures for the license analyzer tests.

Provides fake classifiers, a mock chat-completions response object and small
session/installation datasets so test modules can focus on behaviour.
"""

from __future__ import annotations

import json
import threading
import time
from datetime import datetime
from typing import Any, Callable, Optional

import pytest

from license_analyzer.models import InstallationRecord, SessionInterval
from license_analyzer.services.classifier import ClassificationError


# ---------------------------------------------------------------------------
# Mock LLM responses
# ---------------------------------------------------------------------------


class MockLLMResponse:
    """Minimal mock that quacks like a ``requests.Response``."""

    def __init__(
        self,
        software_name: str = "Visual Studio 2019",
        *,
        content: Optional[str] = None,
        status_code: int = 200,
        body: Any = None,
    ):
        self.status_code = status_code
        if body is None:
            if content is None:
                content = json.dumps({"softwarename": software_name})
            body = {"choices": [{"message": {"content": content, "role": "assistant"}}]}
        self._json = body
        self.headers: dict[str, str] = {}

    def json(self) -> Any:
        if isinstance(self._json, Exception):
            raise self._json
        return self._json

    @property
    def text(self) -> str:
        if isinstance(self._json, Exception):
            return str(self._json)
        return self._json if isinstance(self._json, str) else json.dumps(self._json)


# ---------------------------------------------------------------------------
# Fake classifiers
# ---------------------------------------------------------------------------


class FakeClassifier:
    """Deterministic classifier: strips trailing version tokens, fails on demand."""

    def __init__(
        self,
        *,
        fail_on: Optional[Callable[[str], bool]] = None,
        delay: float = 0.0,
    ) -> None:
        self.fail_on = fail_on or (lambda name: False)
        self.delay = delay
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def classify(self, raw_name: str) -> str:
        with self._lock:
            self.calls.append(raw_name)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                time.sleep(self.delay)
            if self.fail_on(raw_name):
                raise ClassificationError("simulated failure", raw_name=raw_name, reason="http_error")
            parts = raw_name.split()
            if len(parts) > 1 and parts[-1][:1].isdigit() and not parts[-1].isdigit():
                parts = parts[:-1]
            return " ".join(parts)
        finally:
            with self._lock:
                self.in_flight -= 1


@pytest.fixture()
def fake_classifier() -> FakeClassifier:
    return FakeClassifier()


# ---------------------------------------------------------------------------
# Datasets
# ---------------------------------------------------------------------------


def ts(value: str) -> datetime:
    """``"2024-03-01 10:15"`` -> datetime."""
    return datetime.strptime(value, "%Y-%m-%d %H:%M")


def make_record(name: str, observed: str = "2024-03-01 09:00", **fields: Any) -> InstallationRecord:
    return InstallationRecord(observed_at=ts(observed), raw_software_name=name, **fields)


def make_session(name: str, login: Optional[str], logout: Optional[str] = None, sid: str = "s") -> SessionInterval:
    return SessionInterval(
        software_name=name,
        session_id=sid,
        login_at=ts(login) if login else None,
        logout_at=ts(logout) if logout else None,
    )


@pytest.fixture()
def installation_rows() -> list[InstallationRecord]:
    return [
        make_record("Docker Desktop 4.3.1", "2024-03-02 08:00", publisher="Docker Inc.", machine_name="PC-2", username="bob"),
        make_record("Visual Studio 2019", "2024-03-01 09:00", publisher="Microsoft", machine_name="PC-1", username="alice"),
        make_record("Visual Studio 2019", "2024-03-01 11:00", publisher="Microsoft", machine_name="LAPTOP-1", username="alice"),
        make_record("Docker Desktop 4.2", "2024-03-02 08:00", publisher="Docker Inc.", machine_name="PC-2", username="bob"),
    ]
