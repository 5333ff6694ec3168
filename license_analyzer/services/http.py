"""Shared retrying HTTP session used for classifier calls."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Iterable, Optional

import requests
from requests import Response, Session
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry


@dataclass(frozen=True)
class HttpSettings:
    """Transport settings for outbound requests.

    ``timeout`` caps the read timeout of every request; ``pool_maxsize``
    should be at least the number of concurrent classifier calls so that
    connections are reused instead of discarded.
    """

    timeout: float = 120.0
    connect_timeout: float = 10.0
    retries: int = 3
    backoff_factor: float = 0.5
    status_forcelist: Iterable[int] = (429, 500, 502, 503, 504)
    pool_maxsize: int = 64


_LOGGER = logging.getLogger("license_analyzer.http")
_RETRY_METHODS = frozenset({"GET", "POST"})

_state_lock = threading.Lock()
_settings = HttpSettings()
_session: Session | None = None


def create_session(settings: HttpSettings) -> Session:
    """Build a session whose adapter retries connect errors and 429/5xx replies.

    POST is retried too: a classification request has no side effects.
    """
    retries = max(0, settings.retries)
    policy = Retry(
        total=retries,
        connect=retries,
        read=retries,
        backoff_factor=max(0.0, settings.backoff_factor),
        status_forcelist=tuple(settings.status_forcelist),
        allowed_methods=_RETRY_METHODS,
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=policy, pool_maxsize=max(1, settings.pool_maxsize))
    session = requests.Session()
    for prefix in ("http://", "https://"):
        session.mount(prefix, adapter)
    return session


def configure_http(settings: HttpSettings) -> None:
    """Install ``settings`` and replace the shared session."""
    global _settings, _session
    with _state_lock:
        previous, _settings, _session = _session, settings, create_session(settings)
    if previous is not None:
        previous.close()
    _LOGGER.info(
        "HTTP client: connect=%ss read<=%ss retries=%s backoff=%s pool=%s",
        settings.connect_timeout,
        settings.timeout,
        settings.retries,
        settings.backoff_factor,
        settings.pool_maxsize,
    )


def get_http_session() -> Session:
    global _session
    with _state_lock:
        if _session is None:
            _session = create_session(_settings)
        return _session


def timeout_pair(read: float | None = None) -> tuple[float, float]:
    """``(connect, read)`` for a request, with ``read`` capped by the configured timeout."""
    with _state_lock:
        settings = _settings
    connect = max(0.1, float(settings.connect_timeout))
    limit = float(settings.timeout)
    budget = limit if read is None else min(float(read), limit)
    return connect, max(connect + 1.0, budget)


def post_json(
    url: str,
    payload: Any,
    *,
    headers: Optional[dict[str, str]] = None,
    read_timeout: float | None = None,
    session: Session | None = None,
    logger: Optional[logging.Logger] = None,
) -> Response:
    """POST ``payload`` as JSON through the shared session.

    Transport failures are logged and re-raised; HTTP error statuses are
    returned to the caller untouched.
    """
    sess = session or get_http_session()
    try:
        return sess.request("POST", url, headers=headers, json=payload, timeout=timeout_pair(read_timeout))
    except requests.RequestException as exc:
        (logger or _LOGGER).warning("POST %s failed: %s", url, exc)
        raise
