"""Logging helpers for the license analyzer."""

from __future__ import annotations

import json
import logging
import os
import re
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterable, Optional

ROOT_LOGGER_NAME = "license_analyzer"


class SensitiveDataFilter(logging.Filter):
    """Mask API keys, tokens and passwords in log records."""

    _PATTERNS: Iterable[tuple[re.Pattern[str], str]] = (
        (re.compile(r"Bearer\s+[A-Za-z0-9._-]+"), "Bearer ***"),
        (re.compile(r"(authorization[=:]\s*)([^\s,]+)", re.I), r"\1***"),
        (re.compile(r"(api[_-]?key['\"]?\s*[=:]\s*['\"]?)([^&\s'\",}]+)", re.I), r"\1***"),
        (re.compile(r"(access[_-]?token=)([^&\s]+)", re.I), r"\1***"),
        (re.compile(r"(password=)([^&\s]+)", re.I), r"\1***"),
    )

    def __init__(self) -> None:
        super().__init__(name="SensitiveDataFilter")

    @staticmethod
    def _sanitize_value(value: object) -> object:
        if isinstance(value, str):
            sanitized = value
            for pattern, repl in SensitiveDataFilter._PATTERNS:
                sanitized = pattern.sub(repl, sanitized)
            return sanitized
        if isinstance(value, (list, tuple)):
            return type(value)(SensitiveDataFilter._sanitize_value(v) for v in value)
        if isinstance(value, dict):
            return {k: SensitiveDataFilter._sanitize_value(v) for k, v in value.items()}
        return value

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = self._sanitize_value(record.msg)
        if record.args:
            record.args = self._sanitize_value(record.args)
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        data = {
            "timestamp": datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
        }
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        if record.__dict__.get("extra"):
            data["extra"] = record.__dict__["extra"]
        return json.dumps(data, ensure_ascii=False)


def resolve_level(level: str | int | None) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level or "INFO").upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def _find_file_handler(logger: logging.Logger, log_file_path: Path) -> Optional[RotatingFileHandler]:
    for handler in logger.handlers:
        if isinstance(handler, RotatingFileHandler):
            if Path(handler.baseFilename).resolve() == log_file_path.resolve():
                return handler
    return None


def configure_logging(
    log_file_path: Path,
    *,
    level: str | int | None = None,
    sentry_dsn: str | None = None,
    sentry_environment: str | None = None,
) -> logging.Logger:
    """Attach a rotating JSON file handler to the package logger."""

    resolved_level = resolve_level(level)
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(resolved_level)

    handler = _find_file_handler(logger, log_file_path)
    if handler is None:
        log_file_path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            log_file_path,
            maxBytes=100 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        logger.addHandler(handler)

    handler.setLevel(resolved_level)
    if not any(isinstance(f, SensitiveDataFilter) for f in handler.filters):
        handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(JsonFormatter())

    if sentry_dsn:
        try:
            import sentry_sdk
            from sentry_sdk.integrations.logging import LoggingIntegration

            sentry_logging = LoggingIntegration(
                level=resolved_level,
                event_level=logging.ERROR,
            )
            sentry_sdk.init(
                dsn=sentry_dsn,
                environment=sentry_environment,
                integrations=[sentry_logging],
                traces_sample_rate=float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0")),
            )
            logger.info("Sentry initialised")
        except Exception as exc:  # noqa: BLE001
            logger.warning("Could not initialise Sentry: %s", exc)
    return logger
