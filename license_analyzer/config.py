"""Application configuration helpers.

Settings are read from environment variables (optionally seeded from a
``.env`` file in the working directory) into a frozen `AppConfig`, which then
hands typed settings objects to the HTTP client, the classifier and the
dispatcher. Nothing in the analytical core reads the environment directly.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .services.classifier import PROVIDERS, ClassifierSettings
from .services.http import HttpSettings

_LOGGER = logging.getLogger("license_analyzer.config")


def _getenv_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _getenv_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _load_dotenv(base_dir: Path) -> None:
    env_path = base_dir / ".env"
    if env_path.exists():
        load_dotenv(env_path)


def _appsettings_api_key(base_dir: Path) -> str:
    """Return ``ApiKey`` from a legacy ``appsettings.json`` if one is present."""
    path = base_dir / "appsettings.json"
    if not path.exists():
        return ""
    try:
        data = json.loads(path.read_text(encoding="utf-8-sig"))
    except (OSError, ValueError) as exc:
        _LOGGER.warning("Ignoring unreadable %s: %s", path, exc)
        return ""
    if not isinstance(data, dict):
        return ""
    return str(data.get("ApiKey") or "").strip()


@dataclass(frozen=True)
class AppConfig:
    """Strongly typed application configuration container."""

    base_dir: Path
    llm_api_base: str
    llm_model: str
    llm_api_key: str
    llm_provider: str
    azure_openai_api_version: str
    llm_temperature: float
    llm_top_p: float
    llm_max_output_tokens: int
    llm_request_timeout_sec: float
    dispatcher_concurrency: int
    dispatcher_batch_size: int
    http_timeout: float
    http_connect_timeout: float
    http_retries: int
    http_backoff_factor: float
    log_level: str
    sentry_dsn: str
    sentry_environment: str
    installations_path: Path
    sessions_path: Path
    entitlement_report_path: Path
    concurrency_report_path: Path
    logs_dir: Path = field(init=False)
    log_file_path: Path = field(init=False)

    def __post_init__(self) -> None:
        logs_dir = self.base_dir / "logs"
        object.__setattr__(self, "logs_dir", logs_dir)
        object.__setattr__(self, "log_file_path", logs_dir / "license_analyzer.log")

    @classmethod
    def load(cls, base_dir: Optional[Path] = None) -> "AppConfig":
        base_dir = base_dir or Path.cwd()
        _load_dotenv(base_dir)

        provider = (os.getenv("LLM_PROVIDER") or "openai").strip().lower()
        if provider not in PROVIDERS:
            _LOGGER.warning("Unknown LLM_PROVIDER %r, using openai", provider)
            provider = "openai"
        api_key = (os.getenv("LLM_API_KEY") or "").strip() or _appsettings_api_key(base_dir)

        def _path(name: str, default: str) -> Path:
            candidate = Path(os.getenv(name) or default)
            return candidate if candidate.is_absolute() else base_dir / candidate

        return cls(
            base_dir=base_dir,
            llm_api_base=(os.getenv("LLM_API_BASE") or "").strip(),
            llm_model=(os.getenv("LLM_MODEL") or "gpt-4o").strip(),
            llm_api_key=api_key,
            llm_provider=provider,
            azure_openai_api_version=os.getenv("AZURE_OPENAI_API_VERSION", "2024-08-01-preview"),
            llm_temperature=_getenv_float("LLM_TEMPERATURE", 0.2),
            llm_top_p=_getenv_float("LLM_TOP_P", 0.2),
            llm_max_output_tokens=max(16, _getenv_int("LLM_MAX_OUTPUT_TOKENS", 500)),
            llm_request_timeout_sec=max(1.0, _getenv_float("LLM_REQUEST_TIMEOUT_SEC", 60.0)),
            dispatcher_concurrency=max(1, _getenv_int("DISPATCHER_CONCURRENCY", 50)),
            dispatcher_batch_size=max(1, _getenv_int("DISPATCHER_BATCH_SIZE", 100)),
            http_timeout=_getenv_float("HTTP_TIMEOUT", 120.0),
            http_connect_timeout=_getenv_float("HTTP_CONNECT_TIMEOUT", 10.0),
            http_retries=max(0, _getenv_int("HTTP_RETRIES", 3)),
            http_backoff_factor=_getenv_float("HTTP_BACKOFF", 0.5),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            sentry_dsn=os.getenv("SENTRY_DSN", ""),
            sentry_environment=os.getenv("SENTRY_ENVIRONMENT", "production"),
            installations_path=_path("INSTALLATIONS_PATH", "!Per_User_Dataset.xlsx"),
            sessions_path=_path("SESSIONS_PATH", "!Concurrent_User_Raw_Data.xlsx"),
            entitlement_report_path=_path("ENTITLEMENT_REPORT_PATH", "SoftwareAnalysisReport.csv"),
            concurrency_report_path=_path("CONCURRENCY_REPORT_PATH", "ConcurrentUsageReport.csv"),
        )

    def http_settings(self, concurrency: Optional[int] = None) -> HttpSettings:
        """Transport settings with a connection pool wide enough for ``concurrency`` calls."""
        return HttpSettings(
            timeout=self.http_timeout,
            connect_timeout=self.http_connect_timeout,
            retries=self.http_retries,
            backoff_factor=self.http_backoff_factor,
            pool_maxsize=max(1, concurrency or self.dispatcher_concurrency),
        )

    def classifier_settings(self) -> ClassifierSettings:
        return ClassifierSettings(
            api_base=self.llm_api_base,
            model=self.llm_model,
            api_key=self.llm_api_key,
            provider=self.llm_provider,
            api_version=self.azure_openai_api_version,
            temperature=self.llm_temperature,
            top_p=self.llm_top_p,
            max_output_tokens=self.llm_max_output_tokens,
            timeout=self.llm_request_timeout_sec,
        )


def load_app_config(base_dir: Optional[Path] = None) -> AppConfig:
    """Convenience shortcut for callers that do not need the classmethod."""
    return AppConfig.load(base_dir=base_dir)
