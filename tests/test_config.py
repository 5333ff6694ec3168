import json
from pathlib import Path

import pytest

from license_analyzer.config import AppConfig, load_app_config

_ENV_KEYS = (
    "LLM_API_BASE", "LLM_MODEL", "LLM_API_KEY", "LLM_PROVIDER", "AZURE_OPENAI_API_VERSION",
    "LLM_TEMPERATURE", "LLM_TOP_P", "LLM_MAX_OUTPUT_TOKENS", "LLM_REQUEST_TIMEOUT_SEC",
    "DISPATCHER_CONCURRENCY", "DISPATCHER_BATCH_SIZE", "HTTP_TIMEOUT", "HTTP_CONNECT_TIMEOUT",
    "HTTP_RETRIES", "HTTP_BACKOFF", "LOG_LEVEL", "SENTRY_DSN", "SENTRY_ENVIRONMENT",
    "INSTALLATIONS_PATH", "SESSIONS_PATH", "ENTITLEMENT_REPORT_PATH", "CONCURRENCY_REPORT_PATH",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults(tmp_path):
    config = AppConfig.load(tmp_path)
    assert config.llm_provider == "openai"
    assert config.llm_model == "gpt-4o"
    assert config.dispatcher_concurrency == 50
    assert config.dispatcher_batch_size == 100
    assert config.installations_path == tmp_path / "!Per_User_Dataset.xlsx"
    assert config.entitlement_report_path == tmp_path / "SoftwareAnalysisReport.csv"
    assert config.log_file_path == tmp_path / "logs" / "license_analyzer.log"


def test_environment_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("LLM_PROVIDER", " Azure_OpenAI ")
    monkeypatch.setenv("DISPATCHER_CONCURRENCY", "8")
    monkeypatch.setenv("DISPATCHER_BATCH_SIZE", "not-a-number")
    monkeypatch.setenv("LLM_TEMPERATURE", "0.7")
    monkeypatch.setenv("SESSIONS_PATH", str(tmp_path / "elsewhere" / "s.csv"))
    config = load_app_config(tmp_path)

    assert config.llm_provider == "azure_openai"
    assert config.dispatcher_concurrency == 8
    assert config.dispatcher_batch_size == 100
    assert config.llm_temperature == 0.7
    assert config.sessions_path == tmp_path / "elsewhere" / "s.csv"


def test_limits_are_clamped(tmp_path, monkeypatch):
    monkeypatch.setenv("DISPATCHER_CONCURRENCY", "0")
    monkeypatch.setenv("HTTP_RETRIES", "-2")
    config = AppConfig.load(tmp_path)
    assert config.dispatcher_concurrency == 1
    assert config.http_retries == 0


def test_unknown_provider_falls_back(tmp_path, monkeypatch):
    monkeypatch.setenv("LLM_PROVIDER", "mystery")
    assert AppConfig.load(tmp_path).llm_provider == "openai"


def test_api_key_from_appsettings(tmp_path):
    (tmp_path / "appsettings.json").write_text(json.dumps({"ApiKey": " sk-legacy "}), encoding="utf-8")
    assert AppConfig.load(tmp_path).llm_api_key == "sk-legacy"


def test_env_api_key_wins(tmp_path, monkeypatch):
    (tmp_path / "appsettings.json").write_text(json.dumps({"ApiKey": "sk-legacy"}), encoding="utf-8")
    monkeypatch.setenv("LLM_API_KEY", "sk-env")
    assert AppConfig.load(tmp_path).llm_api_key == "sk-env"


def test_unreadable_appsettings_is_ignored(tmp_path):
    (tmp_path / "appsettings.json").write_text("{broken", encoding="utf-8")
    assert AppConfig.load(tmp_path).llm_api_key == ""


def test_settings_objects(tmp_path, monkeypatch):
    monkeypatch.setenv("LLM_API_BASE", "http://llm.local/v1")
    monkeypatch.setenv("HTTP_RETRIES", "5")
    config = AppConfig.load(Path(tmp_path))

    classifier = config.classifier_settings()
    assert classifier.api_base == "http://llm.local/v1"
    assert classifier.max_output_tokens == 500
    http = config.http_settings()
    assert http.retries == 5
    assert http.timeout == 120.0


def test_http_pool_follows_dispatcher_concurrency(tmp_path, monkeypatch):
    monkeypatch.setenv("DISPATCHER_CONCURRENCY", "100")
    monkeypatch.setenv("HTTP_CONNECT_TIMEOUT", "2.5")
    config = AppConfig.load(tmp_path)

    assert config.http_settings().pool_maxsize == 100
    assert config.http_settings(concurrency=150).pool_maxsize == 150
    assert config.http_settings().connect_timeout == 2.5
