"""Software-name classifier backed by an OpenAI-compatible chat endpoint."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import requests
from requests import Response, Session

from .http import post_json

_LOGGER = logging.getLogger("license_analyzer.classifier")

PROVIDERS = frozenset({"openai", "azure_openai", "ollama"})
RESPONSE_FIELD = "softwarename"

SYSTEM_PROMPT = (
    "You normalize software inventory entries for license reporting. "
    "Return the product name, and keep a version or release year only when a "
    "separate license is sold for it. "
    "Visual Studio 2019 stays Visual Studio 2019 because each release is licensed, "
    "while Docker Desktop 4.3 becomes Docker Desktop because its versions share one license. "
    "Do not add an edition such as Community, Professional or Enterprise; "
    "Visual Studio only needs the product name and year. "
    "Reply with the name only, no explanation: the value is used as a query key."
)

RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {RESPONSE_FIELD: {"type": "string"}},
    "required": [RESPONSE_FIELD],
    "additionalProperties": False,
}

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.S)


class ClassificationError(RuntimeError):
    """Raised when the classifier cannot produce a normalized name."""

    def __init__(self, message: str, *, raw_name: str = "", reason: str = "") -> None:
        super().__init__(message)
        self.raw_name = raw_name
        self.reason = reason


class Classifier(Protocol):
    def classify(self, raw_name: str) -> str: ...


@dataclass(frozen=True)
class ClassifierSettings:
    api_base: str
    model: str = "gpt-4o"
    api_key: str = ""
    provider: str = "openai"
    api_version: str = "2024-08-01-preview"
    temperature: float = 0.2
    top_p: float = 0.2
    max_output_tokens: int = 500
    timeout: float = 60.0


@dataclass(frozen=True, slots=True)
class ClassificationPayload:
    """Validated body of a classifier reply."""

    software_name: str

    @classmethod
    def from_content(cls, content: str, *, raw_name: str = "") -> "ClassificationPayload":
        text = (content or "").strip()
        fenced = _FENCE_RE.match(text)
        if fenced:
            text = fenced.group(1)
        if not text:
            raise ClassificationError("empty classifier reply", raw_name=raw_name, reason="empty_content")
        try:
            data = json.loads(text)
        except ValueError as exc:
            raise ClassificationError(
                f"classifier reply is not JSON: {text[:80]!r}", raw_name=raw_name, reason="invalid_json"
            ) from exc
        if not isinstance(data, dict) or RESPONSE_FIELD not in data:
            raise ClassificationError(
                f"classifier reply has no '{RESPONSE_FIELD}' field", raw_name=raw_name, reason="missing_field"
            )
        value = data[RESPONSE_FIELD]
        if not isinstance(value, str) or not value.strip():
            raise ClassificationError(
                f"'{RESPONSE_FIELD}' must be a non-empty string", raw_name=raw_name, reason="empty_value"
            )
        return cls(software_name=value.strip())


def chat_url(settings: ClassifierSettings) -> str:
    base = (settings.api_base or "").strip().rstrip("/")
    if not base:
        return ""
    if settings.provider == "ollama":
        if re.search(r"/api/(chat|generate)$", base):
            return base
        return f"{base}/api/chat"
    url = base if base.endswith("/chat/completions") else f"{base}/chat/completions"
    if settings.provider == "azure_openai" and "api-version=" not in url:
        sep = "&" if "?" in url else "?"
        url = f"{url}{sep}api-version={settings.api_version}"
    return url


def chat_headers(settings: ClassifierSettings) -> dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if settings.api_key:
        if settings.provider == "azure_openai":
            headers["api-key"] = settings.api_key
        else:
            headers["Authorization"] = f"Bearer {settings.api_key}"
    return headers


def extract_content(provider: str, data: Any) -> str:
    if not isinstance(data, dict):
        return ""
    if provider == "ollama":
        message = data.get("message")
        if isinstance(message, dict) and message.get("content"):
            return str(message["content"])
        return str(data.get("response") or "")
    choices = data.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        message = choices[0].get("message")
        if isinstance(message, dict) and message.get("content"):
            return str(message["content"])
    return ""


class LlmClassifier:
    """Classifier adapter: one chat-completion request per call, no caching."""

    def __init__(
        self,
        settings: ClassifierSettings,
        *,
        session: Optional[Session] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if settings.provider not in PROVIDERS:
            raise ValueError(f"unsupported provider: {settings.provider}")
        self.settings = settings
        self.session = session
        self.url = chat_url(settings)
        self._logger = logger or _LOGGER

    def build_payload(self, raw_name: str) -> dict[str, Any]:
        s = self.settings
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": f"Classify this software string: {raw_name}"},
        ]
        if s.provider == "ollama":
            return {
                "model": s.model,
                "messages": messages,
                "stream": False,
                "format": RESPONSE_SCHEMA,
                "options": {
                    "temperature": float(s.temperature),
                    "top_p": float(s.top_p),
                    "num_predict": int(s.max_output_tokens),
                },
            }
        return {
            "model": s.model,
            "messages": messages,
            "temperature": float(s.temperature),
            "top_p": float(s.top_p),
            "max_tokens": int(s.max_output_tokens),
            "response_format": {
                "type": "json_schema",
                "json_schema": {
                    "name": "software_schema",
                    "description": "Extracted software name",
                    "schema": RESPONSE_SCHEMA,
                    "strict": True,
                },
            },
        }

    def classify(self, raw_name: str) -> str:
        if not self.url:
            raise ClassificationError("classifier endpoint is not configured", raw_name=raw_name, reason="http_error")
        try:
            response: Response = post_json(
                self.url,
                self.build_payload(raw_name),
                headers=chat_headers(self.settings),
                read_timeout=self.settings.timeout,
                session=self.session,
                logger=self._logger,
            )
        except requests.RequestException as exc:
            raise ClassificationError(
                f"classifier request failed: {exc}", raw_name=raw_name, reason="http_error"
            ) from exc

        if response.status_code >= 400:
            preview = (response.text or "")[:200]
            self._logger.warning("Classifier HTTP %s for %r: %s", response.status_code, raw_name, preview)
            raise ClassificationError(
                f"classifier returned HTTP {response.status_code}", raw_name=raw_name, reason="http_status"
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise ClassificationError(
                "classifier response body is not JSON", raw_name=raw_name, reason="invalid_json"
            ) from exc

        content = extract_content(self.settings.provider, data)
        payload = ClassificationPayload.from_content(content, raw_name=raw_name)
        self._logger.debug("Classified %r as %r", raw_name, payload.software_name)
        return payload.software_name
