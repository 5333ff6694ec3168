"""Service layer: HTTP client, classifier adapter, dispatcher and logging."""

from .logging import JsonFormatter, SensitiveDataFilter, configure_logging
from .http import HttpSettings, configure_http, get_http_session, post_json
from .classifier import (
    ClassificationError,
    ClassificationPayload,
    Classifier,
    ClassifierSettings,
    LlmClassifier,
)
from .dispatcher import NormalizationDispatcher, NormalizationResult
from .progress import normalization_to_status, notify, sweep_to_status

__all__ = [
    "configure_logging",
    "JsonFormatter",
    "SensitiveDataFilter",
    "configure_http",
    "get_http_session",
    "post_json",
    "HttpSettings",
    "ClassificationError",
    "ClassificationPayload",
    "Classifier",
    "ClassifierSettings",
    "LlmClassifier",
    "NormalizationDispatcher",
    "NormalizationResult",
    "normalization_to_status",
    "sweep_to_status",
    "notify",
]
