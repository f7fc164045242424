"""Configuration loading and validation for the JnanaMitra chat core."""

from __future__ import annotations

from copy import deepcopy
import logging
import os
from pathlib import Path
from typing import Any, Literal
from urllib.parse import urlparse

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .controller import (
    CLEARED_GREETING,
    DEFAULT_TYPING_MIN_DURATION_SECONDS,
    WELCOME_GREETING,
)
from .draft import DEFAULT_SUGGESTIONS
from .exceptions import ConfigValidationError
from .media import DEFAULT_MEDIA_RULES, GREETING_IMAGE_URL
from .models import DEFAULT_TIMESTAMP_FORMAT

import tomllib

LOGGER = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config" / "jnanamitra"
CONFIG_PATH = CONFIG_DIR / "config.toml"

VALID_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


def _require_string(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError("Expected a string value.")
    normalized = value.strip()
    if not normalized:
        raise ValueError("String value must not be empty.")
    return normalized


def _validate_http_url(value: str, field_name: str) -> str:
    parsed = urlparse(value)
    if parsed.scheme.lower() not in {"http", "https"}:
        raise ValueError(f"{field_name} must use http or https scheme.")
    if not parsed.hostname:
        raise ValueError(f"{field_name} must include a hostname.")
    return value


class AppConfig(BaseModel):
    """Widget identity and greeting messages."""

    title: str = "VIGNAN JnanaMitra"
    greeting: str = WELCOME_GREETING
    cleared_greeting: str = CLEARED_GREETING
    greeting_media: str = GREETING_IMAGE_URL

    @field_validator("title", "greeting", "cleared_greeting", mode="before")
    @classmethod
    def _validate_non_empty_string(cls, value: Any) -> str:
        return _require_string(value)

    @field_validator("greeting_media", mode="before")
    @classmethod
    def _normalize_media(cls, value: Any) -> str:
        if value is None:
            return ""
        if not isinstance(value, str):
            raise ValueError("greeting_media must be a string.")
        return value.strip()


class CollaboratorConfig(BaseModel):
    """Chat-completion backend selection and transport limits."""

    backend: Literal["http", "ollama"] = "http"
    endpoint: str = "http://localhost:8003/api/chat"
    host: str = "http://localhost:11434"
    model: str = "llama3.2"
    system_prompt: str = "You are VIGNAN JnanaMitra, a helpful college assistant."
    timeout: int = Field(default=30, ge=1, le=3600)
    retries: int = Field(default=0, ge=0, le=10)
    retry_backoff_seconds: float = Field(default=0.5, ge=0.0, le=60.0)

    @field_validator("backend", mode="before")
    @classmethod
    def _normalize_backend(cls, value: Any) -> str:
        return _require_string(value).lower()

    @field_validator("endpoint", "host", "model", mode="before")
    @classmethod
    def _validate_required_string(cls, value: Any) -> str:
        return _require_string(value)

    @field_validator("system_prompt", mode="before")
    @classmethod
    def _normalize_prompt(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("Expected a string value.")
        return value.strip()

    @model_validator(mode="after")
    def _validate_urls(self) -> CollaboratorConfig:
        _validate_http_url(self.endpoint, "collaborator.endpoint")
        _validate_http_url(self.host, "collaborator.host")
        return self


class UIConfig(BaseModel):
    """Presentation policies the core owns."""

    typing_min_duration_seconds: float = Field(
        default=DEFAULT_TYPING_MIN_DURATION_SECONDS, ge=0.0, le=30.0
    )
    timestamp_format: str = DEFAULT_TIMESTAMP_FORMAT
    suggestions: list[str] = Field(default_factory=lambda: list(DEFAULT_SUGGESTIONS))

    @field_validator("timestamp_format", mode="before")
    @classmethod
    def _validate_timestamp_format(cls, value: Any) -> str:
        normalized = _require_string(value)
        if "%" not in normalized:
            raise ValueError("timestamp_format must contain strftime directives.")
        return normalized

    @field_validator("suggestions", mode="before")
    @classmethod
    def _validate_suggestions(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if not isinstance(value, list):
            raise ValueError("suggestions must be a list of strings.")
        normalized: list[str] = []
        for item in value:
            if not isinstance(item, str):
                raise ValueError("Each suggestion must be a string.")
            candidate = item.strip()
            if candidate and candidate not in normalized:
                normalized.append(candidate)
        return normalized


class MediaRuleConfig(BaseModel):
    """One keyword group mapped to a supplementary image."""

    keywords: list[str]
    url: str

    @field_validator("keywords", mode="before")
    @classmethod
    def _validate_keywords(cls, value: Any) -> list[str]:
        if not isinstance(value, list) or not value:
            raise ValueError("keywords must be a non-empty list.")
        keywords: list[str] = []
        for item in value:
            keywords.append(_require_string(item).lower())
        return keywords

    @field_validator("url", mode="before")
    @classmethod
    def _validate_url(cls, value: Any) -> str:
        return _validate_http_url(_require_string(value), "media.rules.url")


class MediaConfig(BaseModel):
    """Ordered keyword lookup; the first matching rule wins."""

    rules: list[MediaRuleConfig] = Field(
        default_factory=lambda: [
            MediaRuleConfig(keywords=list(rule.keywords), url=rule.url)
            for rule in DEFAULT_MEDIA_RULES
        ]
    )


class SpeechConfig(BaseModel):
    """Voice input preferences."""

    enabled: bool = True
    language: str = "en-US"

    @field_validator("language", mode="before")
    @classmethod
    def _validate_language(cls, value: Any) -> str:
        return _require_string(value)


class LoggingConfig(BaseModel):
    """Logging behavior and output destinations."""

    level: str = "INFO"
    structured: bool = True
    log_to_file: bool = False
    log_file_path: str = "~/.local/state/jnanamitra/app.log"

    @field_validator("level", mode="before")
    @classmethod
    def _validate_level(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("Logging level must be a string.")
        normalized = value.strip().upper()
        if normalized not in VALID_LOG_LEVELS:
            raise ValueError(f"Unsupported log level {normalized!r}.")
        return normalized

    @field_validator("log_file_path", mode="before")
    @classmethod
    def _validate_log_file_path(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("log_file_path must be a string.")
        normalized = value.strip()
        if not normalized:
            raise ValueError("log_file_path must not be empty.")
        return normalized


class Config(BaseModel):
    """Root configuration model for all sections."""

    model_config = ConfigDict(populate_by_name=True)
    app: AppConfig = AppConfig()
    collaborator: CollaboratorConfig = CollaboratorConfig()
    ui: UIConfig = UIConfig()
    media: MediaConfig = MediaConfig()
    speech: SpeechConfig = SpeechConfig()
    logging: LoggingConfig = LoggingConfig()


DEFAULT_CONFIG: dict[str, dict[str, Any]] = Config().model_dump()


def ensure_config_dir(config_dir: Path | None = None) -> Path:
    """Ensure that the config directory exists and return its path."""
    directory = config_dir or CONFIG_DIR
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        LOGGER.warning("Unable to create config directory %s: %s", directory, exc)
    return directory


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override values onto base values.

    Lists (such as ``media.rules``) are replaced wholesale, never concatenated.
    """
    merged: dict[str, Any] = deepcopy(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _enforce_private_permissions(path: Path) -> None:
    """Best-effort enforcement of private file permissions on POSIX systems."""
    if os.name != "posix" or not path.exists():
        return
    try:
        path.chmod(0o600)
    except OSError as exc:
        LOGGER.warning("Unable to enforce 0600 permissions for %s: %s", path, exc)


def _safe_default_config() -> dict[str, dict[str, Any]]:
    """Return a deep copy of validated default config data."""
    return deepcopy(DEFAULT_CONFIG)


def _invalid_sections(exc: ValidationError) -> list[str]:
    """Top-level section names that failed validation."""
    return sorted(
        {str(error["loc"][0]) for error in exc.errors() if error.get("loc")}
    )


def _validate_config(raw: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Validate merged config, resetting only the sections that are invalid.

    A bad ``[ui]`` table, for example, falls back to the default UI policies
    while a valid ``[collaborator]`` override is kept.
    """
    try:
        return Config.model_validate(raw).model_dump()
    except ValidationError as exc:
        sections = _invalid_sections(exc)
        LOGGER.warning(
            "config.section.invalid",
            extra={
                "event": "config.section.invalid",
                "sections": sections,
                "error_count": exc.error_count(),
            },
        )
        repaired = dict(raw)
        for section in sections:
            if section in DEFAULT_CONFIG:
                repaired[section] = deepcopy(DEFAULT_CONFIG[section])
        try:
            return Config.model_validate(repaired).model_dump()
        except ValidationError:
            LOGGER.warning(
                "config.defaults.used",
                extra={"event": "config.defaults.used"},
            )
            return _safe_default_config()
    except Exception as exc:  # noqa: BLE001
        raise ConfigValidationError(f"Unable to validate configuration: {exc}") from exc


def load_config(config_path: Path | None = None) -> dict[str, dict[str, Any]]:
    """
    Load configuration from TOML, merge with defaults, and validate.

    The optional ``config_path`` argument is intended for tests and tooling.
    """
    target_path = config_path or CONFIG_PATH
    ensure_config_dir(target_path.parent)

    raw_data: dict[str, Any] = {}
    if target_path.exists():
        _enforce_private_permissions(target_path)
        try:
            raw_data = tomllib.loads(target_path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError) as exc:
            LOGGER.warning("Failed to parse config at %s: %s", target_path, exc)
            raw_data = {}

    merged = (
        _deep_merge(DEFAULT_CONFIG, raw_data)
        if isinstance(raw_data, dict)
        else _safe_default_config()
    )
    return _validate_config(merged)
