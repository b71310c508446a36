"""Configuration models: change detection settings and application settings."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from regwatch.exceptions import ConfigurationError
from regwatch.models.alert_rule import AlertRule

# Regulatory vocabulary used when no keyword list is configured.
DEFAULT_SIGNIFICANT_KEYWORDS: list[str] = [
    "must",
    "shall",
    "required",
    "mandatory",
    "obligation",
    "condition",
    "prohibited",
    "penalty",
    "fine",
    "sanction",
    "enforcement",
    "fee",
    "charge",
    "payment",
    "deadline",
    "effective",
    "due date",
    "amendment",
    "revision",
    "license condition",
    "code of practice",
    "compliance deadline",
]


def _format_validation_error(exc: ValidationError) -> str:
    """Flatten a pydantic ValidationError into a single readable line."""
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ())) or "config"
        parts.append(f"{location}: {error.get('msg', 'invalid value')}")
    return "; ".join(parts)


class ChangeTypeThresholds(BaseModel):
    """Upper bounds (inclusive) of the change percentage for each change type.

    Percentages above ``major`` are classified as complete rewrites.
    """

    model_config = ConfigDict(frozen=True)

    format: float = 0.05
    minor: float = 0.2
    major: float = 0.6

    @model_validator(mode="after")
    def validate_ordering(self) -> ChangeTypeThresholds:
        """Thresholds must be strictly increasing within (0, 1)."""
        if not 0.0 < self.format < self.minor < self.major < 1.0:
            msg = "thresholds must satisfy 0 < format < minor < major < 1"
            raise ValueError(msg)
        return self


class ChangeDetectionConfig(BaseModel):
    """Settings for classification, scoring, retention, and alert triggering."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    significant_keywords: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SIGNIFICANT_KEYWORDS)
    )
    keyword_weights: dict[str, float] = Field(default_factory=dict)
    min_content_length: int = 100
    significance_threshold: float = 0.3
    store_version_history: bool = True
    max_versions_per_url: int = 10
    thresholds: ChangeTypeThresholds = Field(default_factory=ChangeTypeThresholds)
    similarity_floor: float = 0.9
    alert_rules: list[AlertRule] = Field(default_factory=list)
    alert_cooldown_minutes: int = 60

    @field_validator("significant_keywords")
    @classmethod
    def validate_significant_keywords(cls, value: list[str]) -> list[str]:
        """Keywords are lowercased, stripped, and de-duplicated in order."""
        seen: dict[str, None] = {}
        for keyword in value:
            normalized = " ".join(keyword.lower().split())
            if normalized:
                seen.setdefault(normalized, None)
        return list(seen)

    @field_validator("keyword_weights")
    @classmethod
    def validate_keyword_weights(cls, value: dict[str, float]) -> dict[str, float]:
        """Weight keys are normalized like keywords."""
        return {" ".join(key.lower().split()): weight for key, weight in value.items()}

    @field_validator("min_content_length")
    @classmethod
    def validate_min_content_length(cls, value: int) -> int:
        """Minimum content length must be non-negative."""
        if value < 0:
            msg = "min_content_length must be >= 0"
            raise ValueError(msg)
        return value

    @field_validator("significance_threshold")
    @classmethod
    def validate_significance_threshold(cls, value: float) -> float:
        """Significance threshold must be between 0.0 and 1.0."""
        if value < 0.0 or value > 1.0:
            msg = "significance_threshold must be between 0.0 and 1.0"
            raise ValueError(msg)
        return value

    @field_validator("max_versions_per_url")
    @classmethod
    def validate_max_versions_per_url(cls, value: int) -> int:
        """Retention cap must be greater than 0."""
        if value <= 0:
            msg = "max_versions_per_url must be greater than 0"
            raise ValueError(msg)
        return value

    @field_validator("similarity_floor")
    @classmethod
    def validate_similarity_floor(cls, value: float) -> float:
        """Similarity floor must be in (0.0, 1.0]."""
        if value <= 0.0 or value > 1.0:
            msg = "similarity_floor must be greater than 0.0 and at most 1.0"
            raise ValueError(msg)
        return value

    @field_validator("alert_cooldown_minutes")
    @classmethod
    def validate_alert_cooldown_minutes(cls, value: int) -> int:
        """Cooldown must be non-negative."""
        if value < 0:
            msg = "alert_cooldown_minutes must be >= 0"
            raise ValueError(msg)
        return value

    @classmethod
    def load(cls, **values: Any) -> ChangeDetectionConfig:
        """Build a config, raising ConfigurationError instead of ValidationError."""
        try:
            return cls.model_validate(values)
        except ValidationError as exc:
            raise ConfigurationError(_format_validation_error(exc)) from exc

    @property
    def retention_limit(self) -> int:
        """Versions kept per url; only the latest when history is disabled."""
        return self.max_versions_per_url if self.store_version_history else 1

    def weight_for(self, keyword: str) -> float:
        """Scoring weight for a configured keyword (1.0 unless overridden)."""
        return self.keyword_weights.get(keyword, 1.0)


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Nested change detection values use a double underscore, e.g.
    ``CHANGE_DETECTION__SIGNIFICANCE_THRESHOLD=0.4``.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    database_path: str = "data/regwatch.db"
    log_level: str = "INFO"
    storage_backend: Literal["sqlite", "memory"] = "sqlite"
    storage_retry_attempts: int = 3
    storage_timeout_seconds: float = 5.0
    change_detection: ChangeDetectionConfig = Field(default_factory=ChangeDetectionConfig)

    @field_validator("database_path")
    @classmethod
    def validate_database_path(cls, value: str) -> str:
        """Database path must be non-empty."""
        if not value.strip():
            msg = "database_path must not be empty"
            raise ValueError(msg)
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Log level must be a valid Python logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_value = value.upper()
        if upper_value not in valid_levels:
            msg = f"log_level must be one of {', '.join(sorted(valid_levels))}"
            raise ValueError(msg)
        return upper_value

    @field_validator("storage_retry_attempts")
    @classmethod
    def validate_storage_retry_attempts(cls, value: int) -> int:
        """Storage retry attempts must be between 0 and 5."""
        if value < 0 or value > 5:
            msg = "storage_retry_attempts must be between 0 and 5"
            raise ValueError(msg)
        return value

    @field_validator("storage_timeout_seconds")
    @classmethod
    def validate_storage_timeout_seconds(cls, value: float) -> float:
        """Storage timeout must be positive."""
        if value <= 0:
            msg = "storage_timeout_seconds must be greater than 0"
            raise ValueError(msg)
        return value

    def detection_config(self) -> ChangeDetectionConfig:
        """Re-validate the nested change detection config, raising ConfigurationError."""
        return ChangeDetectionConfig.load(**self.change_detection.model_dump())

    def ensure_database_directory(self) -> None:
        """Create the parent directory of the SQLite file if needed."""
        Path(self.database_path).parent.mkdir(parents=True, exist_ok=True)


def load_settings(**overrides: Any) -> Settings:
    """Load settings from the environment, raising ConfigurationError on invalid values."""
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        raise ConfigurationError(_format_validation_error(exc)) from exc
