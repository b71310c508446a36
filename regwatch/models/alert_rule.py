"""Alert rule model: trigger conditions for change notifications."""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AlertRule(BaseModel):
    """Conditions under which a significant change should raise an alert."""

    model_config = ConfigDict(frozen=True)

    name: str
    keywords: list[str] = Field(default_factory=list)
    url_patterns: list[str] = Field(default_factory=list)
    min_importance: int = 0

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        """Rule name must be non-empty and at most 100 characters."""
        stripped = value.strip()
        if not stripped or len(stripped) > 100:
            msg = "name must be between 1 and 100 characters"
            raise ValueError(msg)
        return stripped

    @field_validator("keywords")
    @classmethod
    def validate_keywords(cls, value: list[str]) -> list[str]:
        """Keywords are matched case-insensitively; blanks are dropped."""
        return [keyword.strip().lower() for keyword in value if keyword.strip()]

    @field_validator("url_patterns")
    @classmethod
    def validate_url_patterns(cls, value: list[str]) -> list[str]:
        """URL patterns must be valid regular expressions."""
        for pattern in value:
            try:
                re.compile(pattern)
            except re.error as exc:
                msg = f"invalid url pattern {pattern!r}: {exc}"
                raise ValueError(msg) from exc
        return value

    @field_validator("min_importance")
    @classmethod
    def validate_min_importance(cls, value: int) -> int:
        """Minimum importance must be between 0 and 4."""
        if value < 0 or value > 4:
            msg = "min_importance must be between 0 and 4"
            raise ValueError(msg)
        return value
