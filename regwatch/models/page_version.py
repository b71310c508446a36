"""Page version model: one captured snapshot of a monitored URL."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from regwatch.models.change_type import ChangeType
from regwatch.utils.validators import is_valid_checksum, is_valid_url


def _utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


class PageVersion(BaseModel):
    """A stored snapshot of a URL's extracted text. Never mutated after creation."""

    model_config = ConfigDict(strict=True, frozen=True)

    id: int | None = None
    url: str
    content_hash: str
    captured_at: datetime = Field(default_factory=_utc_now)
    text_content: str = ""
    content_summary: str = ""
    change_from_previous: ChangeType = ChangeType.NONE
    html_content: str | None = None
    content_length: int = 0
    extra: dict[str, str] = Field(default_factory=dict)

    @field_validator("url")
    @classmethod
    def validate_url(cls, value: str) -> str:
        """URL must be an absolute http(s) URL. It is stored exactly as given."""
        if not is_valid_url(value):
            msg = "url must be an absolute http or https URL"
            raise ValueError(msg)
        return value

    @field_validator("content_hash")
    @classmethod
    def validate_content_hash(cls, value: str) -> str:
        """Content hash must be a 32-character lowercase hex MD5 string."""
        lowered = value.lower()
        if not is_valid_checksum(lowered):
            msg = "content_hash must be a valid 32-character hex MD5 string"
            raise ValueError(msg)
        return lowered

    @field_validator("captured_at")
    @classmethod
    def validate_captured_at(cls, value: datetime) -> datetime:
        """Captured timestamp must be timezone-aware; it is normalized to UTC."""
        if value.tzinfo is None:
            msg = "captured_at must be timezone-aware"
            raise ValueError(msg)
        return value.astimezone(UTC)

    @field_validator("content_length")
    @classmethod
    def validate_content_length(cls, value: int) -> int:
        """Content length must be non-negative."""
        if value < 0:
            msg = "content_length must be >= 0"
            raise ValueError(msg)
        return value


class PageCapture(BaseModel):
    """Rendered page handed over by the browser/extraction collaborator."""

    url: str
    rendered_html: str = ""
    extracted_text: str
    extra: dict[str, str] = Field(default_factory=dict)

    @field_validator("url")
    @classmethod
    def validate_url(cls, value: str) -> str:
        """URL must be an absolute http(s) URL."""
        if not is_valid_url(value):
            msg = "url must be an absolute http or https URL"
            raise ValueError(msg)
        return value
