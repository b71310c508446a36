"""Pydantic data models for regulatory page change detection."""

from regwatch.models.alert_rule import AlertRule
from regwatch.models.change_type import ChangeType
from regwatch.models.config import (
    DEFAULT_SIGNIFICANT_KEYWORDS,
    ChangeDetectionConfig,
    ChangeTypeThresholds,
    Settings,
    load_settings,
)
from regwatch.models.page_version import PageCapture, PageVersion

__all__ = [
    "DEFAULT_SIGNIFICANT_KEYWORDS",
    "AlertRule",
    "ChangeDetectionConfig",
    "ChangeType",
    "ChangeTypeThresholds",
    "PageCapture",
    "PageVersion",
    "Settings",
    "load_settings",
]
