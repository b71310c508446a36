"""Regulatory page change detection and significance scoring."""

__version__ = "0.1.0"
