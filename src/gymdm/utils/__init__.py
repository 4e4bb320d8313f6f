"""Utility helpers."""

from .log_sanitizer import LogSanitizationFilter, install_log_sanitizer

__all__ = [
    "LogSanitizationFilter",
    "install_log_sanitizer",
]
