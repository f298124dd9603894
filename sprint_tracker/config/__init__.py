"""Configuration management."""

from sprint_tracker.config.auth import AuthError, get_verify_ssl, resolve_pat
from sprint_tracker.config.settings import Settings, get_settings, save_settings
from sprint_tracker.config.workflow import WorkItemType

__all__ = [
    "AuthError",
    "Settings",
    "WorkItemType",
    "get_settings",
    "get_verify_ssl",
    "resolve_pat",
    "save_settings",
]
