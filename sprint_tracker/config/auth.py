"""Authentication helpers for the Azure DevOps API."""

import os

from sprint_tracker.config.settings import Settings


class AuthError(Exception):
    """Raised when no usable credentials are available."""


def resolve_pat(settings: Settings) -> str:
    """Get the personal access token to authenticate with.

    The SPRINT_TRACKER_PAT environment variable takes precedence over the
    token stored in the settings file.

    Raises:
        AuthError: If neither source provides a token
    """
    token = os.environ.get("SPRINT_TRACKER_PAT") or settings.pat
    if not token:
        raise AuthError(
            "No personal access token configured.\n"
            "Create one in Azure DevOps (User settings > Personal access tokens)\n"
            "with 'Work Items (Read & write)' scope, then either:\n"
            "  sprint-tracker configure --pat 'your-token-here'\n"
            "or: export SPRINT_TRACKER_PAT='your-token-here'"
        )
    return token


def get_verify_ssl() -> bool:
    """Get SSL verification setting from environment.

    Set SPRINT_TRACKER_VERIFY_SSL=false to disable SSL certificate verification,
    e.g. for an on-premises server with a self-signed certificate.
    """
    value = os.environ.get("SPRINT_TRACKER_VERIFY_SSL", "true").lower()
    return value not in ("false", "0", "no", "off")
