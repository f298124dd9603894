"""Configuration settings management."""

import logging
from pathlib import Path

from pydantic import BaseModel, Field

from sprint_tracker.config.workflow import EXPECTED_HOURS_PER_DAY

logger = logging.getLogger(__name__)


class Settings(BaseModel):
    """Application settings stored locally."""

    # Azure DevOps connection
    services_url: str = Field(default="", description="Organization URL, e.g. 'https://dev.azure.com/acme'")
    project: str = Field(default="", description="Project name")
    team: str = Field(default="", description="Team whose current iteration is tracked")
    pat: str = Field(default="", description="Personal access token")

    # Time tracking rules
    allow_time_entry_without_task: bool = Field(
        default=False,
        description="Leave user stories without tasks as they are instead of adding a placeholder task",
    )
    expected_hours_per_day: int = Field(default=EXPECTED_HOURS_PER_DAY, gt=0)
    retention_days: int = Field(default=90, gt=0, description="Days of local time entries kept by 'prune'")

    def is_valid(self) -> bool:
        """Check that every connection field is filled in."""
        return all([self.services_url, self.project, self.team, self.pat])

    def masked_pat(self) -> str:
        """Return the token with all but the last four characters hidden."""
        if not self.pat:
            return ""
        return "*" * max(len(self.pat) - 4, 0) + self.pat[-4:]


# Global settings instance (lazy loaded)
_settings: Settings | None = None
_settings_path: Path | None = None


def get_config_dir() -> Path:
    """Get the configuration directory, creating it if needed."""
    config_dir = Path.home() / ".sprint-tracker"
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_settings_path() -> Path:
    """Get the path to the settings file."""
    return get_config_dir() / "config.toml"


def get_settings() -> Settings:
    """Load settings from disk, or return defaults."""
    global _settings, _settings_path

    settings_path = get_settings_path()

    # Return cached settings if path hasn't changed
    if _settings is not None and _settings_path == settings_path:
        return _settings

    _settings_path = settings_path

    if settings_path.exists():
        import tomllib

        with open(settings_path, "rb") as f:
            data = tomllib.load(f)
        _settings = Settings.model_validate(data)
        logger.debug("Settings loaded from %s", settings_path)
    else:
        _settings = Settings()

    return _settings


def save_settings(settings: Settings) -> Settings:
    """Save settings to disk, replacing whatever was stored."""
    global _settings, _settings_path

    import tomli_w

    settings_path = get_settings_path()
    data = settings.model_dump(exclude_none=True)

    with open(settings_path, "wb") as f:
        tomli_w.dump(data, f)

    _settings = settings
    _settings_path = settings_path
    logger.debug("Settings saved to %s", settings_path)
    return settings


def reset_settings() -> None:
    """Reset cached settings (useful for testing)."""
    global _settings, _settings_path
    _settings = None
    _settings_path = None
