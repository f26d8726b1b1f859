"""
Runtime settings for agentry

Values come from the process environment, optionally seeded from a .env
file. An AgentTeam may also be given an explicit Settings instance.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DUPLICATE_POLICIES = ('warn', 'reject')


@dataclass
class Settings:
    """Settings shared by every agent of a team"""
    log_level: str = "INFO"
    event_history_limit: int = 1000
    storage_root: str = ".agentry"
    duplicate_policy: str = "warn"

    def __post_init__(self):
        if self.duplicate_policy not in DUPLICATE_POLICIES:
            raise ValueError(f"duplicate_policy must be one of {DUPLICATE_POLICIES}, got {self.duplicate_policy!r}")
        if self.event_history_limit < 0:
            raise ValueError("event_history_limit must not be negative")

    @classmethod
    def from_env(cls) -> 'Settings':
        """Build settings from AGENTRY_* environment variables"""
        return cls(
            log_level=os.getenv('AGENTRY_LOG_LEVEL', 'INFO').upper(),
            event_history_limit=int(os.getenv('AGENTRY_EVENT_HISTORY', '1000')),
            storage_root=os.getenv('AGENTRY_STORAGE_ROOT', '.agentry'),
            duplicate_policy=os.getenv('AGENTRY_DUPLICATE_POLICY', 'warn').lower()
        )

    @property
    def storage_path(self) -> Path:
        return Path(self.storage_root).expanduser()


def configure_logging(settings: Optional[Settings] = None):
    """Configure root logging at the configured level"""
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )


# Global settings instance
_settings: Optional[Settings] = None


def get_settings(dotenv_path: Optional[str] = None) -> Settings:
    """Get the global settings, loading .env on first use"""
    global _settings
    if _settings is None:
        load_dotenv(dotenv_path=dotenv_path)
        _settings = Settings.from_env()
        logger.debug(f"Loaded settings: {_settings}")
    return _settings


def reset_settings():
    """Drop the cached global settings"""
    global _settings
    _settings = None
