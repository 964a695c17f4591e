"""
Configuration management for tasktree.

Loads settings from settings.ini with environment variable overrides.
Provides centralized configuration for the hierarchy engine and the tree
presenter.
"""

import configparser
import os
from pathlib import Path
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field

from tasktree.logging_config import get_logger

logger = get_logger(__name__)

_PROJECT_ROOT = Path(__file__).parent.parent
DEFAULT_DATABASE_URL = f"sqlite+aiosqlite:///{_PROJECT_ROOT / 'config' / 'tasktree.db'}"


class HierarchySettings(BaseModel):
    """Tunables for position allocation and subtree deletion."""

    position_base: float = Field(default=1000.0, ge=0)
    position_step: float = Field(default=1000.0, gt=0)
    delete_strategy: Literal["recursive", "bulk"] = "recursive"


class PresenterSettings(BaseModel):
    """Bounds for the lazy tree's child fetches."""

    fetch_timeout: float = Field(default=10.0, gt=0, description="Seconds per fetch attempt")
    fetch_retries: int = Field(default=2, ge=0, le=10, description="Retries after the first attempt")
    page_size: int = Field(default=50, ge=1, le=500)


class Config:
    """Application configuration manager."""

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize configuration manager.

        Args:
            config_path: Path to config file, defaults to config/settings.ini
        """
        self.config_path = config_path or self._default_config_path()
        self._config = configparser.ConfigParser()
        self._load()

    def _default_config_path(self) -> Path:
        """Get default config path."""
        return _PROJECT_ROOT / "config" / "settings.ini"

    def _load(self):
        """Load configuration from file."""
        if self.config_path.exists():
            try:
                self._config.read(self.config_path)
                logger.info(f"Loaded configuration from {self.config_path}")
            except configparser.Error as e:
                logger.warning(f"Failed to read config file: {e}. Using defaults.")
        else:
            logger.debug(f"Config file not found at {self.config_path}. Using defaults.")

    def get_database_config(self) -> Dict[str, Any]:
        """
        Get database configuration with environment overrides.

        Environment variables take precedence over config file:
        - TASKTREE_DATABASE_URL

        Returns:
            Dictionary with database configuration
        """
        config = {
            'url': os.getenv('TASKTREE_DATABASE_URL') or
                   self._config.get('database', 'url', fallback=DEFAULT_DATABASE_URL),
        }

        logger.debug(f"Database config: url={config['url']}")

        return config

    def get_hierarchy_settings(self) -> HierarchySettings:
        """
        Get hierarchy engine settings with environment overrides.

        Environment variables take precedence over config file:
        - TASKTREE_POSITION_BASE
        - TASKTREE_POSITION_STEP
        - TASKTREE_DELETE_STRATEGY (recursive/bulk)

        Returns:
            Validated HierarchySettings
        """
        settings = HierarchySettings(
            position_base=os.getenv('TASKTREE_POSITION_BASE') or
                          self._config.get('hierarchy', 'position_base', fallback='1000'),
            position_step=os.getenv('TASKTREE_POSITION_STEP') or
                          self._config.get('hierarchy', 'position_step', fallback='1000'),
            delete_strategy=(os.getenv('TASKTREE_DELETE_STRATEGY') or
                             self._config.get('hierarchy', 'delete_strategy', fallback='recursive')).lower(),
        )

        logger.debug(f"Hierarchy config: base={settings.position_base}, "
                    f"step={settings.position_step}, delete_strategy={settings.delete_strategy}")

        return settings

    def get_presenter_settings(self) -> PresenterSettings:
        """
        Get tree presenter settings with environment overrides.

        Environment variables take precedence over config file:
        - TASKTREE_FETCH_TIMEOUT
        - TASKTREE_FETCH_RETRIES

        Returns:
            Validated PresenterSettings
        """
        settings = PresenterSettings(
            fetch_timeout=os.getenv('TASKTREE_FETCH_TIMEOUT') or
                          self._config.get('presenter', 'fetch_timeout', fallback='10'),
            fetch_retries=os.getenv('TASKTREE_FETCH_RETRIES') or
                          self._config.get('presenter', 'fetch_retries', fallback='2'),
            page_size=self._config.getint('presenter', 'page_size', fallback=50),
        )

        logger.debug(f"Presenter config: timeout={settings.fetch_timeout}s, "
                    f"retries={settings.fetch_retries}")

        return settings

    def get_session_config(self) -> Dict[str, Any]:
        """
        Get the local session identity used by the terminal browser.

        Environment variables take precedence over config file:
        - TASKTREE_USER_ID
        - TASKTREE_WORKSPACE

        Returns:
            Dictionary with session configuration
        """
        return {
            'user_id': os.getenv('TASKTREE_USER_ID') or
                       self._config.get('session', 'user_id', fallback='00000000-0000-0000-0000-0000000000aa'),
            'workspace_name': os.getenv('TASKTREE_WORKSPACE') or
                              self._config.get('session', 'workspace_name', fallback='Personal'),
        }

    def get(self, section: str, key: str, fallback: Any = None) -> Any:
        """
        Get configuration value with fallback.

        Args:
            section: Config section name
            key: Config key name
            fallback: Default value if not found

        Returns:
            Configuration value or fallback
        """
        return self._config.get(section, key, fallback=fallback)

    def get_bool(self, section: str, key: str, fallback: bool = False) -> bool:
        """Get boolean configuration value."""
        return self._config.getboolean(section, key, fallback=fallback)

    def get_int(self, section: str, key: str, fallback: int = 0) -> int:
        """Get integer configuration value."""
        return self._config.getint(section, key, fallback=fallback)

    def has_section(self, section: str) -> bool:
        """Check if config section exists."""
        return self._config.has_section(section)

    def sections(self) -> list:
        """Get list of all configuration sections."""
        return self._config.sections()
