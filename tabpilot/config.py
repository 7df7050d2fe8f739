"""Configuration system for tabpilot, re-read from the environment on every access."""

import logging
import os
from pathlib import Path
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_PLANNER_BASE_URL = 'https://himanshu-711-fera-ai-assistant.hf.space'
DEFAULT_SEARCH_UI_URL = 'https://search.fera.ai'

# mirrors tabpilot.planner.views.ToolName
ALL_TOOLS = (
	'click',
	'open_tab',
	'press_key',
	'scroll',
	'search_default',
	'summarize_page',
	'type',
	'wait_for_user_auth',
)


class OldConfig:
	"""Lazy-loading configuration for environment variables that need transformation."""

	# Cache for directory creation tracking
	_dirs_created = False

	@property
	def TABPILOT_LOGGING_LEVEL(self) -> str:
		return os.getenv('TABPILOT_LOGGING_LEVEL', 'info').lower()

	@property
	def TABPILOT_PLANNER_BASE_URL(self) -> str:
		url = os.getenv('TABPILOT_PLANNER_BASE_URL', DEFAULT_PLANNER_BASE_URL).rstrip('/')
		assert '://' in url, 'TABPILOT_PLANNER_BASE_URL must be a valid URL'
		return url

	@property
	def TABPILOT_PLANNER_TIMEOUT(self) -> float | None:
		value = os.getenv('TABPILOT_PLANNER_TIMEOUT', '').strip()
		if not value:
			return None
		return float(value)

	@property
	def TABPILOT_SEARCH_UI_URL(self) -> str:
		url = os.getenv('TABPILOT_SEARCH_UI_URL', DEFAULT_SEARCH_UI_URL).rstrip('/')
		assert '://' in url, 'TABPILOT_SEARCH_UI_URL must be a valid URL'
		return url

	@property
	def TABPILOT_ALLOWED_TOOLS(self) -> frozenset[str]:
		raw = os.getenv('TABPILOT_ALLOWED_TOOLS', '')
		if not raw.strip():
			return frozenset(ALL_TOOLS)
		requested = {name.strip() for name in raw.split(',') if name.strip()}
		unknown = requested - set(ALL_TOOLS)
		if unknown:
			logger.warning(f'Ignoring unknown tools in TABPILOT_ALLOWED_TOOLS: {sorted(unknown)}')
		return frozenset(requested & set(ALL_TOOLS))

	@property
	def TABPILOT_HEADLESS(self) -> bool | None:
		value = os.getenv('TABPILOT_HEADLESS', '')
		if not value:
			return None
		return value.lower()[:1] in 'ty1'

	# Path configuration
	@property
	def XDG_CONFIG_HOME(self) -> Path:
		return Path(os.getenv('XDG_CONFIG_HOME', '~/.config')).expanduser().resolve()

	@property
	def TABPILOT_CONFIG_DIR(self) -> Path:
		path = Path(os.getenv('TABPILOT_CONFIG_DIR', str(self.XDG_CONFIG_HOME / 'tabpilot'))).expanduser().resolve()
		self._ensure_dirs()
		return path

	@property
	def TABPILOT_STATE_DIR(self) -> Path:
		override = os.getenv('TABPILOT_STATE_DIR')
		if override:
			return Path(override).expanduser().resolve()
		return self.TABPILOT_CONFIG_DIR / 'tab_state'

	def _ensure_dirs(self) -> None:
		"""Create directories if they don't exist (only once)"""
		if not self._dirs_created:
			config_dir = (
				Path(os.getenv('TABPILOT_CONFIG_DIR', str(self.XDG_CONFIG_HOME / 'tabpilot'))).expanduser().resolve()
			)
			config_dir.mkdir(parents=True, exist_ok=True)
			self._dirs_created = True


class FlatEnvConfig(BaseSettings):
	"""All environment variables in a flat namespace."""

	model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', case_sensitive=True, extra='allow')

	# Logging
	TABPILOT_LOGGING_LEVEL: str = Field(default='info')

	# Planner service
	TABPILOT_PLANNER_BASE_URL: str = Field(default=DEFAULT_PLANNER_BASE_URL)
	TABPILOT_PLANNER_TIMEOUT: float | None = Field(default=None)

	# Safety surface
	TABPILOT_SEARCH_UI_URL: str = Field(default=DEFAULT_SEARCH_UI_URL)
	TABPILOT_ALLOWED_TOOLS: str = Field(default='')

	# Paths
	XDG_CONFIG_HOME: str = Field(default='~/.config')
	TABPILOT_CONFIG_DIR: str | None = Field(default=None)
	TABPILOT_STATE_DIR: str | None = Field(default=None)

	# Browser
	TABPILOT_HEADLESS: bool | None = Field(default=None)
	TABPILOT_DEFAULT_MODE: str = Field(default='agent')


class Config:
	"""Configuration proxy that merges all config sources.

	Re-reads environment variables on every access so tests and the CLI can change them at runtime.
	"""

	def __getattr__(self, name: str) -> Any:
		if name.startswith('_'):
			raise AttributeError(f"'{self.__class__.__name__}' object has no attribute '{name}'")

		# Create fresh instances on every access
		old_config = OldConfig()
		if hasattr(old_config, name):
			return getattr(old_config, name)

		env_config = FlatEnvConfig()
		if hasattr(env_config, name):
			return getattr(env_config, name)

		raise AttributeError(f"'{self.__class__.__name__}' object has no attribute '{name}'")


# Create singleton instance
CONFIG = Config()
