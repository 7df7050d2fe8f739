"""Tests for the lazily re-read configuration."""

import os
from pathlib import Path

import pytest

from tabpilot.config import ALL_TOOLS, CONFIG, DEFAULT_PLANNER_BASE_URL
from tabpilot.planner.views import ToolName


class TestLazyConfig:
	"""CONFIG reads the environment on every access"""

	def test_logging_level_read_lazily(self):
		os.environ['TABPILOT_LOGGING_LEVEL'] = 'DEBUG'
		try:
			assert CONFIG.TABPILOT_LOGGING_LEVEL == 'debug'
			del os.environ['TABPILOT_LOGGING_LEVEL']
			assert CONFIG.TABPILOT_LOGGING_LEVEL == 'info'
		finally:
			os.environ.pop('TABPILOT_LOGGING_LEVEL', None)

	def test_planner_base_url(self):
		os.environ['TABPILOT_PLANNER_BASE_URL'] = 'http://planner.local:8000/'
		assert CONFIG.TABPILOT_PLANNER_BASE_URL == 'http://planner.local:8000'

		del os.environ['TABPILOT_PLANNER_BASE_URL']
		assert CONFIG.TABPILOT_PLANNER_BASE_URL == DEFAULT_PLANNER_BASE_URL

	def test_planner_timeout(self):
		assert CONFIG.TABPILOT_PLANNER_TIMEOUT is None
		os.environ['TABPILOT_PLANNER_TIMEOUT'] = '12.5'
		try:
			assert CONFIG.TABPILOT_PLANNER_TIMEOUT == 12.5
		finally:
			del os.environ['TABPILOT_PLANNER_TIMEOUT']

	def test_search_ui_url_must_be_a_url(self):
		os.environ['TABPILOT_SEARCH_UI_URL'] = 'search.example.test'
		with pytest.raises(AssertionError):
			CONFIG.TABPILOT_SEARCH_UI_URL

	def test_allowed_tools_default_to_all(self):
		assert CONFIG.TABPILOT_ALLOWED_TOOLS == frozenset(ALL_TOOLS)
		assert set(ALL_TOOLS) == {tool.value for tool in ToolName}

	def test_allowed_tools_subset(self):
		os.environ['TABPILOT_ALLOWED_TOOLS'] = 'click,scroll,format_disk'
		assert CONFIG.TABPILOT_ALLOWED_TOOLS == frozenset({'click', 'scroll'})

	@pytest.mark.parametrize('value, expected', [('true', True), ('1', True), ('yes', True), ('false', False), ('0', False)])
	def test_headless(self, value, expected):
		os.environ['TABPILOT_HEADLESS'] = value
		assert CONFIG.TABPILOT_HEADLESS is expected

	def test_state_dir(self, tmp_path):
		os.environ['TABPILOT_STATE_DIR'] = str(tmp_path / 'states')
		assert CONFIG.TABPILOT_STATE_DIR == (tmp_path / 'states').resolve()

		del os.environ['TABPILOT_STATE_DIR']
		assert CONFIG.TABPILOT_STATE_DIR == Path(os.environ['TABPILOT_CONFIG_DIR']).resolve() / 'tab_state'

	def test_flat_settings_fallback(self):
		assert CONFIG.TABPILOT_DEFAULT_MODE == 'agent'
		os.environ['TABPILOT_DEFAULT_MODE'] = 'research'
		try:
			assert CONFIG.TABPILOT_DEFAULT_MODE == 'research'
		finally:
			del os.environ['TABPILOT_DEFAULT_MODE']

	def test_unknown_attribute(self):
		with pytest.raises(AttributeError):
			CONFIG.TABPILOT_DOES_NOT_EXIST
