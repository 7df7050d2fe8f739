"""
Pytest configuration for tabpilot CI tests.

Isolates the config directory through environment variables so tests never touch a real
profile, and provides an in-memory page engine plus a fake tab host wired through the real
PageBridge channel.
"""

import asyncio
import os
import tempfile
from typing import Any

import pytest
from dotenv import load_dotenv
from pytest_httpserver import HTTPServer

load_dotenv()

from tabpilot.browser.views import TabInfo
from tabpilot.control.service import ControlSurface
from tabpilot.controller.service import RunController
from tabpilot.exceptions import TabNotFoundError
from tabpilot.page.bridge import PageBridge
from tabpilot.planner.service import PlannerClient
from tabpilot.search.service import SearchConfigService
from tabpilot.state.service import TabStateManager
from tabpilot.store import MemoryStore


@pytest.fixture(autouse=True)
def setup_test_environment():
	"""
	Automatically set up test environment for all tests.
	"""
	config_dir = tempfile.mkdtemp(prefix='tabpilot_tests_')

	original_env = {}
	test_env_vars = {
		'TABPILOT_CONFIG_DIR': config_dir,
		'TABPILOT_STATE_DIR': os.path.join(config_dir, 'tab_state'),
		'TABPILOT_PLANNER_BASE_URL': 'http://placeholder-will-be-replaced-by-specific-test-fixtures',
		'TABPILOT_SEARCH_UI_URL': 'https://search.example.test',
		'TABPILOT_ALLOWED_TOOLS': '',
		'TABPILOT_HEADLESS': 'true',
	}

	for key, value in test_env_vars.items():
		original_env[key] = os.environ.get(key)
		os.environ[key] = value

	yield

	for key, value in original_env.items():
		if value is None:
			os.environ.pop(key, None)
		else:
			os.environ[key] = value


class FakePageEngine:
	"""Page-side engine that records what it was asked to do instead of touching a real page"""

	def __init__(self, url: str = 'https://example.com/'):
		self.url = url
		self.calls: list[tuple[str, dict[str, Any]]] = []
		self.cursor_visible = False
		self.cursor_toggles: list[bool] = []
		self.results: dict[str, dict[str, Any]] = {}
		self.failures: dict[str, Exception] = {}
		self.gates: dict[str, asyncio.Event] = {}
		self.context: dict[str, Any] = {
			'url': url,
			'title': 'Example Domain',
			'selectedText': '',
			'visibleText': 'Example Domain. This domain is for use in examples.',
			'links': [{'text': 'More information', 'href': 'https://www.iana.org/domains/example'}],
			'inputs': [],
		}

	async def execute(self, tool: str, args: dict[str, Any]) -> dict[str, Any]:
		self.calls.append((tool, dict(args)))
		if tool in self.gates:
			await self.gates[tool].wait()
		if tool in self.failures:
			raise self.failures[tool]
		return self.results.get(tool, {'ok': True})

	async def collect_context(self) -> dict[str, Any]:
		return dict(self.context)

	async def show_cursor(self) -> dict[str, Any]:
		self.cursor_visible = True
		self.cursor_toggles.append(True)
		return {'ok': True}

	async def hide_cursor(self) -> dict[str, Any]:
		self.cursor_visible = False
		self.cursor_toggles.append(False)
		return {'ok': True}

	@property
	def tools_called(self) -> list[str]:
		return [tool for tool, _ in self.calls]


class FakeTabHost:
	"""Privileged tab operations backed by FakePageEngines, one real PageBridge per tab"""

	def __init__(self):
		self.engines: dict[int, FakePageEngine] = {}
		self.bridges: dict[int, PageBridge] = {}
		self.urls: dict[int, str] = {}
		self.navigations: list[tuple[int, str]] = []
		self.opened: list[str] = []
		self._next_tab_id = 1

	def add_tab(self, url: str = 'https://example.com/') -> int:
		tab_id = self._next_tab_id
		self._next_tab_id += 1
		engine = FakePageEngine(url)
		bridge = PageBridge(tab_id)
		bridge.serve(engine)
		self.engines[tab_id] = engine
		self.bridges[tab_id] = bridge
		self.urls[tab_id] = url
		return tab_id

	async def close_tab(self, tab_id: int) -> None:
		self.engines.pop(tab_id, None)
		self.urls.pop(tab_id, None)
		bridge = self.bridges.pop(tab_id, None)
		if bridge is not None:
			await bridge.close()

	def get_bridge(self, tab_id: int) -> PageBridge:
		if tab_id not in self.bridges:
			raise TabNotFoundError(f'Tab {tab_id} does not exist')
		return self.bridges[tab_id]

	async def get_tab_info(self, tab_id: int) -> TabInfo:
		if tab_id not in self.urls:
			raise TabNotFoundError(f'Tab {tab_id} does not exist')
		return TabInfo.from_page(self.urls[tab_id], 'Example Domain')

	async def open_tab(self, url: str) -> int:
		self.opened.append(url)
		return self.add_tab(url)

	async def navigate(self, tab_id: int, url: str) -> None:
		if tab_id not in self.urls:
			raise TabNotFoundError(f'Tab {tab_id} does not exist')
		self.navigations.append((tab_id, url))
		self.urls[tab_id] = url

	async def stop(self) -> None:
		for tab_id in list(self.bridges):
			await self.close_tab(tab_id)


async def wait_for(condition, timeout: float = 5.0, interval: float = 0.01) -> None:
	"""Poll `condition` until it is truthy, failing the test after `timeout` seconds"""
	deadline = asyncio.get_running_loop().time() + timeout
	while not condition():
		if asyncio.get_running_loop().time() > deadline:
			raise AssertionError(f'Condition not met within {timeout}s')
		await asyncio.sleep(interval)


@pytest.fixture(scope='function')
def store():
	return MemoryStore()


@pytest.fixture(scope='function')
def state_manager(store):
	return TabStateManager(store)


@pytest.fixture(scope='function')
def search(store):
	return SearchConfigService(store)


@pytest.fixture(scope='function')
async def fake_tabs():
	tabs = FakeTabHost()
	yield tabs
	await tabs.stop()


@pytest.fixture(scope='function')
async def planner(httpserver: HTTPServer):
	"""PlannerClient pointed at the local test server, with a schema endpoint already registered"""
	httpserver.expect_request('/schema', method='GET').respond_with_json({'type': 'object', 'title': 'PlanStep'})
	client = PlannerClient(base_url=httpserver.url_for(''))
	yield client
	await client.aclose()


@pytest.fixture(scope='function')
def controller(state_manager, planner, fake_tabs, search):
	return RunController(state_manager, planner, fake_tabs, search)


@pytest.fixture(scope='function')
async def surface(controller, state_manager, fake_tabs):
	control_surface = ControlSurface(controller, state_manager, fake_tabs)
	yield control_surface
	await control_surface.close()


@pytest.fixture(scope='function')
def status_recorder(state_manager):
	"""Records every distinct status a tab passes through, in order"""

	class StatusRecorder:
		def __init__(self):
			self.statuses: dict[int, list[str]] = {}

		def __call__(self, tab_id, state):
			seen = self.statuses.setdefault(tab_id, [])
			if not seen or seen[-1] != state.status.value:
				seen.append(state.status.value)

	recorder = StatusRecorder()
	state_manager.subscribe(recorder)
	return recorder
