import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from tabpilot.browser.views import TabInfo
from tabpilot.config import CONFIG
from tabpilot.exceptions import TabNotFoundError
from tabpilot.page.bridge import PageBridge
from tabpilot.page.service import PageActionEngine
from tabpilot.utils import _log_pretty_url

logger = logging.getLogger(__name__)

TabCallback = Callable[[int], Awaitable[Any]]


class TabHost:
	"""
	Privileged side of the browser: owns the Playwright context and its tabs.

	Every page gets an integer tab id, a PageActionEngine serving a PageBridge, and an Escape-key
	listener. Tabs opened by the page itself (popups, target=_blank) are picked up as well.
	"""

	def __init__(
		self,
		headless: bool | None = None,
		on_tab_closed: TabCallback | None = None,
		on_escape: TabCallback | None = None,
	):
		self.headless = headless if headless is not None else CONFIG.TABPILOT_HEADLESS
		self.on_tab_closed = on_tab_closed
		self.on_escape = on_escape

		self.playwright: Playwright | None = None
		self.browser: Browser | None = None
		self.browser_context: BrowserContext | None = None

		self._pages: dict[int, Page] = {}
		self._bridges: dict[int, PageBridge] = {}
		self._next_tab_id = 1
		self._background_tasks: set[asyncio.Task] = set()
		self._setup_tasks: dict[int, asyncio.Task] = {}

	def __repr__(self) -> str:
		return f'TabHost(tabs={sorted(self._pages)})'

	@property
	def tab_ids(self) -> list[int]:
		return list(self._pages)

	async def start(self) -> 'TabHost':
		if self.browser_context is not None:
			return self
		self.playwright = await async_playwright().start()
		self.browser = await self.playwright.chromium.launch(headless=self.headless if self.headless is not None else True)
		self.browser_context = await self.browser.new_context()
		self.browser_context.on('page', self._on_new_page)
		logger.debug(f'🌎 Browser started (headless={self.headless})')
		return self

	async def stop(self) -> None:
		for bridge in list(self._bridges.values()):
			await bridge.close()
		self._bridges.clear()
		self._pages.clear()
		if self.browser_context is not None:
			await self.browser_context.close()
			self.browser_context = None
		if self.browser is not None:
			await self.browser.close()
			self.browser = None
		if self.playwright is not None:
			await self.playwright.stop()
			self.playwright = None

	async def __aenter__(self) -> 'TabHost':
		return await self.start()

	async def __aexit__(self, exc_type, exc, tb) -> None:
		await self.stop()

	# --- tab lifecycle ---
	async def new_tab(self, url: str | None = None) -> int:
		"""Open a tab, wait until its page context is ready, and return its id"""
		assert self.browser_context is not None, 'TabHost is not started'
		page = await self.browser_context.new_page()
		# the context 'page' event may or may not have registered it already
		tab_id = self.register_page(page)
		setup = self._setup_tasks.pop(tab_id, None)
		if setup is not None:
			await setup
		if url:
			await page.goto(url)
		return tab_id

	def register_page(self, page: Page) -> int:
		"""Give a page a tab id and a served bridge. Idempotent per page."""
		existing = self._tab_id_for(page)
		if existing is not None:
			return existing

		tab_id = self._next_tab_id
		self._next_tab_id += 1
		self._pages[tab_id] = page

		engine = PageActionEngine(page)
		bridge = PageBridge(tab_id)
		bridge.serve(engine)
		self._bridges[tab_id] = bridge

		page.on('close', lambda _page: self._spawn(self._on_page_closed(tab_id)))
		self._setup_tasks[tab_id] = asyncio.ensure_future(self._install_escape_listener(tab_id, engine))
		logger.debug(f'🗂️ Attached tab {tab_id} ({_log_pretty_url(page.url)})')
		return tab_id

	async def _install_escape_listener(self, tab_id: int, engine: PageActionEngine) -> None:
		async def escape_pressed() -> None:
			if self.on_escape is not None:
				await self.on_escape(tab_id)

		try:
			await engine.install_escape_listener(escape_pressed)
		except Exception as e:
			# the page may close before its listener is in place
			logger.debug(f'Could not install Escape listener in tab {tab_id}: {type(e).__name__}: {e}')

	def _on_new_page(self, page: Page) -> None:
		self.register_page(page)

	async def _on_page_closed(self, tab_id: int) -> None:
		self._pages.pop(tab_id, None)
		self._setup_tasks.pop(tab_id, None)
		bridge = self._bridges.pop(tab_id, None)
		if bridge is not None:
			await bridge.close()
		logger.debug(f'🗂️ Tab {tab_id} closed')
		if self.on_tab_closed is not None:
			await self.on_tab_closed(tab_id)

	def _spawn(self, coro) -> None:
		task = asyncio.ensure_future(coro)
		self._background_tasks.add(task)
		task.add_done_callback(self._background_tasks.discard)

	def _tab_id_for(self, page: Page) -> int | None:
		for tab_id, known in self._pages.items():
			if known is page:
				return tab_id
		return None

	# --- operations used by the run controller ---
	def get_page(self, tab_id: int) -> Page:
		page = self._pages.get(tab_id)
		if page is None or page.is_closed():
			raise TabNotFoundError(f'Tab {tab_id} does not exist')
		return page

	def get_bridge(self, tab_id: int) -> PageBridge:
		bridge = self._bridges.get(tab_id)
		if bridge is None:
			raise TabNotFoundError(f'Tab {tab_id} does not exist')
		return bridge

	async def get_tab_info(self, tab_id: int) -> TabInfo:
		page = self.get_page(tab_id)
		try:
			title = await page.title()
		except Exception as e:
			logger.debug(f'Could not read title of tab {tab_id}: {type(e).__name__}: {e}')
			title = ''
		return TabInfo.from_page(page.url, title)

	async def open_tab(self, url: str) -> int:
		tab_id = await self.new_tab(url)
		logger.info(f'🔗 Opened tab {tab_id} with {_log_pretty_url(url)}')
		return tab_id

	async def navigate(self, tab_id: int, url: str) -> None:
		page = self.get_page(tab_id)
		await page.goto(url)
		logger.info(f'🔗 Tab {tab_id} navigated to {_log_pretty_url(url)}')
