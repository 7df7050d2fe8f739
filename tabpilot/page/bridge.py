import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from bubus import BaseEvent, EventBus
from uuid_extensions import uuid7str

from tabpilot.exceptions import PageTransportError, error_to_payload
from tabpilot.page.events import CollectContextEvent, ExecuteToolEvent, HideCursorEvent, ShowCursorEvent
from tabpilot.page.views import ContextSnapshot

logger = logging.getLogger(__name__)


class PageEngine(Protocol):
	"""What the page side of a bridge must implement"""

	async def execute(self, tool: str, args: dict[str, Any]) -> dict[str, Any]: ...

	async def collect_context(self) -> dict[str, Any]: ...

	async def show_cursor(self) -> dict[str, Any]: ...

	async def hide_cursor(self) -> dict[str, Any]: ...


class PageBridge:
	"""
	Ordered request/response channel between the controller and one tab's page context.

	The controller side only ever dispatches serializable request events and awaits their
	responses; the page side answers them from handlers registered by `serve()`. Page-side
	failures come back as `{'error': ..., 'error_type': ...}` payloads, never as exceptions.

	Handlers only accept a request and return. The page work runs in its own task and resolves
	the request's reply, because bubus processes events of every bus under one lock and a slow
	page action must not hold up unrelated events. Requests are answered one at a time in dispatch
	order within their lane: page actions and context collection share one lane, cursor toggles
	have their own so a stop can hide the indicator while an action is still in flight.
	"""

	def __init__(self, tab_id: int):
		self.tab_id = tab_id
		self.eventbus = EventBus(name=f'PageBus_{tab_id}_{uuid7str()[-4:]}')
		self.engine: PageEngine | None = None
		self._closed = False
		self._replies: dict[str, asyncio.Future] = {}
		self._action_lane = asyncio.Lock()
		self._cursor_lane = asyncio.Lock()
		self._page_tasks: set[asyncio.Task] = set()

	def __repr__(self) -> str:
		return f'PageBridge(tab={self.tab_id}, serving={self.engine is not None})'

	# --- page side ---
	def serve(self, engine: PageEngine) -> None:
		"""Attach the page-side engine that answers requests on this bridge"""
		assert self.engine is None, f'{self} is already served by {self.engine}'
		self.engine = engine

		async def on_execute(event: ExecuteToolEvent) -> dict[str, Any]:
			return self._accept(event, self._action_lane, lambda: engine.execute(event.tool, event.args or {}))

		async def on_collect_context(event: CollectContextEvent) -> dict[str, Any]:
			return self._accept(event, self._action_lane, engine.collect_context)

		async def on_show_cursor(event: ShowCursorEvent) -> dict[str, Any]:
			return self._accept(event, self._cursor_lane, engine.show_cursor)

		async def on_hide_cursor(event: HideCursorEvent) -> dict[str, Any]:
			return self._accept(event, self._cursor_lane, engine.hide_cursor)

		self.eventbus.on(ExecuteToolEvent, on_execute)
		self.eventbus.on(CollectContextEvent, on_collect_context)
		self.eventbus.on(ShowCursorEvent, on_show_cursor)
		self.eventbus.on(HideCursorEvent, on_hide_cursor)

	def _accept(self, event: BaseEvent, lane: asyncio.Lock, call: Callable[[], Awaitable[Any]]) -> dict[str, Any]:
		async def answer() -> None:
			async with lane:
				response = await _answer(call, event)
			reply = self._replies.pop(event.event_id, None)
			if reply is not None and not reply.done():
				reply.set_result(response)

		task = asyncio.create_task(answer(), name=f'{event.event_type}_{self.tab_id}')
		self._page_tasks.add(task)
		task.add_done_callback(self._page_tasks.discard)
		return {'accepted': True}

	# --- controller side ---
	async def execute(self, tool: str, args: dict[str, Any] | None = None) -> dict[str, Any]:
		return await self._request(ExecuteToolEvent(tab_id=self.tab_id, tool=tool, args=args or {}))

	async def collect_context(self) -> ContextSnapshot:
		response = await self._request(CollectContextEvent(tab_id=self.tab_id))
		if response.get('error'):
			raise PageTransportError(f'Collecting context failed: {response["error"]}')
		return ContextSnapshot.model_validate(response)

	async def show_cursor(self) -> dict[str, Any]:
		return await self._request(ShowCursorEvent(tab_id=self.tab_id))

	async def hide_cursor(self) -> dict[str, Any]:
		return await self._request(HideCursorEvent(tab_id=self.tab_id))

	async def _request(self, event: BaseEvent) -> dict[str, Any]:
		if self._closed:
			raise PageTransportError(f'Page context for tab {self.tab_id} is closed')
		if self.engine is None:
			raise PageTransportError(f'No page context attached to tab {self.tab_id}')

		# registered before dispatch, the page may answer before dispatch returns
		reply = asyncio.get_running_loop().create_future()
		self._replies[event.event_id] = reply
		try:
			accepted = await self.eventbus.dispatch(event).event_result()
		except Exception as e:
			self._replies.pop(event.event_id, None)
			raise PageTransportError(f'{event.event_type} to tab {self.tab_id} failed: {type(e).__name__}: {e}') from e
		if not accepted:
			self._replies.pop(event.event_id, None)
			raise PageTransportError(f'{event.event_type} to tab {self.tab_id} got no response')

		response = await reply
		if not isinstance(response, dict):
			raise PageTransportError(f'{event.event_type} to tab {self.tab_id} got no response')
		return response

	async def close(self) -> None:
		if self._closed:
			return
		self._closed = True
		for task in list(self._page_tasks):
			task.cancel()
		replies, self._replies = self._replies, {}
		for reply in replies.values():
			if not reply.done():
				reply.set_exception(PageTransportError(f'Page context for tab {self.tab_id} was closed'))
		await self.eventbus.stop()


async def _answer(call: Callable[[], Awaitable[Any]], event: BaseEvent) -> dict[str, Any]:
	try:
		response = await call()
	except Exception as e:
		logger.debug(f'{event.event_type} failed in page context: {type(e).__name__}: {e}')
		return error_to_payload(e)
	return response if response is not None else {'ok': True}
