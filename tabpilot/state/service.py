import logging
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from tabpilot.page.views import ContextSnapshot
from tabpilot.planner.views import Plan
from tabpilot.state.views import AgentStatus, ChatEntry, LogEntry, LogLevel, TabRunState
from tabpilot.store.service import KeyValueStore

logger = logging.getLogger(__name__)

StateListener = Callable[[int, TabRunState], Any]

_LOG_LEVELS = {
	LogLevel.INFO: logging.INFO,
	LogLevel.WARNING: logging.WARNING,
	LogLevel.ERROR: logging.ERROR,
}


class TabStateManager:
	"""
	Owns the per-tab run state: an in-memory cache backed by the durable store.

	Every mutation persists the whole blob under the tab's key and then notifies
	listeners. Nothing else reads or writes the durable record directly.
	"""

	KEY_PREFIX = 'tabState:'

	def __init__(self, store: KeyValueStore):
		self.store = store
		self._states: dict[int, TabRunState] = {}
		self._removed: set[int] = set()
		self._listeners: list[StateListener] = []

	def subscribe(self, listener: StateListener) -> None:
		self._listeners.append(listener)

	def unsubscribe(self, listener: StateListener) -> None:
		if listener in self._listeners:
			self._listeners.remove(listener)

	def key_for(self, tab_id: int) -> str:
		return f'{self.KEY_PREFIX}{tab_id}'

	def cached_tab_ids(self) -> list[int]:
		return list(self._states)

	async def get(self, tab_id: int) -> TabRunState:
		"""Return the cached state, hydrating it from the store (or defaulting it) on first access"""
		if tab_id in self._removed:
			# closed tab: hand out a detached state so late writers cannot recreate the record
			return TabRunState()
		state = self._states.get(tab_id)
		if state is not None:
			return state

		state = await self._load(tab_id)
		# another coroutine may have hydrated the same tab while we were reading the store
		if tab_id in self._states:
			return self._states[tab_id]
		if tab_id in self._removed:
			return state
		self._states[tab_id] = state

		if state.status != AgentStatus.IDLE:
			# runs live only in process memory, so a persisted running/paused status has nothing left to resume
			logger.warning(f'⚠️ Tab {tab_id} was left {state.status.value} by a previous process, resetting to idle')
			state.status = AgentStatus.IDLE
			state.logs.append(LogEntry(level=LogLevel.WARNING, message='Previous run was interrupted'))
			await self._commit(tab_id, state)
		return state

	async def _load(self, tab_id: int) -> TabRunState:
		stored = await self.store.get(self.key_for(tab_id))
		if not stored:
			return TabRunState()
		try:
			return TabRunState.model_validate(stored)
		except ValidationError as e:
			logger.warning(f'⚠️ Discarding unreadable stored state for tab {tab_id}: {e.error_count()} validation errors')
			return TabRunState()

	async def append_log(self, tab_id: int, entry: LogEntry) -> None:
		state = await self.get(tab_id)
		state.logs.append(entry)
		detail = f' ({entry.detail})' if entry.detail else ''
		logger.log(_LOG_LEVELS[entry.level], f'[tab {tab_id}] {entry.message}{detail}')
		await self._commit(tab_id, state)

	async def append_chat(self, tab_id: int, entry: ChatEntry) -> None:
		state = await self.get(tab_id)
		state.chat_history.append(entry)
		await self._commit(tab_id, state)

	async def set_status(self, tab_id: int, status: AgentStatus) -> None:
		state = await self.get(tab_id)
		if state.status != status:
			logger.debug(f'Tab {tab_id} status {state.status.value} -> {status.value}')
		state.status = status
		await self._commit(tab_id, state)

	async def set_shared_context(self, tab_id: int, context: ContextSnapshot | None) -> None:
		state = await self.get(tab_id)
		state.shared_context = context
		await self._commit(tab_id, state)

	async def set_last_plan(self, tab_id: int, plan: Plan | None) -> None:
		state = await self.get(tab_id)
		state.last_plan = plan
		await self._commit(tab_id, state)

	async def clear_logs(self, tab_id: int) -> None:
		state = await self.get(tab_id)
		state.logs = []
		await self._commit(tab_id, state)

	async def remove(self, tab_id: int) -> None:
		"""Forget a tab entirely, from the cache and from the store"""
		self._states.pop(tab_id, None)
		self._removed.add(tab_id)
		await self.store.remove(self.key_for(tab_id))
		logger.debug(f'🗑️ Removed state for closed tab {tab_id}')

	async def _commit(self, tab_id: int, state: TabRunState) -> None:
		if self._states.get(tab_id) is not state:
			# tab was removed while this mutation was in flight, do not resurrect it
			return
		await self.store.set(self.key_for(tab_id), state.to_record())
		self._notify(tab_id, state)

	def _notify(self, tab_id: int, state: TabRunState) -> None:
		for listener in list(self._listeners):
			try:
				listener(tab_id, state)
			except Exception as e:
				logger.error(f'❌ State listener {getattr(listener, "__name__", listener)} failed: {type(e).__name__}: {e}')
