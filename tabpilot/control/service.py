"""
Control surface: the boundary a UI talks to.

Commands arrive either as method calls or as `{'type': ..., 'tabId': ...}` messages through
`handle()`. Every command answers with data or `{'ok': True}` / `{'error': ...}`; nothing raised
while serving a command reaches the caller. State changes and authentication requests are
published on `eventbus` as TabStateUpdatedEvent and AuthRequiredEvent.
"""

import logging
from typing import Any

from bubus import EventBus
from pydantic import ValidationError
from uuid_extensions import uuid7str

from tabpilot.control.events import AuthRequiredEvent, TabStateUpdatedEvent
from tabpilot.control.views import (
	COMMAND_ADAPTER,
	COMMAND_TYPES,
	CollectTabContextCommand,
	ContinueAuthCommand,
	EscapeStopCommand,
	GetTabStateCommand,
	StartTaskCommand,
	StopTaskCommand,
	UpdateChatCommand,
)
from tabpilot.controller.service import RunController, TabOperations
from tabpilot.controller.views import TaskOptions
from tabpilot.state.service import TabStateManager
from tabpilot.state.views import ChatEntry, ChatRole, TabRunState

logger = logging.getLogger(__name__)

CONTEXT_SHARED_MESSAGE = '✅ Tab context shared.'


class ControlSurface:
	def __init__(self, controller: RunController, state_manager: TabStateManager, tabs: TabOperations):
		self.controller = controller
		self.state_manager = state_manager
		self.tabs = tabs
		self.eventbus = EventBus(name=f'ControlSurface_{uuid7str()[-4:]}')

		self.state_manager.subscribe(self._on_state_changed)
		self.controller.on_auth_required(self._on_auth_required)

	def __repr__(self) -> str:
		return f'ControlSurface({self.eventbus.name})'

	async def handle(self, message: Any) -> Any:
		"""Route one message to its command. Unknown message types are ignored and answered with None."""
		if not isinstance(message, dict) or message.get('type') not in COMMAND_TYPES:
			logger.debug(f'Ignoring unknown message {message!r:.80}')
			return None

		try:
			command = COMMAND_ADAPTER.validate_python(message)
		except ValidationError as e:
			logger.warning(f'⚠️ Malformed {message["type"]} command: {e.error_count()} validation errors')
			return {'error': f'Malformed {message["type"]} command'}

		try:
			match command:
				case GetTabStateCommand():
					return await self.get_tab_state(command.tab_id)
				case UpdateChatCommand():
					return await self.update_chat(command.tab_id, command.entry)
				case CollectTabContextCommand():
					return await self.collect_tab_context(command.tab_id)
				case StartTaskCommand():
					return await self.start_task(command.tab_id, command.user_goal, command.options)
				case StopTaskCommand():
					return await self.stop_task(command.tab_id)
				case ContinueAuthCommand():
					return await self.continue_auth(command.tab_id)
				case EscapeStopCommand():
					return await self.escape_stop(command.tab_id)
		except Exception as e:
			logger.error(f'❌ {command.type} for tab {command.tab_id} failed: {type(e).__name__}: {e}')
			return {'error': str(e) or type(e).__name__}

	# --- commands ---
	async def get_tab_state(self, tab_id: int) -> dict[str, Any]:
		state = await self.state_manager.get(tab_id)
		return state.to_record()

	async def update_chat(self, tab_id: int, entry: ChatEntry | dict[str, Any]) -> dict[str, Any]:
		if isinstance(entry, dict):
			entry = ChatEntry.model_validate(entry)
		await self.state_manager.append_chat(tab_id, entry)
		return {'ok': True}

	async def collect_tab_context(self, tab_id: int) -> dict[str, Any]:
		"""Snapshot the page, keep it as the tab's shared context and return it"""
		try:
			snapshot = await self.tabs.get_bridge(tab_id).collect_context()
		except Exception as e:
			logger.warning(f'⚠️ Could not collect context of tab {tab_id}: {type(e).__name__}: {e}')
			return {'error': str(e) or type(e).__name__}

		await self.state_manager.set_shared_context(tab_id, snapshot)
		await self.state_manager.append_chat(tab_id, ChatEntry(role=ChatRole.SYSTEM, content=CONTEXT_SHARED_MESSAGE))
		return snapshot.model_dump(mode='json', by_alias=True)

	async def start_task(
		self, tab_id: int, user_goal: str, options: TaskOptions | dict[str, Any] | None = None
	) -> dict[str, Any]:
		if isinstance(options, dict):
			options = TaskOptions.model_validate(options)
		return await self.controller.start_task(tab_id, user_goal, options)

	async def stop_task(self, tab_id: int) -> dict[str, Any]:
		return await self.controller.stop_task(tab_id)

	async def continue_auth(self, tab_id: int) -> dict[str, Any]:
		return await self.controller.continue_auth(tab_id)

	async def escape_stop(self, tab_id: int) -> dict[str, Any]:
		return await self.controller.escape_stop(tab_id)

	# --- tab lifecycle ---
	async def tab_closed(self, tab_id: int) -> None:
		self.controller.forget_tab(tab_id)
		await self.state_manager.remove(tab_id)

	async def close(self) -> None:
		self.state_manager.unsubscribe(self._on_state_changed)
		await self.eventbus.stop()

	# --- notifications ---
	def _on_state_changed(self, tab_id: int, state: TabRunState) -> None:
		self.eventbus.dispatch(TabStateUpdatedEvent(tab_id=tab_id, state=state.to_record()))

	def _on_auth_required(self, tab_id: int) -> None:
		logger.info(f'🔐 Tab {tab_id} is waiting for the user to authenticate')
		self.eventbus.dispatch(AuthRequiredEvent(tab_id=tab_id))
