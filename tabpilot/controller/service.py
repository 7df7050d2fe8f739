"""
Run controller: the per-tab state machine that turns a user goal into executed steps.

	idle -> running -> (paused -> running)* -> idle

One RunState exists per tab while the tab is not idle. Everything the run does is reported
through the tab's log stream; nothing raised inside a run reaches the caller.
"""

import json
import logging
from collections.abc import Callable
from typing import Any, Protocol

from tabpilot.browser.views import TabInfo
from tabpilot.controller.views import RunState, TaskOptions
from tabpilot.exceptions import BlockedNavigationError, MissingArgumentError, error_from_payload
from tabpilot.page.bridge import PageBridge
from tabpilot.planner.service import PlannerClient
from tabpilot.planner.views import PlanStep, ToolName
from tabpilot.search.service import SearchConfigService
from tabpilot.state.service import TabStateManager
from tabpilot.state.views import AgentStatus, LogEntry, LogLevel
from tabpilot.utils import _log_pretty_url, is_email_inbox_url, time_execution_async

logger = logging.getLogger(__name__)

AuthRequiredListener = Callable[[int], Any]


class TabOperations(Protocol):
	"""The privileged tab operations a run needs. Implemented by TabHost."""

	def get_bridge(self, tab_id: int) -> PageBridge: ...

	async def get_tab_info(self, tab_id: int) -> TabInfo: ...

	async def open_tab(self, url: str) -> int: ...

	async def navigate(self, tab_id: int, url: str) -> None: ...


class RunController:
	def __init__(
		self,
		state_manager: TabStateManager,
		planner: PlannerClient,
		tabs: TabOperations,
		search: SearchConfigService,
	):
		self.state_manager = state_manager
		self.planner = planner
		self.tabs = tabs
		self.search = search
		self.runs: dict[int, RunState] = {}
		self._auth_listeners: list[AuthRequiredListener] = []
		self.logger = logging.getLogger(f'{__name__}.RunController')

	def __repr__(self) -> str:
		return f'RunController(active_runs={sorted(self.runs)})'

	def on_auth_required(self, listener: AuthRequiredListener) -> None:
		self._auth_listeners.append(listener)

	def is_active(self, tab_id: int) -> bool:
		return tab_id in self.runs

	# --- commands ---
	async def start_task(self, tab_id: int, goal: str, options: TaskOptions | None = None) -> dict[str, Any]:
		"""
		Run `goal` in a tab to completion.

		Returns {'error': 'Agent already running'} when the tab already has a run, otherwise
		{'ok': True} once the run is over, whatever its outcome. Outcomes are in the tab's logs.
		"""
		options = options or TaskOptions()
		if tab_id in self.runs:
			self.logger.info(f'⏸️ Tab {tab_id} already has a run, ignoring new goal {goal!r}')
			return {'error': 'Agent already running'}

		# the tab is claimed before the first await
		run = RunState()
		self.runs[tab_id] = run
		state = await self.state_manager.get(tab_id)
		if state.status != AgentStatus.IDLE:
			self.runs.pop(tab_id, None)
			self.logger.info(f'⏸️ Tab {tab_id} is {state.status.value}, ignoring new goal {goal!r}')
			return {'error': 'Agent already running'}

		self.logger.info(f'🚀 Starting run {run.run_id[-4:]} in tab {tab_id}: {goal!r}')

		outcome = 'interrupted'
		try:
			await self.state_manager.clear_logs(tab_id)
			await self.state_manager.set_status(tab_id, AgentStatus.RUNNING)
			await self._set_cursor(tab_id, visible=True)
			await self._run(tab_id, goal, options, run)
			outcome = 'cancelled' if run.cancelled else 'completed'
		except Exception as e:
			outcome = 'failed'
			await self._log(tab_id, LogLevel.ERROR, 'Execution failed', f'{type(e).__name__}: {e}')
		finally:
			if not run.tab_closed:
				await self._set_cursor(tab_id, visible=False)
				await self.state_manager.set_status(tab_id, AgentStatus.IDLE)
			if self.runs.get(tab_id) is run:
				del self.runs[tab_id]
			self.logger.result(f'🏁 Run {run.run_id[-4:]} in tab {tab_id} {outcome}: {goal!r}')

		return {'ok': True}

	def stop_run(self, tab_id: int) -> bool:
		"""Flag the tab's run as cancelled and wake it if it is paused. Returns False when there is no run."""
		run = self.runs.get(tab_id)
		if run is None:
			return False
		run.cancel()
		self.logger.info(f'🛑 Cancelling run {run.run_id[-4:]} in tab {tab_id}')
		return True

	async def stop_task(self, tab_id: int) -> dict[str, Any]:
		"""Cancel the tab's run and go idle right away, without waiting for an in-flight page action"""
		self.stop_run(tab_id)
		await self.state_manager.set_status(tab_id, AgentStatus.IDLE)
		await self._set_cursor(tab_id, visible=False)
		return {'ok': True}

	async def escape_stop(self, tab_id: int) -> dict[str, Any]:
		self.logger.debug(f'⎋ Escape pressed in tab {tab_id}')
		return await self.stop_task(tab_id)

	async def continue_auth(self, tab_id: int) -> dict[str, Any]:
		run = self.runs.get(tab_id)
		if run is not None and run.is_suspended:
			self.logger.info(f'▶️ Resuming run {run.run_id[-4:]} in tab {tab_id}')
			run.release()
		return {'ok': True}

	def forget_tab(self, tab_id: int) -> None:
		"""The tab is gone: stop its run without letting it write state for the tab again"""
		run = self.runs.pop(tab_id, None)
		if run is None:
			return
		run.tab_closed = True
		run.cancel()

	# --- run loop ---
	async def _run(self, tab_id: int, goal: str, options: TaskOptions, run: RunState) -> None:
		await self.planner.fetch_schema()

		state = await self.state_manager.get(tab_id)
		shared_context = state.shared_context
		tab_context = shared_context if shared_context is not None else await self.tabs.get_tab_info(tab_id)
		plan = await self.planner.request_plan(
			goal,
			tab_context,
			has_explicit_context=shared_context is not None,
			mode=options.mode,
			engine_override=options.engine_override,
		)
		await self.state_manager.set_last_plan(tab_id, plan)
		await self._log(tab_id, LogLevel.INFO, 'Plan received', plan.summary or '')

		for step in plan.steps:
			if run.cancelled:
				break

			await self._log(tab_id, LogLevel.INFO, f'Executing {step.tool.value}', json.dumps(step.args))
			result = await self.execute_step(tab_id, step)
			if run.cancelled:
				break

			if result.get('wait'):
				await self._wait_for_user(tab_id, run)
				if run.cancelled:
					break
				await self.state_manager.set_status(tab_id, AgentStatus.RUNNING)
				continue

			if result.get('summary'):
				await self._log(tab_id, LogLevel.INFO, 'Summary', str(result['summary']))

		if run.cancelled:
			await self._log(tab_id, LogLevel.WARNING, 'Execution cancelled')
		else:
			await self._log(tab_id, LogLevel.INFO, 'Execution completed')

	async def _wait_for_user(self, tab_id: int, run: RunState) -> None:
		# armed before anyone learns about the pause, so an immediate resume is not dropped
		if not run.arm():
			return
		await self.state_manager.set_status(tab_id, AgentStatus.PAUSED)
		if run.cancelled:
			return
		for listener in list(self._auth_listeners):
			try:
				listener(tab_id)
			except Exception as e:
				self.logger.error(f'❌ Auth listener failed for tab {tab_id}: {type(e).__name__}: {e}')
		await self._log(tab_id, LogLevel.INFO, 'Waiting for user authentication')
		await run.wait()

	@time_execution_async('--execute_step')
	async def execute_step(self, tab_id: int, step: PlanStep) -> dict[str, Any]:
		"""Carry out one step. Raises a StepError (or TransportError) when it cannot be done."""
		match step.tool:
			case ToolName.OPEN_TAB:
				url = step.args.get('url')
				if not url:
					raise MissingArgumentError('open_tab missing url')
				if is_email_inbox_url(str(url)):
					self.logger.warning(f'🔒 Refused to open email inbox {_log_pretty_url(str(url))}')
					raise BlockedNavigationError('Opening email inbox is blocked')
				await self.tabs.open_tab(str(url))
				return {'ok': True}

			case ToolName.SEARCH_DEFAULT:
				query = str(step.args.get('query') or '')
				scope = str(step.args.get('tab') or 'all')
				url = await self.search.default_search_url(query, scope)
				await self.tabs.navigate(tab_id, url)
				return {'ok': True}

			case ToolName.WAIT_FOR_USER_AUTH:
				return {'wait': True}

			case _:
				response = await self.tabs.get_bridge(tab_id).execute(step.tool.value, step.args)
				if response.get('error'):
					raise error_from_payload(response)
				return response

	# --- helpers ---
	async def _set_cursor(self, tab_id: int, visible: bool) -> None:
		try:
			bridge = self.tabs.get_bridge(tab_id)
			response = await (bridge.show_cursor() if visible else bridge.hide_cursor())
			if response.get('error'):
				raise error_from_payload(response)
		except Exception as e:
			await self._log(tab_id, LogLevel.ERROR, 'Failed to update cursor overlay', f'{type(e).__name__}: {e}')

	async def _log(self, tab_id: int, level: LogLevel, message: str, detail: str | None = None) -> None:
		await self.state_manager.append_log(tab_id, LogEntry(level=level, message=message, detail=detail))
