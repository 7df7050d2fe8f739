import asyncio
import json
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv

load_dotenv()

from tabpilot.browser.service import TabHost
from tabpilot.config import CONFIG
from tabpilot.control.events import AuthRequiredEvent, TabStateUpdatedEvent
from tabpilot.control.service import ControlSurface
from tabpilot.controller.service import RunController
from tabpilot.controller.views import TaskOptions
from tabpilot.logging_config import RESULT_LEVEL
from tabpilot.planner.service import PlannerClient
from tabpilot.search.service import SearchConfigService
from tabpilot.state.service import TabStateManager
from tabpilot.store import JsonFileStore

LEVEL_STYLES = {
	'info': {},
	'warning': {'fg': 'yellow'},
	'error': {'fg': 'red', 'bold': True},
}


class RunPrinter:
	"""Echoes a tab's new log entries as state updates arrive"""

	def __init__(self, tab_id: int):
		self.tab_id = tab_id
		self.printed = 0
		self.had_error = False

	async def on_state_updated(self, event: TabStateUpdatedEvent) -> dict:
		if event.tab_id != self.tab_id:
			return {'ok': True}
		logs = event.state.get('logs', [])
		if len(logs) < self.printed:
			# logs were cleared for a new run
			self.printed = 0
		for entry in logs[self.printed :]:
			detail = f'  {entry["detail"]}' if entry.get('detail') else ''
			click.secho(f'[{entry["level"]}] {entry["message"]}{detail}', **LEVEL_STYLES.get(entry['level'], {}))
			if entry['level'] == 'error':
				self.had_error = True
		self.printed = len(logs)
		return {'ok': True}


async def run_goal(
	goal: str,
	url: str | None,
	mode: str,
	engine: str | None,
	headless: bool | None,
	state_dir: Path | None,
	share_context: bool,
) -> bool:
	"""Run one goal in a fresh browser tab. Returns True when the run logged no errors."""
	store = JsonFileStore(state_dir or CONFIG.TABPILOT_STATE_DIR)
	state_manager = TabStateManager(store)
	planner = PlannerClient()
	surface: ControlSurface | None = None
	background: set[asyncio.Task] = set()

	async def on_tab_closed(tab_id: int) -> None:
		if surface is not None:
			await surface.tab_closed(tab_id)

	async def on_escape(tab_id: int) -> None:
		if surface is not None:
			await surface.escape_stop(tab_id)

	tabs = TabHost(headless=headless, on_tab_closed=on_tab_closed, on_escape=on_escape)
	controller = RunController(state_manager, planner, tabs, SearchConfigService(store))
	surface = ControlSurface(controller, state_manager, tabs)

	async def wait_for_user(tab_id: int) -> None:
		await asyncio.to_thread(click.prompt, 'Finish signing in, then press Enter', default='', show_default=False)
		await surface.continue_auth(tab_id)

	async def on_auth_required(event: AuthRequiredEvent) -> dict:
		task = asyncio.create_task(wait_for_user(event.tab_id))
		background.add(task)
		task.add_done_callback(background.discard)
		return {'ok': True}

	try:
		await tabs.start()
		tab_id = await tabs.new_tab(url)
		printer = RunPrinter(tab_id)
		surface.eventbus.on(TabStateUpdatedEvent, printer.on_state_updated)
		surface.eventbus.on(AuthRequiredEvent, on_auth_required)

		if share_context:
			context = await surface.collect_tab_context(tab_id)
			if context.get('error'):
				click.secho(f'Could not share tab context: {context["error"]}', fg='yellow')

		await surface.start_task(tab_id, goal, TaskOptions(mode=mode, engine_override=engine))
		await surface.eventbus.wait_until_idle()
		return not printer.had_error
	finally:
		for task in background:
			task.cancel()
		await surface.close()
		await planner.aclose()
		await tabs.stop()


@click.group()
@click.option('--debug', is_flag=True, help='Show debug logging')
def main(debug: bool = False):
	"""Run plan-driven browser tasks from the command line"""
	# run log entries are echoed by the commands themselves, the logger adds outcomes and failures
	logging.getLogger('tabpilot').setLevel(logging.DEBUG if debug else RESULT_LEVEL)


@main.command()
@click.argument('goal')
@click.option('--url', type=str, help='Page to open before planning')
@click.option('--mode', type=str, default=lambda: CONFIG.TABPILOT_DEFAULT_MODE, help='Planner mode')
@click.option('--engine', type=str, help='Search engine override sent to the planner')
@click.option('--headless/--no-headless', default=None, help='Run the browser without a window')
@click.option('--state-dir', type=click.Path(file_okay=False, path_type=Path), help='Directory of persisted tab state')
@click.option('--share-context', is_flag=True, help='Send a snapshot of the page to the planner')
def run(
	goal: str,
	url: str | None,
	mode: str,
	engine: str | None,
	headless: bool | None,
	state_dir: Path | None,
	share_context: bool,
):
	"""Plan GOAL and run it in a new browser tab"""
	try:
		ok = asyncio.run(run_goal(goal, url, mode, engine, headless, state_dir, share_context))
	except KeyboardInterrupt:
		click.secho('Interrupted', fg='yellow')
		sys.exit(130)
	sys.exit(0 if ok else 1)


@main.command('show-state')
@click.argument('tab_id', type=int)
@click.option('--state-dir', type=click.Path(file_okay=False, path_type=Path), help='Directory of persisted tab state')
def show_state(tab_id: int, state_dir: Path | None):
	"""Print the persisted state of TAB_ID"""
	store = JsonFileStore(state_dir or CONFIG.TABPILOT_STATE_DIR)
	record = asyncio.run(store.get(f'{TabStateManager.KEY_PREFIX}{tab_id}'))
	if record is None:
		click.echo(f'No state stored for tab {tab_id}', err=True)
		sys.exit(1)
	click.echo(json.dumps(record, indent=2, ensure_ascii=False))


if __name__ == '__main__':
	main()
