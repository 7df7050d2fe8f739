"""Control surface tests: message routing, notifications and tab lifecycle."""

import asyncio

from bubus import BaseEvent

from tabpilot.control.events import AuthRequiredEvent, TabStateUpdatedEvent
from tabpilot.control.service import CONTEXT_SHARED_MESSAGE
from tabpilot.state.views import AgentStatus, ChatRole
from tests.ci.conftest import wait_for


def serve_plan(httpserver, plan):
	httpserver.expect_request('/plan', method='POST').respond_with_json(plan)


class EventCollector:
	def __init__(self):
		self.events: list[BaseEvent] = []

	async def collect(self, event: BaseEvent) -> dict:
		self.events.append(event)
		return {'ok': True}

	def of_type(self, event_type: str) -> list[BaseEvent]:
		return [event for event in self.events if event.event_type == event_type]


class TestMessageRouting:
	async def test_get_tab_state_defaults(self, surface, fake_tabs):
		tab_id = fake_tabs.add_tab()

		state = await surface.handle({'type': 'getTabState', 'tabId': tab_id})

		assert state == {'chatHistory': [], 'sharedContext': None, 'status': 'idle', 'lastPlan': None, 'logs': []}

	async def test_update_chat_appends_in_order(self, surface, fake_tabs):
		tab_id = fake_tabs.add_tab()

		for content in ('first', 'second'):
			response = await surface.handle(
				{'type': 'updateChat', 'tabId': tab_id, 'entry': {'role': 'user', 'content': content, 'timestamp': 1}}
			)
			assert response == {'ok': True}

		state = await surface.get_tab_state(tab_id)
		assert [entry['content'] for entry in state['chatHistory']] == ['first', 'second']

	async def test_collect_tab_context_is_shared(self, surface, fake_tabs, state_manager):
		tab_id = fake_tabs.add_tab()

		snapshot = await surface.handle({'type': 'collectTabContext', 'tabId': tab_id})

		assert snapshot['url'] == 'https://example.com/'
		assert snapshot['visibleText'].startswith('Example Domain')
		state = await state_manager.get(tab_id)
		assert state.shared_context is not None
		assert state.shared_context.title == 'Example Domain'
		assert state.chat_history[-1].role == ChatRole.SYSTEM
		assert state.chat_history[-1].content == CONTEXT_SHARED_MESSAGE

	async def test_collect_tab_context_for_missing_tab(self, surface):
		response = await surface.handle({'type': 'collectTabContext', 'tabId': 404})

		assert response == {'error': 'Tab 404 does not exist'}

	async def test_start_task_through_messages(self, httpserver, surface, fake_tabs):
		tab_id = fake_tabs.add_tab()
		serve_plan(httpserver, {'steps': [{'tool': 'search_default', 'args': {'query': 'red pandas', 'tab': 'images'}}]})

		response = await surface.handle(
			{'type': 'startTask', 'tabId': tab_id, 'userGoal': 'find red panda pictures', 'options': {'mode': 'agent'}}
		)

		assert response == {'ok': True}
		assert fake_tabs.navigations == [(tab_id, 'https://search.example.test/?q=red%20pandas&tab=images')]

	async def test_start_task_with_null_options(self, httpserver, surface, fake_tabs):
		tab_id = fake_tabs.add_tab()
		serve_plan(httpserver, {'steps': []})

		response = await surface.handle({'type': 'startTask', 'tabId': tab_id, 'userGoal': 'look around', 'options': None})

		assert response == {'ok': True}
		[body] = [request.get_json() for request, _ in httpserver.log if request.path == '/plan']
		assert 'mode' not in body
		assert 'search_engine_override' not in body

	async def test_unknown_message_is_ignored(self, surface):
		assert await surface.handle({'type': 'openSettings'}) is None
		assert await surface.handle('getTabState') is None

	async def test_malformed_command_returns_error(self, surface):
		response = await surface.handle({'type': 'startTask', 'tabId': 'not-a-tab'})

		assert response == {'error': 'Malformed startTask command'}


class TestNotifications:
	async def test_state_updates_are_published(self, httpserver, surface, fake_tabs):
		tab_id = fake_tabs.add_tab()
		collector = EventCollector()
		surface.eventbus.on(TabStateUpdatedEvent, collector.collect)
		serve_plan(httpserver, {'steps': [{'tool': 'scroll', 'args': {}}]})

		await surface.start_task(tab_id, 'scroll')
		await surface.eventbus.wait_until_idle()

		updates = collector.of_type('TabStateUpdatedEvent')
		assert updates
		assert all(event.tab_id == tab_id for event in updates)
		assert updates[-1].state['status'] == 'idle'
		assert updates[-1].state['logs'][-1]['message'] == 'Execution completed'
		assert {'running', 'idle'} <= {event.state['status'] for event in updates}

	async def test_auth_required_fires_once_per_pause(self, httpserver, surface, fake_tabs, state_manager):
		tab_id = fake_tabs.add_tab()
		collector = EventCollector()
		surface.eventbus.on(AuthRequiredEvent, collector.collect)
		serve_plan(
			httpserver,
			{'steps': [{'tool': 'wait_for_user_auth', 'args': {}}, {'tool': 'click', 'args': {'selector': '#next'}}]},
		)

		run = asyncio.create_task(surface.start_task(tab_id, 'sign in then continue'))
		await wait_for(lambda: len(collector.of_type('AuthRequiredEvent')) == 1)
		assert (await state_manager.get(tab_id)).status == AgentStatus.PAUSED

		assert await surface.handle({'type': 'continueAuth', 'tabId': tab_id}) == {'ok': True}
		await run
		await surface.eventbus.wait_until_idle()

		[event] = collector.of_type('AuthRequiredEvent')
		assert event.tab_id == tab_id
		assert fake_tabs.engines[tab_id].tools_called == ['click']


class TestTabLifecycle:
	async def test_closed_tab_state_is_removed(self, surface, fake_tabs, store, state_manager):
		tab_id = fake_tabs.add_tab()
		await surface.update_chat(tab_id, {'role': 'user', 'content': 'hello', 'timestamp': 1})
		assert state_manager.key_for(tab_id) in store.keys()

		await surface.tab_closed(tab_id)

		assert state_manager.key_for(tab_id) not in store.keys()
		assert tab_id not in state_manager.cached_tab_ids()

	async def test_closing_tab_mid_run_does_not_recreate_state(self, httpserver, surface, controller, fake_tabs, store, state_manager):
		tab_id = fake_tabs.add_tab()
		serve_plan(httpserver, {'steps': [{'tool': 'wait_for_user_auth', 'args': {}}, {'tool': 'click', 'args': {}}]})

		run = asyncio.create_task(surface.start_task(tab_id, 'sign in'))
		await wait_for(lambda: controller.runs.get(tab_id) is not None and controller.runs[tab_id].is_suspended)

		await fake_tabs.close_tab(tab_id)
		await surface.tab_closed(tab_id)
		await asyncio.wait_for(run, timeout=5)

		assert state_manager.key_for(tab_id) not in store.keys()
		assert tab_id not in state_manager.cached_tab_ids()
		assert not controller.is_active(tab_id)
