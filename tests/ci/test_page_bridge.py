"""The controller <-> page channel: ordered request/response events over a per-tab bus."""

import asyncio

import pytest

from tabpilot.exceptions import MissingKeyError, PageTransportError, error_from_payload
from tabpilot.page.bridge import PageBridge
from tests.ci.conftest import FakePageEngine


@pytest.fixture
async def bridge():
	page_bridge = PageBridge(tab_id=1)
	yield page_bridge
	await page_bridge.close()


class TestPageBridge:
	async def test_execute_round_trip(self, bridge):
		engine = FakePageEngine()
		engine.results['summarize_page'] = {'summary': 'Hello'}
		bridge.serve(engine)

		assert await bridge.execute('summarize_page') == {'summary': 'Hello'}
		assert engine.calls == [('summarize_page', {})]

	async def test_page_errors_come_back_as_payloads(self, bridge):
		engine = FakePageEngine()
		engine.failures['press_key'] = MissingKeyError('Missing key to press')
		bridge.serve(engine)

		response = await bridge.execute('press_key', {})

		assert response == {'error': 'Missing key to press', 'error_type': 'MissingKeyError'}
		error = error_from_payload(response)
		assert isinstance(error, MissingKeyError)
		assert str(error) == 'Missing key to press'

	async def test_requests_are_answered_in_order(self, bridge):
		engine = FakePageEngine()
		bridge.serve(engine)

		await asyncio.gather(*(bridge.execute('scroll', {'amount': i}) for i in range(5)))

		assert [args['amount'] for _, args in engine.calls] == [0, 1, 2, 3, 4]

	async def test_collect_context(self, bridge):
		bridge.serve(FakePageEngine('https://example.com/docs'))

		snapshot = await bridge.collect_context()

		assert snapshot.url == 'https://example.com/docs'
		assert snapshot.links[0].text == 'More information'

	async def test_cursor_toggles(self, bridge):
		engine = FakePageEngine()
		bridge.serve(engine)

		assert await bridge.show_cursor() == {'ok': True}
		assert await bridge.hide_cursor() == {'ok': True}
		assert engine.cursor_toggles == [True, False]

	async def test_cursor_toggles_do_not_wait_for_page_actions(self, bridge):
		engine = FakePageEngine()
		gate = engine.gates['click'] = asyncio.Event()
		bridge.serve(engine)

		click = asyncio.create_task(bridge.execute('click', {'selector': '#slow'}))
		await asyncio.sleep(0.05)

		assert await asyncio.wait_for(bridge.hide_cursor(), timeout=2) == {'ok': True}
		assert not click.done()

		gate.set()
		assert await asyncio.wait_for(click, timeout=2) == {'ok': True}

	async def test_slow_page_action_does_not_block_other_tabs(self, bridge):
		engine = FakePageEngine()
		gate = engine.gates['click'] = asyncio.Event()
		bridge.serve(engine)
		other = PageBridge(tab_id=2)
		other.serve(FakePageEngine())
		try:
			click = asyncio.create_task(bridge.execute('click', {}))
			await asyncio.sleep(0.05)

			assert await asyncio.wait_for(other.execute('scroll', {}), timeout=2) == {'ok': True}
			gate.set()
			await asyncio.wait_for(click, timeout=2)
		finally:
			await other.close()

	async def test_close_fails_requests_in_flight(self, bridge):
		engine = FakePageEngine()
		engine.gates['click'] = asyncio.Event()
		bridge.serve(engine)

		click = asyncio.create_task(bridge.execute('click', {}))
		await asyncio.sleep(0.05)
		await bridge.close()

		with pytest.raises(PageTransportError, match='was closed'):
			await asyncio.wait_for(click, timeout=2)

	async def test_unserved_bridge(self, bridge):
		with pytest.raises(PageTransportError, match='No page context'):
			await bridge.execute('click', {})

	async def test_closed_bridge(self, bridge):
		bridge.serve(FakePageEngine())
		await bridge.close()

		with pytest.raises(PageTransportError, match='closed'):
			await bridge.show_cursor()

	async def test_serve_twice_is_a_bug(self, bridge):
		bridge.serve(FakePageEngine())
		with pytest.raises(AssertionError):
			bridge.serve(FakePageEngine())
