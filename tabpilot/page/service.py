"""
Primitive action engine: the page-context half of the system.

Implements the page-level tools (click, type, press_key, scroll, summarize_page), context
collection and the visual cursor indicator on top of a Playwright page. Safety checks for
typing live here so they apply no matter who asks for the action.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from playwright.async_api import ElementHandle, JSHandle, Page

from tabpilot.exceptions import MissingKeyError, NotEditableError, SensitiveFieldError, TargetNotFoundError, UnsupportedToolError
from tabpilot.page.views import (
	MAX_INPUTS,
	MAX_LINK_TEXT_CHARS,
	MAX_LINKS,
	MAX_SELECTED_TEXT_CHARS,
	MAX_VISIBLE_TEXT_CHARS,
	ClickArgs,
	ContextSnapshot,
	InputHints,
	PressKeyArgs,
	ScrollArgs,
	TargetArgs,
	TypeArgs,
	is_sensitive_input,
)
from tabpilot.utils import _log_pretty_url, time_execution_async

logger = logging.getLogger(__name__)

CURSOR_ID = 'tabpilot-cursor'
ESCAPE_BINDING = '__tabpilotEscapeStop'

# shared helper prepended to every script that touches the indicator
_ENSURE_CURSOR_FN = """
function ensureCursor(cursorId) {
	let cursor = document.getElementById(cursorId);
	if (cursor) {
		return cursor;
	}
	cursor = document.createElement('div');
	cursor.id = cursorId;
	cursor.style.position = 'fixed';
	cursor.style.width = '18px';
	cursor.style.height = '18px';
	cursor.style.borderRadius = '50%';
	cursor.style.background = 'rgba(255, 140, 0, 0.9)';
	cursor.style.boxShadow = '0 0 0 4px rgba(255, 140, 0, 0.3)';
	cursor.style.zIndex = '2147483647';
	cursor.style.pointerEvents = 'none';
	cursor.style.top = '16px';
	cursor.style.right = '16px';
	document.documentElement.appendChild(cursor);
	return cursor;
}
"""

SHOW_CURSOR_JS = (
	'(cursorId) => {'
	+ _ENSURE_CURSOR_FN
	+ """
	ensureCursor(cursorId);
	return true;
}"""
)

HIDE_CURSOR_JS = """(cursorId) => {
	const cursor = document.getElementById(cursorId);
	if (cursor) {
		cursor.remove();
	}
	return true;
}"""

MOVE_CURSOR_TO_ELEMENT_JS = (
	'(el, cursorId) => {'
	+ _ENSURE_CURSOR_FN
	+ """
	const rect = el.getBoundingClientRect();
	const cursor = ensureCursor(cursorId);
	cursor.style.left = `${Math.max(8, rect.left + rect.width / 2)}px`;
	cursor.style.top = `${Math.max(8, rect.top + rect.height / 2)}px`;
	cursor.style.right = 'auto';
	return true;
}"""
)

SCROLL_JS = (
	'([dx, dy, cursorId]) => {'
	+ _ENSURE_CURSOR_FN
	+ """
	window.scrollBy({ top: dy, left: dx, behavior: 'smooth' });
	const cursor = ensureCursor(cursorId);
	cursor.style.left = '16px';
	cursor.style.top = '16px';
	cursor.style.right = 'auto';
	return true;
}"""
)

RESOLVE_TARGET_JS = """(args) => {
	if (args.selector) {
		try {
			return document.querySelector(args.selector);
		} catch (error) {
			return null;  // invalid selectors resolve to nothing
		}
	}
	if (typeof args.x === 'number' && typeof args.y === 'number') {
		return document.elementFromPoint(args.x, args.y);
	}
	return null;
}"""

INPUT_HINTS_JS = """(el) => ({
	tag_name: el.tagName || '',
	type: (el.getAttribute('type') || ''),
	name: el.getAttribute('name') || '',
	id: el.getAttribute('id') || '',
	placeholder: el.getAttribute('placeholder') || '',
	aria_label: el.getAttribute('aria-label') || '',
	labels: Array.from(el.labels || []).map(label => (label.textContent || '').trim()).filter(Boolean),
	is_content_editable: Boolean(el.isContentEditable),
})"""

SET_VALUE_JS = """(el, value) => {
	el.focus();
	el.value = value;
	el.dispatchEvent(new Event('input', { bubbles: true }));
	el.dispatchEvent(new Event('change', { bubbles: true }));
	return true;
}"""

INSERT_TEXT_JS = """(el, value) => {
	el.focus();
	document.execCommand('insertText', false, value);
	return true;
}"""

FOCUSED_ELEMENT_JS = '() => document.activeElement || document.body'

DISPATCH_KEY_JS = """(el, key) => {
	const eventOptions = { key, bubbles: true, cancelable: true };
	el.dispatchEvent(new KeyboardEvent('keydown', eventOptions));
	el.dispatchEvent(new KeyboardEvent('keyup', eventOptions));
	return true;
}"""

VISIBLE_TEXT_JS = """(limit) => ((document.body && document.body.innerText) || '').trim().slice(0, limit)"""

COLLECT_CONTEXT_JS = """(limits) => {
	const selection = ((window.getSelection() && window.getSelection().toString()) || '').trim();
	const bodyText = (document.body && document.body.innerText) || '';
	const links = Array.from(document.querySelectorAll('a[href]'))
		.map(link => ({
			text: (link.textContent || '').trim().slice(0, limits.linkText),
			href: link.href,
		}))
		.filter(link => link.text || link.href)
		.slice(0, limits.links);
	const inputs = Array.from(document.querySelectorAll('input, textarea, select'))
		.map(input => ({
			type: input.getAttribute('type') || input.tagName.toLowerCase(),
			name: input.getAttribute('name') || '',
			id: input.id || '',
			placeholder: input.getAttribute('placeholder') || '',
		}))
		.slice(0, limits.inputs);
	return {
		url: window.location.href,
		title: document.title,
		selectedText: selection.slice(0, limits.selection),
		visibleText: bodyText.trim().slice(0, limits.visibleText),
		links,
		inputs,
	};
}"""

# only trusted (user-generated) Escape presses stop a run, synthetic press_key events do not
ESCAPE_LISTENER_JS = (
	"""(() => {
	if (window.__tabpilotEscapeListener) {
		return;
	}
	window.__tabpilotEscapeListener = true;
	window.addEventListener(
		'keydown',
		event => {
			if (event.key === 'Escape' && event.isTrusted && typeof window."""
	+ ESCAPE_BINDING
	+ """ === 'function') {
				window."""
	+ ESCAPE_BINDING
	+ """();
			}
		},
		true
	);
})()"""
)


class PageActionEngine:
	"""Runs primitive tools inside one page. Each public coroutine maps to one page-context command."""

	def __init__(self, page: Page):
		self.page = page
		self.logger = logging.getLogger(f'{__name__}.PageActionEngine')

	def __repr__(self) -> str:
		return f'PageActionEngine({_log_pretty_url(self.page.url)})'

	@time_execution_async('--execute')
	async def execute(self, tool: str, args: dict[str, Any]) -> dict[str, Any]:
		"""Dispatch one page-level tool. Raises the matching StepError subclass when the tool fails."""
		self.logger.debug(f'🛠️ {tool} {args}')
		match tool:
			case 'click':
				return await self.click(ClickArgs.model_validate(args))
			case 'type':
				return await self.type(TypeArgs.model_validate(args))
			case 'press_key':
				return await self.press_key(PressKeyArgs.model_validate(args))
			case 'scroll':
				return await self.scroll(ScrollArgs.model_validate(args))
			case 'summarize_page':
				return await self.summarize_page()
			case _:
				raise UnsupportedToolError('Unsupported tool')

	async def click(self, args: ClickArgs) -> dict[str, Any]:
		target = await self._resolve_target(args)
		if target is None:
			raise TargetNotFoundError('Click target not found')
		try:
			await self._move_cursor_to(target)
			await target.evaluate('(el) => el.click()')
		finally:
			await target.dispose()
		self.logger.info(f'🖱️ Clicked {args.selector or (args.x, args.y)}')
		return {'ok': True}

	async def type(self, args: TypeArgs) -> dict[str, Any]:
		target = await self._resolve_target(args)
		if target is None:
			raise TargetNotFoundError('Type target not found')
		try:
			hints = InputHints.model_validate(await target.evaluate(INPUT_HINTS_JS))
			if is_sensitive_input(hints, args.text):
				self.logger.warning(f'🔒 Refused to type into sensitive field {hints.name or hints.id or hints.tag_name}')
				raise SensitiveFieldError('Typing into sensitive fields is blocked')

			await self._move_cursor_to(target)
			if hints.is_content_editable:
				await target.evaluate(INSERT_TEXT_JS, args.text)
			elif hints.is_text_control:
				await target.evaluate(SET_VALUE_JS, args.text)
			else:
				raise NotEditableError('Target is not editable')
		finally:
			await target.dispose()
		self.logger.info(f'⌨️ Typed {len(args.text)} characters into {args.selector or (args.x, args.y)}')
		return {'ok': True}

	async def press_key(self, args: PressKeyArgs) -> dict[str, Any]:
		if not args.key:
			raise MissingKeyError('Missing key to press')
		handle = await self.page.evaluate_handle(FOCUSED_ELEMENT_JS)
		target = handle.as_element()
		try:
			if target is not None:
				await self._move_cursor_to(target)
				await target.evaluate(DISPATCH_KEY_JS, args.key)
			else:
				await self.page.evaluate(f'(key) => ({DISPATCH_KEY_JS})(document.body, key)', args.key)
		finally:
			await handle.dispose()
		self.logger.info(f'⌨️ Pressed {args.key}')
		return {'ok': True}

	async def scroll(self, args: ScrollArgs) -> dict[str, Any]:
		dx, dy = args.offset()
		await self.page.evaluate(SCROLL_JS, [dx, dy, CURSOR_ID])
		self.logger.info(f'🔍 Scrolled {args.direction.value} by {args.amount}px')
		return {'ok': True}

	async def summarize_page(self) -> dict[str, Any]:
		summary = await self.page.evaluate(VISIBLE_TEXT_JS, MAX_VISIBLE_TEXT_CHARS)
		return {'summary': summary or ''}

	async def collect_context(self) -> dict[str, Any]:
		"""Bounded snapshot of the page: url, title, selection, visible text, links and form inputs"""
		raw = await self.page.evaluate(
			COLLECT_CONTEXT_JS,
			{
				'selection': MAX_SELECTED_TEXT_CHARS,
				'visibleText': MAX_VISIBLE_TEXT_CHARS,
				'linkText': MAX_LINK_TEXT_CHARS,
				'links': MAX_LINKS,
				'inputs': MAX_INPUTS,
			},
		)
		# validate through the model so the bounds hold even if the page script was tampered with
		return ContextSnapshot.model_validate(raw).model_dump(mode='json', by_alias=True)

	async def show_cursor(self) -> dict[str, Any]:
		await self.page.evaluate(SHOW_CURSOR_JS, CURSOR_ID)
		return {'ok': True}

	async def hide_cursor(self) -> dict[str, Any]:
		await self.page.evaluate(HIDE_CURSOR_JS, CURSOR_ID)
		return {'ok': True}

	async def install_escape_listener(self, on_escape: Callable[[], Awaitable[Any]]) -> None:
		"""Call `on_escape` whenever the user presses Escape in this page, across navigations"""
		await self.page.expose_function(ESCAPE_BINDING, on_escape)
		await self.page.add_init_script(ESCAPE_LISTENER_JS)
		await self.page.evaluate(ESCAPE_LISTENER_JS)

	async def _resolve_target(self, args: TargetArgs) -> ElementHandle | None:
		handle: JSHandle = await self.page.evaluate_handle(RESOLVE_TARGET_JS, args.model_dump())
		element = handle.as_element()
		if element is None:
			await handle.dispose()
		return element

	async def _move_cursor_to(self, element: ElementHandle) -> None:
		await element.evaluate(MOVE_CURSOR_TO_ELEMENT_JS, CURSOR_ID)
