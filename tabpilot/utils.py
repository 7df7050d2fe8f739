import logging
import time
from collections.abc import Callable, Coroutine
from functools import wraps
from typing import Any, ParamSpec, TypeVar
from urllib.parse import quote, urlparse

logger = logging.getLogger(__name__)

R = TypeVar('R')
P = ParamSpec('P')

# Host fragments and path fragments that identify webmail inboxes
EMAIL_INBOX_HOST_HINTS = ('mail.', 'gmail.com', 'outlook.', 'yahoo.com')
EMAIL_INBOX_PATH_HINTS = ('/mail',)


def time_execution_async(
	additional_text: str = '',
) -> Callable[[Callable[P, Coroutine[Any, Any, R]]], Callable[P, Coroutine[Any, Any, R]]]:
	def decorator(func: Callable[P, Coroutine[Any, Any, R]]) -> Callable[P, Coroutine[Any, Any, R]]:
		@wraps(func)
		async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
			start_time = time.time()
			result = await func(*args, **kwargs)
			execution_time = time.time() - start_time
			# Only log if execution takes more than 0.25 seconds to avoid spamming the logs
			if execution_time > 0.25:
				self_has_logger = args and getattr(args[0], 'logger', None)
				if self_has_logger:
					func_logger = getattr(args[0], 'logger')
				else:
					func_logger = logging.getLogger(func.__module__)
				func_logger.debug(f'⏳ {additional_text.strip("-")}() took {execution_time:.2f}s')
			return result

		return wrapper

	return decorator


def is_email_inbox_url(url: str) -> bool:
	"""Check whether a URL looks like a webmail inbox. Unparseable URLs are not treated as inboxes."""
	try:
		parsed = urlparse(url)
		host = (parsed.hostname or '').lower()
		path = parsed.path.lower()
	except ValueError:
		return False
	return any(hint in host for hint in EMAIL_INBOX_HOST_HINTS) or any(hint in path for hint in EMAIL_INBOX_PATH_HINTS)


def get_domain(url: str) -> str:
	"""Hostname of a URL, or an empty string when it has none"""
	try:
		return urlparse(url).hostname or ''
	except ValueError:
		return ''


def encode_uri_component(value: str) -> str:
	"""Percent-encode a value the way browsers encode a single URI component"""
	return quote(value, safe="-_.!~*'()")


def _log_pretty_url(s: str, max_len: int | None = 40) -> str:
	"""Truncate/pretty-print a URL with a maximum length, removing the protocol and www. prefix"""
	s = s.replace('https://', '').replace('http://', '').replace('www.', '')
	if max_len is not None and len(s) > max_len:
		return s[:max_len] + '…'
	return s
