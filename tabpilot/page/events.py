"""Requests sent from the controller to a tab's page context.

Each request is accepted by exactly one page-side handler; the response dict arrives through the
request's reply once the page work is done (see PageBridge).
"""

from typing import Any

from bubus import BaseEvent
from pydantic import Field


class ExecuteToolEvent(BaseEvent):
	event_type: str = 'ExecuteToolEvent'
	# page actions are not preemptible, the controller never times them out
	event_timeout: float | None = None

	tab_id: int
	tool: str
	args: dict[str, Any] = Field(default_factory=dict)


class CollectContextEvent(BaseEvent):
	event_type: str = 'CollectContextEvent'
	event_timeout: float | None = None

	tab_id: int


class ShowCursorEvent(BaseEvent):
	event_type: str = 'ShowCursorEvent'

	tab_id: int


class HideCursorEvent(BaseEvent):
	event_type: str = 'HideCursorEvent'

	tab_id: int
