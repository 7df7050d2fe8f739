"""Notifications the control surface emits to whoever drives the UI."""

from typing import Any

from bubus import BaseEvent


class TabStateUpdatedEvent(BaseEvent):
	event_type: str = 'TabStateUpdatedEvent'

	tab_id: int
	state: dict[str, Any]  # serialized TabRunState, camelCase keys


class AuthRequiredEvent(BaseEvent):
	event_type: str = 'AuthRequiredEvent'

	tab_id: int
