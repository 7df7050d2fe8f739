from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tabpilot.browser.views import TabInfo
from tabpilot.page.views import ContextSnapshot


class ToolName(str, Enum):
	"""The closed set of primitive tools a plan may use"""

	CLICK = 'click'
	OPEN_TAB = 'open_tab'
	PRESS_KEY = 'press_key'
	SCROLL = 'scroll'
	SEARCH_DEFAULT = 'search_default'
	SUMMARIZE_PAGE = 'summarize_page'
	TYPE = 'type'
	WAIT_FOR_USER_AUTH = 'wait_for_user_auth'


class PlanStep(BaseModel):
	model_config = ConfigDict(use_enum_values=False)

	tool: ToolName
	args: dict[str, Any] = Field(default_factory=dict)

	@field_validator('args', mode='before')
	@classmethod
	def _none_args_are_empty(cls, value: Any) -> Any:
		return {} if value is None else value


class Plan(BaseModel):
	"""An ordered sequence of tool invocations for one user goal"""

	model_config = ConfigDict(extra='allow')

	steps: list[PlanStep]
	summary: str | None = None


class PlanRequest(BaseModel):
	"""Body of POST {base}/plan"""

	user_goal: str
	tab: TabInfo | ContextSnapshot
	user_sent_tab: bool
	user_confirmed_task_start: bool = True
	mode: str | None = None
	search_engine_override: str | None = None

	def to_payload(self) -> dict[str, Any]:
		# optional fields are left out rather than sent as null
		payload = self.model_dump(mode='json', by_alias=True, exclude={'mode', 'search_engine_override'})
		if self.mode is not None:
			payload['mode'] = self.mode
		if self.search_engine_override:
			payload['search_engine_override'] = self.search_engine_override
		return payload
