import time
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from tabpilot.page.views import ContextSnapshot
from tabpilot.planner.views import Plan


class AgentStatus(str, Enum):
	IDLE = 'idle'
	RUNNING = 'running'
	PAUSED = 'paused'


class ChatRole(str, Enum):
	USER = 'user'
	ASSISTANT = 'assistant'
	SYSTEM = 'system'


class LogLevel(str, Enum):
	INFO = 'info'
	WARNING = 'warning'
	ERROR = 'error'


class ChatEntry(BaseModel):
	role: ChatRole
	content: str
	timestamp: int = Field(default_factory=lambda: int(time.time() * 1000))  # epoch milliseconds


class LogEntry(BaseModel):
	level: LogLevel
	message: str
	detail: str | None = None


class TabRunState(BaseModel):
	"""Everything the engine remembers about one tab. Persisted as a single blob per tab."""

	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, validate_assignment=True)

	chat_history: list[ChatEntry] = Field(default_factory=list)
	shared_context: ContextSnapshot | None = None
	status: AgentStatus = AgentStatus.IDLE
	last_plan: Plan | None = None
	logs: list[LogEntry] = Field(default_factory=list)

	def to_record(self) -> dict[str, Any]:
		"""Serialized form used for the durable store and for state-changed notifications"""
		return self.model_dump(mode='json', by_alias=True)
