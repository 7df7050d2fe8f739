from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel

from tabpilot.controller.views import TaskOptions
from tabpilot.state.views import ChatEntry


class _Command(BaseModel):
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra='ignore')

	tab_id: int


class GetTabStateCommand(_Command):
	type: Literal['getTabState'] = 'getTabState'


class UpdateChatCommand(_Command):
	type: Literal['updateChat'] = 'updateChat'
	entry: ChatEntry


class CollectTabContextCommand(_Command):
	type: Literal['collectTabContext'] = 'collectTabContext'


class StartTaskCommand(_Command):
	type: Literal['startTask'] = 'startTask'
	user_goal: str
	options: TaskOptions = Field(default_factory=TaskOptions)

	@field_validator('options', mode='before')
	@classmethod
	def null_options_mean_defaults(cls, value):
		return {} if value is None else value


class StopTaskCommand(_Command):
	type: Literal['stopTask'] = 'stopTask'


class ContinueAuthCommand(_Command):
	type: Literal['continueAuth'] = 'continueAuth'


class EscapeStopCommand(_Command):
	type: Literal['escapeStop'] = 'escapeStop'


ControlCommand = Annotated[
	GetTabStateCommand
	| UpdateChatCommand
	| CollectTabContextCommand
	| StartTaskCommand
	| StopTaskCommand
	| ContinueAuthCommand
	| EscapeStopCommand,
	Field(discriminator='type'),
]

COMMAND_ADAPTER: TypeAdapter[ControlCommand] = TypeAdapter(ControlCommand)

COMMAND_TYPES = frozenset(
	model.model_fields['type'].default
	for model in (
		GetTabStateCommand,
		UpdateChatCommand,
		CollectTabContextCommand,
		StartTaskCommand,
		StopTaskCommand,
		ContinueAuthCommand,
		EscapeStopCommand,
	)
)
