import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# Bounds on everything that leaves the page, so payload size is independent of page size
MAX_SELECTED_TEXT_CHARS = 2000
MAX_VISIBLE_TEXT_CHARS = 12000
MAX_LINK_TEXT_CHARS = 200
MAX_LINKS = 30
MAX_INPUTS = 30

DEFAULT_SCROLL_AMOUNT = 300

SENSITIVE_HINT_WORDS = ('otp', 'one-time', 'verification code')
BARE_CODE_PATTERN = re.compile(r'^\d{4,8}$')


class ScrollDirection(str, Enum):
	UP = 'up'
	DOWN = 'down'
	LEFT = 'left'
	RIGHT = 'right'


# Tool argument models
class TargetArgs(BaseModel):
	"""A target is resolved by CSS selector first, then by viewport coordinates"""

	model_config = ConfigDict(extra='ignore')

	selector: str | None = None
	x: float | None = None
	y: float | None = None

	@field_validator('x', 'y', mode='before')
	@classmethod
	def _numbers_only(cls, value: Any) -> Any:
		# bool is an int subclass, but a boolean is never a coordinate
		if isinstance(value, bool) or not isinstance(value, (int, float)):
			return None
		return value


class ClickArgs(TargetArgs):
	pass


class TypeArgs(TargetArgs):
	text: str = ''

	@field_validator('text', mode='before')
	@classmethod
	def _text_as_string(cls, value: Any) -> Any:
		return '' if value is None else str(value)


class PressKeyArgs(BaseModel):
	model_config = ConfigDict(extra='ignore')

	key: str = ''

	@field_validator('key', mode='before')
	@classmethod
	def _key_as_string(cls, value: Any) -> Any:
		return '' if value is None else str(value)


class ScrollArgs(BaseModel):
	model_config = ConfigDict(extra='ignore')

	direction: ScrollDirection = ScrollDirection.DOWN
	amount: float = DEFAULT_SCROLL_AMOUNT

	@field_validator('direction', mode='before')
	@classmethod
	def _unknown_direction_scrolls_down(cls, value: Any) -> Any:
		if value in {d.value for d in ScrollDirection}:
			return value
		return ScrollDirection.DOWN

	@field_validator('amount', mode='before')
	@classmethod
	def _default_amount(cls, value: Any) -> Any:
		if isinstance(value, bool) or not isinstance(value, (int, float)):
			return DEFAULT_SCROLL_AMOUNT
		return value

	def offset(self) -> tuple[float, float]:
		"""(dx, dy) in pixels for window.scrollBy"""
		match self.direction:
			case ScrollDirection.UP:
				return 0, -self.amount
			case ScrollDirection.LEFT:
				return -self.amount, 0
			case ScrollDirection.RIGHT:
				return self.amount, 0
			case _:
				return 0, self.amount


class InputHints(BaseModel):
	"""Attributes of an element that reveal what kind of value it holds"""

	tag_name: str = ''
	type: str = ''
	name: str = ''
	id: str = ''
	placeholder: str = ''
	aria_label: str = ''
	labels: list[str] = Field(default_factory=list)
	is_content_editable: bool = False

	@property
	def hint_text(self) -> str:
		parts = [self.name, self.id, self.placeholder, self.aria_label, *self.labels]
		return ' '.join(part for part in parts if part).lower()

	@property
	def is_text_control(self) -> bool:
		return self.tag_name.upper() in ('INPUT', 'TEXTAREA')


def is_sensitive_input(hints: InputHints, text: str | None = None) -> bool:
	"""True when the element likely holds a password or a one-time verification code."""
	if hints.type.lower() == 'password':
		return True
	hint_text = hints.hint_text
	if any(word in hint_text for word in SENSITIVE_HINT_WORDS):
		return True
	if isinstance(text, str) and BARE_CODE_PATTERN.match(text) and 'code' in hint_text:
		return True
	return False


# Context snapshot models
class LinkInfo(BaseModel):
	text: str = ''
	href: str = ''

	@field_validator('text', mode='after')
	@classmethod
	def _truncate_text(cls, value: str) -> str:
		return value[:MAX_LINK_TEXT_CHARS]


class InputInfo(BaseModel):
	type: str = ''
	name: str = ''
	id: str = ''
	placeholder: str = ''


class ContextSnapshot(BaseModel):
	"""A bounded extraction of page content used to ground planner requests"""

	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

	url: str = ''
	title: str = ''
	selected_text: str = ''
	visible_text: str = ''
	links: list[LinkInfo] = Field(default_factory=list)
	inputs: list[InputInfo] = Field(default_factory=list)

	@field_validator('selected_text', mode='after')
	@classmethod
	def _truncate_selection(cls, value: str) -> str:
		return value[:MAX_SELECTED_TEXT_CHARS]

	@field_validator('visible_text', mode='after')
	@classmethod
	def _truncate_visible_text(cls, value: str) -> str:
		return value[:MAX_VISIBLE_TEXT_CHARS]

	@field_validator('links', mode='before')
	@classmethod
	def _cap_links(cls, value: Any) -> Any:
		if isinstance(value, list):
			value = [link for link in value if not isinstance(link, dict) or link.get('text') or link.get('href')]
			return value[:MAX_LINKS]
		return value

	@field_validator('inputs', mode='before')
	@classmethod
	def _cap_inputs(cls, value: Any) -> Any:
		if isinstance(value, list):
			return value[:MAX_INPUTS]
		return value
