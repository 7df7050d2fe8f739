from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

SEARCH_TERMS_PLACEHOLDER = '{searchTerms}'


class SearchEngine(BaseModel):
	name: str
	template: str  # e.g. 'https://duckduckgo.com/?q={searchTerms}'

	@field_validator('name', 'template', mode='before')
	@classmethod
	def _strip(cls, value: Any) -> str:
		return str(value or '').strip()

	@field_validator('template', mode='after')
	@classmethod
	def _has_placeholder(cls, value: str) -> str:
		if value and SEARCH_TERMS_PLACEHOLDER not in value:
			raise ValueError(f'Search template must include {SEARCH_TERMS_PLACEHOLDER}')
		return value


DEFAULT_ENGINES = [
	SearchEngine(name='Fera Search', template='https://fera-search.tech/?q={searchTerms}'),
	SearchEngine(name='Fera', template='https://search.fera.ai/?q={searchTerms}&tab=all'),
	SearchEngine(name='Google', template='https://www.google.com/search?q={searchTerms}'),
	SearchEngine(name='Bing', template='https://www.bing.com/search?q={searchTerms}'),
	SearchEngine(name='DuckDuckGo', template='https://duckduckgo.com/?q={searchTerms}'),
	SearchEngine(name='Brave', template='https://search.brave.com/search?q={searchTerms}'),
]


class SearchConfig(BaseModel):
	"""Search engines known to the browser, the default one, and the search UI used by search_default"""

	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

	engines: list[SearchEngine] = Field(default_factory=lambda: [engine.model_copy() for engine in DEFAULT_ENGINES])
	default_engine: str = ''
	ui_url: str | None = None

	@field_validator('engines', mode='before')
	@classmethod
	def _drop_blank_engines(cls, value: Any) -> Any:
		if not isinstance(value, list):
			return value
		kept = []
		for engine in value:
			if isinstance(engine, dict):
				name = str(engine.get('name') or '').strip()
				template = str(engine.get('template') or '').strip()
				if not (name and template):
					continue
			elif isinstance(engine, SearchEngine) and not (engine.name and engine.template):
				continue
			kept.append(engine)
		return kept

	@field_validator('ui_url', mode='before')
	@classmethod
	def _blank_ui_url_is_unset(cls, value: Any) -> Any:
		if value is None:
			return None
		value = str(value).strip()
		return value or None

	@model_validator(mode='after')
	def _resolve_default_engine(self) -> 'SearchConfig':
		if not self.engines:
			raise ValueError('At least one search engine is required')
		self.default_engine = self.default_engine.strip()
		if not any(engine.name == self.default_engine for engine in self.engines):
			self.default_engine = self.engines[0].name
		return self
