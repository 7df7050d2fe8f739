import logging

from pydantic import ValidationError

from tabpilot.config import CONFIG
from tabpilot.search.views import SearchConfig
from tabpilot.store.service import KeyValueStore
from tabpilot.utils import encode_uri_component

logger = logging.getLogger(__name__)


class SearchConfigService:
	"""Reads the stored search configuration and builds search URLs from it"""

	STORE_KEY = 'searchConfig'

	def __init__(self, store: KeyValueStore):
		self.store = store

	async def get_config(self) -> SearchConfig:
		stored = await self.store.get(self.STORE_KEY)
		if not stored:
			return SearchConfig()
		try:
			return SearchConfig.model_validate(stored)
		except ValidationError as e:
			logger.warning(f'⚠️ Stored search config is invalid, using defaults: {e.error_count()} validation errors')
			return SearchConfig()

	async def default_search_url(self, query: str, tab: str = 'all') -> str:
		"""URL of the search UI for `query`, scoped to a results tab (all, images, news, ...)"""
		config = await self.get_config()
		base_url = (config.ui_url or CONFIG.TABPILOT_SEARCH_UI_URL).rstrip('/')
		return f'{base_url}/?q={encode_uri_component(query)}&tab={encode_uri_component(tab or "all")}'
