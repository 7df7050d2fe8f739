from pydantic import BaseModel

from tabpilot.utils import get_domain


class TabInfo(BaseModel):
	"""Represents the planner-facing identity of a browser tab"""

	url: str = ''
	title: str = ''
	domain: str = ''

	@classmethod
	def from_page(cls, url: str | None, title: str | None) -> 'TabInfo':
		url = url or ''
		return cls(url=url, title=title or '', domain=get_domain(url))
