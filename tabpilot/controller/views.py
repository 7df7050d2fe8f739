import asyncio

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr
from pydantic.alias_generators import to_camel
from uuid_extensions import uuid7str


class TaskOptions(BaseModel):
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

	mode: str | None = None
	engine_override: str | None = None


class RunState(BaseModel):
	"""
	Ephemeral state of one run. Lives only in process memory, never persisted.

	A pause is two steps: `arm()` installs the resume latch before anyone is told the run is
	paused, and `wait()` parks the step loop on it until `release()` opens it. A new latch is
	created for every pause and dropped on release, so releasing twice (resume racing a cancel)
	is harmless, and a release that lands between `arm()` and `wait()` is not lost.
	"""

	run_id: str = Field(default_factory=uuid7str)
	cancelled: bool = False
	paused: bool = False
	tab_closed: bool = False  # the tab went away; the run must not touch its state again

	_resume_event: asyncio.Event | None = PrivateAttr(default=None)

	@property
	def is_suspended(self) -> bool:
		return self._resume_event is not None

	def arm(self) -> bool:
		"""Install the resume latch. Returns False (and arms nothing) when the run is already cancelled."""
		if self.cancelled:
			return False
		self.paused = True
		self._resume_event = asyncio.Event()
		return True

	async def wait(self) -> None:
		event = self._resume_event
		if event is None:
			return
		await event.wait()

	def release(self) -> None:
		event, self._resume_event = self._resume_event, None
		self.paused = False
		if event is not None:
			event.set()

	def cancel(self) -> None:
		self.cancelled = True
		self.release()
