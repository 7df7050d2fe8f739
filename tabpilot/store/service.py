"""
Durable key -> value blob storage.

The engine only needs get/set/remove by key. Values are JSON-compatible dicts.
"""

import json
import logging
import re
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import anyio
from uuid_extensions import uuid7str

from tabpilot.utils import time_execution_async

logger = logging.getLogger(__name__)


@runtime_checkable
class KeyValueStore(Protocol):
	async def get(self, key: str) -> dict[str, Any] | None: ...

	async def set(self, key: str, value: dict[str, Any]) -> None: ...

	async def remove(self, key: str) -> None: ...


class MemoryStore:
	"""Process-local store, values are deep-copied through JSON so callers never share references with it"""

	def __init__(self):
		self._data: dict[str, str] = {}

	async def get(self, key: str) -> dict[str, Any] | None:
		raw = self._data.get(key)
		return json.loads(raw) if raw is not None else None

	async def set(self, key: str, value: dict[str, Any]) -> None:
		self._data[key] = json.dumps(value)

	async def remove(self, key: str) -> None:
		self._data.pop(key, None)

	def keys(self) -> list[str]:
		return list(self._data)


class JsonFileStore:
	"""One JSON file per key inside a directory.

	Writes go to a temporary sibling file first and are then renamed over the target,
	so a single key is never observed half-written.
	"""

	def __init__(self, directory: str | Path):
		self.directory = Path(directory).expanduser()

	def __repr__(self) -> str:
		return f'JsonFileStore({self.directory})'

	def path_for(self, key: str) -> Path:
		safe_name = re.sub(r'[^A-Za-z0-9_.-]', '_', key)
		return self.directory / f'{safe_name}.json'

	async def get(self, key: str) -> dict[str, Any] | None:
		path = anyio.Path(self.path_for(key))
		if not await path.exists():
			return None
		content = await path.read_text(encoding='utf-8')
		try:
			value = json.loads(content)
		except json.JSONDecodeError as e:
			logger.warning(f'⚠️ Ignoring corrupt store entry {key!r} at {path}: {e}')
			return None
		if not isinstance(value, dict):
			logger.warning(f'⚠️ Ignoring store entry {key!r}: expected an object, got {type(value).__name__}')
			return None
		return value

	@time_execution_async('--store_set')
	async def set(self, key: str, value: dict[str, Any]) -> None:
		target = self.path_for(key)
		await anyio.Path(self.directory).mkdir(parents=True, exist_ok=True)
		tmp_path = anyio.Path(target.with_name(f'.{target.name}.{uuid7str()[-8:]}.tmp'))
		await tmp_path.write_text(json.dumps(value, ensure_ascii=False), encoding='utf-8')
		await tmp_path.replace(target)

	async def remove(self, key: str) -> None:
		path = anyio.Path(self.path_for(key))
		await path.unlink(missing_ok=True)
