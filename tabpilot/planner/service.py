import json
import logging
from collections.abc import Iterable
from typing import Any

import httpx
from pydantic import ValidationError

from tabpilot.browser.views import TabInfo
from tabpilot.config import CONFIG
from tabpilot.exceptions import InvalidPlanError, InvalidStepError, PlannerTransportError
from tabpilot.page.views import ContextSnapshot
from tabpilot.planner.views import Plan, PlanRequest
from tabpilot.utils import time_execution_async

logger = logging.getLogger(__name__)


def validate_plan(payload: Any, allowed_tools: Iterable[str] | None = None) -> Plan:
	"""
	Check a raw planner payload and turn it into a Plan.

	Validation is all-or-nothing: every step is checked before the plan is returned,
	so an invalid plan never has any of its steps executed.

	Raises:
		InvalidPlanError: payload is not a single object or has no `steps` list
		InvalidStepError: a step has no string `tool` or uses a tool outside `allowed_tools`
	"""
	allowed = frozenset(allowed_tools) if allowed_tools is not None else CONFIG.TABPILOT_ALLOWED_TOOLS

	if not isinstance(payload, dict):
		raise InvalidPlanError('Planner returned invalid JSON object')
	if not isinstance(payload.get('steps'), list):
		raise InvalidPlanError('Planner response missing steps')

	for index, step in enumerate(payload['steps']):
		if not isinstance(step, dict) or not isinstance(step.get('tool'), str):
			raise InvalidStepError(f'Planner step {index} missing tool')
		if step['tool'] not in allowed:
			raise InvalidStepError(f'Planner tool not allowed: {step["tool"]}')
		if step.get('args') is not None and not isinstance(step['args'], dict):
			raise InvalidStepError(f'Planner step {index} ({step["tool"]}) has non-object args')

	try:
		return Plan.model_validate(payload)
	except ValidationError as e:
		raise InvalidPlanError(f'Planner returned a malformed plan: {e.error_count()} validation errors') from e


class PlannerClient:
	"""Client for the remote planning service (GET /schema, POST /plan)"""

	def __init__(
		self,
		base_url: str | None = None,
		timeout: float | None = None,
		allowed_tools: Iterable[str] | None = None,
		client: httpx.AsyncClient | None = None,
	):
		self.base_url = (base_url or CONFIG.TABPILOT_PLANNER_BASE_URL).rstrip('/')
		self.timeout = timeout if timeout is not None else CONFIG.TABPILOT_PLANNER_TIMEOUT
		self.allowed_tools = frozenset(allowed_tools) if allowed_tools is not None else None
		self._client = client
		self._owns_client = client is None
		self._cached_schema: dict[str, Any] | None = None

	def __repr__(self) -> str:
		return f'PlannerClient({self.base_url})'

	@property
	def cached_schema(self) -> dict[str, Any] | None:
		return self._cached_schema

	def _get_client(self) -> httpx.AsyncClient:
		if self._client is None:
			self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
		return self._client

	async def aclose(self) -> None:
		if self._client is not None and self._owns_client:
			await self._client.aclose()
			self._client = None

	async def fetch_schema(self) -> dict[str, Any] | None:
		"""Fetch the planner step schema once per client; failures leave the cache empty and return None"""
		if self._cached_schema is not None:
			return self._cached_schema
		try:
			response = await self._get_client().get(f'{self.base_url}/schema')
			if response.is_success:
				schema = response.json()
				if isinstance(schema, dict):
					self._cached_schema = schema
				else:
					logger.debug(f'Planner schema is not an object, ignoring it: {type(schema).__name__}')
			else:
				logger.debug(f'Planner schema request failed with status {response.status_code}')
		except (httpx.HTTPError, json.JSONDecodeError) as e:
			logger.debug(f'Planner schema unavailable: {type(e).__name__}: {e}')
		return self._cached_schema

	def build_request(
		self,
		goal: str,
		tab_context: TabInfo | ContextSnapshot,
		has_explicit_context: bool,
		mode: str | None = None,
		engine_override: str | None = None,
	) -> PlanRequest:
		return PlanRequest(
			user_goal=goal,
			tab=tab_context,
			user_sent_tab=has_explicit_context,
			user_confirmed_task_start=True,
			mode=mode,
			search_engine_override=engine_override or None,
		)

	@time_execution_async('--request_plan')
	async def request_plan(
		self,
		goal: str,
		tab_context: TabInfo | ContextSnapshot,
		has_explicit_context: bool,
		mode: str | None = None,
		engine_override: str | None = None,
	) -> Plan:
		"""Ask the planner for a plan and validate it in full before returning it"""
		request = self.build_request(goal, tab_context, has_explicit_context, mode, engine_override)
		try:
			response = await self._get_client().post(f'{self.base_url}/plan', json=request.to_payload())
		except httpx.HTTPError as e:
			raise PlannerTransportError(f'Planner unreachable: {type(e).__name__}: {e}') from e

		if not response.is_success:
			raise PlannerTransportError(f'Planner error {response.status_code}', status_code=response.status_code)

		try:
			payload = response.json()
		except json.JSONDecodeError as e:
			raise InvalidPlanError('Planner returned invalid JSON object') from e

		plan = validate_plan(payload, self.allowed_tools)
		logger.debug(f'📋 Planner returned {len(plan.steps)} steps for goal {goal!r}')
		return plan
