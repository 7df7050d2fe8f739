from typing import Any


class TabPilotError(Exception):
	"""Base class for all tabpilot errors"""


class TransportError(TabPilotError):
	"""Talking to the planner or to a page context failed"""


class PlannerTransportError(TransportError):
	"""The planner service could not be reached or answered with a non-success status."""

	def __init__(self, message: str, status_code: int | None = None):
		super().__init__(message)
		self.status_code = status_code


class PageTransportError(TransportError):
	"""The page context for a tab could not be reached."""


class InvalidPlanError(TabPilotError):
	"""The planner payload is not a plan object with a steps sequence"""


class InvalidStepError(InvalidPlanError):
	"""A plan step lacks a tool name or uses a tool outside the allowed set"""


class StepError(TabPilotError):
	"""A single plan step could not be carried out"""


class TargetNotFoundError(StepError):
	pass


class NotEditableError(StepError):
	pass


class MissingKeyError(StepError):
	pass


class MissingArgumentError(StepError):
	pass


class UnsupportedToolError(StepError):
	pass


class SafetyRefusalError(StepError):
	"""The step was refused for safety reasons. Never retried or bypassed."""


class SensitiveFieldError(SafetyRefusalError):
	pass


class BlockedNavigationError(SafetyRefusalError):
	pass


class TabNotFoundError(TabPilotError):
	pass


_PAYLOAD_ERRORS: dict[str, type[TabPilotError]] = {
	cls.__name__: cls
	for cls in (
		TransportError,
		PageTransportError,
		StepError,
		TargetNotFoundError,
		NotEditableError,
		MissingKeyError,
		MissingArgumentError,
		UnsupportedToolError,
		SafetyRefusalError,
		SensitiveFieldError,
		BlockedNavigationError,
	)
}


def error_to_payload(error: Exception) -> dict[str, Any]:
	"""Serialize an exception raised in the page context into a response payload."""
	return {'error': str(error) or type(error).__name__, 'error_type': type(error).__name__}


def error_from_payload(payload: dict[str, Any]) -> TabPilotError:
	"""Rebuild the exception carried by an `{'error': ...}` response.

	Unknown or missing error types become a plain StepError so the run still fails the step.
	"""
	error_cls = _PAYLOAD_ERRORS.get(str(payload.get('error_type') or ''), StepError)
	return error_cls(str(payload.get('error')))
