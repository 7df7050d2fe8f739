from tabpilot.logging_config import setup_logging

logger = setup_logging()

from tabpilot.control.service import ControlSurface
from tabpilot.controller.service import RunController
from tabpilot.controller.views import RunState, TaskOptions
from tabpilot.planner.service import PlannerClient, validate_plan
from tabpilot.planner.views import Plan, PlanStep, ToolName
from tabpilot.search.service import SearchConfigService
from tabpilot.state.service import TabStateManager
from tabpilot.state.views import AgentStatus, TabRunState
from tabpilot.store import JsonFileStore, MemoryStore

__all__ = [
	'ControlSurface',
	'RunController',
	'RunState',
	'TaskOptions',
	'PlannerClient',
	'validate_plan',
	'Plan',
	'PlanStep',
	'ToolName',
	'SearchConfigService',
	'TabStateManager',
	'AgentStatus',
	'TabRunState',
	'JsonFileStore',
	'MemoryStore',
]
