from importlib import metadata

from .cancellation import CancellationToken, OrchestrationCancelled
from .config import OrchestratorConfig, load_config
from .errors import InitialPlanError, PlannerError, TermprobeError
from .executor import Executor, ExecutionOutcome, ShellExecutor
from .orchestrator import CommandOrchestrator, orchestrate
from .planner import LLMPlanner, Planner

try:
    __version__ = metadata.version("termprobe")
except metadata.PackageNotFoundError:
    __version__ = "0.1.0"

__all__ = [
    "__version__",
    "CancellationToken",
    "CommandOrchestrator",
    "ExecutionOutcome",
    "Executor",
    "InitialPlanError",
    "LLMPlanner",
    "OrchestrationCancelled",
    "OrchestratorConfig",
    "Planner",
    "PlannerError",
    "ShellExecutor",
    "TermprobeError",
    "load_config",
    "orchestrate",
]
