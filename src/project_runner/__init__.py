from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as package_version

from project_runner.dependencies import DependencyChecker
from project_runner.detector import ProjectDetector, detect
from project_runner.dispatcher import (
    CommandDispatcher,
    DispatchPlan,
    DispatchState,
    StateChange,
    dispatch,
)
from project_runner.errors import (
    ConfigError,
    DetectionError,
    DispatchError,
    MissingDependencyError,
    ProcessSpawnError,
    ProcessTimeoutError,
    UnsupportedActionError,
)
from project_runner.executor import CommandExecutor
from project_runner.models import (
    Action,
    CargoProject,
    ExecutionResult,
    LanguageAdapter,
    MakeProject,
    ProjectType,
    SourceFile,
)
from project_runner.registry import AdapterRegistry, default_registry


def _resolve_version() -> str:
    for distribution_name in ("project-runner", "project_runner"):
        try:
            return package_version(distribution_name)
        except PackageNotFoundError:
            continue
    return "0+unknown"


__version__ = _resolve_version()

__all__ = [
    "__version__",
    "Action",
    "AdapterRegistry",
    "CargoProject",
    "CommandDispatcher",
    "CommandExecutor",
    "ConfigError",
    "DependencyChecker",
    "DetectionError",
    "DispatchError",
    "DispatchPlan",
    "DispatchState",
    "ExecutionResult",
    "LanguageAdapter",
    "MakeProject",
    "MissingDependencyError",
    "ProcessSpawnError",
    "ProcessTimeoutError",
    "ProjectDetector",
    "ProjectType",
    "SourceFile",
    "StateChange",
    "UnsupportedActionError",
    "default_registry",
    "detect",
    "dispatch",
]
