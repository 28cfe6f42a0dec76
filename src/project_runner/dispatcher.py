from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from project_runner.dependencies import DependencyChecker
from project_runner.detector import ProjectDetector
from project_runner.errors import DispatchError, UnsupportedActionError
from project_runner.executor import CommandExecutor
from project_runner.models import (
    Action,
    ExecutionResult,
    LanguageAdapter,
    ProjectType,
    render_argv,
)
from project_runner.registry import AdapterRegistry, default_registry


class DispatchState(str, Enum):
    IDLE = "idle"
    DETECTED = "detected"
    ADAPTER_RESOLVED = "adapter_resolved"
    ACTION_SUPPORTED = "action_supported"
    DEPENDENCIES_VERIFIED = "dependencies_verified"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class StateChange:
    state: DispatchState
    action: Action
    project_type: ProjectType | None = None
    adapter: LanguageAdapter | None = None
    argv: list[str] | None = None
    result: ExecutionResult | None = None
    error: DispatchError | None = None


StateListener = Callable[[StateChange], None]


@dataclass(frozen=True)
class DispatchPlan:
    directory: Path
    project_type: ProjectType
    adapter: LanguageAdapter
    # None: unsupported; empty list: supported but nothing to run.
    commands: dict[Action, list[str] | None]


def _coerce_action(action: Action | str) -> Action:
    if isinstance(action, Action):
        return action
    try:
        return Action(str(action).strip().lower())
    except ValueError as e:
        choices = ", ".join(a.value for a in Action)
        raise ValueError(f"Unknown action {action!r}; expected one of: {choices}.") from e


class CommandDispatcher:
    """Run one action against one project directory.

    Stages run strictly in order (detect, resolve adapter, verify action,
    check dependencies, build argv, execute) and the first failing stage ends
    the request with its `DispatchError`. A nonzero child exit code is not an
    error; it comes back in the `ExecutionResult`.
    """

    def __init__(
        self,
        *,
        registry: AdapterRegistry | None = None,
        detector: ProjectDetector | None = None,
        checker: DependencyChecker | None = None,
        executor: CommandExecutor | None = None,
    ) -> None:
        self.registry = registry or default_registry()
        self.detector = detector or ProjectDetector(self.registry)
        self.checker = checker or DependencyChecker()
        self.executor = executor or CommandExecutor()

    def dispatch(
        self,
        action: Action | str,
        directory: Path | str = ".",
        *,
        entry: str | None = None,
        after_release: bool = False,
        listener: StateListener | None = None,
    ) -> ExecutionResult:
        action = _coerce_action(action)
        root = Path(directory).resolve()

        def _emit(state: DispatchState, **kwargs: Any) -> None:
            if listener is not None:
                listener(StateChange(state=state, action=action, **kwargs))

        _emit(DispatchState.IDLE)
        project_type: ProjectType | None = None
        adapter: LanguageAdapter | None = None
        try:
            project_type = self.detector.detect(root, entry=entry)
            _emit(DispatchState.DETECTED, project_type=project_type)

            adapter = self.registry.resolve(project_type)
            _emit(DispatchState.ADAPTER_RESOLVED, project_type=project_type, adapter=adapter)

            template = adapter.template_for(action, after_release=after_release)
            if template is None:
                raise UnsupportedActionError(
                    action=action.value,
                    project_type=project_type.describe(),
                    supported=[a.value for a in adapter.supported_actions],
                )
            _emit(DispatchState.ACTION_SUPPORTED, project_type=project_type, adapter=adapter)

            self.checker.check(adapter)
            _emit(
                DispatchState.DEPENDENCIES_VERIFIED, project_type=project_type, adapter=adapter
            )

            argv = render_argv(template, directory=root, project_type=project_type)
            _emit(DispatchState.EXECUTING, project_type=project_type, adapter=adapter, argv=argv)
            if not argv:
                result = ExecutionResult(
                    argv=[],
                    cwd=root,
                    exit_code=0,
                    stdout="",
                    stderr="",
                    duration_seconds=0.0,
                    skipped=True,
                )
            else:
                result = self.executor.execute(argv, root)
        except DispatchError as e:
            _emit(DispatchState.FAILED, project_type=project_type, adapter=adapter, error=e)
            raise

        _emit(
            DispatchState.COMPLETED,
            project_type=project_type,
            adapter=adapter,
            argv=argv,
            result=result,
        )
        return result

    def dispatch_chain(
        self,
        actions: Iterable[Action | str],
        directory: Path | str = ".",
        *,
        entry: str | None = None,
        listener: StateListener | None = None,
    ) -> list[ExecutionResult]:
        """Run actions in order, stopping after the first nonzero exit code."""
        results: list[ExecutionResult] = []
        after_release = False
        for raw in actions:
            action = _coerce_action(raw)
            result = self.dispatch(
                action,
                directory,
                entry=entry,
                after_release=after_release,
                listener=listener,
            )
            results.append(result)
            if not result.ok:
                break
            if action is Action.RELEASE:
                after_release = True
        return results

    def describe(self, directory: Path | str = ".", *, entry: str | None = None) -> DispatchPlan:
        """Resolve type, adapter and per-action argv without checking or spawning."""
        root = Path(directory).resolve()
        project_type = self.detector.detect(root, entry=entry)
        adapter = self.registry.resolve(project_type)
        commands: dict[Action, list[str] | None] = {}
        for action in Action:
            template = adapter.template_for(action)
            commands[action] = (
                None
                if template is None
                else render_argv(template, directory=root, project_type=project_type)
            )
        return DispatchPlan(
            directory=root, project_type=project_type, adapter=adapter, commands=commands
        )


def dispatch(
    action: Action | str, directory: Path | str = ".", *, entry: str | None = None
) -> ExecutionResult:
    return CommandDispatcher().dispatch(action, directory, entry=entry)
