from __future__ import annotations

import io
import shutil
from pathlib import Path

import pytest

from project_runner.dependencies import DependencyChecker
from project_runner.dispatcher import CommandDispatcher, DispatchState, StateChange
from project_runner.errors import (
    DetectionError,
    MissingDependencyError,
    ProcessSpawnError,
    UnsupportedActionError,
)
from project_runner.executor import CommandExecutor
from project_runner.models import Action, ExecutionResult, MakeProject

requires_sh = pytest.mark.skipif(shutil.which("sh") is None, reason="requires sh on PATH")


def _which_all(name: str) -> str | None:
    return f"/usr/bin/{name}"


class _RecordingChecker(DependencyChecker):
    def __init__(self) -> None:
        super().__init__(which=_which_all)
        self.checked: list[str] = []

    def check(self, adapter) -> None:  # type: ignore[no-untyped-def]
        self.checked.append(adapter.id)
        super().check(adapter)


class _RecordingExecutor(CommandExecutor):
    def __init__(self, exit_codes: list[int] | None = None) -> None:
        super().__init__()
        self.calls: list[list[str]] = []
        self._exit_codes = list(exit_codes or [])

    def execute(self, argv, working_directory) -> ExecutionResult:  # type: ignore[no-untyped-def]
        self.calls.append(list(argv))
        code = self._exit_codes.pop(0) if self._exit_codes else 0
        return ExecutionResult(
            argv=list(argv),
            cwd=Path(working_directory),
            exit_code=code,
            stdout="",
            stderr="",
            duration_seconds=0.0,
        )


def _write(root: Path, name: str, text: str = "") -> Path:
    path = root / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def test_lint_on_make_project_fails_before_dependency_check_and_spawn(tmp_path: Path) -> None:
    _write(tmp_path, "Makefile", "all:\n\ttrue\n")
    checker = _RecordingChecker()
    executor = _RecordingExecutor()
    dispatcher = CommandDispatcher(checker=checker, executor=executor)

    with pytest.raises(UnsupportedActionError) as excinfo:
        dispatcher.dispatch(Action.LINT, tmp_path)

    assert excinfo.value.action == "lint"
    assert excinfo.value.details["supported"] == ["build", "run", "release"]
    assert excinfo.value.exit_code == 4
    assert checker.checked == []
    assert executor.calls == []


def test_missing_dependency_stops_before_execution(tmp_path: Path) -> None:
    _write(tmp_path, "index.js", "console.log('hi')\n")
    executor = _RecordingExecutor()
    checker = DependencyChecker(which=lambda name: None if name == "node" else f"/bin/{name}")
    dispatcher = CommandDispatcher(checker=checker, executor=executor)

    with pytest.raises(MissingDependencyError) as excinfo:
        dispatcher.dispatch("run", tmp_path)

    assert excinfo.value.missing == ["node"]
    assert executor.calls == []


def test_detection_failure_is_stage_tagged(tmp_path: Path) -> None:
    _write(tmp_path, "index.js")
    _write(tmp_path, "main.rs")
    states: list[StateChange] = []

    with pytest.raises(DetectionError) as excinfo:
        CommandDispatcher(executor=_RecordingExecutor()).dispatch(
            Action.BUILD, tmp_path, listener=states.append
        )

    assert excinfo.value.code == "ambiguous_project"
    assert [s.state for s in states] == [DispatchState.IDLE, DispatchState.FAILED]
    assert states[-1].error is excinfo.value


def test_states_follow_the_pipeline_order(tmp_path: Path) -> None:
    _write(tmp_path, "main.c", "int main(void) { return 0; }\n")
    executor = _RecordingExecutor()
    states: list[StateChange] = []
    dispatcher = CommandDispatcher(checker=_RecordingChecker(), executor=executor)

    result = dispatcher.dispatch(Action.BUILD, tmp_path, listener=states.append)

    assert result.exit_code == 0
    assert executor.calls == [["gcc", "main.c", "-o", "main"]]
    assert [s.state for s in states] == [
        DispatchState.IDLE,
        DispatchState.DETECTED,
        DispatchState.ADAPTER_RESOLVED,
        DispatchState.ACTION_SUPPORTED,
        DispatchState.DEPENDENCIES_VERIFIED,
        DispatchState.EXECUTING,
        DispatchState.COMPLETED,
    ]
    assert states[-1].result is result


def test_nonzero_exit_is_a_result_not_an_error(tmp_path: Path) -> None:
    _write(tmp_path, "Makefile")
    dispatcher = CommandDispatcher(
        checker=_RecordingChecker(), executor=_RecordingExecutor(exit_codes=[2])
    )

    result = dispatcher.dispatch(Action.RELEASE, tmp_path)

    assert result.exit_code == 2
    assert result.argv == ["make", "release"]


def test_noop_action_skips_execution_after_dependency_check(tmp_path: Path) -> None:
    _write(tmp_path, "main.lua", "print('hi')\n")
    checker = _RecordingChecker()
    executor = _RecordingExecutor()

    result = CommandDispatcher(checker=checker, executor=executor).dispatch("build", tmp_path)

    assert result.skipped is True
    assert result.exit_code == 0
    assert checker.checked == ["lua"]
    assert executor.calls == []


def test_unknown_action_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="Unknown action"):
        CommandDispatcher().dispatch("deploy", tmp_path)


@requires_sh
def test_run_shell_entry_passes_exit_code_through(tmp_path: Path) -> None:
    _write(tmp_path, "main.sh", "exit 7\n")
    out = io.StringIO()
    dispatcher = CommandDispatcher(
        checker=DependencyChecker(which=_which_all),
        executor=CommandExecutor(stdout=out, stderr=out),
    )

    result = dispatcher.dispatch(Action.RUN, tmp_path)

    assert result.exit_code == 7
    assert result.argv == ["sh", "main.sh"]


@requires_sh
def test_binary_removed_after_dependency_check_is_a_spawn_error(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    bin_dir = tmp_path / "bin"
    fake_make = _write(bin_dir, "make", "#!/bin/sh\nexit 0\n")
    fake_make.chmod(0o755)
    monkeypatch.setenv("PATH", str(bin_dir))

    project = tmp_path / "project"
    _write(project, "Makefile")

    def _remove_binary(change: StateChange) -> None:
        if change.state is DispatchState.DEPENDENCIES_VERIFIED:
            fake_make.unlink()

    states: list[DispatchState] = []

    def _listener(change: StateChange) -> None:
        states.append(change.state)
        _remove_binary(change)

    with pytest.raises(ProcessSpawnError) as excinfo:
        CommandDispatcher().dispatch(Action.BUILD, project, listener=_listener)

    assert excinfo.value.binary == "make"
    assert DispatchState.COMPLETED not in states
    assert states[-1] is DispatchState.FAILED


def test_chain_stops_after_failed_build(tmp_path: Path) -> None:
    _write(tmp_path, "main.cpp", "int main() { return 0; }\n")
    executor = _RecordingExecutor(exit_codes=[1])
    dispatcher = CommandDispatcher(checker=_RecordingChecker(), executor=executor)

    results = dispatcher.dispatch_chain([Action.BUILD, Action.RUN], tmp_path)

    assert [r.exit_code for r in results] == [1]
    assert executor.calls == [["g++", "main.cpp", "-o", "main"]]


def test_chain_runs_compiled_binary_after_build(tmp_path: Path) -> None:
    _write(tmp_path, "main.rs", "fn main() {}\n")
    executor = _RecordingExecutor()
    dispatcher = CommandDispatcher(checker=_RecordingChecker(), executor=executor)

    results = dispatcher.dispatch_chain(["build", "run"], tmp_path)

    assert len(results) == 2
    assert executor.calls == [["rustc", "main.rs"], [f"{tmp_path.resolve()}/main"]]


def test_cargo_release_then_run_uses_release_profile(tmp_path: Path) -> None:
    _write(tmp_path, "Cargo.toml", "[package]\nname = \"demo\"\n")
    _write(tmp_path, "src/main.rs", "fn main() {}\n")
    executor = _RecordingExecutor()
    dispatcher = CommandDispatcher(checker=_RecordingChecker(), executor=executor)

    dispatcher.dispatch_chain([Action.RELEASE, Action.RUN], tmp_path)

    assert executor.calls == [["cargo", "build", "--release"], ["cargo", "run", "--release"]]


def test_describe_renders_commands_without_spawning(tmp_path: Path) -> None:
    _write(tmp_path, "Makefile")
    executor = _RecordingExecutor()

    plan = CommandDispatcher(executor=executor).describe(tmp_path)

    assert plan.project_type == MakeProject()
    assert plan.adapter.id == "make"
    assert plan.commands[Action.RUN] == ["make", "run"]
    assert plan.commands[Action.LINT] is None
    assert executor.calls == []
