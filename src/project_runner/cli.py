from __future__ import annotations

import argparse
import json
import signal
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from project_runner import __version__
from project_runner.config import RunnerSettings, apply_overrides, load_settings
from project_runner.dependencies import DependencyChecker
from project_runner.dispatcher import (
    CommandDispatcher,
    DispatchState,
    StateChange,
    StateListener,
)
from project_runner.errors import ConfigError, DispatchError, MissingDependencyError
from project_runner.executor import CommandExecutor
from project_runner.models import Action, ExecutionResult
from project_runner.registry import default_registry

EXIT_INTERRUPTED = 130


def _enable_console_backslashreplace(stream: Any) -> None:
    """Configure stream error handling to backslash escapes when supported."""
    reconfigure = getattr(stream, "reconfigure", None)
    if not callable(reconfigure):
        return
    try:
        if str(getattr(stream, "errors", "")).lower() == "backslashreplace":
            return
        reconfigure(errors="backslashreplace")
    except Exception:
        return


def _configure_console_output() -> None:
    _enable_console_backslashreplace(sys.stdout)
    _enable_console_backslashreplace(sys.stderr)


def _add_target_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "path",
        nargs="?",
        default=".",
        help="Project directory (default: current directory).",
    )
    parser.add_argument(
        "--entry",
        default=None,
        help="Entry file to use instead of detection (resolves ambiguous directories).",
    )


def _add_execution_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Terminate the command after this many seconds (0 disables).",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write the command's output to this file.",
    )
    parser.add_argument(
        "--quiet",
        "-q",
        action="store_true",
        help="Do not print ==== progress banners.",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="project-runner",
        description=(
            "Detect the kind of project in a directory and build, run, release or "
            "lint it with the matching toolchain."
        ),
    )
    parser.add_argument("--version", action="store_true", help="Print package version and exit.")
    subparsers = parser.add_subparsers(dest="command")

    for action, help_text in (
        (Action.BUILD, "Build the project."),
        (Action.RUN, "Run the project."),
        (Action.RELEASE, "Build the project with optimizations."),
        (Action.LINT, "Lint the project."),
    ):
        sub = subparsers.add_parser(action.value, help=help_text)
        _add_target_args(sub)
        _add_execution_args(sub)
        if action is Action.RUN:
            first = sub.add_mutually_exclusive_group()
            first.add_argument(
                "--build",
                action="store_true",
                help="Build first and only run when the build succeeds.",
            )
            first.add_argument(
                "--release",
                action="store_true",
                help="Release-build first and only run when the build succeeds.",
            )

    detect = subparsers.add_parser("detect", help="Show the detected project and its commands.")
    _add_target_args(detect)
    detect.add_argument("--json", action="store_true", help="Emit machine-readable JSON.")

    doctor = subparsers.add_parser("doctor", help="Check the binaries a project needs on PATH.")
    _add_target_args(doctor)
    doctor.add_argument(
        "--all",
        action="store_true",
        help="Check the binaries of every known adapter instead of the detected one.",
    )
    doctor.add_argument("--json", action="store_true", help="Emit machine-readable JSON.")

    subparsers.add_parser("version", help="Print package version.")
    return parser


def _print_error(error: DispatchError | ConfigError) -> None:
    if isinstance(error, DispatchError):
        print(f"==== {error.stage} failed: {error}", file=sys.stderr)
        print(f"hint: {error.hint}", file=sys.stderr)
        return
    print(f"==== configuration failed: {error}", file=sys.stderr)


def _banner_listener(quiet: bool) -> StateListener:
    def _listener(change: StateChange) -> None:
        if quiet:
            return
        action = change.action.value
        if change.state is DispatchState.EXECUTING and change.project_type is not None:
            target = change.project_type.describe()
            if change.argv:
                print(f"==== {action} target ({target})", file=sys.stderr)
                print(f"$ {' '.join(change.argv)}", file=sys.stderr)
            else:
                print(f"==== {action}: nothing to do for {target}", file=sys.stderr)
        elif change.state is DispatchState.COMPLETED and change.result is not None:
            result = change.result
            if result.skipped:
                return
            if change.action is Action.RUN:
                print(f"==== run return code [{result.exit_code}]", file=sys.stderr)
            elif result.ok:
                print(f"==== {action} successful ({result.duration_seconds:.1f}s)", file=sys.stderr)
            else:
                print(f"==== {action} failed [{result.exit_code}]", file=sys.stderr)

    return _listener


def _resolve_settings(args: argparse.Namespace) -> RunnerSettings:
    settings = load_settings(Path(args.path))
    return apply_overrides(
        settings,
        entry=args.entry,
        timeout_seconds=getattr(args, "timeout", None),
        log_file=getattr(args, "log_file", None),
    )


def _run_actions(args: argparse.Namespace) -> int:
    settings = _resolve_settings(args)
    executor = CommandExecutor(
        log_path=settings.log_file,
        timeout_seconds=settings.timeout_seconds,
        max_capture_chars=settings.max_capture_chars,
    )
    dispatcher = CommandDispatcher(executor=executor)

    action = Action(args.command)
    actions = [action]
    if action is Action.RUN and getattr(args, "build", False):
        actions = [Action.BUILD, Action.RUN]
    elif action is Action.RUN and getattr(args, "release", False):
        actions = [Action.RELEASE, Action.RUN]

    results: list[ExecutionResult] = dispatcher.dispatch_chain(
        actions,
        args.path,
        entry=settings.entry,
        listener=_banner_listener(bool(args.quiet)),
    )
    return results[-1].exit_code if results else 0


def _plan_payload(args: argparse.Namespace) -> dict[str, Any]:
    settings = _resolve_settings(args)
    plan = CommandDispatcher().describe(args.path, entry=settings.entry)
    return {
        "directory": str(plan.directory),
        "project_type": plan.project_type.describe(),
        "adapter": plan.adapter.id,
        "language": plan.adapter.language,
        "required_binaries": list(plan.adapter.required_binaries),
        "commands": {action.value: argv for action, argv in plan.commands.items()},
    }


def _print_plan(payload: dict[str, Any], *, as_json: bool) -> None:
    if as_json:
        print(json.dumps(payload, indent=2, ensure_ascii=False))
        return
    print(f"directory: {payload['directory']}")
    print(f"project: {payload['project_type']}")
    print(f"adapter: {payload['adapter']}")
    print(f"requires: {', '.join(payload['required_binaries'])}")
    for action, argv in payload["commands"].items():
        if argv is None:
            rendered = "<unsupported>"
        elif not argv:
            rendered = "<nothing to do>"
        else:
            rendered = " ".join(argv)
        print(f"{action}: {rendered}")


def _doctor_payload(args: argparse.Namespace) -> dict[str, Any]:
    registry = default_registry()
    checker = DependencyChecker()
    if args.all:
        adapters = list(registry.adapters.values())
    else:
        settings = _resolve_settings(args)
        plan = CommandDispatcher(registry=registry).describe(args.path, entry=settings.entry)
        adapters = [plan.adapter]

    binaries: dict[str, str | None] = {}
    for adapter in adapters:
        binaries.update(checker.probe(adapter))
    return {
        "project_runner_version": __version__,
        "adapters": [a.id for a in adapters],
        "binaries": binaries,
        "available": [name for name, resolved in binaries.items() if isinstance(resolved, str)],
        "missing": [name for name, resolved in binaries.items() if resolved is None],
    }


def _print_doctor(payload: dict[str, Any], *, as_json: bool) -> None:
    if as_json:
        print(json.dumps(payload, indent=2, ensure_ascii=False))
        return
    print(f"project-runner version: {payload['project_runner_version']}")
    print(f"adapters: {', '.join(payload['adapters'])}")
    for name, value in payload["binaries"].items():
        rendered = value if isinstance(value, str) else "<missing>"
        print(f"{name}: {rendered}")


def _raise_interrupt(_signum: int, _frame: object) -> None:
    raise KeyboardInterrupt


def main(argv: Sequence[str] | None = None) -> int:
    _configure_console_output()
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.version or args.command == "version":
        print(__version__)
        return 0

    if args.command is None:
        parser.print_help()
        return 0

    try:
        previous_sigterm = signal.signal(signal.SIGTERM, _raise_interrupt)
    except ValueError:
        # Not the main thread; interrupts still arrive as KeyboardInterrupt.
        previous_sigterm = None

    try:
        if args.command == "detect":
            _print_plan(_plan_payload(args), as_json=bool(args.json))
            return 0
        if args.command == "doctor":
            payload = _doctor_payload(args)
            _print_doctor(payload, as_json=bool(args.json))
            return MissingDependencyError.exit_code if payload["missing"] else 0
        return _run_actions(args)
    except (DispatchError, ConfigError) as e:
        _print_error(e)
        return e.exit_code
    except KeyboardInterrupt:
        print("==== interrupted", file=sys.stderr)
        return EXIT_INTERRUPTED
    finally:
        if previous_sigterm is not None:
            signal.signal(signal.SIGTERM, previous_sigterm)


if __name__ == "__main__":
    raise SystemExit(main())
