from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType


class Action(str, Enum):
    BUILD = "build"
    RUN = "run"
    RELEASE = "release"
    LINT = "lint"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class MakeProject:
    marker: str = "Makefile"

    adapter_id = "make"

    def describe(self) -> str:
        return f"make project ({self.marker})"


@dataclass(frozen=True)
class CargoProject:
    manifest: str = "Cargo.toml"

    adapter_id = "cargo"

    def describe(self) -> str:
        return f"cargo project ({self.manifest})"


@dataclass(frozen=True)
class SourceFile:
    language: str
    entry: str
    adapter_id: str

    @property
    def stem(self) -> str:
        return Path(self.entry).stem

    def describe(self) -> str:
        return f"{self.language} source file ({self.entry})"


ProjectType = MakeProject | CargoProject | SourceFile

# An empty template marks an action that is supported but has nothing to run.
CommandTemplate = tuple[str, ...]


@dataclass(frozen=True)
class LanguageAdapter:
    id: str
    language: str
    required_binaries: tuple[str, ...]
    templates: Mapping[Action, CommandTemplate]
    # Templates used instead of `templates` when the action follows a release build.
    release_templates: Mapping[Action, CommandTemplate] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.templates:
            raise ValueError(f"Adapter {self.id!r} must support at least one action.")
        object.__setattr__(self, "templates", MappingProxyType(dict(self.templates)))
        object.__setattr__(
            self, "release_templates", MappingProxyType(dict(self.release_templates))
        )
        object.__setattr__(self, "required_binaries", tuple(self.required_binaries))

    @property
    def supported_actions(self) -> tuple[Action, ...]:
        return tuple(a for a in Action if a in self.templates)

    def supports(self, action: Action) -> bool:
        return action in self.templates

    def template_for(
        self, action: Action, *, after_release: bool = False
    ) -> CommandTemplate | None:
        if after_release and action in self.release_templates:
            return self.release_templates[action]
        return self.templates.get(action)


def render_argv(
    template: CommandTemplate, *, directory: Path, project_type: ProjectType
) -> list[str]:
    """Fill `{file}`, `{out}` and `{path}` placeholders of a command template.

    `{path}` is the absolute project directory. `{file}` and `{out}` are only
    defined for single source file projects (entry file name and its stem).
    """
    values = {"path": str(directory)}
    if isinstance(project_type, SourceFile):
        values["file"] = project_type.entry
        values["out"] = project_type.stem
    try:
        return [part.format(**values) for part in template]
    except KeyError as e:
        raise ValueError(
            f"Template {template!r} uses placeholder {e.args[0]!r}, "
            f"which is undefined for {project_type.describe()}."
        ) from e


@dataclass(frozen=True)
class ExecutionResult:
    argv: list[str]
    cwd: Path
    exit_code: int
    stdout: str
    stderr: str
    duration_seconds: float
    skipped: bool = False
    stdout_truncated: bool = False
    stderr_truncated: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0
