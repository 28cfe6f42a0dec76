from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType

from project_runner.models import (
    Action,
    CargoProject,
    LanguageAdapter,
    MakeProject,
    ProjectType,
    SourceFile,
)

BUILD = Action.BUILD
RUN = Action.RUN
RELEASE = Action.RELEASE
LINT = Action.LINT

NOOP: tuple[str, ...] = ()

MAKEFILE_MARKERS: tuple[str, ...] = ("Makefile", "makefile", "GNUmakefile")
CARGO_MANIFEST = "Cargo.toml"
CARGO_SOURCE_DIR = "src"

# Entry file stems, highest priority first.
ENTRY_STEMS: tuple[str, ...] = ("index", "main", "test")


@dataclass(frozen=True)
class ExtensionRule:
    extension: str
    language: str
    adapter_id: str


# Order matters: for one stem with several extensions of the same language the
# first listed extension wins.
EXTENSION_RULES: tuple[ExtensionRule, ...] = (
    ExtensionRule("js", "javascript", "javascript"),
    ExtensionRule("rs", "rust", "rust"),
    ExtensionRule("cpp", "cpp", "cpp"),
    ExtensionRule("c", "c", "c"),
    ExtensionRule("lua", "lua", "lua"),
    ExtensionRule("bash", "shell", "bash"),
    ExtensionRule("sh", "shell", "sh"),
)

_RUN_COMPILED = ("{path}/{out}",)

ADAPTERS: tuple[LanguageAdapter, ...] = (
    LanguageAdapter(
        id="make",
        language="make",
        required_binaries=("make",),
        templates={
            BUILD: ("make",),
            RUN: ("make", "run"),
            RELEASE: ("make", "release"),
        },
    ),
    LanguageAdapter(
        id="cargo",
        language="rust",
        required_binaries=("cargo",),
        templates={
            BUILD: ("cargo", "build"),
            RUN: ("cargo", "run"),
            RELEASE: ("cargo", "build", "--release"),
        },
        release_templates={RUN: ("cargo", "run", "--release")},
    ),
    LanguageAdapter(
        id="javascript",
        language="javascript",
        required_binaries=("node", "eslint"),
        templates={
            BUILD: NOOP,
            RUN: ("node", "{file}"),
            RELEASE: NOOP,
            LINT: ("eslint", "{path}"),
        },
    ),
    LanguageAdapter(
        id="rust",
        language="rust",
        required_binaries=("rustc", "cargo"),
        templates={
            BUILD: ("rustc", "{file}"),
            RUN: _RUN_COMPILED,
            RELEASE: ("rustc", "-O", "{file}"),
        },
    ),
    LanguageAdapter(
        id="cpp",
        language="cpp",
        required_binaries=("g++",),
        templates={
            BUILD: ("g++", "{file}", "-o", "{out}"),
            RUN: _RUN_COMPILED,
            RELEASE: ("g++", "-O2", "{file}", "-o", "{out}"),
        },
    ),
    LanguageAdapter(
        id="c",
        language="c",
        required_binaries=("gcc",),
        templates={
            BUILD: ("gcc", "{file}", "-o", "{out}"),
            RUN: _RUN_COMPILED,
            RELEASE: ("gcc", "-O2", "{file}", "-o", "{out}"),
        },
    ),
    LanguageAdapter(
        id="lua",
        language="lua",
        required_binaries=("lua", "luacheck"),
        templates={
            BUILD: NOOP,
            RUN: ("lua", "{file}"),
            RELEASE: NOOP,
            LINT: ("luacheck", "{file}"),
        },
    ),
    LanguageAdapter(
        id="bash",
        language="shell",
        required_binaries=("bash", "shellcheck"),
        templates={
            BUILD: NOOP,
            RUN: ("bash", "{file}"),
            RELEASE: NOOP,
            LINT: ("shellcheck", "{file}"),
        },
    ),
    LanguageAdapter(
        id="sh",
        language="shell",
        required_binaries=("sh", "shellcheck"),
        templates={
            BUILD: NOOP,
            RUN: ("sh", "{file}"),
            RELEASE: NOOP,
            LINT: ("shellcheck", "{file}"),
        },
    ),
)


class AdapterRegistry:
    """Read-only lookup from a detected project type to its adapter.

    The tables are validated once on construction and exposed only through
    read-only views, so one instance can be shared by concurrent requests.
    """

    def __init__(
        self,
        adapters: Iterable[LanguageAdapter] = ADAPTERS,
        extension_rules: Iterable[ExtensionRule] = EXTENSION_RULES,
    ) -> None:
        by_id: dict[str, LanguageAdapter] = {}
        for adapter in adapters:
            if adapter.id in by_id:
                raise ValueError(f"Duplicate adapter id {adapter.id!r}.")
            if not adapter.supported_actions:
                raise ValueError(f"Adapter {adapter.id!r} must support at least one action.")
            by_id[adapter.id] = adapter

        by_extension: dict[str, ExtensionRule] = {}
        for rule in extension_rules:
            ext = rule.extension.lower().lstrip(".")
            if ext in by_extension:
                raise ValueError(f"Duplicate extension rule for {ext!r}.")
            if rule.adapter_id not in by_id:
                raise ValueError(
                    f"Extension {ext!r} maps to unknown adapter {rule.adapter_id!r}."
                )
            if rule.extension != ext:
                rule = ExtensionRule(ext, rule.language, rule.adapter_id)
            by_extension[ext] = rule

        for required in (MakeProject.adapter_id, CargoProject.adapter_id):
            if required not in by_id:
                raise ValueError(f"Registry is missing the {required!r} adapter.")

        self._adapters: Mapping[str, LanguageAdapter] = MappingProxyType(by_id)
        self._extensions: Mapping[str, ExtensionRule] = MappingProxyType(by_extension)

    @property
    def adapters(self) -> Mapping[str, LanguageAdapter]:
        return self._adapters

    @property
    def extensions(self) -> Mapping[str, ExtensionRule]:
        return self._extensions

    def rule_for_extension(self, extension: str) -> ExtensionRule | None:
        return self._extensions.get(extension.lower().lstrip("."))

    def resolve(self, project_type: ProjectType) -> LanguageAdapter:
        if not isinstance(project_type, (MakeProject, CargoProject, SourceFile)):
            raise TypeError(f"Unknown project type: {project_type!r}")
        # Construction guarantees every detector outcome has a row.
        return self._adapters[project_type.adapter_id]


_DEFAULT_REGISTRY = AdapterRegistry()


def default_registry() -> AdapterRegistry:
    return _DEFAULT_REGISTRY
