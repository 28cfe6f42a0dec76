from __future__ import annotations

from pathlib import Path

import pytest

from project_runner.models import (
    Action,
    CargoProject,
    LanguageAdapter,
    MakeProject,
    SourceFile,
    render_argv,
)
from project_runner.registry import (
    ADAPTERS,
    EXTENSION_RULES,
    AdapterRegistry,
    ExtensionRule,
    default_registry,
)


def test_every_extension_resolves_to_an_adapter() -> None:
    registry = default_registry()
    for rule in EXTENSION_RULES:
        source = SourceFile(
            language=rule.language, entry=f"main.{rule.extension}", adapter_id=rule.adapter_id
        )
        assert registry.resolve(source).id == rule.adapter_id


def test_markers_resolve_to_make_and_cargo() -> None:
    registry = default_registry()
    assert registry.resolve(MakeProject()).required_binaries == ("make",)
    assert registry.resolve(CargoProject()).required_binaries == ("cargo",)


@pytest.mark.parametrize(
    ("adapter_id", "required"),
    [
        ("make", ("make",)),
        ("cargo", ("cargo",)),
        ("javascript", ("node", "eslint")),
        ("rust", ("rustc", "cargo")),
        ("cpp", ("g++",)),
        ("c", ("gcc",)),
        ("lua", ("lua", "luacheck")),
        ("bash", ("bash", "shellcheck")),
    ],
)
def test_required_binaries(adapter_id: str, required: tuple[str, ...]) -> None:
    assert default_registry().adapters[adapter_id].required_binaries == required


def test_lint_is_unsupported_for_compiled_projects() -> None:
    adapters = default_registry().adapters
    for adapter_id in ("make", "cargo", "rust", "cpp", "c"):
        assert adapters[adapter_id].template_for(Action.LINT) is None
        assert Action.LINT not in adapters[adapter_id].supported_actions


def test_cpp_templates_render_entry_and_output(tmp_path: Path) -> None:
    adapter = default_registry().adapters["cpp"]
    source = SourceFile(language="cpp", entry="main.cpp", adapter_id="cpp")

    def _render(action: Action) -> list[str]:
        template = adapter.template_for(action)
        assert template is not None
        return render_argv(template, directory=tmp_path, project_type=source)

    assert _render(Action.BUILD) == ["g++", "main.cpp", "-o", "main"]
    assert _render(Action.RELEASE) == ["g++", "-O2", "main.cpp", "-o", "main"]
    assert _render(Action.RUN) == [f"{tmp_path}/main"]


def test_javascript_lint_targets_the_directory(tmp_path: Path) -> None:
    adapter = default_registry().adapters["javascript"]
    source = SourceFile(language="javascript", entry="index.js", adapter_id="javascript")
    template = adapter.template_for(Action.LINT)
    assert template is not None

    assert render_argv(template, directory=tmp_path, project_type=source) == [
        "eslint",
        str(tmp_path),
    ]
    assert adapter.template_for(Action.BUILD) == ()


def test_cargo_run_after_release_uses_release_profile() -> None:
    adapter = default_registry().adapters["cargo"]

    assert adapter.template_for(Action.RUN) == ("cargo", "run")
    assert adapter.template_for(Action.RUN, after_release=True) == ("cargo", "run", "--release")
    assert adapter.template_for(Action.BUILD, after_release=True) == ("cargo", "build")


def test_file_placeholder_is_undefined_for_make_projects(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="placeholder 'file'"):
        render_argv(("cat", "{file}"), directory=tmp_path, project_type=MakeProject())


def test_registry_views_are_read_only() -> None:
    registry = default_registry()
    with pytest.raises(TypeError):
        registry.adapters["python"] = registry.adapters["make"]  # type: ignore[index]
    with pytest.raises(TypeError):
        registry.adapters["make"].templates[Action.LINT] = ("true",)  # type: ignore[index]


def test_adapter_requires_at_least_one_action() -> None:
    with pytest.raises(ValueError, match="at least one action"):
        LanguageAdapter(id="empty", language="none", required_binaries=(), templates={})


def test_registry_rejects_extension_without_adapter() -> None:
    with pytest.raises(ValueError, match="unknown adapter"):
        AdapterRegistry(
            adapters=ADAPTERS,
            extension_rules=[*EXTENSION_RULES, ExtensionRule("py", "python", "python")],
        )


def test_registry_requires_marker_adapters() -> None:
    without_make = [a for a in ADAPTERS if a.id != "make"]
    with pytest.raises(ValueError, match="'make'"):
        AdapterRegistry(adapters=without_make)


def test_registry_accepts_new_language_as_data() -> None:
    python = LanguageAdapter(
        id="python",
        language="python",
        required_binaries=("python3",),
        templates={Action.RUN: ("python3", "{file}")},
    )
    registry = AdapterRegistry(
        adapters=[*ADAPTERS, python],
        extension_rules=[*EXTENSION_RULES, ExtensionRule(".PY", "python", "python")],
    )

    assert registry.rule_for_extension("py") == ExtensionRule("py", "python", "python")
    assert registry.resolve(SourceFile("python", "main.py", "python")) is python
