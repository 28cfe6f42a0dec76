from __future__ import annotations

import project_runner


def test_public_names_are_exported() -> None:
    for name in project_runner.__all__:
        assert hasattr(project_runner, name), name


def test_version_is_a_string() -> None:
    assert isinstance(project_runner.__version__, str)
    assert project_runner.__version__
