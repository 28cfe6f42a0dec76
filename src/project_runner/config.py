from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

import yaml

from project_runner.errors import ConfigError
from project_runner.executor import DEFAULT_MAX_CAPTURE_CHARS

CONFIG_FILENAMES: tuple[str, ...] = ("project-runner.yaml", "project-runner.yml")
TIMEOUT_ENV = "PROJECT_RUNNER_TIMEOUT_SECONDS"
_CONFIG_VERSION = 1
_ALLOWED_KEYS: frozenset[str] = frozenset(
    {"version", "entry", "timeout_seconds", "log_file", "max_capture_chars"}
)


@dataclass(frozen=True)
class RunnerSettings:
    entry: str | None = None
    timeout_seconds: float | None = None
    log_file: Path | None = None
    max_capture_chars: int = DEFAULT_MAX_CAPTURE_CHARS
    source_path: Path | None = None


def _load_yaml_mapping(path: Path) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"Failed to read {path}: {e}", code="config_read_failed") from e
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Failed to parse YAML in {path}: {e}",
            code="config_parse_failed",
            details={"path": str(path)},
        ) from e

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(
            f"Expected a YAML mapping in {path}, got {type(raw).__name__}.",
            code="config_not_mapping",
        )
    return raw


def _ensure_no_unknown_keys(*, data: Mapping[str, Any], path: Path) -> None:
    unknown = set(data) - _ALLOWED_KEYS
    if not unknown:
        return
    unknown_list = ", ".join(sorted(str(k) for k in unknown))
    allowed_list = ", ".join(sorted(_ALLOWED_KEYS))
    raise ConfigError(
        f"Unknown keys in {path}: {unknown_list}. Allowed: {allowed_list}.",
        code="config_unknown_keys",
        details={"unknown": sorted(str(k) for k in unknown)},
    )


def _parse_timeout(value: Any, *, source: str) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ConfigError(f"Expected seconds as a number for timeout in {source}, got {value!r}.")
    if isinstance(value, str):
        if not value.strip():
            return None
        try:
            value = float(value)
        except ValueError as e:
            raise ConfigError(
                f"Expected seconds as a number for timeout in {source}, got {value!r}."
            ) from e
    if not isinstance(value, (int, float)):
        raise ConfigError(f"Expected seconds as a number for timeout in {source}, got {value!r}.")
    if value < 0:
        raise ConfigError(f"Timeout in {source} must not be negative, got {value!r}.")
    # 0 disables the timeout.
    return float(value) if value > 0 else None


def find_config_file(directory: Path) -> Path | None:
    for name in CONFIG_FILENAMES:
        candidate = directory / name
        if candidate.is_file():
            return candidate
    return None


def load_settings(
    directory: Path | str, *, environ: Mapping[str, str] | None = None
) -> RunnerSettings:
    """Read project-runner.yaml from `directory`, falling back to the environment.

    Values from the file win over `PROJECT_RUNNER_TIMEOUT_SECONDS`; callers apply
    command line overrides on top with `apply_overrides`.
    """
    env = os.environ if environ is None else environ
    root = Path(directory)
    env_timeout = _parse_timeout(env.get(TIMEOUT_ENV), source=TIMEOUT_ENV)

    path = find_config_file(root) if root.is_dir() else None
    if path is None:
        return RunnerSettings(timeout_seconds=env_timeout)

    data = _load_yaml_mapping(path)
    _ensure_no_unknown_keys(data=data, path=path)

    version = data.get("version", _CONFIG_VERSION)
    if version != _CONFIG_VERSION:
        raise ConfigError(
            f"Unsupported config version {version!r} in {path}; expected {_CONFIG_VERSION}.",
            code="config_version_unsupported",
        )

    entry = data.get("entry")
    if entry is not None and (not isinstance(entry, str) or not entry.strip()):
        raise ConfigError(f"Expected non-empty string for entry in {path}.")

    timeout = (
        _parse_timeout(data["timeout_seconds"], source=str(path))
        if "timeout_seconds" in data
        else env_timeout
    )

    log_file: Path | None = None
    raw_log = data.get("log_file")
    if raw_log is not None:
        if not isinstance(raw_log, str) or not raw_log.strip():
            raise ConfigError(f"Expected non-empty string for log_file in {path}.")
        candidate = Path(raw_log)
        log_file = candidate if candidate.is_absolute() else root / candidate

    max_capture = data.get("max_capture_chars", DEFAULT_MAX_CAPTURE_CHARS)
    if isinstance(max_capture, bool) or not isinstance(max_capture, int) or max_capture < 0:
        raise ConfigError(f"Expected a non-negative integer for max_capture_chars in {path}.")

    return RunnerSettings(
        entry=entry.strip() if isinstance(entry, str) else None,
        timeout_seconds=timeout,
        log_file=log_file,
        max_capture_chars=max_capture,
        source_path=path,
    )


def apply_overrides(
    settings: RunnerSettings,
    *,
    entry: str | None = None,
    timeout_seconds: float | None = None,
    log_file: Path | None = None,
) -> RunnerSettings:
    changes: dict[str, Any] = {}
    if entry is not None:
        changes["entry"] = entry
    if timeout_seconds is not None:
        changes["timeout_seconds"] = _parse_timeout(timeout_seconds, source="--timeout")
    if log_file is not None:
        changes["log_file"] = log_file
    return replace(settings, **changes) if changes else settings
