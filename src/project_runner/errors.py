from __future__ import annotations

from typing import Any


class DispatchError(Exception):
    """Base class for a failed dispatch pipeline stage.

    Every error names the `stage` that failed, a stable `code`, a `details`
    mapping with the facts a caller needs to act on, and a human `hint`.
    """

    stage = "dispatch"
    exit_code = 1
    default_code = "dispatch_failed"
    default_hint = "Rerun with `project-runner detect` to inspect what was resolved."

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        hint: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code.strip() if isinstance(code, str) and code.strip() else self.default_code
        normalized_details = dict(details) if isinstance(details, dict) else {}
        if not normalized_details:
            normalized_details = {"reason": message}
        self.details = normalized_details
        self.hint = hint.strip() if isinstance(hint, str) and hint.strip() else self.default_hint

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage,
            "code": self.code,
            "message": str(self),
            "details": self.details,
            "hint": self.hint,
        }


class DetectionError(DispatchError):
    stage = "detect"
    exit_code = 2
    default_code = "no_project_detected"
    default_hint = (
        "Add a Makefile or Cargo.toml, name the entry file index/main/test.<ext>, "
        "or pass --entry FILE."
    )

    @property
    def candidates(self) -> list[str]:
        raw = self.details.get("candidates")
        return list(raw) if isinstance(raw, list) else []


class UnsupportedActionError(DispatchError):
    stage = "verify_action"
    exit_code = 4
    default_code = "unsupported_action"

    def __init__(self, *, action: str, project_type: str, supported: list[str]) -> None:
        super().__init__(
            f"Action {action!r} is not supported for {project_type}.",
            details={"action": action, "project_type": project_type, "supported": supported},
            hint=f"Supported actions: {', '.join(supported)}.",
        )
        self.action = action
        self.project_type = project_type


class MissingDependencyError(DispatchError):
    stage = "check_dependencies"
    exit_code = 3
    default_code = "missing_dependency"

    def __init__(self, *, missing: list[str], adapter_id: str) -> None:
        super().__init__(
            f"Missing required binaries for {adapter_id}: {', '.join(missing)}.",
            details={"missing": list(missing), "adapter": adapter_id},
            hint="Install the missing tools and make sure they are on PATH.",
        )
        self.missing = list(missing)


class ProcessSpawnError(DispatchError):
    stage = "execute"
    exit_code = 5
    default_code = "spawn_failed"

    def __init__(self, *, binary: str, cause: OSError, argv: list[str], cwd: str) -> None:
        super().__init__(
            f"Could not launch {binary!r}: {cause}",
            details={
                "binary": binary,
                "argv": list(argv),
                "cwd": cwd,
                "errno": cause.errno,
                "error": str(cause),
            },
            hint=(
                "The binary passed the dependency check but could not be started. "
                "Check that it still exists, is executable, and that the build step "
                "produced it."
            ),
        )
        self.binary = binary
        self.cause = cause


class ProcessTimeoutError(DispatchError):
    stage = "execute"
    exit_code = 124
    default_code = "process_timeout"

    def __init__(self, *, argv: list[str], timeout_seconds: float) -> None:
        super().__init__(
            f"Command timed out after {timeout_seconds:.1f}s: {' '.join(argv)}",
            details={"argv": list(argv), "timeout_seconds": timeout_seconds},
            hint=(
                "Increase or disable it with --timeout, `timeout_seconds` in "
                "project-runner.yaml, or PROJECT_RUNNER_TIMEOUT_SECONDS (0 disables it)."
            ),
        )
        self.timeout_seconds = timeout_seconds


class ConfigError(ValueError):
    exit_code = 6

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code or "invalid_config"
        self.details = details or {}
