from __future__ import annotations

from pathlib import Path

from project_runner.errors import DetectionError
from project_runner.models import CargoProject, MakeProject, ProjectType, SourceFile
from project_runner.registry import (
    CARGO_MANIFEST,
    CARGO_SOURCE_DIR,
    ENTRY_STEMS,
    MAKEFILE_MARKERS,
    AdapterRegistry,
    ExtensionRule,
    default_registry,
)


class ProjectDetector:
    """Classify a directory as a make, cargo, or single source file project.

    Build system markers win over entry files. Entry files are only looked up
    in the directory itself, never in subdirectories.
    """

    def __init__(self, registry: AdapterRegistry | None = None) -> None:
        self._registry = registry or default_registry()

    def detect(self, directory: Path | str, *, entry: str | None = None) -> ProjectType:
        root = Path(directory)
        if not root.is_dir():
            raise DetectionError(
                f"Project directory does not exist: {root}",
                code="directory_not_found",
                details={"directory": str(root)},
                hint="Pass an existing directory, or omit PATH to use the current one.",
            )

        if entry is not None:
            return self._from_entry(root, entry)

        for marker in MAKEFILE_MARKERS:
            if (root / marker).is_file():
                return MakeProject(marker=marker)

        if (root / CARGO_MANIFEST).is_file() and (root / CARGO_SOURCE_DIR).is_dir():
            return CargoProject(manifest=CARGO_MANIFEST)

        return self._from_entry_files(root)

    def _from_entry(self, root: Path, entry: str) -> SourceFile:
        path = Path(entry)
        candidate = path if path.is_absolute() else root / path
        if not candidate.is_file():
            raise DetectionError(
                f"Entry file not found: {candidate}",
                code="entry_not_found",
                details={"directory": str(root), "entry": entry},
                hint="Pass an existing file inside the project directory.",
            )
        try:
            rel = candidate.resolve().relative_to(root.resolve())
        except ValueError as e:
            raise DetectionError(
                f"Entry file {entry!r} is outside the project directory {root}.",
                code="entry_not_found",
                details={"directory": str(root), "entry": entry},
                hint="Pass a file inside the project directory.",
            ) from e

        rule = self._registry.rule_for_extension(candidate.suffix)
        if rule is None:
            supported = ", ".join(sorted(self._registry.extensions))
            raise DetectionError(
                f"Entry file {entry!r} has no supported extension.",
                code="unsupported_entry",
                details={
                    "entry": entry,
                    "supported_extensions": sorted(self._registry.extensions),
                },
                hint=f"Supported extensions: {supported}.",
            )
        return SourceFile(
            language=rule.language, entry=rel.as_posix(), adapter_id=rule.adapter_id
        )

    def _from_entry_files(self, root: Path) -> SourceFile:
        rule_order = {ext: idx for idx, ext in enumerate(self._registry.extensions)}
        by_language: dict[str, list[tuple[int, int, str, ExtensionRule]]] = {}

        for path in sorted(root.iterdir()):
            if not path.is_file():
                continue
            stem, dot, ext = path.name.partition(".")
            if not dot or stem not in ENTRY_STEMS:
                continue
            rule = self._registry.rule_for_extension(ext)
            if rule is None:
                continue
            rank = (ENTRY_STEMS.index(stem), rule_order[rule.extension], path.name, rule)
            by_language.setdefault(rule.language, []).append(rank)

        if not by_language:
            raise DetectionError(
                f"No project detected in {root}.",
                code="no_project_detected",
                details={"directory": str(root)},
            )

        if len(by_language) > 1:
            candidates = sorted(name for ranks in by_language.values() for _, _, name, _ in ranks)
            raise DetectionError(
                f"Ambiguous project in {root}: entry files for "
                f"{', '.join(sorted(by_language))} ({', '.join(candidates)}).",
                code="ambiguous_project",
                details={
                    "directory": str(root),
                    "languages": sorted(by_language),
                    "candidates": candidates,
                },
                hint="Pass --entry FILE (or set `entry` in project-runner.yaml) to pick one.",
            )

        language, ranks = next(iter(by_language.items()))
        _, _, name, rule = min(ranks, key=lambda r: (r[0], r[1], r[2]))
        return SourceFile(language=language, entry=name, adapter_id=rule.adapter_id)


def detect(directory: Path | str, *, entry: str | None = None) -> ProjectType:
    return ProjectDetector().detect(directory, entry=entry)
