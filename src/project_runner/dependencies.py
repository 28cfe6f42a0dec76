from __future__ import annotations

import shutil
from collections.abc import Callable

from project_runner.errors import MissingDependencyError
from project_runner.models import LanguageAdapter

Which = Callable[[str], str | None]


class DependencyChecker:
    def __init__(self, which: Which | None = None) -> None:
        self._which = which

    def _lookup(self, binary: str) -> str | None:
        if self._which is not None:
            return self._which(binary)
        return shutil.which(binary)

    def probe(self, adapter: LanguageAdapter) -> dict[str, str | None]:
        """Resolve every required binary on PATH; unresolved names map to None."""
        return {binary: self._lookup(binary) for binary in adapter.required_binaries}

    def check(self, adapter: LanguageAdapter) -> None:
        # Collect every miss so one report lists everything to install.
        missing = [name for name, location in self.probe(adapter).items() if location is None]
        if missing:
            raise MissingDependencyError(missing=missing, adapter_id=adapter.id)
