from __future__ import annotations

import os
import queue
import signal
import subprocess
import sys
import threading
import time
from collections import deque
from collections.abc import Sequence
from pathlib import Path
from typing import IO, Any

from project_runner.errors import ProcessSpawnError, ProcessTimeoutError
from project_runner.models import ExecutionResult

DEFAULT_MAX_CAPTURE_CHARS = 1_000_000
_INTERRUPT_GRACE_SECONDS = 5.0
_POLL_SECONDS = 0.05
_DRAIN_SECONDS = 0.5

_STDOUT = "stdout"
_STDERR = "stderr"


class _TailBuffer:
    """Keeps the most recent output lines within a character budget."""

    def __init__(self, max_chars: int) -> None:
        self._max_chars = max(0, int(max_chars))
        self._lines: deque[str] = deque()
        self._size = 0
        self.truncated = False

    def append(self, line: str) -> None:
        self._lines.append(line)
        self._size += len(line)
        while self._size > self._max_chars and self._lines:
            dropped = self._lines.popleft()
            self._size -= len(dropped)
            self.truncated = True

    def text(self) -> str:
        return "".join(self._lines)


def _pump(name: str, pipe: IO[str] | None, out: queue.Queue[tuple[str, str | None]]) -> None:
    if pipe is not None:
        try:
            for line in pipe:
                out.put((name, line))
        except (OSError, ValueError):
            pass
    out.put((name, None))


def _stop_process(proc: subprocess.Popen[str], *, first_signal: int | None) -> None:
    if proc.poll() is not None:
        return
    try:
        if first_signal is not None and os.name != "nt":
            proc.send_signal(first_signal)
        else:
            proc.terminate()
        proc.wait(timeout=_INTERRUPT_GRACE_SECONDS)
        return
    except subprocess.TimeoutExpired:
        pass
    except OSError:
        return
    try:
        proc.terminate()
        proc.wait(timeout=2)
    except subprocess.TimeoutExpired:
        proc.kill()
        try:
            proc.wait(timeout=5)
        except subprocess.TimeoutExpired:
            # Leave it; returning is better than hanging here.
            pass
    except OSError:
        return


class CommandExecutor:
    """Spawn one child process and stream its output while it runs.

    Lines from the child's stdout and stderr are forwarded to the `stdout` and
    `stderr` sinks as they arrive (defaults: the console), optionally teed into
    `log_path`, and captured for the returned result. The exit code is passed
    through unchanged.
    """

    def __init__(
        self,
        *,
        stdout: IO[str] | None = None,
        stderr: IO[str] | None = None,
        log_path: Path | None = None,
        timeout_seconds: float | None = None,
        max_capture_chars: int = DEFAULT_MAX_CAPTURE_CHARS,
    ) -> None:
        self._stdout = stdout
        self._stderr = stderr
        self._log_path = log_path
        self._timeout_seconds = timeout_seconds
        self._max_capture_chars = max_capture_chars

    def execute(self, argv: Sequence[str], working_directory: Path | str) -> ExecutionResult:
        argv = [str(a) for a in argv]
        if not argv:
            raise ValueError("Cannot execute an empty argument vector.")
        cwd = Path(working_directory)

        sinks: dict[str, IO[str]] = {
            _STDOUT: self._stdout if self._stdout is not None else sys.stdout,
            _STDERR: self._stderr if self._stderr is not None else sys.stderr,
        }
        sink_enabled = {_STDOUT: True, _STDERR: True}
        captured = {
            _STDOUT: _TailBuffer(self._max_capture_chars),
            _STDERR: _TailBuffer(self._max_capture_chars),
        }

        start = time.monotonic()
        try:
            proc = subprocess.Popen(  # noqa: S603
                argv,
                cwd=str(cwd),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as e:
            raise ProcessSpawnError(binary=argv[0], cause=e, argv=argv, cwd=str(cwd)) from e

        lines: queue.Queue[tuple[str, str | None]] = queue.Queue()
        readers = [
            threading.Thread(target=_pump, args=(_STDOUT, proc.stdout, lines), daemon=True),
            threading.Thread(target=_pump, args=(_STDERR, proc.stderr, lines), daemon=True),
        ]
        for reader in readers:
            reader.start()

        log = self._open_log(argv, cwd)
        open_streams = {_STDOUT, _STDERR}
        drain_deadline: float | None = None
        try:
            while open_streams:
                if drain_deadline is None:
                    if proc.poll() is not None:
                        # Background children may hold the pipes open after exit.
                        drain_deadline = time.monotonic() + _DRAIN_SECONDS
                    else:
                        self._check_timeout(proc, argv, start)
                elif time.monotonic() >= drain_deadline:
                    break
                try:
                    name, line = lines.get(timeout=_POLL_SECONDS)
                except queue.Empty:
                    continue
                if line is None:
                    open_streams.discard(name)
                    continue

                captured[name].append(line)
                if sink_enabled[name]:
                    try:
                        sinks[name].write(line)
                        sinks[name].flush()
                    except OSError:
                        sink_enabled[name] = False
                if log is not None:
                    try:
                        log.write(line)
                        log.flush()
                    except OSError:
                        log.close()
                        log = None

            # Both pipes closed, but the child may still be running.
            while proc.poll() is None:
                self._check_timeout(proc, argv, start)
                time.sleep(_POLL_SECONDS)
            exit_code = proc.returncode
        except KeyboardInterrupt:
            # Forward the interrupt so the child is not left running on its own.
            _stop_process(proc, first_signal=signal.SIGINT)
            raise
        finally:
            if proc.poll() is None:
                _stop_process(proc, first_signal=None)
            if not open_streams:
                for reader in readers:
                    reader.join(timeout=5)
            if log is not None:
                try:
                    log.write(f"\nexit_code={proc.returncode}\n")
                except OSError:
                    pass
                log.close()

        return ExecutionResult(
            argv=argv,
            cwd=cwd,
            exit_code=exit_code,
            stdout=captured[_STDOUT].text(),
            stderr=captured[_STDERR].text(),
            duration_seconds=time.monotonic() - start,
            stdout_truncated=captured[_STDOUT].truncated,
            stderr_truncated=captured[_STDERR].truncated,
        )

    def _check_timeout(self, proc: subprocess.Popen[str], argv: list[str], start: float) -> None:
        if self._timeout_seconds is None:
            return
        if time.monotonic() - start <= self._timeout_seconds:
            return
        _stop_process(proc, first_signal=None)
        raise ProcessTimeoutError(argv=argv, timeout_seconds=self._timeout_seconds)

    def _open_log(self, argv: list[str], cwd: Path) -> IO[Any] | None:
        if self._log_path is None:
            return None
        try:
            self._log_path.parent.mkdir(parents=True, exist_ok=True)
            log = self._log_path.open("a", encoding="utf-8", newline="\n")
        except OSError:
            return None
        try:
            log.write(f"$ {' '.join(argv)}\n")
            log.write(f"cwd={cwd}\n\n")
            log.flush()
        except OSError:
            log.close()
            return None
        return log
