"""Subprocess execution for the indexer and the file finders."""

from __future__ import annotations

import logging
import shlex
import subprocess
import threading
from concurrent.futures import Future, TimeoutError as FutureTimeout
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Protocol, Sequence

from ..errors import SubprocessFailed, SubprocessTimeout
from ..text import Messages

logger = logging.getLogger(__name__)

CompletionCallback = Callable[[bool, list[str], list[str]], None]


@dataclass(frozen=True, slots=True)
class ProcessResult:
    """Captured outcome of one subprocess run."""

    args: tuple[str, ...]
    returncode: int | None
    stdout: list[str]
    stderr: list[str]
    timed_out: bool = False
    timeout: float | None = None

    @property
    def success(self) -> bool:
        return not self.timed_out and self.returncode == 0

    @property
    def command(self) -> str:
        return format_command(self.args)

    def check(self) -> "ProcessResult":
        """Raise the matching error unless the run succeeded."""
        if self.timed_out:
            raise SubprocessTimeout(self.command, self.timeout or 0.0)
        if self.returncode != 0:
            raise SubprocessFailed(self.command, self.returncode, self.stderr)
        return self


class CommandRunner(Protocol):
    """Blocking runner used by the index services; swappable in tests."""

    def __call__(
        self,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        timeout: float | None = None,
    ) -> ProcessResult:
        raise NotImplementedError  # pragma: no cover


def format_command(args: Sequence[str]) -> str:
    return " ".join(shlex.quote(str(arg)) for arg in args)


def split_lines(data: str | None) -> list[str]:
    """Split captured output into lines, dropping blank ones."""
    if not data:
        return []
    return [line for line in data.splitlines() if line.strip()]


def _spawn(args: Sequence[str], cwd: Path | None) -> subprocess.Popen[str]:
    return subprocess.Popen(
        [str(arg) for arg in args],
        cwd=str(cwd) if cwd is not None else None,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        encoding="utf-8",
        errors="replace",
    )


def _start_failure(args: Sequence[str], exc: OSError) -> ProcessResult:
    message = Messages.ERROR_SUBPROCESS_START.format(
        command=format_command(args), reason=exc
    )
    return ProcessResult(
        args=tuple(str(a) for a in args),
        returncode=None,
        stdout=[],
        stderr=[message],
    )


def _kill(process: subprocess.Popen[str]) -> tuple[str, str]:
    process.kill()
    try:
        return process.communicate(timeout=5)
    except subprocess.TimeoutExpired:  # pragma: no cover - process ignoring SIGKILL
        return "", ""


def run_command(
    args: Sequence[str],
    *,
    cwd: Path | None = None,
    timeout: float | None = None,
) -> ProcessResult:
    """Run *args* to completion, killing the process when *timeout* elapses."""

    logger.debug("run: %s (cwd=%s, timeout=%s)", format_command(args), cwd, timeout)
    try:
        process = _spawn(args, cwd)
    except OSError as exc:
        return _start_failure(args, exc)
    try:
        stdout, stderr = process.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        stdout, stderr = _kill(process)
        logger.debug("timed out after %ss: %s", timeout, format_command(args))
        return ProcessResult(
            args=tuple(str(a) for a in args),
            returncode=process.returncode,
            stdout=split_lines(stdout),
            stderr=split_lines(stderr)
            + [
                Messages.ERROR_SUBPROCESS_TIMEOUT.format(
                    command=format_command(args), timeout=timeout
                )
            ],
            timed_out=True,
            timeout=timeout,
        )
    except BaseException:
        _kill(process)
        raise
    return ProcessResult(
        args=tuple(str(a) for a in args),
        returncode=process.returncode,
        stdout=split_lines(stdout),
        stderr=split_lines(stderr),
    )


class ProcessHandle:
    """Non-blocking handle to a running subprocess."""

    def __init__(
        self,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        callback: CompletionCallback | None = None,
    ) -> None:
        self.args = tuple(str(arg) for arg in args)
        self.cwd = cwd
        self.future: Future[ProcessResult] = Future()
        self._callback = callback
        self._process: subprocess.Popen[str] | None = None
        self._cancelled = False
        self._lock = threading.Lock()
        self._thread = threading.Thread(
            target=self._run,
            name=f"dynscope-{Path(self.args[0]).name if self.args else 'proc'}",
            daemon=True,
        )

    def start(self) -> "ProcessHandle":
        self.future.set_running_or_notify_cancel()
        self._thread.start()
        return self

    def _run(self) -> None:
        logger.debug("start: %s (cwd=%s)", format_command(self.args), self.cwd)
        try:
            with self._lock:
                if self._cancelled:
                    result = ProcessResult(self.args, None, [], [], timed_out=False)
                    self._finish(result)
                    return
                self._process = _spawn(self.args, self.cwd)
            stdout, stderr = self._process.communicate()
            result = ProcessResult(
                args=self.args,
                returncode=self._process.returncode,
                stdout=split_lines(stdout),
                stderr=split_lines(stderr),
            )
        except OSError as exc:
            result = _start_failure(self.args, exc)
        self._finish(result)

    def _finish(self, result: ProcessResult) -> None:
        if self._callback is not None:
            try:
                self._callback(result.success, list(result.stdout), list(result.stderr))
            except Exception as exc:  # callback errors must not leave the future pending
                self.future.set_exception(exc)
                return
        self.future.set_result(result)

    def cancel(self) -> None:
        """Terminate the subprocess; the future still resolves with a failed result."""
        with self._lock:
            self._cancelled = True
            process = self._process
        if process is not None and process.poll() is None:
            logger.debug("cancel: %s", format_command(self.args))
            process.kill()

    def wait(self, timeout: float | None = None) -> ProcessResult:
        return self.future.result(timeout=timeout)


def start_command(
    args: Sequence[str],
    *,
    cwd: Path | None = None,
    callback: CompletionCallback | None = None,
) -> ProcessHandle:
    """Launch *args* in the background and return a handle to it."""
    return ProcessHandle(args, cwd=cwd, callback=callback).start()


class SubprocessRunner:
    """Blocking runner that remembers live processes so they can be terminated.

    Each call runs through a :class:`ProcessHandle`; on timeout the process is
    killed before the failed result is returned.
    """

    def __init__(self) -> None:
        self._handles: set[ProcessHandle] = set()
        self._lock = threading.Lock()

    def __call__(
        self,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        timeout: float | None = None,
    ) -> ProcessResult:
        handle = ProcessHandle(args, cwd=cwd)
        with self._lock:
            self._handles.add(handle)
        try:
            handle.start()
            try:
                return handle.wait(timeout=timeout)
            except FutureTimeout:
                handle.cancel()
                partial = handle.wait()
                logger.debug("timed out after %ss: %s", timeout, format_command(handle.args))
                return ProcessResult(
                    args=handle.args,
                    returncode=partial.returncode,
                    stdout=partial.stdout,
                    stderr=partial.stderr
                    + [
                        Messages.ERROR_SUBPROCESS_TIMEOUT.format(
                            command=format_command(handle.args), timeout=timeout
                        )
                    ],
                    timed_out=True,
                    timeout=timeout,
                )
        finally:
            with self._lock:
                self._handles.discard(handle)

    def cancel_all(self) -> int:
        """Kill every process started through this runner that is still alive."""
        with self._lock:
            handles = list(self._handles)
        for handle in handles:
            handle.cancel()
        return len(handles)