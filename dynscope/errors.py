"""Error taxonomy shared by the index services."""

from __future__ import annotations

from typing import Sequence

from .text import Messages


class DynscopeError(RuntimeError):
    """Base class for failures reported by dynscope operations."""


class NoFilesFound(DynscopeError):
    def __init__(self, root: object) -> None:
        super().__init__(Messages.ERROR_NO_FILES.format(root=root))
        self.root = root


class NoScannerAvailable(DynscopeError):
    def __init__(self, finder: str) -> None:
        super().__init__(Messages.ERROR_NO_SCANNER.format(finder=finder))
        self.finder = finder


class OutsideRoot(DynscopeError):
    def __init__(self, path: object, root: object) -> None:
        super().__init__(Messages.ERROR_OUTSIDE_ROOT.format(path=path, root=root))
        self.path = path
        self.root = root


class SubprocessFailed(DynscopeError):
    """A subprocess exited non-zero or could not be started."""

    def __init__(
        self,
        command: str,
        returncode: int | None,
        stderr: Sequence[str] = (),
        *,
        message: str | None = None,
    ) -> None:
        detail = "\n".join(stderr) if stderr else "no diagnostic output"
        if message is None:
            message = Messages.ERROR_SUBPROCESS_FAILED.format(
                command=command,
                code=returncode,
                detail=detail,
            )
        super().__init__(message)
        self.command = command
        self.returncode = returncode
        self.stderr = tuple(stderr)


class SubprocessTimeout(DynscopeError):
    def __init__(self, command: str, timeout: float) -> None:
        super().__init__(
            Messages.ERROR_SUBPROCESS_TIMEOUT.format(command=command, timeout=timeout)
        )
        self.command = command
        self.timeout = timeout


class NotInitialized(DynscopeError):
    def __init__(self, root: object) -> None:
        super().__init__(Messages.ERROR_NOT_INITIALIZED.format(root=root))
        self.root = root


class AlreadyUpdating(DynscopeError):
    def __init__(self, root: object) -> None:
        super().__init__(Messages.ERROR_ALREADY_UPDATING.format(root=root))
        self.root = root
