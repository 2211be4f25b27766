"""dynscope package initialization."""

from __future__ import annotations

from .api import DynscopeClient, config_context
from .errors import (
    AlreadyUpdating,
    DynscopeError,
    NoFilesFound,
    NoScannerAvailable,
    NotInitialized,
    OutsideRoot,
    SubprocessFailed,
    SubprocessTimeout,
)
from .queries import QueryKind

__all__ = [
    "__version__",
    "AlreadyUpdating",
    "DynscopeClient",
    "DynscopeError",
    "NoFilesFound",
    "NoScannerAvailable",
    "NotInitialized",
    "OutsideRoot",
    "QueryKind",
    "SubprocessFailed",
    "SubprocessTimeout",
    "config_context",
    "get_version",
]

__version__ = "0.1.0"


def get_version() -> str:
    """Return the current package version."""
    return __version__
