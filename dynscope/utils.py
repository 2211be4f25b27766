"""Utility helpers for filesystem access and path handling."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Sequence
import os
import re

_WINDOWS_DRIVE = re.compile(r"^[A-Za-z]:[\\/]")


def resolve_directory(path: Path | str) -> Path:
    """Resolve and validate a user supplied directory path."""
    dir_path = Path(path).expanduser().resolve()
    if not dir_path.exists():
        raise FileNotFoundError(f"Directory does not exist: {dir_path}")
    if not dir_path.is_dir():
        raise NotADirectoryError(f"Path is not a directory: {dir_path}")
    return dir_path


def find_project_root(start: Path | str, markers: Sequence[str]) -> Path:
    """Walk upward from *start* until a directory holding any of *markers* is found.

    Falls back to *start* itself when no ancestor carries a marker.
    """

    directory = Path(start).expanduser().resolve()
    if directory.is_file():
        directory = directory.parent
    for candidate in (directory,) + tuple(directory.parents):
        for marker in markers:
            if (candidate / marker).exists():
                return candidate
    return directory


def normalize_path(value: str) -> str:
    """Return *value* with forward slashes only."""
    return value.replace("\\", "/")


def is_absolute_path(value: str) -> bool:
    if value.startswith("/") or value.startswith("\\\\"):
        return True
    return bool(_WINDOWS_DRIVE.match(value))


def relative_posix(path: Path | str, root: Path | str) -> str | None:
    """Return *path* relative to *root* in posix form, or None when outside *root*."""

    norm_path = normalize_path(str(path))
    norm_root = normalize_path(str(root)).rstrip("/")
    if not norm_root:
        norm_root = "/"
    if norm_path == norm_root:
        return ""
    prefix = norm_root if norm_root.endswith("/") else f"{norm_root}/"
    if norm_path.startswith(prefix):
        return norm_path[len(prefix) :]
    return None


def join_root(root: Path | str, value: str) -> str:
    """Return *value* as an absolute posix path, joining it onto *root* when relative."""
    normalized = normalize_path(value)
    if is_absolute_path(normalized):
        return normalized
    if normalized.startswith("./"):
        normalized = normalized[2:]
    base = normalize_path(str(root)).rstrip("/")
    return f"{base}/{normalized}"


def canonicalize(path: Path | str) -> Path:
    """Resolve symlinks in *path* without requiring it to exist."""
    return Path(os.path.realpath(os.fspath(path)))


def read_lines(path: Path) -> List[str] | None:
    """Return the non-empty lines of *path*, or None when it cannot be read."""
    try:
        text = path.read_text(encoding="utf-8", errors="surrogateescape")
    except OSError:
        return None
    return [line for line in text.splitlines() if line.strip()]


def write_lines(path: Path, lines: Iterable[str]) -> None:
    """Atomically replace *path* with one entry per line."""

    path.parent.mkdir(parents=True, exist_ok=True)
    staging = path.with_name(f"{path.name}.tmp")
    content = "".join(f"{line}\n" for line in lines)
    staging.write_text(content, encoding="utf-8", errors="surrogateescape")
    os.replace(staging, path)


def remove_lines(path: Path, values: Iterable[str]) -> int:
    """Drop every line of *path* equal to one of *values*; return how many were removed.

    Comparison ignores the path separator style.
    """

    lines = read_lines(path)
    if lines is None:
        return 0
    targets = {normalize_path(value) for value in values if value}
    kept = [line for line in lines if normalize_path(line) not in targets]
    removed = len(lines) - len(kept)
    if removed:
        write_lines(path, kept)
    return removed


def unlink_quietly(path: Path) -> bool:
    """Delete *path* if present and report whether anything was removed."""
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True


def format_path(path: Path | str, base: Path | None = None) -> str:
    """Return a user friendly representation of *path* relative to *base* when possible."""
    if base:
        relative = relative_posix(path, base)
        if relative:
            return relative
    return str(path)

