"""Source file discovery over interchangeable scanner backends."""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Protocol, Sequence

from pathspec.gitignore import GitIgnoreSpec

from ..config import Config, DEFAULT_FILE_FINDER
from ..errors import NoScannerAvailable
from ..utils import join_root, relative_posix
from .process_service import CommandRunner, format_command, run_command

logger = logging.getLogger(__name__)

# Fixed fallback order used when the finder is "auto".
SCANNER_ORDER: tuple[str, ...] = ("fd", "rg", "find", "powershell", "walk")


class FileFilter:
    """Include-pattern and excluded-directory filter shared by every backend."""

    def __init__(self, patterns: Sequence[str], exclude_dirs: Sequence[str]) -> None:
        self.patterns = tuple(patterns)
        self.exclude_dirs = tuple(name.strip("/\\") for name in exclude_dirs if name.strip("/\\"))
        self._include = GitIgnoreSpec.from_lines(self.patterns) if self.patterns else None
        self._exclude = (
            GitIgnoreSpec.from_lines([f"{name}/" for name in self.exclude_dirs])
            if self.exclude_dirs
            else None
        )

    @classmethod
    def from_config(cls, config: Config) -> "FileFilter":
        return cls(config.file_patterns, config.exclude_dirs)

    def excludes_dir(self, name: str) -> bool:
        return name in self.exclude_dirs

    def matches(self, relative_path: str) -> bool:
        """Return True when a root-relative posix path should be indexed."""
        if not relative_path:
            return False
        if self._exclude is not None and self._exclude.match_file(relative_path):
            return False
        if self._include is None:
            return True
        return self._include.match_file(relative_path)

    def extensions(self) -> tuple[str, ...] | None:
        """Return bare extensions when every pattern has the `*.ext` shape."""
        extensions: list[str] = []
        for pattern in self.patterns:
            if not pattern.startswith("*."):
                return None
            ext = pattern[2:]
            if not ext or any(char in ext for char in "*?[]/"):
                return None
            extensions.append(ext)
        return tuple(extensions)


class FileScanner(Protocol):
    name: str

    def is_available(self) -> bool:
        raise NotImplementedError

    def command(self, root: Path, file_filter: FileFilter) -> list[str] | None:
        raise NotImplementedError

    def enumerate(
        self,
        root: Path,
        file_filter: FileFilter,
        *,
        runner: CommandRunner = run_command,
    ) -> list[Path]:
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class CommandScanner:
    """Scanner that shells out to an external tool emitting one path per line."""

    name: str
    executables: tuple[str, ...]
    build: Callable[[str, Path, FileFilter], list[str]]
    windows: bool | None = None

    def executable(self) -> str | None:
        if self.windows is not None and self.windows != (os.name == "nt"):
            return None
        for candidate in self.executables:
            found = shutil.which(candidate)
            if found:
                return found
        return None

    def is_available(self) -> bool:
        return self.executable() is not None

    def command(self, root: Path, file_filter: FileFilter) -> list[str] | None:
        executable = self.executable()
        if executable is None:
            return None
        return self.build(executable, root, file_filter)

    def enumerate(
        self,
        root: Path,
        file_filter: FileFilter,
        *,
        runner: CommandRunner = run_command,
    ) -> list[Path]:
        args = self.command(root, file_filter)
        if args is None:
            raise NoScannerAvailable(self.name)
        result = runner(args, cwd=root).check()
        return filter_scan_output(root, result.stdout, file_filter)


@dataclass(frozen=True, slots=True)
class WalkScanner:
    """In-process recursive walk; always available."""

    name: str = "walk"

    def is_available(self) -> bool:
        return True

    def command(self, root: Path, file_filter: FileFilter) -> list[str] | None:
        return None

    def enumerate(
        self,
        root: Path,
        file_filter: FileFilter,
        *,
        runner: CommandRunner = run_command,
    ) -> list[Path]:
        found: list[str] = []
        for dirpath, dirnames, filenames in os.walk(root, topdown=True):
            dirnames[:] = sorted(d for d in dirnames if not file_filter.excludes_dir(d))
            current_dir = Path(dirpath)
            for filename in filenames:
                candidate = current_dir / filename
                if candidate.is_file():
                    found.append(str(candidate))
        return filter_scan_output(root, found, file_filter)


def _fd_args(executable: str, root: Path, file_filter: FileFilter) -> list[str]:
    args = [executable, "--type", "f", "--hidden", "--no-ignore", "--absolute-path"]
    for name in file_filter.exclude_dirs:
        args.extend(["-E", name])
    for ext in file_filter.extensions() or ():
        args.extend(["-e", ext])
    args.extend([".", str(root)])
    return args


def _rg_args(executable: str, root: Path, file_filter: FileFilter) -> list[str]:
    args = [executable, "--files", "--hidden", "--no-ignore"]
    for pattern in file_filter.patterns:
        args.extend(["-g", pattern])
    for name in file_filter.exclude_dirs:
        args.extend(["-g", f"!**/{name}/**"])
    args.append(str(root))
    return args


def _find_args(executable: str, root: Path, file_filter: FileFilter) -> list[str]:
    args = [executable, str(root)]
    if file_filter.exclude_dirs:
        args.extend(["-type", "d", "("])
        for index, name in enumerate(file_filter.exclude_dirs):
            if index:
                args.append("-o")
            args.extend(["-name", name])
        args.extend([")", "-prune", "-o"])
    args.extend(["-type", "f"])
    if file_filter.patterns:
        args.append("(")
        for index, pattern in enumerate(file_filter.patterns):
            if index:
                args.append("-o")
            args.extend(["-name", pattern])
        args.append(")")
    args.append("-print")
    return args


def _powershell_args(executable: str, root: Path, file_filter: FileFilter) -> list[str]:
    literal_root = str(root).replace("'", "''")
    includes = ",".join(f"'{pattern}'" for pattern in file_filter.patterns) or "'*'"
    excludes = ",".join(f"'{name}'" for name in file_filter.exclude_dirs)
    script = (
        f"$exclude = @({excludes}); "
        f"Get-ChildItem -LiteralPath '{literal_root}' -Recurse -File -Include {includes} "
        "| Where-Object { $path = $_.FullName; "
        "-not ($exclude | Where-Object { $path -like \"*\\$_\\*\" }) } "
        "| ForEach-Object { $_.FullName }"
    )
    return [executable, "-NoProfile", "-Command", script]


_SCANNERS: Dict[str, FileScanner] = {
    "fd": CommandScanner(name="fd", executables=("fd", "fdfind"), build=_fd_args),
    "rg": CommandScanner(name="rg", executables=("rg",), build=_rg_args),
    "find": CommandScanner(name="find", executables=("find",), build=_find_args, windows=False),
    "powershell": CommandScanner(
        name="powershell",
        executables=("pwsh", "powershell"),
        build=_powershell_args,
        windows=True,
    ),
    "walk": WalkScanner(),
}


def available_scanners() -> tuple[str, ...]:
    return SCANNER_ORDER


def get_scanner(name: str) -> FileScanner:
    try:
        return _SCANNERS[name]
    except KeyError as exc:
        allowed = ", ".join(SCANNER_ORDER)
        raise ValueError(f"Unsupported file finder '{name}'. Allowed: {allowed}.") from exc


def select_scanner(finder: str = DEFAULT_FILE_FINDER) -> FileScanner:
    """Pick the scanner for *finder*.

    "auto" walks :data:`SCANNER_ORDER` and returns the first available backend.
    An explicit name selects only that backend.
    """

    normalized = (finder or DEFAULT_FILE_FINDER).strip().lower()
    if normalized == DEFAULT_FILE_FINDER:
        for name in SCANNER_ORDER:
            scanner = _SCANNERS[name]
            if scanner.is_available():
                logger.debug("file finder: %s", name)
                return scanner
        raise NoScannerAvailable(normalized)
    scanner = get_scanner(normalized)
    if not scanner.is_available():
        raise NoScannerAvailable(normalized)
    logger.debug("file finder: %s", scanner.name)
    return scanner


def filter_scan_output(
    root: Path,
    lines: Sequence[str],
    file_filter: FileFilter,
) -> list[Path]:
    """Normalize scanner output to sorted, unique absolute paths under *root*."""

    seen: set[str] = set()
    files: list[Path] = []
    for line in lines:
        raw = line.strip()
        if not raw:
            continue
        absolute = join_root(root, raw)
        relative = relative_posix(absolute, root)
        if relative is None or not file_filter.matches(relative):
            continue
        if absolute in seen:
            continue
        seen.add(absolute)
        files.append(Path(absolute))
    files.sort()
    return files


@dataclass(frozen=True, slots=True)
class DiscoveryResult:
    files: list[Path]
    scanner: str
    command: str | None


def discover_files(
    root: Path,
    config: Config,
    *,
    scanner: FileScanner | None = None,
    runner: CommandRunner = run_command,
) -> DiscoveryResult:
    """Enumerate indexable source files under *root*."""

    active = scanner or select_scanner(config.file_finder)
    file_filter = FileFilter.from_config(config)
    args = active.command(root, file_filter)
    command = format_command(args) if args else None
    if command:
        logger.debug("scan: %s", command)
    files = active.enumerate(root, file_filter, runner=runner)
    logger.debug("scan found %d files with %s", len(files), active.name)
    return DiscoveryResult(files=files, scanner=active.name, command=command)
