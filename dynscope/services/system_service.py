"""Logic helpers for the `dynscope doctor` command."""

from __future__ import annotations

import json
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..config import Config, config_file_path
from ..errors import NoScannerAvailable
from ..text import Messages
from .discovery_service import select_scanner


@dataclass
class DoctorCheckResult:
    """Result of a single doctor check."""

    name: str
    passed: bool
    message: str
    detail: str | None = None


def check_indexer_on_path(exec_name: str) -> DoctorCheckResult:
    """Check if the configured indexer executable is available on PATH."""
    path = find_command_on_path(exec_name)
    if path:
        return DoctorCheckResult(
            name="Indexer",
            passed=True,
            message=Messages.DOCTOR_INDEXER_FOUND.format(exec=exec_name, path=path),
        )
    return DoctorCheckResult(
        name="Indexer",
        passed=False,
        message=Messages.DOCTOR_INDEXER_MISSING.format(exec=exec_name),
        detail=Messages.DOCTOR_INDEXER_MISSING_DETAIL,
    )


def check_file_finder(finder: str) -> DoctorCheckResult:
    try:
        scanner = select_scanner(finder)
    except (NoScannerAvailable, ValueError) as exc:
        return DoctorCheckResult(
            name="File Finder",
            passed=False,
            message=Messages.DOCTOR_FINDER_MISSING.format(finder=finder),
            detail=str(exc),
        )
    return DoctorCheckResult(
        name="File Finder",
        passed=True,
        message=Messages.DOCTOR_FINDER_OK.format(finder=scanner.name),
    )


def check_config_file() -> DoctorCheckResult:
    """Check that the config file, when present, holds a JSON object."""
    config_file = config_file_path()
    if not config_file.exists():
        return DoctorCheckResult(
            name="Config",
            passed=True,
            message=Messages.DOCTOR_CONFIG_DEFAULT,
            detail=str(config_file),
        )
    try:
        raw = json.loads(config_file.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        return DoctorCheckResult(
            name="Config",
            passed=False,
            message=Messages.DOCTOR_CONFIG_INVALID.format(path=config_file),
            detail=str(exc),
        )
    if not isinstance(raw, dict):
        return DoctorCheckResult(
            name="Config",
            passed=False,
            message=Messages.DOCTOR_CONFIG_INVALID.format(path=config_file),
            detail=Messages.ERROR_CONFIG_JSON_INVALID,
        )
    return DoctorCheckResult(
        name="Config",
        passed=True,
        message=Messages.DOCTOR_CONFIG_EXISTS.format(path=config_file),
    )


def check_root_writable(root: Path) -> DoctorCheckResult:
    """Check that database files can be created in the project root."""
    marker = root / ".dynscope_doctor_test"
    try:
        marker.write_text("test", encoding="utf-8")
        marker.unlink()
    except OSError as exc:
        return DoctorCheckResult(
            name="Project Root",
            passed=False,
            message=Messages.DOCTOR_ROOT_READONLY.format(root=root),
            detail=str(exc),
        )
    return DoctorCheckResult(
        name="Project Root",
        passed=True,
        message=Messages.DOCTOR_ROOT_WRITABLE.format(root=root),
    )


def run_all_doctor_checks(config: Config, root: Path) -> list[DoctorCheckResult]:
    """Run all doctor checks and return results."""
    return [
        check_indexer_on_path(config.exec),
        check_file_finder(config.file_finder),
        check_config_file(),
        check_root_writable(root),
    ]


def find_command_on_path(command: str) -> Optional[str]:
    """Return the resolved path for *command* if present on PATH."""

    return shutil.which(command)
