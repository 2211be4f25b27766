"""Global configuration management for dynscope."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, replace
from contextlib import contextmanager
from contextvars import ContextVar
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Dict

from .text import Messages

DEFAULT_CONFIG_DIR = Path(os.path.expanduser("~")) / ".dynscope"
CONFIG_DIR = DEFAULT_CONFIG_DIR
CONFIG_FILE = CONFIG_DIR / "config.json"
_CONFIG_DIR_OVERRIDE: ContextVar[Path | None] = ContextVar(
    "dynscope_config_dir_override",
    default=None,
)
DEFAULT_DB_BIG = ".cscope.big"
DEFAULT_DB_SMALL = ".cscope.small"
DEFAULT_DB_FILES_LIST = ".cscope.files"
DEFAULT_FILE_PATTERNS: tuple[str, ...] = (
    "*.c",
    "*.h",
    "*.cpp",
    "*.hpp",
    "*.cc",
    "*.hh",
    "*.cxx",
    "*.hxx",
)
DEFAULT_EXCLUDE_DIRS: tuple[str, ...] = (".git", "build", "node_modules", ".cache")
DEFAULT_EXEC = "cscope"
# -q builds the inverted index for faster queries, -k skips /usr/include
DEFAULT_INDEXER_ARGS: tuple[str, ...] = ("-q", "-k")
DEFAULT_BIG_UPDATE_INTERVAL = 60
DEFAULT_QUERY_TIMEOUT = 10.0
DEFAULT_FILE_FINDER = "auto"
SUPPORTED_FILE_FINDERS: tuple[str, ...] = (
    DEFAULT_FILE_FINDER,
    "fd",
    "rg",
    "find",
    "powershell",
    "walk",
)
DEFAULT_ROOT_MARKERS: tuple[str, ...] = (
    ".git",
    ".cscope.big",
    "cscope.out",
    "Makefile",
    "CMakeLists.txt",
)
ENV_DEBUG = "DYNSCOPE_DEBUG"


@dataclass
class Config:
    db_big: str = DEFAULT_DB_BIG
    db_small: str = DEFAULT_DB_SMALL
    db_files_list: str = DEFAULT_DB_FILES_LIST
    file_patterns: tuple[str, ...] = DEFAULT_FILE_PATTERNS
    exclude_dirs: tuple[str, ...] = DEFAULT_EXCLUDE_DIRS
    exec: str = DEFAULT_EXEC
    indexer_args: tuple[str, ...] = DEFAULT_INDEXER_ARGS
    big_update_interval: int = DEFAULT_BIG_UPDATE_INTERVAL
    resolve_links: bool = True
    file_finder: str = DEFAULT_FILE_FINDER
    query_timeout: float = DEFAULT_QUERY_TIMEOUT
    root_markers: tuple[str, ...] = DEFAULT_ROOT_MARKERS
    debug: bool = False


def _resolve_config_dir() -> Path:
    override = _CONFIG_DIR_OVERRIDE.get()
    return override if override is not None else CONFIG_DIR


def _resolve_config_file() -> Path:
    override = _CONFIG_DIR_OVERRIDE.get()
    if override is not None:
        return override / "config.json"
    return CONFIG_FILE


def config_file_path() -> Path:
    """Return the config file honoring any active directory override."""
    return _resolve_config_file()


@contextmanager
def config_dir_context(path: Path | str | None):
    """Temporarily override the config directory for the current context."""

    if path is None:
        yield
        return
    dir_path = Path(path).expanduser().resolve()
    if dir_path.exists() and not dir_path.is_dir():
        raise NotADirectoryError(f"Path is not a directory: {dir_path}")
    token = _CONFIG_DIR_OVERRIDE.set(dir_path)
    try:
        yield
    finally:
        _CONFIG_DIR_OVERRIDE.reset(token)


def load_config() -> Config:
    config_file = _resolve_config_file()
    if not config_file.exists():
        return Config()
    raw = json.loads(config_file.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        return Config()
    return Config(
        db_big=_lenient_str(raw.get("db_big"), DEFAULT_DB_BIG),
        db_small=_lenient_str(raw.get("db_small"), DEFAULT_DB_SMALL),
        db_files_list=_lenient_str(raw.get("db_files_list"), DEFAULT_DB_FILES_LIST),
        file_patterns=_lenient_str_tuple(raw.get("file_patterns"), DEFAULT_FILE_PATTERNS),
        exclude_dirs=_lenient_str_tuple(
            raw.get("exclude_dirs"), DEFAULT_EXCLUDE_DIRS, allow_empty=True
        ),
        exec=_lenient_str(raw.get("exec"), DEFAULT_EXEC),
        indexer_args=_lenient_str_tuple(
            raw.get("indexer_args"), DEFAULT_INDEXER_ARGS, allow_empty=True
        ),
        big_update_interval=_lenient_interval(raw.get("big_update_interval")),
        resolve_links=_lenient_bool(raw.get("resolve_links"), True, "resolve_links"),
        file_finder=_coerce_file_finder(raw.get("file_finder")),
        query_timeout=_lenient_timeout(raw.get("query_timeout")),
        root_markers=_lenient_str_tuple(raw.get("root_markers"), DEFAULT_ROOT_MARKERS),
        debug=_lenient_bool(raw.get("debug"), False, "debug"),
    )


def save_config(config: Config) -> None:
    config_dir = _resolve_config_dir()
    config_dir.mkdir(parents=True, exist_ok=True)
    data: Dict[str, Any] = {
        "db_big": config.db_big,
        "db_small": config.db_small,
        "db_files_list": config.db_files_list,
        "file_patterns": list(config.file_patterns),
        "exclude_dirs": list(config.exclude_dirs),
        "exec": config.exec,
        "indexer_args": list(config.indexer_args),
        "big_update_interval": int(config.big_update_interval),
        "resolve_links": bool(config.resolve_links),
        "file_finder": config.file_finder,
        "query_timeout": float(config.query_timeout),
        "root_markers": list(config.root_markers),
    }
    if config.debug:
        data["debug"] = True
    config_file = _resolve_config_file()
    config_file.write_text(
        json.dumps(data, ensure_ascii=False, indent=2),
        encoding="utf-8",
    )


def set_config_dir(path: Path | str | None) -> None:
    global CONFIG_DIR, CONFIG_FILE
    if path is None:
        CONFIG_DIR = DEFAULT_CONFIG_DIR
    else:
        dir_path = Path(path).expanduser().resolve()
        if dir_path.exists() and not dir_path.is_dir():
            raise NotADirectoryError(f"Path is not a directory: {dir_path}")
        CONFIG_DIR = dir_path
    CONFIG_FILE = CONFIG_DIR / "config.json"


def config_from_json(
    payload: str | Mapping[str, object], *, base: Config | None = None
) -> Config:
    """Return a Config from a JSON string or mapping without saving it."""
    data = _coerce_config_payload(payload)
    config = Config() if base is None else replace(base)
    _apply_config_payload(config, data)
    return config


def set_exec(value: str) -> None:
    config = load_config()
    config.exec = _coerce_required_str(value, "exec", DEFAULT_EXEC)
    save_config(config)


def set_file_finder(value: str) -> None:
    config = load_config()
    config.file_finder = normalize_file_finder(value)
    save_config(config)


def set_query_timeout(value: float) -> None:
    if value <= 0:
        raise ValueError(Messages.ERROR_TIMEOUT_INVALID)
    config = load_config()
    config.query_timeout = float(value)
    save_config(config)


def set_big_update_interval(value: int) -> None:
    if value < 0:
        raise ValueError(Messages.ERROR_INTERVAL_INVALID)
    config = load_config()
    config.big_update_interval = int(value)
    save_config(config)


def set_resolve_links(value: bool) -> None:
    config = load_config()
    config.resolve_links = bool(value)
    save_config(config)


def add_file_pattern(value: str) -> None:
    config = load_config()
    pattern = _coerce_required_str(value, "file_patterns", "")
    if pattern and pattern not in config.file_patterns:
        config.file_patterns = config.file_patterns + (pattern,)
    save_config(config)


def add_exclude_dir(value: str) -> None:
    config = load_config()
    name = _coerce_required_str(value, "exclude_dirs", "").strip("/\\")
    if name and name not in config.exclude_dirs:
        config.exclude_dirs = config.exclude_dirs + (name,)
    save_config(config)


def reset_config() -> None:
    save_config(Config())


def normalize_file_finder(value: object) -> str:
    if value is None:
        return DEFAULT_FILE_FINDER
    if isinstance(value, str):
        normalized = value.strip().lower() or DEFAULT_FILE_FINDER
        if normalized in SUPPORTED_FILE_FINDERS:
            return normalized
    allowed = ", ".join(SUPPORTED_FILE_FINDERS)
    raise ValueError(Messages.ERROR_FINDER_INVALID.format(value=value, allowed=allowed))


def debug_enabled(config: Config) -> bool:
    """Return True when debug logging is requested by config or environment."""
    if config.debug:
        return True
    return os.getenv(ENV_DEBUG, "").strip().lower() in {"1", "true", "yes", "on"}


def _coerce_file_finder(value: object) -> str:
    try:
        return normalize_file_finder(value)
    except ValueError:
        return DEFAULT_FILE_FINDER


def _lenient_str(value: object, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def _lenient_str_tuple(
    value: object,
    default: tuple[str, ...],
    *,
    allow_empty: bool = False,
) -> tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return default
    cleaned = tuple(item.strip() for item in value if isinstance(item, str) and item.strip())
    if not cleaned and not allow_empty:
        return default
    return cleaned


def _lenient_interval(value: object) -> int:
    try:
        interval = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return DEFAULT_BIG_UPDATE_INTERVAL
    return interval if interval >= 0 else DEFAULT_BIG_UPDATE_INTERVAL


def _lenient_bool(value: object, default: bool, field: str) -> bool:
    if value is None:
        return default
    try:
        return _coerce_bool(value, field)
    except ValueError:
        return default


def _lenient_timeout(value: object) -> float:
    try:
        timeout = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return DEFAULT_QUERY_TIMEOUT
    return timeout if timeout > 0 else DEFAULT_QUERY_TIMEOUT


def _coerce_config_payload(payload: str | Mapping[str, object]) -> Mapping[str, object]:
    if isinstance(payload, str):
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise ValueError(Messages.ERROR_CONFIG_JSON_INVALID) from exc
    elif isinstance(payload, Mapping):
        data = dict(payload)
    else:
        raise ValueError(Messages.ERROR_CONFIG_JSON_INVALID)
    if not isinstance(data, Mapping):
        raise ValueError(Messages.ERROR_CONFIG_JSON_INVALID)
    return data


def _apply_config_payload(config: Config, payload: Mapping[str, object]) -> None:
    if "db_big" in payload:
        config.db_big = _coerce_required_str(payload["db_big"], "db_big", DEFAULT_DB_BIG)
    if "db_small" in payload:
        config.db_small = _coerce_required_str(
            payload["db_small"], "db_small", DEFAULT_DB_SMALL
        )
    if "db_files_list" in payload:
        config.db_files_list = _coerce_required_str(
            payload["db_files_list"], "db_files_list", DEFAULT_DB_FILES_LIST
        )
    if "file_patterns" in payload:
        config.file_patterns = _coerce_str_tuple(payload["file_patterns"], "file_patterns")
    if "exclude_dirs" in payload:
        config.exclude_dirs = _coerce_str_tuple(payload["exclude_dirs"], "exclude_dirs")
    if "exec" in payload:
        config.exec = _coerce_required_str(payload["exec"], "exec", DEFAULT_EXEC)
    if "indexer_args" in payload:
        config.indexer_args = _coerce_str_tuple(payload["indexer_args"], "indexer_args")
    if "big_update_interval" in payload:
        interval = _coerce_int(
            payload["big_update_interval"],
            "big_update_interval",
            DEFAULT_BIG_UPDATE_INTERVAL,
        )
        if interval < 0:
            raise ValueError(
                Messages.ERROR_CONFIG_VALUE_INVALID.format(field="big_update_interval")
            )
        config.big_update_interval = interval
    if "resolve_links" in payload:
        config.resolve_links = _coerce_bool(payload["resolve_links"], "resolve_links")
    if "file_finder" in payload:
        config.file_finder = normalize_file_finder(payload["file_finder"])
    if "query_timeout" in payload:
        config.query_timeout = _coerce_timeout(payload["query_timeout"])
    if "root_markers" in payload:
        config.root_markers = _coerce_str_tuple(payload["root_markers"], "root_markers")
    if "debug" in payload:
        config.debug = _coerce_bool(payload["debug"], "debug")


def _coerce_required_str(value: object, field: str, default: str) -> str:
    if value is None:
        return default
    if isinstance(value, str):
        cleaned = value.strip()
        return cleaned or default
    raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field=field))


def _coerce_str_tuple(value: object, field: str) -> tuple[str, ...]:
    if isinstance(value, str):
        value = value.split()
    if not isinstance(value, (list, tuple)):
        raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field=field))
    cleaned: list[str] = []
    for item in value:
        if not isinstance(item, str):
            raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field=field))
        token = item.strip()
        if token and token not in cleaned:
            cleaned.append(token)
    return tuple(cleaned)


def _coerce_int(value: object, field: str, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field=field))
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value.is_integer():
            return int(value)
        raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field=field))
    if isinstance(value, str):
        cleaned = value.strip()
        if not cleaned:
            return default
        try:
            return int(cleaned)
        except ValueError as exc:
            raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field=field)) from exc
    raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field=field))


def _coerce_timeout(value: object) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field="query_timeout"))
    try:
        timeout = float(value)
    except ValueError as exc:
        raise ValueError(
            Messages.ERROR_CONFIG_VALUE_INVALID.format(field="query_timeout")
        ) from exc
    if timeout <= 0:
        raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field="query_timeout"))
    return timeout


def _coerce_bool(value: object, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        cleaned = value.strip().lower()
        if cleaned in {"true", "1", "yes", "on"}:
            return True
        if cleaned in {"false", "0", "no", "off"}:
            return False
    raise ValueError(Messages.ERROR_CONFIG_VALUE_INVALID.format(field=field))
