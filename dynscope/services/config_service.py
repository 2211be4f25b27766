"""Logic helpers for the `dynscope config` command."""

from __future__ import annotations

from dataclasses import dataclass

from ..config import (
    Config,
    add_exclude_dir,
    add_file_pattern,
    load_config,
    reset_config,
    set_big_update_interval,
    set_exec,
    set_file_finder,
    set_query_timeout,
    set_resolve_links,
)


@dataclass(slots=True)
class ConfigUpdateResult:
    exec_set: bool = False
    file_finder_set: bool = False
    query_timeout_set: bool = False
    interval_set: bool = False
    pattern_added: bool = False
    exclude_added: bool = False
    resolve_links_set: bool = False
    reset: bool = False

    @property
    def changed(self) -> bool:
        return any(
            (
                self.exec_set,
                self.file_finder_set,
                self.query_timeout_set,
                self.interval_set,
                self.pattern_added,
                self.exclude_added,
                self.resolve_links_set,
                self.reset,
            )
        )


def apply_config_updates(
    *,
    exec_name: str | None = None,
    file_finder: str | None = None,
    query_timeout: float | None = None,
    big_update_interval: int | None = None,
    add_pattern: str | None = None,
    add_exclude: str | None = None,
    resolve_links: bool | None = None,
    reset: bool = False,
) -> ConfigUpdateResult:
    """Apply config mutations and report which fields were updated.

    A reset runs first so the other options apply on top of the defaults.
    """

    result = ConfigUpdateResult()
    if reset:
        reset_config()
        result.reset = True
    if exec_name is not None:
        set_exec(exec_name)
        result.exec_set = True
    if file_finder is not None:
        set_file_finder(file_finder)
        result.file_finder_set = True
    if query_timeout is not None:
        set_query_timeout(query_timeout)
        result.query_timeout_set = True
    if big_update_interval is not None:
        set_big_update_interval(big_update_interval)
        result.interval_set = True
    if add_pattern is not None:
        add_file_pattern(add_pattern)
        result.pattern_added = True
    if add_exclude is not None:
        add_exclude_dir(add_exclude)
        result.exclude_added = True
    if resolve_links is not None:
        set_resolve_links(resolve_links)
        result.resolve_links_set = True
    return result


def get_config_snapshot() -> Config:
    """Return the current configuration dataclass."""

    return load_config()
