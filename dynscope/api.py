"""Public Python API for dynscope."""

from __future__ import annotations

import threading
from collections.abc import Mapping
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable

from .config import Config, config_dir_context, config_from_json, load_config
from .errors import DynscopeError
from .queries import QueryKind
from .services.index_service import IndexManager, OperationResult, QueryResponse
from .services.process_service import CommandRunner
from .state import StatusSnapshot
from .utils import find_project_root, resolve_directory


class DynscopeClient:
    """Session-style wrapper that keeps one :class:`IndexManager` per project root.

    Methods accept any path inside a project; the root is detected from the
    configured root markers unless *root* is given explicitly. Operations
    block until the manager reports a result.
    """

    def __init__(
        self,
        *,
        config_dir: Path | str | None = None,
        use_config: bool = True,
        runner: CommandRunner | None = None,
    ) -> None:
        self.config_dir = config_dir
        self.use_config = use_config
        self._runner = runner
        self._runtime_config: Config | None = None
        self._managers: dict[Path, IndexManager] = {}
        self._lock = threading.Lock()

    def set_config_json(
        self,
        payload: Mapping[str, object] | str | None,
        *,
        replace: bool = False,
    ) -> None:
        """Set in-memory config for managers created after this call."""
        if payload is None:
            self._runtime_config = None
            return
        base = None if replace else (self._runtime_config or self._load_config())
        self._runtime_config = config_from_json(payload, base=base)

    @contextmanager
    def config_context(
        self,
        payload: Mapping[str, object] | str | None,
        *,
        replace: bool = False,
    ):
        """Temporarily override this client's in-memory config."""
        previous = self._runtime_config
        self.set_config_json(payload, replace=replace)
        try:
            yield self
        finally:
            self._runtime_config = previous

    @property
    def config(self) -> Config:
        if self._runtime_config is not None:
            return self._runtime_config
        return self._load_config()

    def _load_config(self) -> Config:
        if not self.use_config:
            return Config()
        with config_dir_context(self.config_dir):
            return load_config()

    def resolve_root(self, path: Path | str | None = None, *, root: Path | str | None = None) -> Path:
        if root is not None:
            return resolve_directory(root)
        start = Path(path) if path is not None else Path.cwd()
        return find_project_root(start, self.config.root_markers)

    def manager(
        self, path: Path | str | None = None, *, root: Path | str | None = None
    ) -> IndexManager:
        """Return the manager for the project containing *path*, creating it on first use."""
        project_root = self.resolve_root(path, root=root)
        with self._lock:
            manager = self._managers.get(project_root)
            if manager is None:
                manager = IndexManager(project_root, self.config, runner=self._runner)
                self._managers[project_root] = manager
            return manager

    def projects(self) -> list[Path]:
        with self._lock:
            return sorted(self._managers)

    def attach(
        self, path: Path | str | None = None, *, root: Path | str | None = None
    ) -> IndexManager:
        """Return the manager, loading an existing database without building one."""
        manager = self.manager(path, root=root)
        if not manager.state.initialized and manager.paths.big.exists():
            result = manager.initialize().result()
            if not result.success and result.error is not None:
                raise result.error
        return manager

    def initialize(
        self, path: Path | str | None = None, *, root: Path | str | None = None
    ) -> OperationResult:
        return self.manager(path, root=root).initialize().result()

    def update_files(
        self,
        files: Iterable[Path | str],
        *,
        root: Path | str | None = None,
    ) -> list[OperationResult]:
        results: list[OperationResult] = []
        for file_path in files:
            raw = Path(file_path).expanduser()
            # A linked file is followed only when resolve_links is set.
            candidate = raw.parent.resolve() / raw.name
            manager = self.attach(candidate.parent, root=root)
            results.append(manager.update_file(candidate).result())
        return results

    def merge_back(
        self,
        path: Path | str | None = None,
        *,
        root: Path | str | None = None,
        force: bool = True,
    ) -> OperationResult:
        manager = self.attach(path, root=root)
        future = manager.merge_back() if force else manager.maybe_merge_back()
        return future.result()

    def rebuild(
        self, path: Path | str | None = None, *, root: Path | str | None = None
    ) -> OperationResult:
        return self.manager(path, root=root).rebuild_full().result()

    def remove(
        self, path: Path | str | None = None, *, root: Path | str | None = None
    ) -> OperationResult:
        return self.manager(path, root=root).remove().result()

    def query(
        self,
        kind: QueryKind | str | int,
        term: str,
        path: Path | str | None = None,
        *,
        root: Path | str | None = None,
        timeout: float | None = None,
    ) -> QueryResponse:
        return self.attach(path, root=root).query(kind, term, timeout=timeout)

    def status(
        self, path: Path | str | None = None, *, root: Path | str | None = None
    ) -> StatusSnapshot:
        return self.attach(path, root=root).status()

    def close(self) -> None:
        with self._lock:
            managers = list(self._managers.values())
            self._managers.clear()
        for manager in managers:
            manager.close()

    def __enter__(self) -> "DynscopeClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


@contextmanager
def config_context(
    payload: Mapping[str, object] | str | None,
    *,
    replace: bool = False,
    config_dir: Path | str | None = None,
    use_config: bool = True,
):
    """Yield a configured client for scoped API usage."""
    client = DynscopeClient(config_dir=config_dir, use_config=use_config)
    client.set_config_json(payload, replace=replace)
    try:
        yield client
    finally:
        client.close()


__all__ = ["DynscopeClient", "DynscopeError", "config_context"]
