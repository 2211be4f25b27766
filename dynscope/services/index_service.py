"""Lifecycle of a project's split big/small cscope database."""

from __future__ import annotations

import logging
import os
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Sequence

from ..config import Config, load_config
from ..errors import (
    AlreadyUpdating,
    DynscopeError,
    NoFilesFound,
    NotInitialized,
    OutsideRoot,
)
from ..queries import QueryKind, parse_query_kind
from ..state import IndexState, Partition, PartitionPaths, StatusSnapshot
from ..text import Messages
from ..utils import (
    canonicalize,
    normalize_path,
    read_lines,
    relative_posix,
    remove_lines,
    unlink_quietly,
    write_lines,
)
from .discovery_service import FileFilter, FileScanner, discover_files, select_scanner
from .process_service import CommandRunner, SubprocessRunner
from .query_service import QueryResult, merge_results

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class Operation(str, Enum):
    LOAD = "load"
    BUILD = "build"
    UPDATE = "update"
    MERGE = "merge"
    REBUILD = "rebuild"
    REMOVE = "remove"


@dataclass(slots=True)
class OperationResult:
    operation: Operation
    success: bool
    error: DynscopeError | None = None
    message: str = ""
    files: int = 0


@dataclass(slots=True)
class QueryResponse:
    kind: QueryKind
    term: str
    results: list[QueryResult] = field(default_factory=list)
    failures: dict[Partition, str] = field(default_factory=dict)

    @property
    def partial(self) -> bool:
        return bool(self.failures)


def _completed(result: OperationResult) -> Future[OperationResult]:
    future: Future[OperationResult] = Future()
    future.set_result(result)
    return future


class IndexManager:
    """Owns one project's :class:`IndexState` and serializes every change to it.

    Mutating operations run one at a time on a private single-worker
    executor and return a future resolving to an :class:`OperationResult`.
    While an operation is pending, build, merge, rebuild and remove requests
    are rejected with :class:`AlreadyUpdating`; per-file updates queue.
    Queries run on the caller's thread.
    """

    def __init__(
        self,
        root: Path | str,
        config: Config | None = None,
        *,
        runner: CommandRunner | None = None,
        scanner: FileScanner | None = None,
        clock: Clock = time.time,
    ) -> None:
        self.config = config if config is not None else load_config()
        self.root = Path(root).expanduser().resolve()
        self.state = IndexState(PartitionPaths.for_root(self.root, self.config))
        self._runner: CommandRunner = runner if runner is not None else SubprocessRunner()
        self._scanner = scanner
        self._filter = FileFilter.from_config(self.config)
        self._clock = clock
        self._lock = threading.Lock()
        self._pending = 0
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="dynscope-index")

    @property
    def paths(self) -> PartitionPaths:
        return self.state.paths

    # Scheduling

    def _submit(
        self,
        operation: Operation,
        work: Callable[[], OperationResult],
        *,
        exclusive: bool = True,
    ) -> Future[OperationResult]:
        with self._lock:
            if exclusive and self.state.updating:
                error = AlreadyUpdating(self.root)
                logger.debug("%s rejected: %s", operation.value, error)
                return _completed(
                    OperationResult(operation, False, error=error, message=str(error))
                )
            self.state.updating = True
            self._pending += 1
        try:
            future = self._executor.submit(self._run, operation, work)
        except RuntimeError:
            self._release()
            raise
        future.add_done_callback(self._on_done)
        return future

    def _run(
        self, operation: Operation, work: Callable[[], OperationResult]
    ) -> OperationResult:
        try:
            return work()
        except DynscopeError as exc:
            logger.warning("%s failed: %s", operation.value, exc)
            return OperationResult(operation, False, error=exc, message=str(exc))
        except OSError as exc:
            error = DynscopeError(
                Messages.ERROR_UNEXPECTED.format(operation=operation.value, reason=exc)
            )
            logger.warning("%s failed: %s", operation.value, error)
            return OperationResult(operation, False, error=error, message=str(error))
        finally:
            self._release()

    def _on_done(self, future: Future[OperationResult]) -> None:
        # Cancelled requests never reach _run.
        if future.cancelled():
            self._release()

    def _release(self) -> None:
        with self._lock:
            self._pending -= 1
            if self._pending <= 0:
                self._pending = 0
                self.state.updating = False

    # Public operations

    def initialize(self) -> Future[OperationResult]:
        """Load the existing database for the root, or build it when absent."""
        if self.paths.big.exists():
            return self._submit(Operation.LOAD, self._load)
        return self.build()

    def build(self) -> Future[OperationResult]:
        return self._submit(Operation.BUILD, lambda: self._build(Operation.BUILD))

    def update_file(self, path: Path | str) -> Future[OperationResult]:
        return self._submit(Operation.UPDATE, lambda: self._update(path), exclusive=False)

    def update_files(self, paths: Iterable[Path | str]) -> list[Future[OperationResult]]:
        return [self.update_file(path) for path in paths]

    def merge_back(self) -> Future[OperationResult]:
        return self._submit(Operation.MERGE, self._merge)

    def maybe_merge_back(self) -> Future[OperationResult]:
        """Merge only when ``big_update_interval`` seconds passed since the last big build."""
        elapsed = self._clock() - self.state.last_big_rebuild
        interval = self.config.big_update_interval
        if self.state.last_big_rebuild and elapsed < interval:
            return _completed(
                OperationResult(
                    Operation.MERGE,
                    True,
                    message=Messages.INFO_MERGE_NOT_DUE.format(
                        ago=int(elapsed), interval=interval
                    ),
                    files=len(self.state.small_partition_files),
                )
            )
        return self.merge_back()

    def rebuild_full(self) -> Future[OperationResult]:
        return self._submit(Operation.REBUILD, self._rebuild)

    def remove(self) -> Future[OperationResult]:
        """Delete every database artifact and file list, leaving the state uninitialized."""
        return self._submit(Operation.REMOVE, self._remove)

    def reset(self) -> None:
        """Forget the in-memory state; files on disk are left alone."""
        self.state.reset()

    def query(
        self,
        kind: QueryKind | str | int,
        term: str,
        *,
        timeout: float | None = None,
    ) -> QueryResponse:
        query_kind = parse_query_kind(kind)
        if not self.state.initialized:
            raise NotInitialized(self.root)
        if not term or not term.strip():
            raise ValueError(Messages.ERROR_EMPTY_TERM)
        limit = timeout if timeout is not None else self.config.query_timeout
        batches: list[tuple[Partition, Sequence[str]]] = []
        failures: dict[Partition, str] = {}
        for partition in (Partition.BIG, Partition.SMALL):
            database = self.paths.artifact(partition)
            if not database.exists():
                continue
            args = [
                self.config.exec,
                "-d",
                "-f",
                str(database),
                "-L",
                query_kind.flag(),
                term,
            ]
            result = self._runner(args, cwd=self.root, timeout=limit)
            if not result.success:
                detail = "\n".join(result.stderr) or f"exit code {result.returncode}"
                failures[partition] = detail
                logger.warning("query against %s database failed: %s", partition.value, detail)
                continue
            batches.append((partition, result.stdout))
        results = merge_results(batches, self.root)
        logger.debug(
            "query %s %r: %d results, %d failed partitions",
            query_kind.value,
            term,
            len(results),
            len(failures),
        )
        return QueryResponse(kind=query_kind, term=term, results=results, failures=failures)

    def status(self) -> StatusSnapshot:
        state = self.state
        big_entries = read_lines(self.paths.big_files) or []
        return StatusSnapshot(
            initialized=state.initialized,
            updating=state.updating,
            project_root=self.root,
            big_partition_exists=self.paths.big.exists(),
            small_partition_exists=self.paths.small.exists(),
            big_files_count=len(big_entries),
            small_files_count=len(state.small_partition_files),
            last_big_rebuild=state.last_big_rebuild,
        )

    def close(self, *, cancel: bool = True) -> None:
        """Stop the worker; with *cancel*, kill a running indexer and drop queued work."""
        if cancel and isinstance(self._runner, SubprocessRunner):
            self._runner.cancel_all()
        self._executor.shutdown(wait=True, cancel_futures=cancel)

    def __enter__(self) -> "IndexManager":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # Worker-side implementations

    def _load(self) -> OperationResult:
        state = self.state
        big_entries = {normalize_path(line) for line in read_lines(self.paths.big_files) or []}
        mirror = read_lines(self.paths.small_files) or []
        restored = {
            normalize_path(line) for line in mirror if normalize_path(line) not in big_entries
        }
        state.small_partition_files = restored
        if len(restored) != len(mirror):
            self._write_list(self.paths.small_files, sorted(restored))
        state.last_big_rebuild = self.paths.big.stat().st_mtime
        state.initialized = True
        logger.debug("restored %d small files for %s", len(restored), self.root)
        return OperationResult(
            Operation.LOAD,
            True,
            message=Messages.INFO_INIT_LOADED.format(root=self.root),
            files=len(big_entries) + len(restored),
        )

    def _build(self, operation: Operation) -> OperationResult:
        discovery = discover_files(
            self.root,
            self.config,
            scanner=self._active_scanner(),
            runner=self._runner,
        )
        if not discovery.files:
            raise NoFilesFound(self.root)
        entries = _unique(self._list_entry(path) for path in discovery.files)
        try:
            self._commit_big_list(entries)
        except DynscopeError:
            self.state.initialized = False
            raise
        # A fresh big list covers every file, so the small partition is obsolete.
        self._drop_small_partition()
        self.state.initialized = True
        self.state.last_big_rebuild = self._clock()
        template = Messages.INFO_DB_REBUILT if operation is Operation.REBUILD else Messages.INFO_DB_BUILT
        return OperationResult(
            operation, True, message=template.format(count=len(entries)), files=len(entries)
        )

    def _update(self, path: Path | str) -> OperationResult:
        state = self.state
        if not state.initialized:
            raise NotInitialized(self.root)
        candidate = Path(path).expanduser()
        if not candidate.is_absolute():
            candidate = self.root / candidate
        candidate = Path(os.path.abspath(candidate))
        relative = relative_posix(candidate, self.root)
        if not relative:
            raise OutsideRoot(path, self.root)
        if not self._filter.matches(relative):
            return OperationResult(
                Operation.UPDATE,
                True,
                message=Messages.INFO_UPDATE_SKIPPED.format(path=relative),
                files=len(state.small_partition_files),
            )
        entry = self._list_entry(candidate)
        if entry not in state.small_partition_files:
            members = state.small_partition_files | {entry}
            self._write_list(self.paths.small_files, sorted(members))
            state.small_partition_files.add(entry)
            removed = remove_lines(self.paths.big_files, self._path_forms(candidate))
            logger.debug("moved %s to the small partition (%d big entries dropped)", entry, removed)
        else:
            self._write_list(self.paths.small_files, sorted(state.small_partition_files))
        self._index(self.paths.small_files, self.paths.small)
        count = len(state.small_partition_files)
        return OperationResult(
            Operation.UPDATE,
            True,
            message=Messages.INFO_UPDATE_DONE.format(count=count),
            files=count,
        )

    def _merge(self) -> OperationResult:
        state = self.state
        if not state.small_partition_files:
            return OperationResult(Operation.MERGE, True, message=Messages.INFO_MERGE_NOTHING)
        moved = sorted(state.small_partition_files)
        merged = _unique((read_lines(self.paths.big_files) or []) + moved)
        self._commit_big_list(merged)
        self._drop_small_partition()
        state.last_big_rebuild = self._clock()
        logger.debug("merged %d small files into %s", len(moved), self.paths.big)
        return OperationResult(
            Operation.MERGE,
            True,
            message=Messages.INFO_MERGE_DONE.format(count=len(moved)),
            files=len(moved),
        )

    def _rebuild(self) -> OperationResult:
        self._delete_all()
        self.state.reset()
        return self._build(Operation.REBUILD)

    def _remove(self) -> OperationResult:
        self._delete_all()
        self.state.reset()
        return OperationResult(
            Operation.REMOVE, True, message=Messages.INFO_REMOVED.format(root=self.root)
        )

    # Helpers

    def _active_scanner(self) -> FileScanner:
        if self._scanner is None:
            self._scanner = select_scanner(self.config.file_finder)
        return self._scanner

    def _index(self, file_list: Path, database: Path) -> None:
        args = [
            self.config.exec,
            "-b",
            "-i",
            str(file_list),
            "-f",
            str(database),
            *self.config.indexer_args,
        ]
        self._runner(args, cwd=self.root).check()

    def _commit_big_list(self, entries: Sequence[str]) -> None:
        """Index *entries* into the big database, then make them the big list.

        The current big list stays in place until the indexer succeeds.
        """
        staging = self.paths.staging_list()
        self._write_list(staging, entries)
        try:
            self._index(staging, self.paths.big)
        except DynscopeError:
            unlink_quietly(staging)
            raise
        os.replace(staging, self.paths.big_files)

    def _list_entry(self, path: Path) -> str:
        target = canonicalize(path) if self.config.resolve_links else path
        relative = relative_posix(target, self.root)
        return relative if relative else normalize_path(str(target))

    def _path_forms(self, path: Path) -> set[str]:
        forms: set[str] = set()
        candidates = [path]
        if self.config.resolve_links:
            candidates.append(canonicalize(path))
        for candidate in candidates:
            forms.add(normalize_path(str(candidate)))
            relative = relative_posix(candidate, self.root)
            if relative:
                forms.add(relative)
                forms.add(f"./{relative}")
        return forms

    def _write_list(self, path: Path, lines: Sequence[str]) -> None:
        try:
            write_lines(path, lines)
        except OSError as exc:
            raise DynscopeError(
                Messages.ERROR_WRITE_FILE_LIST.format(path=path, reason=exc)
            ) from exc

    def _drop_small_partition(self) -> None:
        self.state.small_partition_files.clear()
        for artifact in self.paths.small_artifacts():
            unlink_quietly(artifact)

    def _delete_all(self) -> None:
        targets = (
            self.paths.big_artifacts()
            + self.paths.small_artifacts()
            + (self.paths.big_files, self.paths.staging_list())
        )
        for target in targets:
            if unlink_quietly(target):
                logger.debug("deleted %s", target)


def _unique(values: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for value in values:
        key = normalize_path(value)
        if key in seen:
            continue
        seen.add(key)
        ordered.append(key)
    return ordered
