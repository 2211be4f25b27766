from __future__ import annotations

import json
import threading
from dataclasses import replace
from pathlib import Path
from typing import Sequence

import pytest

from dynscope import config as config_module
from dynscope.config import Config
from dynscope.services.index_service import IndexManager
from dynscope.services.process_service import ProcessResult


class FakeIndexer:
    """Stand-in for cscope speaking its `-b` build and `-d -L` query contract.

    A build snapshots the listed files into the database file as JSON, so a
    database keeps the contents it was built from, like a real one.
    """

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.fail_builds: set[str] = set()
        self.fail_queries: set[str] = set()
        self.timeout_queries: set[str] = set()
        self.extra_query_lines: dict[str, list[str]] = {}
        self.release = threading.Event()
        self.release.set()
        self.build_started = threading.Event()
        self._lock = threading.Lock()

    @property
    def builds(self) -> list[list[str]]:
        return [call for call in self.calls if "-b" in call]

    @property
    def queries(self) -> list[list[str]]:
        return [call for call in self.calls if "-d" in call]

    def __call__(
        self,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        timeout: float | None = None,
    ) -> ProcessResult:
        argv = [str(arg) for arg in args]
        with self._lock:
            self.calls.append(argv)
        if "-b" in argv:
            return self._build(argv, cwd)
        if "-d" in argv:
            return self._query(argv, cwd, timeout)
        return ProcessResult(tuple(argv), 2, [], ["unsupported invocation"])

    def _build(self, argv: list[str], cwd: Path | None) -> ProcessResult:
        self.build_started.set()
        self.release.wait(timeout=10)
        database = Path(argv[argv.index("-f") + 1])
        if database.name in self.fail_builds:
            return ProcessResult(tuple(argv), 1, [], [f"cannot build {database.name}"])
        file_list = Path(argv[argv.index("-i") + 1])
        snapshot: dict[str, list[str]] = {}
        for entry in file_list.read_text(encoding="utf-8").splitlines():
            if not entry.strip():
                continue
            source = Path(entry) if Path(entry).is_absolute() else Path(cwd or ".") / entry
            if source.exists():
                snapshot[entry] = source.read_text(encoding="utf-8").splitlines()
        database.write_text(json.dumps(snapshot), encoding="utf-8")
        return ProcessResult(tuple(argv), 0, [], [])

    def _query(self, argv: list[str], cwd: Path | None, timeout: float | None) -> ProcessResult:
        database = Path(argv[argv.index("-f") + 1])
        term = argv[-1]
        if database.name in self.timeout_queries:
            return ProcessResult(
                tuple(argv), None, [], ["timed out"], timed_out=True, timeout=timeout
            )
        if database.name in self.fail_queries:
            return ProcessResult(tuple(argv), 1, [], ["database is corrupt"])
        snapshot = json.loads(database.read_text(encoding="utf-8"))
        lines: list[str] = []
        for entry, content in snapshot.items():
            for number, text in enumerate(content, start=1):
                if term in text:
                    lines.append(f"{entry} <global> {number} {text.strip()}")
        lines.extend(self.extra_query_lines.get(database.name, []))
        return ProcessResult(tuple(argv), 0, lines, [])


@pytest.fixture(autouse=True)
def temp_config_home(tmp_path, monkeypatch):
    config_dir = tmp_path / "config"
    config_file = config_dir / "config.json"
    monkeypatch.setattr(config_module, "CONFIG_DIR", config_dir)
    monkeypatch.setattr(config_module, "CONFIG_FILE", config_file)
    return config_file


@pytest.fixture
def fake_indexer() -> FakeIndexer:
    return FakeIndexer()


@pytest.fixture
def walk_config() -> Config:
    return Config(file_finder="walk")


@pytest.fixture
def project(tmp_path) -> Path:
    root = tmp_path / "project"
    root.mkdir()
    (root / ".git").mkdir()
    return root


@pytest.fixture
def make_manager(fake_indexer, walk_config):
    managers: list[IndexManager] = []

    def factory(root: Path, *, clock=None, **overrides) -> IndexManager:
        config = replace(walk_config, **overrides) if overrides else walk_config
        if clock is None:
            manager = IndexManager(root, config, runner=fake_indexer)
        else:
            manager = IndexManager(root, config, runner=fake_indexer, clock=clock)
        managers.append(manager)
        return manager

    yield factory
    fake_indexer.release.set()
    for manager in managers:
        manager.close()
