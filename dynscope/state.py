"""Per-project index state and partition path layout."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .config import Config

SMALL_LIST_SUFFIX = ".files"
# Sidecar files cscope writes next to a database built with -q.
INVERTED_INDEX_SUFFIXES: tuple[str, ...] = (".in", ".po")


class Partition(str, Enum):
    BIG = "big"
    SMALL = "small"


@dataclass(frozen=True, slots=True)
class PartitionPaths:
    """On-disk locations derived from the project root and configuration."""

    root: Path
    big: Path
    small: Path
    big_files: Path
    small_files: Path

    @classmethod
    def for_root(cls, root: Path, config: Config) -> "PartitionPaths":
        small = root / config.db_small
        return cls(
            root=root,
            big=root / config.db_big,
            small=small,
            big_files=root / config.db_files_list,
            small_files=small.with_name(f"{small.name}{SMALL_LIST_SUFFIX}"),
        )

    def artifact(self, partition: Partition) -> Path:
        return self.big if partition is Partition.BIG else self.small

    def big_artifacts(self) -> tuple[Path, ...]:
        return (self.big,) + _sidecars(self.big)

    def small_artifacts(self) -> tuple[Path, ...]:
        return (self.small, self.small_files) + _sidecars(self.small)

    def staging_list(self) -> Path:
        return self.big_files.with_name(f"{self.big_files.name}.staging")


def _sidecars(path: Path) -> tuple[Path, ...]:
    return tuple(path.with_name(f"{path.name}{suffix}") for suffix in INVERTED_INDEX_SUFFIXES)


@dataclass(slots=True)
class IndexState:
    """Mutable record of one project's split database."""

    paths: PartitionPaths
    small_partition_files: set[str] = field(default_factory=set)
    initialized: bool = False
    updating: bool = False
    last_big_rebuild: float = 0.0

    @property
    def project_root(self) -> Path:
        return self.paths.root

    def reset(self) -> None:
        self.small_partition_files.clear()
        self.initialized = False
        self.last_big_rebuild = 0.0


@dataclass(frozen=True, slots=True)
class StatusSnapshot:
    initialized: bool
    updating: bool
    project_root: Path
    big_partition_exists: bool
    small_partition_exists: bool
    big_files_count: int
    small_files_count: int
    last_big_rebuild: float
