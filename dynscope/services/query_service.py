"""Parse indexer query output and merge it across partitions."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Sequence

from ..state import Partition
from ..utils import join_root, normalize_path, relative_posix

logger = logging.getLogger(__name__)

# `<file> <symbol> <line> <context>` as printed by `cscope -L`.
_LINE_FORMAT = re.compile(r"^(\S+)\s+(\S+)\s+(\d+)(?:\s+(.*))?$")
# `<file>:<line> <context>` grep-style fallback.
_GREP_FORMAT = re.compile(r"^([^:]+):(\d+)\s*(.*)$")


@dataclass(frozen=True, slots=True)
class QueryResult:
    absolute_path: str
    display_path: str
    line_number: int
    enclosing_symbol: str
    matched_text: str
    partition: Partition = Partition.BIG

    @property
    def key(self) -> tuple[str, int]:
        return (self.absolute_path, self.line_number)


@dataclass(frozen=True, slots=True)
class ParsedLine:
    path: str
    symbol: str
    line_number: int
    text: str


def parse_line(line: str) -> ParsedLine | None:
    """Parse one line of indexer output; None when it matches no known shape."""

    stripped = line.rstrip("\r\n")
    if not stripped.strip():
        return None
    match = _LINE_FORMAT.match(stripped)
    if match:
        path, symbol, number, text = match.groups()
        return ParsedLine(path=path, symbol=symbol, line_number=int(number), text=text or "")
    match = _GREP_FORMAT.match(stripped)
    if match:
        path, number, text = match.groups()
        return ParsedLine(path=path, symbol="", line_number=int(number), text=text)
    return None


def to_result(parsed: ParsedLine, root: Path, partition: Partition) -> QueryResult:
    path = normalize_path(parsed.path)
    absolute = join_root(root, path)
    display = relative_posix(absolute, root) or path
    return QueryResult(
        absolute_path=absolute,
        display_path=display,
        line_number=parsed.line_number,
        enclosing_symbol=parsed.symbol,
        matched_text=parsed.text,
        partition=partition,
    )


def merge_results(
    batches: Iterable[tuple[Partition, Sequence[str]]],
    root: Path,
) -> list[QueryResult]:
    """Merge raw output lines from each partition into unique results.

    Batches are consumed in the order given; the first occurrence of an
    ``(absolute_path, line_number)`` pair wins, so callers pass the big
    partition before the small one.
    """

    seen: set[tuple[str, int]] = set()
    results: list[QueryResult] = []
    for partition, lines in batches:
        for line in lines:
            parsed = parse_line(line)
            if parsed is None:
                logger.debug("dropping unparsable %s line: %r", partition.value, line)
                continue
            result = to_result(parsed, root, partition)
            if result.key in seen:
                continue
            seen.add(result.key)
            results.append(result)
    return results
