"""Query kinds understood by cscope-compatible indexers."""

from __future__ import annotations

from enum import Enum

from .text import Messages


class QueryKind(str, Enum):
    """Closed set of query kinds, each bound to the indexer's numeric code."""

    SYMBOL = "symbol"
    DEFINITION = "definition"
    CALLEE = "callee"
    CALLER = "caller"
    TEXT = "text"
    PATTERN = "pattern"
    FILE = "file"
    INCLUDER = "includer"
    ASSIGNMENT = "assignment"

    @property
    def code(self) -> int:
        return _CODES[self]

    @property
    def letter(self) -> str:
        return _LETTERS[self]

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]

    def flag(self) -> str:
        """Return the `-L -<code>` style flag for this kind."""
        return f"-{self.code}"


# Must match cscope's line-oriented interface numbering; 5 is unused.
_CODES: dict[QueryKind, int] = {
    QueryKind.SYMBOL: 0,
    QueryKind.DEFINITION: 1,
    QueryKind.CALLEE: 2,
    QueryKind.CALLER: 3,
    QueryKind.TEXT: 4,
    QueryKind.PATTERN: 6,
    QueryKind.FILE: 7,
    QueryKind.INCLUDER: 8,
    QueryKind.ASSIGNMENT: 9,
}

_LETTERS: dict[QueryKind, str] = {
    QueryKind.SYMBOL: "s",
    QueryKind.DEFINITION: "g",
    QueryKind.CALLEE: "d",
    QueryKind.CALLER: "c",
    QueryKind.TEXT: "t",
    QueryKind.PATTERN: "e",
    QueryKind.FILE: "f",
    QueryKind.INCLUDER: "i",
    QueryKind.ASSIGNMENT: "a",
}

_DESCRIPTIONS: dict[QueryKind, str] = {
    QueryKind.SYMBOL: "Find this symbol",
    QueryKind.DEFINITION: "Find global definition",
    QueryKind.CALLEE: "Find functions called by",
    QueryKind.CALLER: "Find callers",
    QueryKind.TEXT: "Find text string",
    QueryKind.PATTERN: "Find egrep pattern",
    QueryKind.FILE: "Find file",
    QueryKind.INCLUDER: "Find files #including",
    QueryKind.ASSIGNMENT: "Find assignments to",
}

_ALIASES: dict[str, QueryKind] = {
    "global-definition": QueryKind.DEFINITION,
    "def": QueryKind.DEFINITION,
    "called": QueryKind.CALLEE,
    "callers": QueryKind.CALLER,
    "egrep": QueryKind.PATTERN,
    "include": QueryKind.INCLUDER,
    "assign": QueryKind.ASSIGNMENT,
}


def available_kinds() -> tuple[str, ...]:
    return tuple(kind.value for kind in QueryKind)


def parse_query_kind(value: str | int | QueryKind) -> QueryKind:
    """Map a letter, numeric code or name onto a :class:`QueryKind`."""

    if isinstance(value, QueryKind):
        return value
    token = str(value).strip().lower()
    for kind in QueryKind:
        if token in (kind.value, kind.letter, str(kind.code)):
            return kind
    if token in _ALIASES:
        return _ALIASES[token]
    allowed = ", ".join(f"{kind.letter}/{kind.value}" for kind in QueryKind)
    raise ValueError(Messages.ERROR_QUERY_KIND.format(value=value, allowed=allowed))
