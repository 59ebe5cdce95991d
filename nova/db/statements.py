"""Prepared-statement cache keyed by exact SQL text."""

from __future__ import annotations

import sqlite3
import threading
from dataclasses import dataclass

from nova.db.errors import UsageError

_READ_KEYWORDS = frozenset({"SELECT", "EXPLAIN", "VALUES"})


@dataclass
class PreparedStatement:
    """A parsed statement: its kind and expected bind count."""

    sql: str
    kind: str
    param_count: int | None
    hits: int = 0

    def check_args(self, op: str, args: tuple) -> None:
        if self.param_count is not None and len(args) != self.param_count:
            raise UsageError(
                f"{op}: statement expects {self.param_count} parameters, got {len(args)}"
            )


def count_placeholders(sql: str) -> int | None:
    """Count ``?`` placeholders outside literals and comments.

    Returns None when the statement uses numbered or named parameters,
    whose bind count cannot be derived from the text alone.
    """
    count = 0
    i = 0
    n = len(sql)
    while i < n:
        ch = sql[i]
        if ch in ("'", '"', "`"):
            end = sql.find(ch, i + 1)
            i = n if end < 0 else end + 1
            continue
        if ch == "[":
            end = sql.find("]", i + 1)
            i = n if end < 0 else end + 1
            continue
        if sql.startswith("--", i):
            end = sql.find("\n", i)
            i = n if end < 0 else end + 1
            continue
        if sql.startswith("/*", i):
            end = sql.find("*/", i + 2)
            i = n if end < 0 else end + 2
            continue
        if ch == "?":
            if i + 1 < n and sql[i + 1].isdigit():
                return None
            count += 1
        elif ch in ":@$" and i + 1 < n and (sql[i + 1].isalpha() or sql[i + 1] == "_"):
            return None
        i += 1
    return count


def statement_kind(sql: str) -> str:
    words = sql.lstrip(" \t\r\n(").split(None, 1)
    keyword = words[0].upper() if words else ""
    return "read" if keyword in _READ_KEYWORDS else "write"


class StatementCache:
    """Mapping from SQL text to ``PreparedStatement``; never evicts."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, PreparedStatement] = {}

    def prepare(self, sql: str) -> PreparedStatement:
        """Return the cached entry for ``sql``, parsing it on first use.

        Raises:
            UsageError: If the text is not a complete SQL statement.
        """
        with self._lock:
            stmt = self._entries.get(sql)
            if stmt is not None:
                stmt.hits += 1
                return stmt

        # Newline ends a trailing line comment before the terminator
        if not sqlite3.complete_statement(sql.rstrip() + "\n;"):
            raise UsageError(f"prepare: incomplete SQL statement: {sql!r}")

        stmt = PreparedStatement(
            sql=sql,
            kind=statement_kind(sql),
            param_count=count_placeholders(sql),
        )
        with self._lock:
            return self._entries.setdefault(sql, stmt)

    def __contains__(self, sql: object) -> bool:
        with self._lock:
            return sql in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
