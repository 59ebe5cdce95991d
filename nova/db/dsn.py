"""Data-source string handling for the SQLite adapter.

The effective DSN is the base DSN plus underscore-prefixed query
parameters derived from ``DBConfig``. Those parameters are not understood
by the engine itself; ``parse_dsn`` turns them back into PRAGMA statements
that are applied on every new connection.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from urllib.parse import parse_qsl, urlencode

from nova.db.errors import UsageError


@dataclass(frozen=True)
class DBConfig:
    """Adapter configuration, captured at open time."""

    max_open_conns: int = 10
    debug: bool = False
    auto_create_table: bool = True
    wal: bool = True
    cache_size: int = -2000
    busy_timeout_ms: int = 5000
    extensions: tuple[str, ...] = field(default_factory=tuple)
    acquire_timeout: float = 30.0
    sample_interval: float = 30.0

    def __post_init__(self) -> None:
        if self.max_open_conns < 1:
            raise UsageError(f"max_open_conns must be >= 1, got {self.max_open_conns}")
        if self.busy_timeout_ms < 0:
            raise UsageError(f"busy_timeout_ms must be >= 0, got {self.busy_timeout_ms}")
        if self.sample_interval <= 0:
            raise UsageError(f"sample_interval must be > 0, got {self.sample_interval}")


@dataclass(frozen=True)
class ParsedDSN:
    """Connection target and per-connection pragmas extracted from a DSN."""

    database: str
    uri: bool
    pragmas: tuple[tuple[str, str], ...]


# DSN parameter -> PRAGMA name
_PRAGMA_PARAMS = {
    "_journal_mode": "journal_mode",
    "_cache_size": "cache_size",
    "_busy_timeout": "busy_timeout",
    "_foreign_keys": "foreign_keys",
    "_synchronous": "synchronous",
}


def compose_dsn(base: str, config: DBConfig) -> str:
    """Append the configuration-derived parameters to a base DSN.

    Args:
        base: Base DSN, a file path or a ``file:`` URI.
        config: Adapter configuration.

    Returns:
        str: Effective DSN, e.g. ``nova.db?_journal_mode=WAL&_cache_size=-2000``.
    """
    params: list[str] = []
    if config.wal:
        params.append("_journal_mode=WAL")
    if config.cache_size != 0:
        params.append(f"_cache_size={config.cache_size}")
    if config.busy_timeout_ms > 0:
        params.append(f"_busy_timeout={config.busy_timeout_ms}")

    if not params:
        return base
    separator = "&" if "?" in base else "?"
    return base + separator + "&".join(params)


def _in_memory(path: str, params: list[tuple[str, str]]) -> bool:
    target = path[len("file:"):] if path.startswith("file:") else path
    if target in ("", ":memory:"):
        return True
    return any(key == "mode" and value == "memory" for key, value in params)


def parse_dsn(dsn: str) -> ParsedDSN:
    """Split an effective DSN into the connect target and its pragmas.

    Raises:
        UsageError: For unknown underscore parameters and for in-memory
            targets, which would give every pooled connection its own
            empty database.
    """
    path, _, query = dsn.partition("?")
    pragmas: list[tuple[str, str]] = []
    passthrough: list[tuple[str, str]] = []

    for key, value in parse_qsl(query, keep_blank_values=True):
        pragma = _PRAGMA_PARAMS.get(key)
        if pragma is not None:
            pragmas.append((pragma, value))
        elif key.startswith("_"):
            raise UsageError(f"unsupported DSN parameter: {key}")
        else:
            passthrough.append((key, value))

    uri = path.startswith("file:")
    if _in_memory(path, passthrough):
        raise UsageError(f"in-memory databases are not supported: {path!r}")

    if uri:
        database = path + ("?" + urlencode(passthrough) if passthrough else "")
    else:
        if passthrough:
            raise UsageError("query parameters require a file: URI DSN")
        database = path

    return ParsedDSN(database=database, uri=uri, pragmas=tuple(pragmas))


def pragma_statements(parsed: ParsedDSN) -> list[str]:
    """Render the PRAGMA statements for a parsed DSN."""
    statements = []
    for name, value in parsed.pragmas:
        # Values come from our own DSN parameters; reject anything but a bare word
        if not value.lstrip("-").isalnum():
            raise UsageError(f"invalid value for pragma {name}: {value!r}")
        statements.append(f"PRAGMA {name} = {value}")
    return statements
