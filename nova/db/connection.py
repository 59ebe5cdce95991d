"""SQLite Adapter for Nova.

Provides the async embedded-database layer built on aiosqlite:
- Bounded connection pool (no idle connections are kept)
- Instrumented exec/query with a prepared-statement cache
- Contention-aware retry with linear backoff
- Transactions with rollback on every non-commit exit
- Reflective INSERT from tagged records
- Forward-only migration ledger
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import time
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncGenerator, AsyncIterator, Awaitable, Callable, TypeVar

import aiosqlite
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_incrementing,
)

from nova.db.dsn import DBConfig, ParsedDSN, compose_dsn, parse_dsn, pragma_statements
from nova.db.errors import (
    AdapterClosedError,
    BusyError,
    ConnectionError,
    OpenError,
    QueryError,
    RollbackError,
    TransactionError,
    UsageError,
    is_retryable,
    wrap_sqlite_error,
)
from nova.db.metrics import OP_EXEC, OP_QUERY, DBMetrics, MetricsRecorder, PoolSampler
from nova.db.migrations import LEDGER_DDL, MigrationManager
from nova.db.persistable import build_insert
from nova.db.statements import StatementCache

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Backoff step between QueryWithRetry attempts (seconds)
RETRY_BACKOFF_STEP = 0.1


async def _retry_sleep(seconds: float) -> None:
    await asyncio.sleep(seconds)


@dataclass(frozen=True)
class ExecResult:
    """Outcome of an exec: affected rows and the last inserted rowid."""

    rows_affected: int
    last_insert_id: int | None


def _wrap(op: str, exc: sqlite3.Error) -> QueryError:
    err = wrap_sqlite_error(op, exc)
    if isinstance(err, BusyError):
        logger.warning(f"Database busy during {op}: {exc}")
    else:
        logger.error(f"Database {op} failed: {exc}")
    return err


# =============================================================================
# Row Cursor
# =============================================================================


class Rows:
    """Lazy row cursor returned by ``query``.

    Holds its pooled connection until closed; use it as an async context
    manager or call ``close()`` explicitly.

    Example:
        async with await adapter.query("SELECT id FROM t WHERE a = ?", 1) as rows:
            async for row in rows:
                print(row["id"])
    """

    def __init__(self, cursor: aiosqlite.Cursor, lease: AsyncExitStack | None = None):
        self._cursor = cursor
        self._lease = lease
        self._closed = False

    @property
    def columns(self) -> list[str]:
        return [d[0] for d in self._cursor.description or ()]

    async def fetchone(self) -> sqlite3.Row | None:
        return await self._cursor.fetchone()

    async def fetchall(self) -> list[sqlite3.Row]:
        return list(await self._cursor.fetchall())

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._cursor.close()
        finally:
            if self._lease is not None:
                await self._lease.aclose()

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> AsyncIterator[sqlite3.Row]:
        return self._iterate()

    async def _iterate(self) -> AsyncGenerator[sqlite3.Row, None]:
        while True:
            row = await self._cursor.fetchone()
            if row is None:
                return
            yield row

    async def __aenter__(self) -> Rows:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()


# =============================================================================
# Connection Pool
# =============================================================================


class _ConnectionPool:
    """Semaphore-bounded pool handing out freshly configured connections.

    Every lease opens a connection and closes it on release, so the pool
    never holds idle connections.
    """

    def __init__(self, parsed: ParsedDSN, config: DBConfig):
        self._parsed = parsed
        self._extensions = config.extensions
        self._acquire_timeout = config.acquire_timeout
        self._max_open = config.max_open_conns
        self._semaphore = asyncio.Semaphore(config.max_open_conns)
        # busy_timeout first so the remaining pragmas wait on locks
        self._pragmas = sorted(pragma_statements(parsed), key=lambda s: "busy_timeout" not in s)
        self._in_use = 0
        self._closed = False

    async def dial(self) -> aiosqlite.Connection:
        conn = await aiosqlite.connect(
            self._parsed.database,
            uri=self._parsed.uri,
            isolation_level=None,
            # busy waiting is governed by PRAGMA busy_timeout alone
            timeout=0,
        )
        conn.row_factory = sqlite3.Row
        return conn

    async def configure(self, conn: aiosqlite.Connection) -> None:
        for statement in self._pragmas:
            await conn.execute(statement)
        await conn.execute("PRAGMA foreign_keys = ON")
        if self._extensions:
            await conn.enable_load_extension(True)
            try:
                for path in self._extensions:
                    await conn.load_extension(path)
            finally:
                await conn.enable_load_extension(False)

    @asynccontextmanager
    async def connection(self, op: str) -> AsyncGenerator[aiosqlite.Connection, None]:
        """Lease a configured connection for the duration of the block."""
        if self._closed:
            raise AdapterClosedError(op)

        try:
            await asyncio.wait_for(self._semaphore.acquire(), timeout=self._acquire_timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"Connection pool exhausted during {op} ({self._max_open} in use)")
            raise ConnectionError(
                f"{op}: connection pool exhausted after {self._acquire_timeout}s"
            ) from e

        try:
            if self._closed:
                raise AdapterClosedError(op)
            try:
                conn = await self.dial()
            except sqlite3.Error as e:
                logger.error(f"Failed to open database connection: {e}")
                raise ConnectionError(f"{op}: failed to open connection: {e}") from e

            self._in_use += 1
            try:
                try:
                    await self.configure(conn)
                except sqlite3.Error as e:
                    raise _wrap(op, e) from e
                yield conn
            finally:
                self._in_use -= 1
                await conn.close()
        finally:
            self._semaphore.release()

    def stats(self) -> dict[str, Any]:
        return {
            "status": "closed" if self._closed else "active",
            "max_open": self._max_open,
            "in_use": self._in_use,
            "idle": 0,
        }

    @property
    def in_use(self) -> int:
        return self._in_use

    def close(self) -> None:
        self._closed = True


# =============================================================================
# Transaction Handle
# =============================================================================


class Transaction:
    """Handle passed to transaction bodies.

    Valid only while the enclosing ``transaction()`` block is running;
    any use afterwards raises ``UsageError``.
    """

    def __init__(self, conn: aiosqlite.Connection, statements: StatementCache):
        self._conn = conn
        self._statements = statements
        self._finished = False

    def _check(self, op: str, sql: str | None = None, args: tuple = ()) -> None:
        if self._finished:
            raise UsageError(f"{op}: transaction already finished")
        if sql is not None:
            self._statements.prepare(sql).check_args(op, args)

    async def exec(self, sql: str, *args: Any) -> ExecResult:
        self._check("tx exec", sql, args)
        try:
            cursor = await self._conn.execute(sql, args)
        except sqlite3.Error as e:
            raise _wrap("tx exec", e) from e
        try:
            return ExecResult(rows_affected=cursor.rowcount, last_insert_id=cursor.lastrowid)
        finally:
            await cursor.close()

    async def query(self, sql: str, *args: Any) -> Rows:
        self._check("tx query", sql, args)
        try:
            cursor = await self._conn.execute(sql, args)
        except sqlite3.Error as e:
            raise _wrap("tx query", e) from e
        return Rows(cursor)

    async def fetchall(self, sql: str, *args: Any) -> list[sqlite3.Row]:
        async with await self.query(sql, *args) as rows:
            return await rows.fetchall()

    async def fetchone(self, sql: str, *args: Any) -> sqlite3.Row | None:
        async with await self.query(sql, *args) as rows:
            return await rows.fetchone()

    async def insert_struct(self, table: str, record: Any) -> int | None:
        sql, params = build_insert(table, record)
        result = await self.exec(sql, *params)
        return result.last_insert_id

    insert_record = insert_struct

    async def _commit(self) -> None:
        self._finished = True
        await self._conn.execute("COMMIT")

    async def _rollback(self) -> None:
        self._finished = True
        await self._conn.execute("ROLLBACK")


# =============================================================================
# Adapter
# =============================================================================


class SQLiteAdapter:
    """Embedded SQLite adapter safe for concurrent callers.

    Create with ``await SQLiteAdapter.open(dsn, config)`` and release with
    ``await adapter.close()``; every operation after close raises
    ``AdapterClosedError``.
    """

    def __init__(self, dsn: str, config: DBConfig, pool: _ConnectionPool):
        self.dsn = dsn
        self.config = config
        self._pool = pool
        self._statements = StatementCache()
        self._metrics = MetricsRecorder(enabled=config.debug)
        self._sampler: PoolSampler | None = None
        self._closed = False
        self.migrations = MigrationManager(self)

    @classmethod
    async def open(cls, dsn: str, config: DBConfig | None = None) -> SQLiteAdapter:
        """Open the adapter, verifying the database is usable.

        Args:
            dsn: Base DSN (file path or ``file:`` URI).
            config: Adapter configuration. Defaults to ``DBConfig()``.

        Returns:
            SQLiteAdapter: Ready-to-use adapter.

        Raises:
            OpenError: If the open, pragma or ledger step fails.
        """
        config = config or DBConfig()
        effective = compose_dsn(dsn, config)
        parsed = parse_dsn(effective)
        pool = _ConnectionPool(parsed, config)

        try:
            conn = await pool.dial()
        except sqlite3.Error as e:
            logger.error(f"Failed to open database {parsed.database}: {e}")
            raise OpenError("open", str(e)) from e

        try:
            try:
                await pool.configure(conn)
            except sqlite3.Error as e:
                logger.error(f"Failed to apply pragmas: {e}")
                raise OpenError("pragma", str(e)) from e

            if config.auto_create_table:
                try:
                    await conn.execute(LEDGER_DDL)
                except sqlite3.Error as e:
                    logger.error(f"Failed to create migrations ledger: {e}")
                    raise OpenError("ledger", str(e)) from e
        finally:
            await conn.close()

        adapter = cls(effective, config, pool)
        if config.debug:
            adapter._sampler = PoolSampler(
                read_in_use=lambda: pool.in_use,
                recorder=adapter._metrics,
                interval=config.sample_interval,
            )
            adapter._sampler.start()

        logger.info(
            "SQLite adapter opened",
            extra={"dsn": effective, "max_open_conns": config.max_open_conns},
        )
        return adapter

    async def close(self) -> None:
        """Stop the sampler, drop cached statements and close the pool."""
        if self._closed:
            return
        self._closed = True

        if self._sampler is not None:
            await self._sampler.stop()
            self._sampler = None

        self._statements.clear()
        self._pool.close()
        logger.info("SQLite adapter closed")

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_open(self, op: str) -> None:
        if self._closed:
            raise AdapterClosedError(op)

    def _prepare(self, op: str, sql: str, args: tuple) -> None:
        self._ensure_open(op)
        self._statements.prepare(sql).check_args(op, args)

    @property
    def statements(self) -> StatementCache:
        return self._statements

    # ==================== Execution ====================

    async def exec(self, sql: str, *args: Any) -> ExecResult:
        """Execute a statement that returns no rows.

        Returns:
            ExecResult: Affected row count and last inserted rowid.
        """
        start = time.perf_counter()
        try:
            result = await self._exec(sql, args)
        except Exception as e:
            self._metrics.record(start, e, OP_EXEC)
            raise
        self._metrics.record(start, None, OP_EXEC)
        return result

    async def _exec(self, sql: str, args: tuple) -> ExecResult:
        self._prepare(OP_EXEC, sql, args)
        async with self._pool.connection(OP_EXEC) as conn:
            try:
                cursor = await conn.execute(sql, args)
            except sqlite3.Error as e:
                raise _wrap(OP_EXEC, e) from e
            try:
                return ExecResult(rows_affected=cursor.rowcount, last_insert_id=cursor.lastrowid)
            finally:
                await cursor.close()

    async def query(self, sql: str, *args: Any) -> Rows:
        """Run a statement and return a lazy cursor over its rows.

        The caller owns the returned ``Rows`` and must close it.
        """
        start = time.perf_counter()
        try:
            rows = await self._query(sql, args)
        except Exception as e:
            self._metrics.record(start, e, OP_QUERY)
            raise
        self._metrics.record(start, None, OP_QUERY)
        return rows

    async def _query(self, sql: str, args: tuple) -> Rows:
        self._prepare(OP_QUERY, sql, args)
        lease = AsyncExitStack()
        try:
            conn = await lease.enter_async_context(self._pool.connection(OP_QUERY))
            try:
                cursor = await conn.execute(sql, args)
            except sqlite3.Error as e:
                raise _wrap(OP_QUERY, e) from e
        except BaseException:
            await lease.aclose()
            raise
        return Rows(cursor, lease)

    async def fetchall(self, sql: str, *args: Any) -> list[sqlite3.Row]:
        """Query and materialize every row."""
        async with await self.query(sql, *args) as rows:
            return await rows.fetchall()

    async def fetchone(self, sql: str, *args: Any) -> sqlite3.Row | None:
        """Query and return the first row, if any."""
        async with await self.query(sql, *args) as rows:
            return await rows.fetchone()

    async def query_with_retry(self, max_retries: int, sql: str, *args: Any) -> Rows:
        """Run ``query``, retrying while the database reports BUSY.

        Makes at most ``max_retries + 1`` attempts, sleeping ``i * 100ms``
        after the i-th (zero-based) failed attempt. Any other error is
        raised on first occurrence; once attempts are exhausted the last
        ``BusyError`` is raised.

        Raises:
            BusyError: If every attempt hit contention.
            UsageError: If ``max_retries`` is negative.
        """
        if max_retries < 0:
            raise UsageError(f"query_with_retry: max_retries must be >= 0, got {max_retries}")

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(max_retries + 1),
            wait=wait_incrementing(start=0, increment=RETRY_BACKOFF_STEP),
            retry=retry_if_exception(is_retryable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=_retry_sleep,
            reraise=True,
        ):
            with attempt:
                return await self.query(sql, *args)

        raise AssertionError("unreachable")  # pragma: no cover

    # ==================== Reflective Insert ====================

    async def insert_struct(self, table: str, record: Any) -> int | None:
        """Insert a tagged record and return the new rowid.

        Args:
            table: Target table name, used verbatim.
            record: A ``Persistable`` or a dataclass with ``column()`` fields.

        Raises:
            NoPersistableFieldsError: If the record has no tagged fields.
        """
        sql, params = build_insert(table, record)
        result = await self.exec(sql, *params)
        return result.last_insert_id

    insert_record = insert_struct

    # ==================== Transactions ====================

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[Transaction, None]:
        """Run the enclosed block inside a single transaction.

        Commits when the block exits normally and rolls back on any
        exception. When the rollback fails too, ``RollbackError`` carries
        both errors.

        Example:
            async with adapter.transaction() as tx:
                await tx.exec("INSERT INTO t (a) VALUES (?)", 1)
                await tx.exec("UPDATE counters SET n = n + 1")
        """
        self._ensure_open("begin")
        async with self._pool.connection("begin") as conn:
            try:
                await conn.execute("BEGIN")
            except sqlite3.Error as e:
                raise TransactionError(f"begin: {e}", _wrap("begin", e)) from e

            tx = Transaction(conn, self._statements)
            try:
                yield tx
            except Exception as e:
                try:
                    await tx._rollback()
                except Exception as rollback_error:
                    logger.error(f"Rollback failed after {e!r}: {rollback_error}")
                    raise RollbackError(rollback_error, e) from e
                raise
            except BaseException:
                try:
                    await tx._rollback()
                except Exception as rollback_error:
                    logger.error(f"Rollback after abnormal exit failed: {rollback_error}")
                raise
            else:
                try:
                    await tx._commit()
                except sqlite3.Error as e:
                    raise TransactionError(f"commit: {e}", _wrap("commit", e)) from e

    async def with_transaction(self, body: Callable[[Transaction], Awaitable[T]]) -> T:
        """Call ``body(tx)`` inside ``transaction()`` and return its result."""
        async with self.transaction() as tx:
            return await body(tx)

    # ==================== Health and Metrics ====================

    async def ping(self) -> bool:
        """Round-trip a trivial statement through the pool."""
        self._ensure_open("ping")
        async with self._pool.connection("ping") as conn:
            async with conn.execute("SELECT 1") as cursor:
                row = await cursor.fetchone()
        return row is not None and row[0] == 1

    def get_metrics(self) -> DBMetrics:
        """Return a snapshot of the adapter metrics."""
        return self._metrics.snapshot()

    def get_pool_stats(self) -> dict[str, Any]:
        return self._pool.stats()


async def open_adapter(dsn: str, config: DBConfig | None = None) -> SQLiteAdapter:
    """Shorthand for ``SQLiteAdapter.open``."""
    return await SQLiteAdapter.open(dsn, config)
