"""Nova Database Module.

Provides the embedded SQLite adapter and its helpers.

Core Components:
- Connection pooling and pragmas over aiosqlite
- Instrumented exec/query with contention retry
- Transaction management
- Reflective inserts from tagged records
- Migration ledger

Example:
    ```python
    from nova.db import DBConfig, SQLiteAdapter

    db = await SQLiteAdapter.open("nova.db", DBConfig(debug=True))

    async with db.transaction() as tx:
        await tx.exec("INSERT INTO users (user_id, username) VALUES (?, ?)", uid, "alice")

    async with await db.query("SELECT username FROM users") as rows:
        async for row in rows:
            print(row["username"])

    await db.close()
    ```
"""

from nova.db.connection import (
    # Adapter
    SQLiteAdapter,
    open_adapter,
    ExecResult,
    Rows,
    Transaction,
    RETRY_BACKOFF_STEP,
)
from nova.db.dsn import (
    # Configuration
    DBConfig,
    compose_dsn,
    parse_dsn,
)
from nova.db.errors import (
    # Exceptions
    DatabaseError,
    ConnectionError,
    OpenError,
    AdapterClosedError,
    QueryError,
    BusyError,
    ConstraintError,
    UsageError,
    NoPersistableFieldsError,
    DuplicateMigrationError,
    UnknownMigrationError,
    TransactionError,
    RollbackError,
    MigrationError,
    is_retryable,
)
from nova.db.metrics import DBMetrics
from nova.db.migrations import LEDGER_DDL, MigrationManager
from nova.db.persistable import Persistable, build_insert, column


__all__ = [
    # Adapter
    "SQLiteAdapter",
    "open_adapter",
    "ExecResult",
    "Rows",
    "Transaction",
    "RETRY_BACKOFF_STEP",
    # Configuration
    "DBConfig",
    "compose_dsn",
    "parse_dsn",
    # Metrics
    "DBMetrics",
    # Migrations
    "LEDGER_DDL",
    "MigrationManager",
    # Reflective insert
    "Persistable",
    "build_insert",
    "column",
    # Exceptions
    "DatabaseError",
    "ConnectionError",
    "OpenError",
    "AdapterClosedError",
    "QueryError",
    "BusyError",
    "ConstraintError",
    "UsageError",
    "NoPersistableFieldsError",
    "DuplicateMigrationError",
    "UnknownMigrationError",
    "TransactionError",
    "RollbackError",
    "MigrationError",
    "is_retryable",
]
