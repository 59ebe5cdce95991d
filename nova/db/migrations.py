"""Forward-only schema migrations recorded in the ``migrations`` table."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Awaitable, Callable

from nova.db.errors import (
    DuplicateMigrationError,
    MigrationError,
    UnknownMigrationError,
    UsageError,
)

if TYPE_CHECKING:
    from nova.db.connection import SQLiteAdapter, Transaction

logger = logging.getLogger(__name__)

LEDGER_DDL = (
    "CREATE TABLE IF NOT EXISTS migrations("
    "version INTEGER PRIMARY KEY, "
    "applied_at DATETIME DEFAULT CURRENT_TIMESTAMP)"
)

MigrationBody = Callable[["Transaction"], Awaitable[None]]


class MigrationManager:
    """Registry of numbered migrations owned by an adapter.

    Registration is guarded by its own lock, which is never held while
    migrations run.
    """

    def __init__(self, adapter: SQLiteAdapter):
        self._adapter = adapter
        self._lock = threading.Lock()
        self._migrations: dict[int, MigrationBody] = {}
        self._current_version = 0

    def add_migration(self, version: int, body: MigrationBody, replace: bool = False) -> None:
        """Register a migration body under a positive version number.

        Raises:
            UsageError: If the version is not positive.
            DuplicateMigrationError: If the version exists and ``replace`` is False.
        """
        if version <= 0:
            raise UsageError(f"migration version must be positive, got {version}")
        with self._lock:
            if version in self._migrations and not replace:
                raise DuplicateMigrationError(version)
            self._migrations[version] = body

    def remove_migration(self, version: int) -> bool:
        with self._lock:
            return self._migrations.pop(version, None) is not None

    @property
    def versions(self) -> list[int]:
        with self._lock:
            return sorted(self._migrations)

    @property
    def current_version(self) -> int:
        """Highest version known to be applied."""
        with self._lock:
            return self._current_version

    async def run_migrations(self) -> list[int]:
        """Apply pending migrations in ascending order in one transaction.

        Returns:
            list[int]: Versions applied by this call (empty when up to date).

        Raises:
            MigrationError: If a migration body fails; nothing is applied.
            UnknownMigrationError: If the ledger holds an unregistered version.
        """
        with self._lock:
            registered = dict(self._migrations)

        async def apply(tx: Transaction) -> tuple[list[int], int]:
            await tx.exec(LEDGER_DDL)
            rows = await tx.fetchall("SELECT version FROM migrations ORDER BY version")
            recorded = [row[0] for row in rows]
            for version in recorded:
                if version not in registered:
                    raise UnknownMigrationError(version)
            cursor = max(recorded, default=0)

            applied: list[int] = []
            for version in sorted(registered):
                if version <= cursor:
                    continue
                logger.info(f"Applying migration {version}")
                try:
                    await registered[version](tx)
                except Exception as e:
                    logger.error(f"Migration {version} failed: {e}")
                    raise MigrationError(version, str(e)) from e

                applied_at = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
                await tx.exec(
                    "INSERT INTO migrations (version, applied_at) VALUES (?, ?)",
                    version,
                    applied_at,
                )
                applied.append(version)
                cursor = version
            return applied, cursor

        applied, cursor = await self._adapter.with_transaction(apply)

        with self._lock:
            self._current_version = cursor
        if applied:
            logger.info(f"Applied migrations {applied}")
        else:
            logger.debug("No pending migrations")
        return applied
