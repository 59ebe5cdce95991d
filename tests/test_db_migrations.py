"""Tests for the migration ledger."""

from __future__ import annotations

import pytest

from nova.db import (
    DuplicateMigrationError,
    MigrationError,
    SQLiteAdapter,
    Transaction,
    UnknownMigrationError,
    UsageError,
)
from nova.db.schema import SCHEMA_MIGRATIONS, init_db

pytestmark = pytest.mark.integration


async def create_t(tx: Transaction) -> None:
    await tx.exec("CREATE TABLE t (a INTEGER)")


async def failing(tx: Transaction) -> None:
    raise RuntimeError("migration body failed")


async def add_b(tx: Transaction) -> None:
    await tx.exec("ALTER TABLE t ADD COLUMN b TEXT")


async def table_exists(db: SQLiteAdapter, name: str) -> bool:
    row = await db.fetchone(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", name
    )
    return row is not None


async def ledger_versions(db: SQLiteAdapter) -> list[int]:
    rows = await db.fetchall("SELECT version FROM migrations ORDER BY version")
    return [row["version"] for row in rows]


class TestRegistry:
    def test_duplicate_rejected(self, quiet_adapter: SQLiteAdapter) -> None:
        quiet_adapter.migrations.add_migration(1, create_t)
        with pytest.raises(DuplicateMigrationError) as exc_info:
            quiet_adapter.migrations.add_migration(1, add_b)
        assert exc_info.value.version == 1

    def test_replace_allowed(self, quiet_adapter: SQLiteAdapter) -> None:
        quiet_adapter.migrations.add_migration(1, create_t)
        quiet_adapter.migrations.add_migration(1, add_b, replace=True)
        assert quiet_adapter.migrations.versions == [1]

    @pytest.mark.parametrize("version", [0, -3])
    def test_non_positive_version_rejected(
        self, quiet_adapter: SQLiteAdapter, version: int
    ) -> None:
        with pytest.raises(UsageError):
            quiet_adapter.migrations.add_migration(version, create_t)

    def test_remove(self, quiet_adapter: SQLiteAdapter) -> None:
        quiet_adapter.migrations.add_migration(2, create_t)
        assert quiet_adapter.migrations.remove_migration(2) is True
        assert quiet_adapter.migrations.remove_migration(2) is False
        assert quiet_adapter.migrations.versions == []


class TestRunMigrations:
    async def test_failed_run_rolls_back_everything(self, quiet_adapter: SQLiteAdapter) -> None:
        manager = quiet_adapter.migrations
        manager.add_migration(1, create_t)
        manager.add_migration(2, failing)

        with pytest.raises(MigrationError) as exc_info:
            await manager.run_migrations()
        assert exc_info.value.version == 2
        assert isinstance(exc_info.value.__cause__, RuntimeError)

        assert not await table_exists(quiet_adapter, "t")
        assert await ledger_versions(quiet_adapter) == []
        assert manager.current_version == 0

        manager.add_migration(2, add_b, replace=True)
        assert await manager.run_migrations() == [1, 2]

        rows = await quiet_adapter.fetchall("SELECT version, applied_at FROM migrations ORDER BY version")
        assert [row["version"] for row in rows] == [1, 2]
        assert all(row["applied_at"] for row in rows)
        assert manager.current_version == 2

        await quiet_adapter.exec("INSERT INTO t (a, b) VALUES (?, ?)", 1, "x")

    async def test_rerun_is_noop(self, quiet_adapter: SQLiteAdapter) -> None:
        manager = quiet_adapter.migrations
        manager.add_migration(1, create_t)
        assert await manager.run_migrations() == [1]
        assert await manager.run_migrations() == []
        assert await ledger_versions(quiet_adapter) == [1]

    async def test_only_versions_above_cursor_applied(self, quiet_adapter: SQLiteAdapter) -> None:
        manager = quiet_adapter.migrations
        manager.add_migration(1, create_t)
        await manager.run_migrations()

        manager.add_migration(3, add_b)
        assert await manager.run_migrations() == [3]
        assert await ledger_versions(quiet_adapter) == [1, 3]

    async def test_cursor_restored_after_reopen(self, db_path: str) -> None:
        first = await SQLiteAdapter.open(db_path)
        try:
            first.migrations.add_migration(1, create_t)
            assert await first.migrations.run_migrations() == [1]
        finally:
            await first.close()

        second = await SQLiteAdapter.open(db_path)
        try:
            second.migrations.add_migration(1, create_t)
            assert second.migrations.current_version == 0
            assert await second.migrations.run_migrations() == []
            assert second.migrations.current_version == 1
        finally:
            await second.close()

    async def test_empty_set_still_has_ledger(self, quiet_adapter: SQLiteAdapter) -> None:
        assert await quiet_adapter.migrations.run_migrations() == []
        assert await table_exists(quiet_adapter, "migrations")
        assert await ledger_versions(quiet_adapter) == []

    async def test_unknown_recorded_version(self, quiet_adapter: SQLiteAdapter) -> None:
        await quiet_adapter.exec("INSERT INTO migrations (version) VALUES (?)", 9)
        quiet_adapter.migrations.add_migration(1, create_t)

        with pytest.raises(UnknownMigrationError) as exc_info:
            await quiet_adapter.migrations.run_migrations()
        assert exc_info.value.version == 9
        assert not await table_exists(quiet_adapter, "t")


class TestSchema:
    async def test_init_db_creates_all_tables(self, quiet_adapter: SQLiteAdapter) -> None:
        applied = await init_db(quiet_adapter)
        assert applied == sorted(SCHEMA_MIGRATIONS)

        for table in ("users", "single_choice", "multiple_choice", "judgement", "essay"):
            assert await table_exists(quiet_adapter, table)

        assert await init_db(quiet_adapter) == []
