"""Nova table definitions, applied through the migration ledger."""

from __future__ import annotations

from nova.db.connection import SQLiteAdapter, Transaction


async def _create_users(tx: Transaction) -> None:
    await tx.exec(
        """
        CREATE TABLE IF NOT EXISTS users (
            user_id TEXT PRIMARY KEY NOT NULL,
            username TEXT NOT NULL,
            password TEXT NOT NULL,
            phone_number TEXT NOT NULL,
            email TEXT,
            address TEXT,
            company TEXT
        )
        """
    )
    await tx.exec("CREATE UNIQUE INDEX IF NOT EXISTS idx_users_username ON users (username)")


def _question_table(table: str, answer_column: str, standard_column: str):
    async def create(tx: Transaction) -> None:
        await tx.exec(
            f"""
            CREATE TABLE IF NOT EXISTS {table} (
                id TEXT PRIMARY KEY NOT NULL,
                title TEXT NOT NULL,
                {answer_column} TEXT NOT NULL,
                {standard_column} TEXT NOT NULL
            )
            """
        )

    return create


SCHEMA_MIGRATIONS = {
    1: _create_users,
    2: _question_table("single_choice", "answers", "standard_answer"),
    3: _question_table("multiple_choice", "answers", "standard_answers"),
    4: _question_table("judgement", "answer", "standard_answer"),
    5: _question_table("essay", "answer", "standard_answer"),
}


def register_schema(adapter: SQLiteAdapter) -> None:
    """Register the Nova tables as migrations on the adapter."""
    for version, body in SCHEMA_MIGRATIONS.items():
        adapter.migrations.add_migration(version, body, replace=True)


async def init_db(adapter: SQLiteAdapter) -> list[int]:
    """Register and apply the Nova schema; returns newly applied versions."""
    register_schema(adapter)
    return await adapter.migrations.run_migrations()
