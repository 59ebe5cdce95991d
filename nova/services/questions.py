"""Question persistence across the four per-kind tables."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ValidationError

from nova.db import ConstraintError, SQLiteAdapter, Transaction
from nova.models import QUESTION_FIELDS, QUESTION_MODELS, QuestionKind, QuestionRow
from nova.services.cache import DataCache
from nova.services.errors import AlreadyExistsError, InvalidRequestError, NotFoundError

logger = logging.getLogger(__name__)

NAMESPACE = "questions"


def _select(kind: QuestionKind) -> str:
    answer_column, standard_column = QUESTION_FIELDS[kind]
    return (
        f"SELECT id, title, {answer_column} AS answer, {standard_column} AS standard_answer "
        f"FROM {kind.table} WHERE id = ?"
    )


def _update(kind: QuestionKind) -> str:
    answer_column, standard_column = QUESTION_FIELDS[kind]
    return (
        f"UPDATE {kind.table} SET title = ?, {answer_column} = ?, {standard_column} = ? "
        "WHERE id = ?"
    )


class QuestionService:
    """CRUD operations on questions of every kind.

    Question ids are unique across all kinds, so a question can be
    addressed by id alone.
    """

    def __init__(self, db: SQLiteAdapter, cache: DataCache, query_retries: int = 3):
        self._db = db
        self._cache = cache
        self._query_retries = query_retries

    async def _remember(self, kind: QuestionKind, question: BaseModel) -> None:
        await self._cache.set(
            NAMESPACE,
            question.id,  # type: ignore[attr-defined]
            {"kind": kind.value, "question": question.model_dump(by_alias=True)},
        )

    def _from_cache(self, entry: dict[str, Any]) -> tuple[QuestionKind, BaseModel]:
        kind = QuestionKind(entry["kind"])
        return kind, QUESTION_MODELS[kind].model_validate(entry["question"])

    @staticmethod
    async def _owner(tx: Transaction, question_id: str) -> QuestionKind | None:
        for kind in QuestionKind:
            if await tx.fetchone(f"SELECT 1 FROM {kind.table} WHERE id = ?", question_id):
                return kind
        return None

    async def create(self, kind: QuestionKind, question: BaseModel) -> BaseModel:
        """Insert a question of the given kind.

        Raises:
            AlreadyExistsError: If any kind already uses the id.
        """
        row = QuestionRow.from_model(kind, question)

        async def insert(tx: Transaction) -> None:
            existing = await self._owner(tx, row.id)
            if existing is not None:
                raise AlreadyExistsError(f"question {row.id} already exists as {existing.value}")
            await tx.insert_struct(kind.table, row)

        try:
            await self._db.with_transaction(insert)
        except ConstraintError as e:
            raise AlreadyExistsError(f"question {row.id} already exists") from e

        await self._remember(kind, question)
        logger.info(f"Created {kind.value} question {row.id}")
        return question

    async def _load(self, kind: QuestionKind, question_id: str) -> BaseModel | None:
        async with await self._db.query_with_retry(
            self._query_retries, _select(kind), question_id
        ) as rows:
            record = await rows.fetchone()
        if record is None:
            return None
        return QuestionRow(kind=kind, **dict(record)).to_model()

    async def get(self, kind: QuestionKind, question_id: str) -> BaseModel:
        cached = await self._cache.get(NAMESPACE, question_id)
        if cached is not None:
            cached_kind, question = self._from_cache(cached)
            if cached_kind is kind:
                return question
            raise NotFoundError(f"{kind.value} question {question_id} not found")

        question = await self._load(kind, question_id)
        if question is None:
            raise NotFoundError(f"{kind.value} question {question_id} not found")
        await self._remember(kind, question)
        return question

    async def find(self, question_id: str) -> tuple[QuestionKind, BaseModel]:
        """Look a question up by id regardless of its kind."""
        cached = await self._cache.get(NAMESPACE, question_id)
        if cached is not None:
            return self._from_cache(cached)

        for kind in QuestionKind:
            question = await self._load(kind, question_id)
            if question is not None:
                await self._remember(kind, question)
                return kind, question
        raise NotFoundError(f"question {question_id} not found")

    async def _write(self, kind: QuestionKind, question: BaseModel) -> None:
        row = QuestionRow.from_model(kind, question)
        result = await self._db.exec(
            _update(kind), row.title, row.answer, row.standard_answer, row.id
        )
        if result.rows_affected == 0:
            raise NotFoundError(f"{kind.value} question {row.id} not found")

    async def replace(self, kind: QuestionKind, question: BaseModel) -> BaseModel:
        await self._write(kind, question)
        await self._remember(kind, question)
        return question

    async def patch(self, kind: QuestionKind, question_id: str, changes: dict[str, Any]) -> BaseModel:
        """Merge top-level fields from ``changes`` into a stored question."""
        changes = {k: v for k, v in changes.items() if k != "id" and v is not None}
        model = QUESTION_MODELS[kind]

        async def merge(tx: Transaction) -> BaseModel:
            record = await tx.fetchone(_select(kind), question_id)
            if record is None:
                raise NotFoundError(f"{kind.value} question {question_id} not found")
            current = QuestionRow(kind=kind, **dict(record)).to_model()
            try:
                merged = model.model_validate({**current.model_dump(by_alias=True), **changes})
            except ValidationError as e:
                raise InvalidRequestError(str(e)) from e
            row = QuestionRow.from_model(kind, merged)
            await tx.exec(_update(kind), row.title, row.answer, row.standard_answer, row.id)
            return merged

        question = await self._db.with_transaction(merge)
        await self._remember(kind, question)
        return question

    async def delete(self, kind: QuestionKind | None, question_id: str) -> None:
        """Delete a question; ``kind=None`` deletes whichever kind holds the id."""
        kinds = [kind] if kind is not None else list(QuestionKind)
        deleted = 0
        for candidate in kinds:
            result = await self._db.exec(f"DELETE FROM {candidate.table} WHERE id = ?", question_id)
            deleted += result.rows_affected
        if deleted == 0:
            label = f"{kind.value} question" if kind is not None else "question"
            raise NotFoundError(f"{label} {question_id} not found")
        await self._cache.delete(NAMESPACE, question_id)

    async def warm_cache(self) -> int:
        """Load every question into the cache; returns the number loaded."""
        count = 0
        for kind in QuestionKind:
            answer_column, standard_column = QUESTION_FIELDS[kind]
            records = await self._db.fetchall(
                f"SELECT id, title, {answer_column} AS answer, "
                f"{standard_column} AS standard_answer FROM {kind.table}"
            )
            for record in records:
                await self._remember(kind, QuestionRow(kind=kind, **dict(record)).to_model())
                count += 1
        return count
