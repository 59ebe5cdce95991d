"""User persistence over the SQLite adapter and the data cache."""

from __future__ import annotations

import logging

from pydantic import ValidationError

from nova.db import ConstraintError, SQLiteAdapter, Transaction
from nova.models import User, UserPatch, UserRow
from nova.services.cache import DataCache
from nova.services.errors import AlreadyExistsError, InvalidRequestError, NotFoundError

logger = logging.getLogger(__name__)

NAMESPACE = "users"

USER_COLUMNS = "user_id, username, password, phone_number, email, address, company"
SELECT_USER = f"SELECT {USER_COLUMNS} FROM users WHERE user_id = ?"
UPDATE_USER = (
    "UPDATE users SET username = ?, password = ?, phone_number = ?, "
    "email = ?, address = ?, company = ? WHERE user_id = ?"
)


def _update_args(user: User) -> tuple[str, ...]:
    return (
        user.username,
        user.password,
        user.phone_number,
        user.email,
        user.address,
        user.company,
        user.user_id,
    )


class UserService:
    """CRUD operations on users.

    Writes hit the database first and then refresh the cache; reads are
    served from the cache when possible.
    """

    def __init__(self, db: SQLiteAdapter, cache: DataCache, query_retries: int = 3):
        self._db = db
        self._cache = cache
        self._query_retries = query_retries

    async def _remember(self, user: User) -> None:
        await self._cache.set(NAMESPACE, user.user_id, user.model_dump(by_alias=True))

    async def create(self, user: User) -> User:
        """Insert a new user.

        Raises:
            AlreadyExistsError: If the id or username is taken.
        """
        try:
            await self._db.insert_struct("users", UserRow.from_model(user))
        except ConstraintError as e:
            raise AlreadyExistsError(f"user {user.user_id} already exists") from e

        await self._remember(user)
        logger.info(f"Created user {user.user_id}")
        return user

    async def get(self, user_id: str) -> User:
        cached = await self._cache.get(NAMESPACE, user_id)
        if cached is not None:
            return User.model_validate(cached)

        async with await self._db.query_with_retry(self._query_retries, SELECT_USER, user_id) as rows:
            record = await rows.fetchone()
        if record is None:
            raise NotFoundError(f"user {user_id} not found")

        user = UserRow(**dict(record)).to_model()
        await self._remember(user)
        return user

    async def find_id_by_username(self, username: str) -> str:
        record = await self._db.fetchone("SELECT user_id FROM users WHERE username = ?", username)
        if record is None:
            raise NotFoundError(f"user {username!r} not found")
        return record["user_id"]

    async def replace(self, user: User) -> User:
        """Overwrite every field of an existing user."""
        try:
            result = await self._db.exec(UPDATE_USER, *_update_args(user))
        except ConstraintError as e:
            raise AlreadyExistsError(f"username {user.username!r} already taken") from e
        if result.rows_affected == 0:
            raise NotFoundError(f"user {user.user_id} not found")

        await self._remember(user)
        return user

    async def patch(self, user_id: str, patch: UserPatch) -> User:
        """Merge the fields present in ``patch`` into an existing user."""
        changes = {
            name: value
            for name, value in patch.model_dump(exclude_unset=True, exclude={"user_id"}).items()
            if value is not None
        }

        async def merge(tx: Transaction) -> User:
            record = await tx.fetchone(SELECT_USER, user_id)
            if record is None:
                raise NotFoundError(f"user {user_id} not found")
            current = UserRow(**dict(record)).to_model()
            try:
                merged = User.model_validate({**current.model_dump(), **changes})
            except ValidationError as e:
                raise InvalidRequestError(str(e)) from e
            await tx.exec(UPDATE_USER, *_update_args(merged))
            return merged

        try:
            user = await self._db.with_transaction(merge)
        except ConstraintError as e:
            raise AlreadyExistsError(f"username {changes.get('username')!r} already taken") from e

        await self._remember(user)
        return user

    async def delete(self, user_id: str) -> None:
        result = await self._db.exec("DELETE FROM users WHERE user_id = ?", user_id)
        if result.rows_affected == 0:
            raise NotFoundError(f"user {user_id} not found")
        await self._cache.delete(NAMESPACE, user_id)
        logger.info(f"Deleted user {user_id}")

    async def list_all(self) -> list[User]:
        records = await self._db.fetchall(f"SELECT {USER_COLUMNS} FROM users ORDER BY user_id")
        return [UserRow(**dict(record)).to_model() for record in records]

    async def warm_cache(self) -> int:
        """Load every user into the cache; returns the number loaded."""
        users = await self.list_all()
        for user in users:
            await self._remember(user)
        return len(users)
