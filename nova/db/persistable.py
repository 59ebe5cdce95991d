"""Tagged-record support for ``SQLiteAdapter.insert_struct``.

A record exposes its columns either by implementing ``Persistable`` or by
being a dataclass whose fields carry a ``"db"`` metadata tag::

    @dataclass
    class UserRow:
        user_id: str = column("user_id")
        username: str = column("username")
        note: str = ""  # untagged, not persisted
"""

from __future__ import annotations

import dataclasses
from typing import Any, Protocol, runtime_checkable

from nova.db.errors import NoPersistableFieldsError

DB_TAG = "db"


@runtime_checkable
class Persistable(Protocol):
    """Records that list their own ``(column, value)`` pairs."""

    def persistable_fields(self) -> list[tuple[str, Any]]: ...


def column(name: str, **kwargs: Any) -> Any:
    """Declare a dataclass field persisted under the given column name."""
    metadata = dict(kwargs.pop("metadata", None) or {})
    metadata[DB_TAG] = name
    return dataclasses.field(metadata=metadata, **kwargs)


def persistable_fields(record: Any) -> list[tuple[str, Any]]:
    """Return the ``(column, value)`` pairs of a record in declaration order.

    Raises:
        NoPersistableFieldsError: If the record has no tagged fields.
    """
    if isinstance(record, Persistable):
        pairs = list(record.persistable_fields())
    elif dataclasses.is_dataclass(record) and not isinstance(record, type):
        pairs = [
            (f.metadata[DB_TAG], getattr(record, f.name))
            for f in dataclasses.fields(record)
            if f.metadata.get(DB_TAG)
        ]
    else:
        pairs = []

    if not pairs:
        raise NoPersistableFieldsError(record)
    return pairs


def build_insert(table: str, record: Any) -> tuple[str, tuple[Any, ...]]:
    """Build the INSERT statement and bind parameters for a record."""
    pairs = persistable_fields(record)
    columns = ",".join(name for name, _ in pairs)
    placeholders = ",".join("?" for _ in pairs)
    sql = f"INSERT INTO {table} ({columns}) VALUES ({placeholders})"
    return sql, tuple(value for _, value in pairs)
