"""Entity identifiers: lowercase UUID4 strings."""

from __future__ import annotations

import re
import uuid

ID_PATTERN = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")


def new_id() -> str:
    return str(uuid.uuid4())


def is_valid_id(value: str) -> bool:
    """Check the canonical lowercase UUID form (case-insensitive)."""
    return bool(ID_PATTERN.match(value.lower()))
