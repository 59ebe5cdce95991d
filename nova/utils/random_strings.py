"""Random string generation."""

from __future__ import annotations

import secrets
import string

ALPHABET = string.ascii_letters
DIGITS = string.digits


def _random_from(charset: str, n: int) -> str:
    if n < 0:
        raise ValueError(f"length must be non-negative, got {n}")
    return "".join(secrets.choice(charset) for _ in range(n))


def random_alphabet(n: int) -> str:
    """Return ``n`` random ASCII letters."""
    return _random_from(ALPHABET, n)


def random_number(n: int) -> str:
    """Return ``n`` random decimal digits (leading zeros allowed)."""
    return _random_from(DIGITS, n)


def random_alphabet_and_number(n: int) -> str:
    """Return ``n`` random characters drawn from letters and digits."""
    return _random_from(ALPHABET + DIGITS, n)
