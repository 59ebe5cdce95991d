"""
Utility modules for Nova.
"""

from .identifiers import is_valid_id, new_id
from .random_strings import random_alphabet, random_alphabet_and_number, random_number

__all__ = [
    "new_id",
    "is_valid_id",
    "random_alphabet",
    "random_number",
    "random_alphabet_and_number",
]
