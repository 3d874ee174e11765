"""
Canonical, order-independent keys for a pair of users.

``chat_key_of(a, b) == chat_key_of(b, a)`` for every pair. The separator is
not allowed inside user ids, so a key always splits back into its two ids.
"""

from typing import Tuple

from classcrush.core.errors import InvalidInput


SEPARATOR = "_"


def _ordered(id_a: str, id_b: str) -> Tuple[str, str]:
    a = (id_a or "").strip()
    b = (id_b or "").strip()
    if not a or not b:
        raise InvalidInput("Both user ids are required to build a chat key")
    if SEPARATOR in a or SEPARATOR in b:
        raise InvalidInput(f"User ids must not contain '{SEPARATOR}'")
    return (a, b) if a < b else (b, a)


def chat_key_of(id_a: str, id_b: str) -> str:
    """Stable chat key for two user ids."""
    first, second = _ordered(id_a, id_b)
    return f"{first}{SEPARATOR}{second}"


def pair_key(id_a: str, id_b: str) -> str:
    """Unordered-pair key used to dedupe and claim match records."""
    return chat_key_of(id_a, id_b)


def participants_of(chat_key: str) -> Tuple[str, str]:
    """Split a chat key back into its two participant ids."""
    parts = (chat_key or "").split(SEPARATOR)
    if len(parts) != 2 or not all(parts):
        raise InvalidInput(f"'{chat_key}' is not a chat key", detail={"chat_key": chat_key})
    return parts[0], parts[1]
