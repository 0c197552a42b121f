"""Text helpers for @mention autocomplete."""

from typing import Iterable, List, Optional, Tuple

from chatfiles.models.message_models import Participant


def find_mention_trigger(text: str, cursor_position: int) -> Optional[Tuple[int, str]]:
    """
    Locate an open mention before the cursor.

    Returns (index of '@', lowercased filter) when the nearest '@' before the
    cursor is not followed by a space, else None.
    """
    before_cursor = text[:cursor_position]
    at_index = before_cursor.rfind("@")
    if at_index == -1:
        return None
    mention_text = before_cursor[at_index + 1:]
    if " " in mention_text:
        return None
    return at_index, mention_text.lower()


def insert_mention(text: str, cursor_position: int, name: str) -> Optional[Tuple[str, int]]:
    """Replace ``@partial`` before the cursor with ``@name ``; returns (text, new cursor)."""
    at_index = text[:cursor_position].rfind("@")
    if at_index == -1:
        return None
    new_text = text[:at_index] + f"@{name} " + text[cursor_position:]
    return new_text, at_index + len(name) + 2


def filter_participants(participants: Iterable[Participant], mention_filter: str) -> List[Participant]:
    """Case-insensitive substring match on name or email, keeping input order."""
    needle = (mention_filter or "").lower()
    return [
        p for p in participants
        if needle in (p.name or "").lower() or needle in (p.email or "").lower()
    ]
