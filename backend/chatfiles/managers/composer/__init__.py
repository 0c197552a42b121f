"""Message composer module exports."""

from .mentions import filter_participants, find_mention_trigger, insert_mention
from .message_composer import MessageComposer, find_oldest_timestamp

__all__ = [
    "MessageComposer",
    "find_oldest_timestamp",
    "filter_participants",
    "find_mention_trigger",
    "insert_mention",
]
