"""Interface for the real-time chat channel the composer emits on."""

from typing import Any, Dict, Protocol, runtime_checkable

CHAT_MESSAGE_EVENT = "chatMessage"
FETCH_PREVIOUS_MESSAGES_EVENT = "fetchPreviousMessages"


@runtime_checkable
class MessageChannel(Protocol):
    """An already-connected bidirectional channel (e.g. a socket.io client)."""

    @property
    def connected(self) -> bool:
        ...

    async def emit(self, event: str, data: Dict[str, Any]) -> None:
        ...
