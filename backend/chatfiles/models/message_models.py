"""Domain models for message composition."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from chatfiles.models.transfer_models import UploadedFileMetadata


class MessageKind(Enum):
    """Kind of an outbound chat message."""

    TEXT = "text"
    FILE = "file"


class SubmitErrorReason(Enum):
    """Why a submit could not be sent."""

    CHANNEL_UNAVAILABLE = "channel_unavailable"
    NO_ROOM = "no_room"
    SESSION_EXPIRED = "session_expired"
    SEND_FAILED = "send_failed"


@dataclass(frozen=True)
class SubmitError:
    reason: SubmitErrorReason
    message: str


@dataclass(frozen=True)
class Participant:
    """A room participant that can be mentioned."""

    id: str
    name: str
    email: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Participant":
        return cls(
            id=str(data.get("_id") or data.get("id") or ""),
            name=data.get("name", ""),
            email=data.get("email", ""),
        )


@dataclass(frozen=True)
class OutboundMessageEnvelope:
    """Finalized payload handed to the channel."""

    room_id: str
    kind: MessageKind
    content: str = ""
    file_data: Optional[UploadedFileMetadata] = None

    def __post_init__(self):
        if self.kind == MessageKind.FILE and self.file_data is None:
            raise ValueError("File messages require file data")
        if self.kind == MessageKind.TEXT:
            if self.file_data is not None:
                raise ValueError("Text messages cannot carry file data")
            if not self.content.strip():
                raise ValueError("Text messages require non-empty content")

    def to_payload(self) -> Dict[str, Any]:
        """Convert to the ``chatMessage`` wire format."""
        payload: Dict[str, Any] = {
            "room": self.room_id,
            "type": self.kind.value,
            "content": self.content,
        }
        if self.file_data is not None:
            payload["fileData"] = self.file_data.to_file_data()
        return payload


@dataclass(frozen=True)
class SubmitResult:
    """Outcome of a submit; ``envelope`` is None when nothing was sent."""

    succeeded: bool
    envelope: Optional[OutboundMessageEnvelope] = None
    error: Optional[SubmitError] = None

    @classmethod
    def sent(cls, envelope: OutboundMessageEnvelope) -> "SubmitResult":
        return cls(succeeded=True, envelope=envelope)

    @classmethod
    def nothing_to_send(cls) -> "SubmitResult":
        return cls(succeeded=True)

    @classmethod
    def fail(cls, reason: SubmitErrorReason, message: str) -> "SubmitResult":
        return cls(succeeded=False, error=SubmitError(reason, message))


@dataclass
class DraftMessage:
    """Mutable composition state for one open room."""

    text: str = ""
    cursor_position: int = 0
    mention_filter: Optional[str] = None
    mention_index: int = 0
    show_mention_list: bool = False
    show_emoji_picker: bool = False
    attached_file: Optional[UploadedFileMetadata] = None
    is_submitting: bool = False
    uploading: bool = False
    upload_progress: int = 0
    upload_error: Optional[str] = None

    def clear_upload_state(self) -> None:
        self.uploading = False
        self.upload_progress = 0
        self.upload_error = None

    def close_popups(self) -> None:
        self.show_emoji_picker = False
        self.show_mention_list = False
