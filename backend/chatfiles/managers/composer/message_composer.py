"""Message composer for pure draft state management."""

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from chatfiles.interfaces.channel_interface import (
    CHAT_MESSAGE_EVENT,
    FETCH_PREVIOUS_MESSAGES_EVENT,
    MessageChannel,
)
from chatfiles.managers.composer.mentions import (
    filter_participants,
    find_mention_trigger,
    insert_mention,
)
from chatfiles.managers.config.config_models import AppSettings
from chatfiles.models.message_models import (
    DraftMessage,
    MessageKind,
    OutboundMessageEnvelope,
    Participant,
    SubmitErrorReason,
    SubmitResult,
)
from chatfiles.models.transfer_models import LocalFile, TransferResult, UploadedFileMetadata

logger = logging.getLogger(__name__)

CHANNEL_UNAVAILABLE_MESSAGE = "채팅 서버와 연결이 끊어졌습니다."
NO_ROOM_MESSAGE = "채팅방 정보를 찾을 수 없습니다."
SEND_FAILED_MESSAGE = "메시지 전송 중 오류가 발생했습니다."

SESSION_ERROR_MARKERS = ("세션", "인증", "토큰", "session", "auth", "token")

SessionErrorHandler = Callable[[], Awaitable[None]]


def _timestamp_key(value: Any) -> Optional[datetime]:
    """Comparable UTC datetime for a message timestamp, or None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        # Epoch milliseconds
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, datetime):
        key = value
    elif isinstance(value, str) and value:
        try:
            key = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if key.tzinfo is None:
        key = key.replace(tzinfo=timezone.utc)
    return key


def find_oldest_timestamp(messages: Iterable[Dict[str, Any]]) -> Optional[Any]:
    """Timestamp of the oldest message, as it appeared in the message."""
    oldest = None
    oldest_key = None
    for message in messages:
        raw = message.get("timestamp")
        key = _timestamp_key(raw)
        if key is None:
            continue
        if oldest_key is None or key < oldest_key:
            oldest, oldest_key = raw, key
    return oldest


class MessageComposer:
    """
    Owns the draft for one open room and turns it into outbound messages.

    Draft fields are read through properties and changed only through the
    transition methods below.
    """

    def __init__(
        self,
        channel: Optional[MessageChannel],
        room_id: Optional[str] = None,
        current_user: Optional[Any] = None,
        on_session_error: Optional[SessionErrorHandler] = None,
        page_size: int = 30,
    ):
        self._channel = channel
        self.room_id = room_id
        self.current_user = current_user
        self._on_session_error = on_session_error
        self.page_size = page_size
        self._draft = DraftMessage()
        self._upload_generation = 0
        self._loading_messages = False
        logger.debug(f"MessageComposer initialized for room {room_id}")

    @classmethod
    def from_settings(
        cls,
        channel: Optional[MessageChannel],
        settings: AppSettings,
        room_id: Optional[str] = None,
        current_user: Optional[Any] = None,
        on_session_error: Optional[SessionErrorHandler] = None,
    ) -> "MessageComposer":
        """Build a composer whose history page size comes from settings."""
        return cls(
            channel,
            room_id=room_id,
            current_user=current_user,
            on_session_error=on_session_error,
            page_size=settings.message_page_size,
        )

    # Read-only views of the draft

    @property
    def text(self) -> str:
        return self._draft.text

    @property
    def cursor_position(self) -> int:
        return self._draft.cursor_position

    @property
    def mention_filter(self) -> Optional[str]:
        return self._draft.mention_filter

    @property
    def mention_index(self) -> int:
        return self._draft.mention_index

    @property
    def show_mention_list(self) -> bool:
        return self._draft.show_mention_list

    @property
    def show_emoji_picker(self) -> bool:
        return self._draft.show_emoji_picker

    @property
    def attached_file(self) -> Optional[UploadedFileMetadata]:
        return self._draft.attached_file

    @property
    def is_submitting(self) -> bool:
        return self._draft.is_submitting

    @property
    def uploading(self) -> bool:
        return self._draft.uploading

    @property
    def upload_progress(self) -> int:
        return self._draft.upload_progress

    @property
    def upload_error(self) -> Optional[str]:
        return self._draft.upload_error

    @property
    def loading_messages(self) -> bool:
        return self._loading_messages

    def _is_connected(self) -> bool:
        return self._channel is not None and bool(getattr(self._channel, "connected", False))

    # Text and mentions

    def on_text_change(self, new_text: str, cursor_position: Optional[int] = None) -> None:
        """Update the draft text and recompute mention state."""
        draft = self._draft
        cursor = len(new_text) if cursor_position is None else max(0, min(cursor_position, len(new_text)))
        draft.text = new_text
        draft.cursor_position = cursor

        trigger = find_mention_trigger(new_text, cursor)
        if trigger is not None:
            draft.mention_filter = trigger[1]
            draft.show_mention_list = True
            draft.mention_index = 0
            return

        draft.show_mention_list = False

    def on_insert_mention(self, participant: Participant, cursor_position: Optional[int] = None) -> Optional[int]:
        """Complete the mention before the cursor; returns the new cursor position."""
        draft = self._draft
        cursor = draft.cursor_position if cursor_position is None else cursor_position
        inserted = insert_mention(draft.text, cursor, participant.name)
        if inserted is None:
            return None

        draft.text, draft.cursor_position = inserted
        draft.show_mention_list = False
        return draft.cursor_position

    def filter_participants(self, participants: Iterable[Participant]) -> List[Participant]:
        return filter_participants(participants, self._draft.mention_filter or "")

    def move_mention_selection(self, step: int, option_count: int) -> int:
        """Move the highlighted mention option, wrapping at both ends."""
        if option_count <= 0:
            self._draft.mention_index = 0
        else:
            self._draft.mention_index = (self._draft.mention_index + step) % option_count
        return self._draft.mention_index

    def close_mention_list(self) -> None:
        self._draft.show_mention_list = False

    def toggle_emoji_picker(self) -> bool:
        self._draft.show_emoji_picker = not self._draft.show_emoji_picker
        return self._draft.show_emoji_picker

    # Attachments

    def on_attach_upload(self, metadata: UploadedFileMetadata) -> None:
        self._draft.attached_file = metadata

    def on_remove_attachment(self) -> None:
        """Drop the attachment and forget any upload still in flight."""
        self._upload_generation += 1
        self._draft.attached_file = None
        self._draft.clear_upload_state()

    async def attach_file(self, transfer_client: Any, file: Optional[LocalFile]) -> TransferResult:
        """
        Upload a file and attach it to the draft.

        Starting a new upload supersedes any earlier one: progress and results
        from a superseded upload are ignored.
        """
        self._upload_generation += 1
        generation = self._upload_generation
        draft = self._draft
        draft.uploading = True
        draft.upload_progress = 0
        draft.upload_error = None

        def on_progress(percent: int) -> None:
            if generation == self._upload_generation:
                self._draft.upload_progress = percent

        result = await transfer_client.upload(file, on_progress=on_progress)

        if generation != self._upload_generation:
            logger.info("Ignoring result of a superseded upload")
            return result

        self._draft.uploading = False
        if result.succeeded:
            self.on_attach_upload(result.data)
        else:
            self._draft.upload_error = result.message
        return result

    # Submission

    def _build_envelope(self) -> Optional[OutboundMessageEnvelope]:
        draft = self._draft
        content = draft.text.strip()
        if draft.attached_file is not None:
            return OutboundMessageEnvelope(
                room_id=self.room_id,
                kind=MessageKind.FILE,
                content=content,
                file_data=draft.attached_file,
            )
        if content:
            return OutboundMessageEnvelope(room_id=self.room_id, kind=MessageKind.TEXT, content=content)
        return None

    async def submit(self) -> SubmitResult:
        """Send the draft as a text or file message."""
        draft = self._draft
        if draft.is_submitting:
            logger.debug("Submit already in progress, ignoring")
            return SubmitResult.nothing_to_send()

        if not self._is_connected() or not self.current_user:
            return SubmitResult.fail(SubmitErrorReason.CHANNEL_UNAVAILABLE, CHANNEL_UNAVAILABLE_MESSAGE)

        if not self.room_id:
            return SubmitResult.fail(SubmitErrorReason.NO_ROOM, NO_ROOM_MESSAGE)

        envelope = self._build_envelope()
        if envelope is None:
            draft.close_popups()
            return SubmitResult.nothing_to_send()

        draft.is_submitting = True
        try:
            await self._channel.emit(CHAT_MESSAGE_EVENT, envelope.to_payload())
        except Exception as e:
            logger.error(f"Message submit error in room {self.room_id}: {e}", exc_info=True)
            text = str(e)
            if any(marker in text.lower() for marker in SESSION_ERROR_MARKERS):
                if self._on_session_error is not None:
                    try:
                        await self._on_session_error()
                    except Exception as callback_error:
                        logger.error(f"Session error handler failed: {callback_error}", exc_info=True)
                return SubmitResult.fail(SubmitErrorReason.SESSION_EXPIRED, text)
            return SubmitResult.fail(SubmitErrorReason.SEND_FAILED, text or SEND_FAILED_MESSAGE)
        finally:
            draft.is_submitting = False

        if draft is self._draft:
            draft.text = ""
            draft.cursor_position = 0
            if envelope.kind == MessageKind.FILE:
                draft.attached_file = None
                draft.clear_upload_state()
            draft.close_popups()

        logger.info(f"Sent {envelope.kind.value} message to room {self.room_id}")
        return SubmitResult.sent(envelope)

    # History paging

    async def load_older(self, messages: Iterable[Dict[str, Any]]) -> bool:
        """
        Request the page of messages before the oldest known one.

        Returns True when a request was emitted. The caller merges the page
        and calls finish_loading().
        """
        if not self._is_connected() or self._loading_messages:
            return False

        before = find_oldest_timestamp(messages)
        if before is None:
            return False

        if isinstance(before, datetime):
            before = before.isoformat()

        self._loading_messages = True
        try:
            await self._channel.emit(
                FETCH_PREVIOUS_MESSAGES_EVENT,
                {"roomId": self.room_id, "before": before, "limit": self.page_size},
            )
        except Exception as e:
            logger.error(f"Failed to request older messages for room {self.room_id}: {e}", exc_info=True)
            self._loading_messages = False
            return False
        return True

    def finish_loading(self) -> None:
        self._loading_messages = False

    def reset(self, room_id: Optional[str] = None) -> None:
        """Start a fresh draft, optionally for another room."""
        if room_id is not None:
            self.room_id = room_id
        self._upload_generation += 1
        self._loading_messages = False
        self._draft = DraftMessage()
        logger.debug(f"Draft reset for room {self.room_id}")
