"""
File policy configuration for chat attachments.

This module defines which file types may be attached to a chat message, how
large each category may be, and the validator that checks a picked file
against that policy table before anything touches the network.
"""

import logging
from typing import FrozenSet, Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, field_validator

from chatfiles.models.transfer_models import (
    LocalFile,
    TransferError,
    TransferErrorReason,
    TransferResult,
)

logger = logging.getLogger(__name__)

SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")

NO_FILE_SELECTED_MESSAGE = "파일이 선택되지 않았습니다."
BAD_EXTENSION_MESSAGE = "파일 확장자가 올바르지 않습니다."


class FilePolicy(BaseModel):
    """Upload policy for one file category."""

    model_config = ConfigDict(frozen=True)

    category: str
    allowed_extensions: FrozenSet[str]
    allowed_mime_types: FrozenSet[str]
    max_size_bytes: int
    display_name: str

    @field_validator("allowed_extensions", mode="before")
    @classmethod
    def _normalize_extensions(cls, value: Iterable[str]) -> frozenset:
        extensions = frozenset(
            ext.lower() if ext.startswith(".") else f".{ext.lower()}"
            for ext in value
            if ext
        )
        if not extensions:
            raise ValueError("allowed_extensions must not be empty")
        return extensions

    @field_validator("allowed_mime_types", mode="before")
    @classmethod
    def _normalize_mime_types(cls, value: Iterable[str]) -> frozenset:
        mime_types = frozenset(m.lower() for m in value if m)
        if not mime_types:
            raise ValueError("allowed_mime_types must not be empty")
        return mime_types

    @field_validator("max_size_bytes")
    @classmethod
    def _positive_size(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("max_size_bytes must be positive")
        return value


DEFAULT_FILE_POLICIES: Tuple[FilePolicy, ...] = (
    FilePolicy(
        category="image",
        allowed_extensions={".jpg", ".jpeg", ".png", ".gif", ".webp"},
        allowed_mime_types={"image/jpeg", "image/png", "image/gif", "image/webp"},
        max_size_bytes=10 * 1024 * 1024,  # 10MB
        display_name="이미지",
    ),
    FilePolicy(
        category="document",
        allowed_extensions={".pdf"},
        allowed_mime_types={"application/pdf"},
        max_size_bytes=20 * 1024 * 1024,  # 20MB
        display_name="PDF 문서",
    ),
)


def format_file_size(size_bytes: int) -> str:
    """Format a byte count with binary units, e.g. ``1536`` -> ``"1.50 KB"``."""
    if not size_bytes or size_bytes <= 0:
        return "0 B"
    value = float(size_bytes)
    index = 0
    while value >= 1024 and index < len(SIZE_UNITS) - 1:
        value /= 1024
        index += 1
    return f"{value:.2f} {SIZE_UNITS[index]}"


def get_file_extension(filename: Optional[str]) -> str:
    """Get lowercase file extension including the dot."""
    if not filename or "." not in filename:
        return ""
    return "." + filename.rsplit(".", 1)[-1].lower()


def get_file_category(mimetype: Optional[str]) -> str:
    """Get a coarse category for picking a file icon."""
    mimetype = (mimetype or "").lower()
    if mimetype.startswith("image/"):
        return "image"
    if mimetype.startswith("video/"):
        return "video"
    if mimetype.startswith("audio/"):
        return "audio"
    return "file"


class FileValidator:
    """Checks a picked file against an ordered policy table."""

    def __init__(self, policies: Optional[Sequence[FilePolicy]] = None):
        self.policies: List[FilePolicy] = list(policies or DEFAULT_FILE_POLICIES)
        if not self.policies:
            raise ValueError("At least one file policy is required")

    def find_policy(self, mime_type: Optional[str]) -> Optional[FilePolicy]:
        """Return the first policy that lists ``mime_type``."""
        mime_type = (mime_type or "").lower()
        for policy in self.policies:
            if mime_type in policy.allowed_mime_types:
                return policy
        return None

    def unsupported_type_message(self) -> str:
        names = " 또는 ".join(p.display_name for p in self.policies)
        return f"{names} 파일만 업로드 가능합니다."

    def validate(self, file: Optional[LocalFile]) -> TransferResult[FilePolicy]:
        """
        Validate a file before upload.

        Args:
            file: The picked file, or None if nothing was selected

        Returns:
            TransferResult carrying the matched FilePolicy on success
        """
        if file is None:
            return TransferResult.fail(
                TransferError(TransferErrorReason.NO_FILE_SELECTED, NO_FILE_SELECTED_MESSAGE)
            )

        policy = self.find_policy(file.mime_type)
        if policy is None:
            logger.debug(f"Rejected {file.name}: unsupported type {file.mime_type}")
            return TransferResult.fail(
                TransferError(TransferErrorReason.UNSUPPORTED_TYPE, self.unsupported_type_message())
            )

        if file.size > policy.max_size_bytes:
            logger.debug(f"Rejected {file.name}: {file.size} bytes > {policy.max_size_bytes}")
            limit = format_file_size(policy.max_size_bytes)
            return TransferResult.fail(
                TransferError(
                    TransferErrorReason.FILE_TOO_LARGE,
                    f"{policy.display_name} 파일은 {limit}를 초과할 수 없습니다.",
                )
            )

        ext = get_file_extension(file.name)
        if ext not in policy.allowed_extensions:
            logger.debug(f"Rejected {file.name}: extension '{ext}' not allowed for {policy.category}")
            return TransferResult.fail(
                TransferError(TransferErrorReason.BAD_EXTENSION, BAD_EXTENSION_MESSAGE)
            )

        return TransferResult.ok(policy)
