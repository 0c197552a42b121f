"""Domain models for file transfers (validation, upload, download)."""

import mimetypes
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Generic, Iterator, Optional, TypeVar, Union

T = TypeVar("T")

DEFAULT_MIME_TYPE = "application/octet-stream"


class TransferErrorReason(Enum):
    """Closed set of transfer failure kinds."""

    NO_FILE_SELECTED = "no_file_selected"
    UNSUPPORTED_TYPE = "unsupported_type"
    FILE_TOO_LARGE = "file_too_large"
    BAD_EXTENSION = "bad_extension"
    REQUEST_TIMEOUT = "request_timeout"
    UNAUTHORIZED = "unauthorized"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    UNSUPPORTED_MEDIA_TYPE = "unsupported_media_type"
    SERVER_ERROR = "server_error"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class TransferError:
    """A failed transfer step. Returned as a value, never raised."""

    reason: TransferErrorReason
    message: str

    @property
    def succeeded(self) -> bool:
        return False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "succeeded": False,
            "reason": self.reason.value,
            "message": self.message,
        }


@dataclass(frozen=True)
class TransferResult(Generic[T]):
    """Outcome of a validator or transfer call."""

    succeeded: bool
    data: Optional[T] = None
    error: Optional[TransferError] = None

    @classmethod
    def ok(cls, data: Optional[T] = None) -> "TransferResult[T]":
        return cls(succeeded=True, data=data)

    @classmethod
    def fail(cls, error: TransferError) -> "TransferResult[T]":
        return cls(succeeded=False, error=error)

    @property
    def reason(self) -> Optional[TransferErrorReason]:
        return self.error.reason if self.error else None

    @property
    def message(self) -> Optional[str]:
        return self.error.message if self.error else None


@dataclass
class LocalFile:
    """A file picked by the user, held in memory or on disk."""

    name: str
    mime_type: str
    size: int
    content: Optional[bytes] = field(default=None, repr=False)
    path: Optional[Path] = None

    @classmethod
    def from_bytes(cls, name: str, content: bytes, mime_type: Optional[str] = None) -> "LocalFile":
        mime = mime_type or mimetypes.guess_type(name)[0] or DEFAULT_MIME_TYPE
        return cls(name=name, mime_type=mime, size=len(content), content=content)

    @classmethod
    def from_path(cls, path: Union[str, Path], mime_type: Optional[str] = None) -> "LocalFile":
        p = Path(path)
        mime = mime_type or mimetypes.guess_type(p.name)[0] or DEFAULT_MIME_TYPE
        return cls(name=p.name, mime_type=mime, size=p.stat().st_size, path=p)

    def iter_chunks(self, chunk_size: int) -> Iterator[bytes]:
        """Yield the file's bytes in chunks of at most ``chunk_size``."""
        if self.content is not None:
            for start in range(0, len(self.content), chunk_size):
                yield self.content[start:start + chunk_size]
            return
        if self.path is None:
            raise ValueError(f"File {self.name} has neither content nor path")
        with open(self.path, "rb") as f:
            while True:
                chunk = f.read(chunk_size)
                if not chunk:
                    break
                yield chunk


@dataclass
class PendingUpload:
    """A file on its way through one upload call."""

    file: LocalFile
    category: Optional[str] = None
    validated: bool = False


@dataclass(frozen=True)
class UploadedFileMetadata:
    """Metadata of a file that reached storage."""

    key: str
    original_name: str
    mimetype: str
    size: int
    url: str

    def to_file_data(self) -> Dict[str, Any]:
        """The ``fileData`` block of an outbound chat message."""
        return {
            "key": self.key,
            "originalName": self.original_name,
            "mimetype": self.mimetype,
            "size": self.size,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.to_file_data()
        data["url"] = self.url
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UploadedFileMetadata":
        return cls(
            key=data["key"],
            original_name=data.get("originalName", ""),
            mimetype=data.get("mimetype", DEFAULT_MIME_TYPE),
            size=int(data.get("size", 0)),
            url=data.get("url", ""),
        )


@dataclass(frozen=True)
class SavedFile:
    """A downloaded file written to local disk."""

    path: Path
    content_type: str
    size: int
