"""
Transfer client for chat attachments.

This module uploads files straight to object storage through presigned URLs
issued by the chat backend, and downloads stored files to local disk. Every
failure is returned as a TransferResult; nothing raises past the public
methods.
"""

import logging
import os
import re
import tempfile
import time
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Union
from urllib.parse import quote

from chatfiles.file_config import FilePolicy, FileValidator, format_file_size
from chatfiles.http_client import HTTPClientError, HTTPStatusError, UnifiedHTTPClient
from chatfiles.managers.config.config_models import AppSettings
from chatfiles.models.transfer_models import (
    DEFAULT_MIME_TYPE,
    LocalFile,
    PendingUpload,
    SavedFile,
    TransferError,
    TransferErrorReason,
    TransferResult,
    UploadedFileMetadata,
)
from chatfiles.modules.file_storage.error_classifier import (
    DOWNLOAD,
    UPLOAD,
    ErrorClassifier,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]
HeaderProvider = Callable[[], Dict[str, str]]

NEGOTIATION_FAILED_MESSAGE = "업로드 URL 생성 실패"


def _percent(loaded: int, total: int) -> int:
    """Integer percentage, rounding halves up."""
    return int(loaded * 100 / total + 0.5)


class _ProgressReporter:
    """Forwards non-decreasing percentages until the owning call settles."""

    def __init__(self, callback: Optional[ProgressCallback]):
        self._callback = callback
        self._last = -1
        self.settled = False

    def __call__(self, loaded: int, total: int) -> None:
        if self._callback is None or self.settled or total <= 0:
            return
        percent = max(0, min(100, _percent(loaded, total)))
        if percent < self._last:
            return
        self._last = percent
        try:
            self._callback(percent)
        except Exception as e:
            logger.warning(f"Upload progress callback failed: {e}")


class TransferClient:
    """Client for presigned uploads and downloads of chat attachments."""

    def __init__(
        self,
        settings: AppSettings,
        policies: Optional[Sequence[FilePolicy]] = None,
        http_client: Optional[UnifiedHTTPClient] = None,
        header_provider: Optional[HeaderProvider] = None,
        classifier: Optional[ErrorClassifier] = None,
    ):
        """Initialize the transfer client with explicit configuration."""
        self.settings = settings
        self.validator = FileValidator(policies)
        self.http = http_client or UnifiedHTTPClient(
            base_url=settings.api_base_url, timeout=settings.upload_timeout
        )
        self.storage_base_url = settings.storage_base_url.rstrip('/')
        self._header_provider = header_provider
        self._classifier = classifier or ErrorClassifier()

        logger.info(f"TransferClient initialized with storage endpoint: {self.storage_base_url}")

    def _sanitize_log_value(self, s: str, max_length: int = 100) -> str:
        """Strip newlines and truncate a value for safe logging."""
        if not isinstance(s, str):
            s = str(s)

        sanitized = s.replace('\r', '').replace('\n', '')

        if len(sanitized) > max_length:
            half_length = max_length // 2
            sanitized = sanitized[:half_length] + '...' + sanitized[-half_length:]

        return sanitized

    def generate_file_key(self, filename: str) -> str:
        """Create a storage key unique to one upload."""
        safe_filename = re.sub(r"[\\\r\n\t]", "_", filename).replace("/", "_")
        return f"{uuid.uuid4().hex}_{safe_filename}"

    def get_file_url(self, key: str) -> str:
        """Canonical retrieval URL for a storage key."""
        return f"{self.storage_base_url}/{quote(key, safe='/@+')}"

    def get_preview_url(
        self, file: Optional[Union[UploadedFileMetadata, Mapping[str, Any]]]
    ) -> str:
        """Preview URL for an attachment, or an empty string without a key."""
        if file is None:
            return ""
        key = file.key if isinstance(file, UploadedFileMetadata) else file.get("key")
        if not key:
            return ""
        return self.get_file_url(key)

    def format_size(self, size_bytes: int) -> str:
        return format_file_size(size_bytes)

    def validate(self, file: Optional[LocalFile]) -> TransferResult[FilePolicy]:
        return self.validator.validate(file)

    def _request_headers(self) -> Dict[str, str]:
        return dict(self._header_provider()) if self._header_provider else {}

    async def _negotiate_upload(self, pending: PendingUpload, key: str) -> Union[str, TransferError]:
        """Ask the backend for a presigned PUT URL."""
        file = pending.file
        payload = {
            "fileKey": key,
            "fileName": file.name,
            "fileSize": file.size,
            "mimeType": file.mime_type,
        }
        response = await self.http.post(
            self.settings.upload_endpoint,
            json_data=payload,
            headers=self._request_headers(),
        )

        if not isinstance(response, dict):
            logger.warning(f"Unexpected upload URL response type: {type(response).__name__}")
            return TransferError(TransferErrorReason.SERVER_ERROR, NEGOTIATION_FAILED_MESSAGE)

        if not response.get("success"):
            message = response.get("message") or NEGOTIATION_FAILED_MESSAGE
            logger.warning(f"Upload URL negotiation rejected for {self._sanitize_log_value(file.name)}: {message}")
            return TransferError(TransferErrorReason.SERVER_ERROR, message)

        presigned_url = response.get("presignedUrl")
        if not presigned_url:
            logger.warning("Upload URL negotiation succeeded without a presigned URL")
            return TransferError(TransferErrorReason.SERVER_ERROR, NEGOTIATION_FAILED_MESSAGE)
        return presigned_url

    async def upload(
        self,
        file: Optional[LocalFile],
        on_progress: Optional[ProgressCallback] = None,
    ) -> TransferResult[UploadedFileMetadata]:
        """
        Validate and upload a file to storage.

        Args:
            file: The picked file
            on_progress: Optional callback receiving integer percentages 0-100

        Returns:
            TransferResult with UploadedFileMetadata on success
        """
        validation = self.validator.validate(file)
        if not validation.succeeded:
            return TransferResult.fail(validation.error)

        pending = PendingUpload(file=file, category=validation.data.category, validated=True)
        key = self.generate_file_key(file.name)
        reporter = _ProgressReporter(on_progress)

        try:
            negotiated = await self._negotiate_upload(pending, key)
            if isinstance(negotiated, TransferError):
                return TransferResult.fail(negotiated)

            await self.http.put_stream(
                negotiated,
                file.iter_chunks(self.settings.upload_chunk_size),
                total_bytes=file.size,
                content_type=file.mime_type,
                on_progress=reporter,
                timeout=self.settings.upload_timeout,
            )
        except HTTPClientError as e:
            error = self._classifier.classify(e, UPLOAD)
            logger.warning(
                f"Upload of {self._sanitize_log_value(file.name)} failed: {error.reason.value} ({error.message})"
            )
            return TransferResult.fail(error)
        except OSError as e:
            logger.error(f"Could not read {self._sanitize_log_value(file.name)} for upload: {e}", exc_info=True)
            return TransferResult.fail(self._classifier.classify(e, UPLOAD))
        finally:
            reporter.settled = True

        metadata = UploadedFileMetadata(
            key=key,
            original_name=file.name,
            mimetype=file.mime_type,
            size=file.size,
            url=self.get_file_url(key),
        )
        logger.info(
            f"File uploaded successfully: {self._sanitize_log_value(key)} "
            f"({pending.category}, {format_file_size(file.size)})"
        )
        return TransferResult.ok(metadata)

    async def download(
        self,
        key: str,
        filename: str,
        destination_dir: Optional[Union[str, Path]] = None,
    ) -> TransferResult[SavedFile]:
        """
        Download a stored file and save it locally as ``filename``.

        Args:
            key: Storage key of the file
            filename: Name to save the file under
            destination_dir: Target directory (defaults to settings.download_dir)

        Returns:
            TransferResult with the SavedFile on success
        """
        url = self.get_file_url(key)
        params = {"t": int(time.time() * 1000)}

        try:
            response = await self.http.get_bytes(
                url, params=params, timeout=self.settings.download_timeout
            )
        except HTTPStatusError as e:
            error = self._classifier.classify_status(e.status_code, e.server_message, DOWNLOAD)
            logger.warning(f"Download of {self._sanitize_log_value(key)} failed: {error.reason.value}")
            return TransferResult.fail(error)
        except HTTPClientError as e:
            error = self._classifier.classify(e, DOWNLOAD)
            logger.warning(f"Download of {self._sanitize_log_value(key)} failed: {error.reason.value}")
            return TransferResult.fail(error)

        content_type = response.content_type or DEFAULT_MIME_TYPE
        target_dir = Path(destination_dir or self.settings.download_dir)

        try:
            saved_path = self._save(response.content, target_dir, filename)
        except OSError as e:
            logger.error(f"Could not save download {self._sanitize_log_value(filename)}: {e}", exc_info=True)
            return TransferResult.fail(self._classifier.classify(e, DOWNLOAD))

        logger.info(f"File downloaded successfully: {self._sanitize_log_value(key)} -> {saved_path}")
        return TransferResult.ok(
            SavedFile(path=saved_path, content_type=content_type, size=len(response.content))
        )

    def _save(self, content: bytes, target_dir: Path, filename: str) -> Path:
        """Write content through a temporary file, then move it into place."""
        target_dir.mkdir(parents=True, exist_ok=True)
        safe_name = Path(filename.replace("\\", "/")).name or "download"
        target = target_dir / safe_name

        fd, tmp_name = tempfile.mkstemp(dir=target_dir, prefix=".download-")
        try:
            with os.fdopen(fd, "wb") as tmp:
                tmp.write(content)
            os.replace(tmp_name, target)
        finally:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
        return target
