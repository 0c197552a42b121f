"""Maps transfer failures to user-facing errors."""

import logging
from typing import Dict, Optional

from chatfiles.http_client import HTTPStatusError, HTTPTimeoutError
from chatfiles.models.transfer_models import TransferError, TransferErrorReason

logger = logging.getLogger(__name__)

UPLOAD = "upload"
DOWNLOAD = "download"

BAD_REQUEST_MESSAGE = "잘못된 요청입니다."
UNKNOWN_ERROR_MESSAGE = "알 수 없는 오류가 발생했습니다."

TIMEOUT_MESSAGES = {
    UPLOAD: "파일 업로드 시간이 초과되었습니다.",
    DOWNLOAD: "파일 다운로드 시간이 초과되었습니다.",
}

FALLBACK_MESSAGES = {
    UPLOAD: "파일 업로드에 실패했습니다.",
    DOWNLOAD: "파일 다운로드에 실패했습니다.",
}

# Status codes with a fixed reason and message; the server body is ignored.
STATUS_TABLE: Dict[int, TransferError] = {
    401: TransferError(TransferErrorReason.UNAUTHORIZED, "인증이 필요합니다."),
    403: TransferError(TransferErrorReason.FORBIDDEN, "파일에 접근할 권한이 없습니다."),
    404: TransferError(TransferErrorReason.NOT_FOUND, "파일을 찾을 수 없습니다."),
    413: TransferError(TransferErrorReason.PAYLOAD_TOO_LARGE, "파일이 너무 큽니다."),
    415: TransferError(TransferErrorReason.UNSUPPORTED_MEDIA_TYPE, "지원하지 않는 파일 형식입니다."),
    500: TransferError(TransferErrorReason.SERVER_ERROR, "서버 오류가 발생했습니다."),
}


class ErrorClassifier:
    """Deterministic mapping from HTTP/transport errors to TransferError."""

    def classify(self, error: BaseException, context: str = UPLOAD) -> TransferError:
        if context not in FALLBACK_MESSAGES:
            raise ValueError(f"Unknown transfer context: {context}")

        if isinstance(error, HTTPTimeoutError):
            return TransferError(TransferErrorReason.REQUEST_TIMEOUT, TIMEOUT_MESSAGES[context])

        if isinstance(error, HTTPStatusError):
            return self.classify_status(error.status_code, error.server_message, context)

        # No structured response: plain network failure
        text = str(error)
        return TransferError(TransferErrorReason.UNKNOWN, text or UNKNOWN_ERROR_MESSAGE)

    def classify_status(
        self, status_code: int, server_message: Optional[str], context: str = UPLOAD
    ) -> TransferError:
        if status_code == 400:
            return TransferError(TransferErrorReason.UNKNOWN, server_message or BAD_REQUEST_MESSAGE)

        known = STATUS_TABLE.get(status_code)
        if known is not None:
            return known

        logger.debug(f"Unmapped {context} status {status_code}, using fallback message")
        return TransferError(
            TransferErrorReason.UNKNOWN, server_message or FALLBACK_MESSAGES[context]
        )
