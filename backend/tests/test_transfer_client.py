"""
Tests for the transfer client: presigned uploads and downloads.

HTTP traffic goes through httpx.MockTransport, so no servers are needed.
"""

import json
import sys
from pathlib import Path

import httpx
import pytest

backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

from chatfiles.http_client import UnifiedHTTPClient
from chatfiles.managers.config.config_models import AppSettings
from chatfiles.models.transfer_models import LocalFile, TransferErrorReason, UploadedFileMetadata
from chatfiles.modules.file_storage.transfer_client import TransferClient, _ProgressReporter

API = "http://api.test"
STORAGE = "http://storage.test/bucket"


def make_settings(tmp_path=None, **overrides):
    values = {
        "api_base_url": API,
        "storage_base_url": STORAGE,
        "upload_chunk_size": 4,
        "download_dir": str(tmp_path / "downloads") if tmp_path else "downloads",
    }
    values.update(overrides)
    return AppSettings(**values)


def make_client(handler, tmp_path=None, header_provider=None, **overrides):
    settings = make_settings(tmp_path, **overrides)
    http = UnifiedHTTPClient(
        base_url=settings.api_base_url, timeout=5, transport=httpx.MockTransport(handler)
    )
    return TransferClient(settings, http_client=http, header_provider=header_provider)


def png_file(content=b"0123456789", name="cat.png"):
    return LocalFile.from_bytes(name, content, mime_type="image/png")


class StorageBackend:
    """Fake backend + storage recording every request."""

    def __init__(self, negotiate=None, put_status=200):
        self.requests = []
        self.negotiate = negotiate
        self.put_status = put_status

    def __call__(self, request):
        self.requests.append(request)
        if request.method == "POST":
            body = json.loads(request.content)
            if self.negotiate is not None:
                return self.negotiate(request, body)
            return httpx.Response(
                200,
                json={
                    "success": True,
                    "presignedUrl": f"{STORAGE}/{body['fileKey']}?X-Amz-Signature=abc",
                },
            )
        if request.method == "PUT":
            return httpx.Response(self.put_status)
        return httpx.Response(405)

    @property
    def puts(self):
        return [r for r in self.requests if r.method == "PUT"]


class TestUpload:

    @pytest.mark.asyncio
    async def test_successful_upload(self):
        backend = StorageBackend()
        client = make_client(backend)
        progress = []

        result = await client.upload(png_file(), on_progress=progress.append)

        assert result.succeeded
        meta = result.data
        assert isinstance(meta, UploadedFileMetadata)
        assert meta.key.endswith("_cat.png")
        assert meta.original_name == "cat.png"
        assert meta.mimetype == "image/png"
        assert meta.size == 10
        assert meta.url == f"{STORAGE}/{meta.key}"

        negotiation = json.loads(backend.requests[0].content)
        assert negotiation == {
            "fileKey": meta.key,
            "fileName": "cat.png",
            "fileSize": 10,
            "mimeType": "image/png",
        }
        assert str(backend.requests[0].url) == f"{API}/api/files/upload"

        put = backend.puts[0]
        assert put.content == b"0123456789"
        assert put.headers["content-type"] == "image/png"
        assert progress == [40, 80, 100]

    @pytest.mark.asyncio
    async def test_keys_are_unique_per_upload(self):
        client = make_client(StorageBackend())
        first = await client.upload(png_file())
        second = await client.upload(png_file())
        assert first.data.key != second.data.key

    @pytest.mark.asyncio
    async def test_progress_is_non_decreasing(self):
        client = make_client(StorageBackend(), upload_chunk_size=3)
        progress = []
        await client.upload(png_file(b"x" * 101), on_progress=progress.append)
        assert progress
        assert progress == sorted(progress)
        assert all(0 <= p <= 100 for p in progress)

    @pytest.mark.asyncio
    async def test_upload_from_path(self, tmp_path):
        path = tmp_path / "report.pdf"
        path.write_bytes(b"%PDF-1.4 test")
        backend = StorageBackend()
        client = make_client(backend)

        result = await client.upload(LocalFile.from_path(path))

        assert result.succeeded
        assert result.data.mimetype == "application/pdf"
        assert backend.puts[0].content == b"%PDF-1.4 test"

    @pytest.mark.asyncio
    async def test_unreadable_source_file(self, tmp_path):
        path = tmp_path / "report.pdf"
        path.write_bytes(b"%PDF-1.4 test")
        file = LocalFile.from_path(path)
        path.unlink()
        progress = []
        backend = StorageBackend()
        client = make_client(backend)

        result = await client.upload(file, on_progress=progress.append)

        assert result.reason == TransferErrorReason.UNKNOWN
        assert "report.pdf" in result.message
        assert progress == []

    @pytest.mark.asyncio
    async def test_validation_failure_makes_no_requests(self):
        backend = StorageBackend()
        client = make_client(backend)

        result = await client.upload(LocalFile.from_bytes("notes.txt", b"hi", mime_type="text/plain"))

        assert result.reason == TransferErrorReason.UNSUPPORTED_TYPE
        assert backend.requests == []

    @pytest.mark.asyncio
    async def test_no_file_selected(self):
        result = await make_client(StorageBackend()).upload(None)
        assert result.reason == TransferErrorReason.NO_FILE_SELECTED

    @pytest.mark.asyncio
    async def test_negotiation_rejection_passes_message_through(self):
        backend = StorageBackend(
            negotiate=lambda request, body: httpx.Response(
                200, json={"success": False, "message": "quota exceeded"}
            )
        )
        client = make_client(backend)

        result = await client.upload(png_file())

        assert result.reason == TransferErrorReason.SERVER_ERROR
        assert result.message == "quota exceeded"
        assert backend.puts == []

    @pytest.mark.asyncio
    async def test_negotiation_rejection_without_message(self):
        backend = StorageBackend(
            negotiate=lambda request, body: httpx.Response(200, json={"success": False})
        )
        result = await make_client(backend).upload(png_file())
        assert result.reason == TransferErrorReason.SERVER_ERROR
        assert result.message == "업로드 URL 생성 실패"

    @pytest.mark.asyncio
    async def test_negotiation_http_error_is_classified(self):
        backend = StorageBackend(
            negotiate=lambda request, body: httpx.Response(401, json={"message": "no session"})
        )
        result = await make_client(backend).upload(png_file())
        assert result.reason == TransferErrorReason.UNAUTHORIZED
        assert result.message == "인증이 필요합니다."

    @pytest.mark.asyncio
    async def test_storage_rejection_is_classified(self):
        backend = StorageBackend(put_status=413)
        result = await make_client(backend).upload(png_file())
        assert result.reason == TransferErrorReason.PAYLOAD_TOO_LARGE

    @pytest.mark.asyncio
    async def test_storage_timeout(self):
        def handler(request):
            if request.method == "POST":
                return httpx.Response(200, json={"success": True, "presignedUrl": f"{STORAGE}/k"})
            raise httpx.WriteTimeout("write timed out", request=request)

        result = await make_client(handler).upload(png_file())
        assert result.reason == TransferErrorReason.REQUEST_TIMEOUT
        assert result.message == "파일 업로드 시간이 초과되었습니다."

    @pytest.mark.asyncio
    async def test_network_failure_during_negotiation(self):
        def handler(request):
            raise httpx.ConnectError("Connection refused", request=request)

        result = await make_client(handler).upload(png_file())
        assert result.reason == TransferErrorReason.UNKNOWN
        assert "Connection refused" in result.message

    @pytest.mark.asyncio
    async def test_header_provider_applies_to_negotiation(self):
        backend = StorageBackend()
        client = make_client(backend, header_provider=lambda: {"x-auth-token": "tok"})
        await client.upload(png_file())
        assert backend.requests[0].headers["x-auth-token"] == "tok"
        assert "x-auth-token" not in backend.puts[0].headers


class TestProgressReporter:

    def test_ignores_calls_after_settling(self):
        calls = []
        reporter = _ProgressReporter(calls.append)
        reporter(5, 10)
        reporter.settled = True
        reporter(10, 10)
        assert calls == [50]

    def test_drops_decreasing_values(self):
        calls = []
        reporter = _ProgressReporter(calls.append)
        reporter(8, 10)
        reporter(3, 10)
        reporter(9, 10)
        assert calls == [80, 90]

    def test_rounds_half_up(self):
        calls = []
        reporter = _ProgressReporter(calls.append)
        reporter(1, 200)
        assert calls == [1]

    def test_without_callback(self):
        _ProgressReporter(None)(1, 2)


class TestDownload:

    @pytest.mark.asyncio
    async def test_download_saves_file(self, tmp_path):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, content=b"%PDF", headers={"Content-Type": "application/pdf"})

        client = make_client(handler, tmp_path=tmp_path)
        result = await client.download("abc_report.pdf", "보고서.pdf")

        assert result.succeeded
        saved = result.data
        assert saved.path == tmp_path / "downloads" / "보고서.pdf"
        assert saved.path.read_bytes() == b"%PDF"
        assert saved.content_type == "application/pdf"
        assert saved.size == 4

        request = seen[0]
        assert request.url.path == "/bucket/abc_report.pdf"
        assert int(request.url.params["t"]) > 0
        assert "authorization" not in request.headers
        # The temporary handle was released
        assert [p.name for p in saved.path.parent.iterdir()] == ["보고서.pdf"]

    @pytest.mark.asyncio
    async def test_download_to_explicit_directory(self, tmp_path):
        client = make_client(lambda request: httpx.Response(200, content=b"data"))
        target = tmp_path / "elsewhere"

        result = await client.download("k", "../evil.bin", destination_dir=target)

        assert result.succeeded
        assert result.data.path == target / "evil.bin"
        assert result.data.content_type == "application/octet-stream"

    @pytest.mark.asyncio
    async def test_failed_save_releases_temporary_file(self, tmp_path):
        client = make_client(lambda request: httpx.Response(200, content=b"data"))
        target = tmp_path / "elsewhere"
        (target / "taken").mkdir(parents=True)

        result = await client.download("k", "taken", destination_dir=target)

        assert not result.succeeded
        assert result.reason == TransferErrorReason.UNKNOWN
        assert [p.name for p in target.iterdir()] == ["taken"]
        assert list((target / "taken").iterdir()) == []

    @pytest.mark.asyncio
    async def test_not_found_ignores_body(self, tmp_path):
        client = make_client(
            lambda request: httpx.Response(404, json={"message": "NoSuchKey"}), tmp_path=tmp_path
        )
        result = await client.download("missing", "x.png")
        assert result.reason == TransferErrorReason.NOT_FOUND
        assert result.message == "파일을 찾을 수 없습니다."
        assert not (tmp_path / "downloads" / "x.png").exists()

    @pytest.mark.asyncio
    async def test_forbidden(self, tmp_path):
        client = make_client(lambda request: httpx.Response(403, text="AccessDenied"), tmp_path=tmp_path)
        result = await client.download("secret", "x.png")
        assert result.reason == TransferErrorReason.FORBIDDEN
        assert result.message == "파일에 접근할 권한이 없습니다."

    @pytest.mark.asyncio
    async def test_download_timeout(self, tmp_path):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        result = await make_client(handler, tmp_path=tmp_path).download("k", "x.png")
        assert result.reason == TransferErrorReason.REQUEST_TIMEOUT
        assert result.message == "파일 다운로드 시간이 초과되었습니다."

    @pytest.mark.asyncio
    async def test_unmapped_status_uses_download_fallback(self, tmp_path):
        client = make_client(lambda request: httpx.Response(503), tmp_path=tmp_path)
        result = await client.download("k", "x.png")
        assert result.reason == TransferErrorReason.UNKNOWN
        assert result.message == "파일 다운로드에 실패했습니다."


class TestUrls:

    def test_file_url_and_preview(self):
        client = make_client(StorageBackend())
        assert client.get_file_url("abc_cat.png") == f"{STORAGE}/abc_cat.png"
        assert client.get_file_url("abc_my cat.png") == f"{STORAGE}/abc_my%20cat.png"
        assert client.get_preview_url({"key": "k1"}) == f"{STORAGE}/k1"
        assert client.get_preview_url({}) == ""
        assert client.get_preview_url(None) == ""

    def test_format_size(self):
        client = make_client(StorageBackend())
        assert client.format_size(0) == "0 B"
        assert client.format_size(1536) == "1.50 KB"
