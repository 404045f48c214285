"""
Tests for AnalysisClient: size ceiling, request shape, error mapping.

The google-genai client is replaced by a MagicMock whose
aio.models.generate_content is an AsyncMock, so no network is touched.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from google.genai import errors as genai_errors

from app.core.errors.pipeline import (
    ExternalServiceError,
    NoContentError,
    PayloadTooLargeError,
)
from app.services.analysis_client import (
    MAX_VIDEO_BYTES,
    AnalysisClient,
    mime_type_for_path,
)


def _response(text="{}"):
    part = SimpleNamespace(text=text)
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=[part]))])


@pytest.fixture
def genai_client():
    fake = MagicMock()
    fake.aio.models.generate_content = AsyncMock(return_value=_response('{"outcome": "success"}'))
    return fake


@pytest.fixture
def client(genai_client):
    return AnalysisClient(api_key="test-key", model="gemini-2.0-flash-lite", client=genai_client)


class TestSizeCeiling:
    @pytest.mark.asyncio
    async def test_21mb_rejected_without_call(self, client, genai_client):
        payload = b"\x00" * (21 * 1024 * 1024)
        with pytest.raises(PayloadTooLargeError) as exc_info:
            await client.analyze(payload, "video/webm", "prompt")
        assert "Video too large (21.0MB). Max: 20MB" in str(exc_info.value)
        genai_client.aio.models.generate_content.assert_not_called()

    @pytest.mark.asyncio
    async def test_exactly_at_ceiling_is_sent(self, client, genai_client):
        await client.analyze(b"\x00" * MAX_VIDEO_BYTES, "video/mp4", "prompt")
        genai_client.aio.models.generate_content.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_rejected_before_credentials_are_needed(self):
        no_key = AnalysisClient(api_key=None)
        with pytest.raises(PayloadTooLargeError):
            await no_key.analyze(b"\x00" * (MAX_VIDEO_BYTES + 1), "video/mp4", "prompt")


class TestRequest:
    @pytest.mark.asyncio
    async def test_returns_text(self, client):
        assert await client.analyze(b"video", "video/webm", "Describe") == '{"outcome": "success"}'

    @pytest.mark.asyncio
    async def test_request_shape(self, client, genai_client):
        await client.analyze(b"video-bytes", "video/webm", "Describe the session")

        kwargs = genai_client.aio.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "gemini-2.0-flash-lite"
        content = kwargs["contents"][0]
        assert content.role == "user"
        assert content.parts[0].text == "Describe the session"
        assert content.parts[1].inline_data.mime_type == "video/webm"
        assert content.parts[1].inline_data.data == b"video-bytes"
        config = kwargs["config"]
        assert config.temperature == 0.4
        assert config.top_p == 0.95
        assert config.top_k == 40
        assert config.max_output_tokens == 8192

    @pytest.mark.asyncio
    async def test_analyze_file_infers_mime(self, client, genai_client, tmp_path):
        path = tmp_path / "recording.mov"
        path.write_bytes(b"mov-bytes")
        await client.analyze_file(str(path), "prompt")
        content = genai_client.aio.models.generate_content.call_args.kwargs["contents"][0]
        assert content.parts[1].inline_data.mime_type == "video/quicktime"


class TestErrors:
    @pytest.mark.asyncio
    async def test_api_error_carries_status_and_body(self, client, genai_client):
        genai_client.aio.models.generate_content.side_effect = genai_errors.APIError(
            503, {"error": {"code": 503, "message": "overloaded", "status": "UNAVAILABLE"}}
        )
        with pytest.raises(ExternalServiceError) as exc_info:
            await client.analyze(b"v", "video/mp4", "p")
        assert exc_info.value.status_code == 503
        assert "overloaded" in exc_info.value.body

    @pytest.mark.asyncio
    async def test_transport_error(self, client, genai_client):
        genai_client.aio.models.generate_content.side_effect = ConnectionError("reset by peer")
        with pytest.raises(ExternalServiceError) as exc_info:
            await client.analyze(b"v", "video/mp4", "p")
        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_no_candidates_is_no_content(self, client, genai_client):
        genai_client.aio.models.generate_content.return_value = SimpleNamespace(candidates=[])
        with pytest.raises(NoContentError):
            await client.analyze(b"v", "video/mp4", "p")

    @pytest.mark.asyncio
    async def test_empty_text_is_no_content(self, client, genai_client):
        genai_client.aio.models.generate_content.return_value = _response(text="")
        with pytest.raises(NoContentError):
            await client.analyze(b"v", "video/mp4", "p")

    @pytest.mark.asyncio
    async def test_malformed_envelope(self, client, genai_client):
        genai_client.aio.models.generate_content.return_value = SimpleNamespace()
        with pytest.raises(ExternalServiceError):
            await client.analyze(b"v", "video/mp4", "p")

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        with pytest.raises(ExternalServiceError, match="API key"):
            await AnalysisClient(api_key=None).analyze(b"v", "video/mp4", "p")


class TestMimeTypes:
    @pytest.mark.parametrize(
        "path,expected",
        [
            ("a.mp4", "video/mp4"),
            ("a.MOV", "video/quicktime"),
            ("a.avi", "video/x-msvideo"),
            ("a.webm", "video/webm"),
            ("a.mkv", "video/x-matroska"),
            ("recording", "video/mp4"),
        ],
    )
    def test_mime_type_for_path(self, path, expected):
        assert mime_type_for_path(path) == expected
