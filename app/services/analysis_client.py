"""
Video Analysis Client
=====================

Sends one recording plus a text prompt to Gemini and returns the model's
raw text reply. Uses the google-genai SDK (v1.0+), API-key or Vertex AI.

The request is a single user turn with two parts: the prompt text and the
video bytes as inline data tagged with their MIME type. Inline data is
capped at 20 MiB; larger payloads are rejected before any request is made.
"""

import logging
from pathlib import Path
from typing import Any, Optional

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from app.config import Settings
from app.core.async_utils import run_sync
from app.core.errors.pipeline import (
    ExternalServiceError,
    NoContentError,
    PayloadTooLargeError,
    TransientIOError,
)

logger = logging.getLogger(__name__)

MAX_VIDEO_BYTES = 20 * 1024 * 1024

DEFAULT_MODEL = "gemini-2.0-flash-lite"
TEMPERATURE = 0.4
TOP_P = 0.95
TOP_K = 40
MAX_OUTPUT_TOKENS = 8192

_MIME_TYPES = {
    ".mp4": "video/mp4",
    ".mov": "video/quicktime",
    ".avi": "video/x-msvideo",
    ".webm": "video/webm",
    ".mkv": "video/x-matroska",
}


def mime_type_for_path(path: str) -> str:
    """Video MIME type from the file extension, defaulting to video/mp4."""
    return _MIME_TYPES.get(Path(path).suffix.lower(), "video/mp4")


class AnalysisClient:
    """
    Gemini video analysis.

    The SDK client is created on first use so the service can start (and
    serve the dashboard) without credentials; jobs then fail with an
    ExternalServiceError until a key is configured.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        use_vertex: bool = False,
        client: Any = None,
    ) -> None:
        self.api_key = api_key
        self.model_name = model
        self.use_vertex = use_vertex
        self._client = client

    @classmethod
    def from_settings(cls, config: Settings) -> "AnalysisClient":
        return cls(
            api_key=config.gemini_api_key,
            model=config.analysis_model,
            use_vertex=config.google_genai_use_vertex,
        )

    def _get_client(self):
        if self._client is None:
            if self.use_vertex:
                logger.info("AnalysisClient: initializing with Vertex AI")
                self._client = genai.Client(vertexai=True)
            elif self.api_key:
                self._client = genai.Client(api_key=self.api_key)
            else:
                raise ExternalServiceError(
                    "Gemini API key not configured. Set ORTRACE_GEMINI_API_KEY or enable Vertex AI."
                )
        return self._client

    async def analyze_file(self, path: str, prompt: str) -> str:
        """Read a local video file and analyse it."""
        try:
            data = await run_sync(Path(path).read_bytes)
        except OSError as e:
            raise TransientIOError(f"Failed to read video file {path}: {e}", source="local", original_error=e)
        return await self.analyze(data, mime_type_for_path(path), prompt)

    async def analyze(self, data: bytes, mime_type: str, prompt: str) -> str:
        """Return the model's text for ``prompt`` over the video ``data``."""
        if len(data) > MAX_VIDEO_BYTES:
            raise PayloadTooLargeError(len(data), MAX_VIDEO_BYTES)

        client = self._get_client()
        contents = [
            types.Content(
                role="user",
                parts=[
                    types.Part.from_text(text=prompt),
                    types.Part.from_bytes(data=data, mime_type=mime_type),
                ],
            )
        ]
        config = types.GenerateContentConfig(
            temperature=TEMPERATURE,
            top_p=TOP_P,
            top_k=TOP_K,
            max_output_tokens=MAX_OUTPUT_TOKENS,
        )

        logger.info(
            "gemini_request",
            extra={"model": self.model_name, "mime_type": mime_type, "size_bytes": len(data)},
        )
        try:
            response = await client.aio.models.generate_content(
                model=self.model_name,
                contents=contents,
                config=config,
            )
        except genai_errors.APIError as e:
            raise ExternalServiceError(
                f"API error: {e.message or e}",
                status_code=e.code,
                body=str(e.details) if e.details is not None else None,
                original_error=e,
            )
        except Exception as e:
            raise ExternalServiceError(f"Request failed: {e}", original_error=e)

        return self._extract_text(response)

    @staticmethod
    def _extract_text(response: Any) -> str:
        candidates = getattr(response, "candidates", None)
        if candidates is None and not hasattr(response, "candidates"):
            raise ExternalServiceError("Malformed response envelope: no candidates field")
        if not candidates:
            raise NoContentError("No response text: no candidates returned", source="gemini")

        content = getattr(candidates[0], "content", None)
        parts = getattr(content, "parts", None) or []
        for part in parts:
            text = getattr(part, "text", None)
            if text:
                return text
        raise NoContentError("No response text", source="gemini")
