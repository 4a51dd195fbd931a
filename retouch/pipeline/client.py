"""
Gemini Client

Thin async wrapper over the google-genai SDK. Every external model call made
by the pipeline goes through ``GeminiClient.generate``, which enforces the
caller's timeout budget.
"""

import asyncio
import base64
import io
import logging
import time
from typing import Any

from PIL import Image, UnidentifiedImageError

from ..config import Settings, get_settings
from ..metrics import record_model_call

logger = logging.getLogger(__name__)


class ModelCallError(RuntimeError):
    """Raised when Gemini cannot be called at all (missing key or SDK)."""


def sniff_mime_type(data: bytes, default: str = "image/jpeg") -> str:
    """Detect an image's MIME type with Pillow, falling back to ``default``."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            mime = Image.MIME.get(img.format or "")
    except (UnidentifiedImageError, OSError, ValueError):
        return default
    return mime or default


def image_part(data: bytes, mime_type: str | None = None) -> Any:
    """Build an inline image part for a request."""
    from google.genai import types

    return types.Part.from_bytes(data=data, mime_type=mime_type or sniff_mime_type(data))


def _iter_parts(response: Any):
    for candidate in getattr(response, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            yield part


def extract_image(response: Any) -> bytes | None:
    """Return the first inline image payload in a response, if any."""
    for part in _iter_parts(response):
        inline_data = getattr(part, "inline_data", None)
        data = getattr(inline_data, "data", None) if inline_data is not None else None
        if not data:
            continue
        if isinstance(data, str):
            return base64.b64decode(data)
        return bytes(data)
    return None


def extract_text(response: Any) -> str:
    """Concatenate the text parts of a response."""
    texts = [part.text for part in _iter_parts(response) if getattr(part, "text", None)]
    if texts:
        return "\n".join(texts)
    return getattr(response, "text", None) or ""


class GeminiClient:
    """
    Async Gemini client.

    The SDK client is created lazily on first use so that constructing
    pipeline stages never requires credentials.
    """

    def __init__(self, api_key: str | None = None, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.api_key = api_key or self.settings.google_ai_api_key
        self._client = None

    def _get_client(self):
        if self._client is not None:
            return self._client
        if not self.api_key:
            raise ModelCallError("Missing GOOGLE_AI_API_KEY environment variable")
        try:
            from google import genai
        except ImportError as e:
            raise ModelCallError("google-genai package not installed") from e

        self._client = genai.Client(api_key=self.api_key)
        logger.info("Gemini client initialized")
        return self._client

    async def generate(
        self,
        model: str,
        contents: list,
        *,
        stage: str,
        timeout: float,
        temperature: float = 0.3,
        top_p: float = 0.8,
        top_k: int | None = None,
        response_modalities: list[str] | None = None,
    ) -> Any:
        """
        Run one ``generate_content`` call under a timeout.

        Args:
            model: Gemini model name
            contents: Request parts (images and text)
            stage: Pipeline stage label for metrics (analyze, edit, validate, critique)
            timeout: Seconds before the call is abandoned

        Returns:
            The SDK response object

        Raises:
            asyncio.TimeoutError: If the call exceeds ``timeout``
            ModelCallError: If the client cannot be created
        """
        from google.genai import types

        client = self._get_client()
        config = types.GenerateContentConfig(
            temperature=temperature,
            top_p=top_p,
            top_k=top_k,
            response_modalities=response_modalities,
        )

        start = time.monotonic()
        outcome = "error"
        try:
            response = await asyncio.wait_for(
                client.aio.models.generate_content(model=model, contents=contents, config=config),
                timeout=timeout,
            )
            outcome = "ok"
            return response
        except asyncio.TimeoutError:
            outcome = "timeout"
            raise
        finally:
            record_model_call(stage, outcome, time.monotonic() - start)


# Singleton
_gemini_client: GeminiClient | None = None


def get_gemini_client() -> GeminiClient:
    """Get or create Gemini client singleton."""
    global _gemini_client
    if _gemini_client is None:
        _gemini_client = GeminiClient()
    return _gemini_client
