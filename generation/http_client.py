"""
HTTP client for the third-party image model.

Request:
    POST {GENERATION_API_URL}
    Authorization: Bearer {GENERATION_API_KEY}
    {"model": ..., "prompt": ..., "style": "REALISTIC", "width": 1024, "height": 1024}

Accepted responses:
    200 with an image/* body                      → raw bytes
    200 with JSON {"b64_json": "...", "content_type": "image/png"}

Failure classification (the part that matters):
    timeout / connection error / 408 / 429 / 5xx → TransientError
    any other 4xx                                → PermanentError (provider's message)
    2xx without a decodable image                → PermanentError

httpx timeouts apply per network operation, so a provider trickling its
body would never trip them. The response is streamed and the whole call
is held to one deadline; passing it is a TransientError.

One httpx.Client is kept for the life of the worker process so the
connection pool is shared across worker threads (httpx.Client is
thread-safe).
"""

import base64
import binascii
import json
import logging
import time

import httpx

from generation.base import AbstractGenerationClient, GeneratedAsset
from models.enums import GenerationStyle, ImageFormat
from models.errors import PermanentError, TransientError

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {408, 429}


def _provider_message(status: int, content: bytes) -> tuple[str, str | None]:
    """Best-effort extraction of the provider's error message and code."""
    fallback = httpx.codes.get_reason_phrase(status) or "Provider error"
    try:
        body = json.loads(content)
    except ValueError:
        return (content.decode("utf-8", errors="replace") or fallback)[:500], None

    if not isinstance(body, dict):
        return fallback, None
    error = body.get("error")
    if isinstance(error, str) and error:
        return error[:500], None
    if not isinstance(error, dict):
        error = body

    message = error.get("message") or error.get("detail") or fallback
    code = error.get("code")
    return str(message)[:500], str(code) if code is not None else None


class HttpGenerationClient(AbstractGenerationClient):

    def __init__(
        self,
        api_url: str,
        api_key: str = "",
        model: str = "product-photo-v1",
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        headers = {"Accept": "image/*, application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._api_url = api_url
        self._model = model
        self._timeout = timeout
        self._client = httpx.Client(
            headers=headers,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    def invoke(self, prompt: str, style: GenerationStyle, format: ImageFormat) -> GeneratedAsset:
        style, format = GenerationStyle(style), ImageFormat(format)
        width, height = format.dimensions
        body = {
            "model": self._model,
            "prompt": prompt,
            "style": style.value,
            "width": width,
            "height": height,
        }

        deadline = time.monotonic() + self._timeout
        try:
            with self._client.stream("POST", self._api_url, json=body) as response:
                status = response.status_code
                if status in RETRYABLE_STATUS or status >= 500:
                    raise TransientError(f"Provider returned {status}")
                content_type = response.headers.get("content-type", "")
                content = self._read_before(response, deadline)
        except httpx.TimeoutException as exc:
            raise TransientError(f"Provider timed out: {exc}") from exc
        except httpx.TransportError as exc:
            raise TransientError(f"Provider unreachable: {exc}") from exc

        if status >= 400:
            message, provider_code = _provider_message(status, content)
            logger.info(f"Provider rejected request ({status}): {message}")
            raise PermanentError(message, provider_code=provider_code)

        return self._parse_asset(content_type, content)

    def _read_before(self, response: httpx.Response, deadline: float) -> bytes:
        content = bytearray()
        for chunk in response.iter_bytes():
            content.extend(chunk)
            if time.monotonic() > deadline:
                raise TransientError(f"Provider call exceeded {self._timeout}s")
        return bytes(content)

    def _parse_asset(self, content_type: str, content: bytes) -> GeneratedAsset:
        content_type = content_type.split(";")[0].strip()
        if content_type.startswith("image/"):
            if not content:
                raise PermanentError("Provider returned an empty image")
            return GeneratedAsset(data=content, content_type=content_type)

        try:
            payload = json.loads(content)
            data = base64.b64decode(payload["b64_json"], validate=True)
        except (ValueError, KeyError, TypeError, binascii.Error) as exc:
            raise PermanentError("Provider response did not include an image payload") from exc

        return GeneratedAsset(data=data, content_type=payload.get("content_type", "image/png"))

    @property
    def backend(self) -> str:
        return "http"

    def close(self) -> None:
        self._client.close()
