"""
Image generation with model and endpoint fallback.

Two backends share the candidate loop from `pipeline.run_candidates`:

- `ImagePipeline` posts prompts straight to inference endpoints. Every model is
  tried against an ordered list of endpoint templates, so a provider moving its
  API does not take the model down with it.
- `ClientImagePipeline` goes through the OpenAI SDK images API, whose results
  may be data URIs, remote URLs, bare base64 or raw bytes.

Either way the result is an `ImageResult`, rendered as a data URI at the edge.
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from functools import singledispatch
from typing import Any, Optional, Sequence, Union

import httpx
import openai
from openai import AsyncOpenAI

from .errors import ContentError, TransportError, UpstreamStatusError
from .fetcher import Fetcher
from .outcomes import CallOutcome, FatalFailure, RateLimited, RecoverableFailure, Success
from .pipeline import parse_retry_after, run_candidates
from .tasks import IMAGE_MODELS

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_MIME = "image/png"
ACCOUNT_STATUSES = {401, 402, 403}
ACCOUNT_MARKERS = ("billing", "paid", "payment")
GONE_STATUSES = {404, 410}
GONE_MARKERS = ("no longer supported", "not found")
MAX_DIAGNOSTIC_CHARS = 300


@dataclass(frozen=True)
class ImageResult:
    mime_type: str
    data: bytes

    def to_data_uri(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"


# --- Payload variants -----------------------------------------------------

@dataclass(frozen=True)
class DataUriPayload:
    uri: str


@dataclass(frozen=True)
class RemoteUrlPayload:
    url: str


@dataclass(frozen=True)
class Base64Payload:
    data: str
    mime_type: str = DEFAULT_IMAGE_MIME


@dataclass(frozen=True)
class BinaryPayload:
    data: bytes
    mime_type: str = DEFAULT_IMAGE_MIME


ImagePayload = Union[DataUriPayload, RemoteUrlPayload, Base64Payload, BinaryPayload]


def classify_payload(raw: Any) -> Optional[ImagePayload]:
    """Tag a raw SDK result; None means the type is not understood."""
    if isinstance(raw, (bytes, bytearray, memoryview)):
        return BinaryPayload(bytes(raw))
    if isinstance(raw, str):
        text = raw.strip()
        if text.startswith("data:"):
            return DataUriPayload(text)
        if text.lower().startswith(("http://", "https://")):
            return RemoteUrlPayload(text)
        return Base64Payload(text)
    return None


def _decode_base64(text: str) -> bytes:
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ContentError(f"invalid base64 image data: {exc}") from exc


def _non_empty(result: ImageResult) -> ImageResult:
    if not result.data:
        raise ContentError("empty image payload")
    return result


@singledispatch
async def materialize(payload: Any, fetcher: Optional[Fetcher] = None) -> ImageResult:
    """Convert a tagged payload into an ImageResult."""
    raise ContentError(f"unexpected result type: {type(payload).__name__}")


@materialize.register
async def _(payload: DataUriPayload, fetcher: Optional[Fetcher] = None) -> ImageResult:
    header, _, encoded = payload.uri.partition(",")
    if not header.endswith(";base64"):
        raise ContentError("data URI is not base64 encoded")
    mime_type = header[len("data:"):-len(";base64")] or DEFAULT_IMAGE_MIME
    return _non_empty(ImageResult(mime_type, _decode_base64(encoded)))


@materialize.register
async def _(payload: RemoteUrlPayload, fetcher: Optional[Fetcher] = None) -> ImageResult:
    if fetcher is None:
        raise ContentError("cannot download a URL result without a fetcher")
    data, content_type = await fetcher.fetch_bytes(payload.url)
    mime_type = content_type.split(";")[0].strip()
    if not mime_type.startswith("image/"):
        mime_type = DEFAULT_IMAGE_MIME
    return _non_empty(ImageResult(mime_type, data))


@materialize.register
async def _(payload: Base64Payload, fetcher: Optional[Fetcher] = None) -> ImageResult:
    return _non_empty(ImageResult(payload.mime_type, _decode_base64(payload.data)))


@materialize.register
async def _(payload: BinaryPayload, fetcher: Optional[Fetcher] = None) -> ImageResult:
    return _non_empty(ImageResult(payload.mime_type, payload.data))


# --- Failure classification -----------------------------------------------

def is_account_failure(status_code: int, text: str) -> bool:
    lowered = text.lower()
    return status_code in ACCOUNT_STATUSES or any(m in lowered for m in ACCOUNT_MARKERS)


def is_endpoint_gone(status_code: int, text: str) -> bool:
    if status_code in GONE_STATUSES:
        return True
    if status_code >= 500 and status_code != 503:
        return True
    lowered = text.lower()
    return any(m in lowered for m in GONE_MARKERS)


def _diagnostic(text: str) -> str:
    return text[:MAX_DIAGNOSTIC_CHARS]


def _estimated_wait(response: httpx.Response, default: float) -> float:
    if "application/json" not in response.headers.get("content-type", ""):
        return default
    try:
        payload = response.json()
    except ValueError:
        return default
    value = payload.get("estimated_time") if isinstance(payload, dict) else None
    return float(value) if isinstance(value, (int, float)) and value > 0 else default


# --- Raw endpoint backend -------------------------------------------------

class ImagePipeline:
    """Text-to-image over raw inference endpoints, model by model."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        *,
        endpoint_templates: Sequence[str],
        default_warmup_wait: float = 20.0,
    ):
        self._client = client
        self._headers = {"Authorization": f"Bearer {api_key}"}
        self._endpoints = list(endpoint_templates)
        self._default_warmup_wait = default_warmup_wait

    async def _post(self, url: str, prompt: str) -> httpx.Response:
        return await self._client.post(url, json={"inputs": prompt}, headers=self._headers)

    async def attempt(self, prompt: str, model: str) -> CallOutcome:
        """Try every endpoint template for ``model`` until one answers for real."""
        response: Optional[httpx.Response] = None
        last_error = "no endpoint configured"
        for template in self._endpoints:
            url = template.format(model=model)
            logger.info("Trying image endpoint %s", url)
            try:
                current = await self._post(url, prompt)
            except httpx.HTTPError as exc:
                last_error = f"request to {url} failed: {exc}"
                logger.warning(last_error)
                continue

            status_code = current.status_code
            logger.info("Image endpoint %s answered %s", url, status_code)
            if status_code in (200, 503):
                response = current
                break

            text = current.text
            if is_account_failure(status_code, text):
                logger.error("Image provider refused the account (%s): %s", status_code, text)
                return FatalFailure(
                    f"image provider refused the account (HTTP {status_code})",
                    status_code=status_code,
                )
            if is_endpoint_gone(status_code, text):
                last_error = f"{url} is no longer available ({status_code})"
            else:
                last_error = f"{url} returned {status_code}: {_diagnostic(text)}"
            logger.warning(last_error)

        if response is None:
            return RecoverableFailure(last_error)

        if response.status_code == 503:
            wait = _estimated_wait(response, self._default_warmup_wait)
            return RecoverableFailure(f"model {model} is loading", wait_hint=wait)

        content_type = response.headers.get("content-type", "")
        if "image" not in content_type:
            logger.warning("Non-image response from %s: %s", model, response.text)
            return RecoverableFailure(f"non-image response: {_diagnostic(response.text)}")

        mime_type = content_type.split(";")[0].strip() or DEFAULT_IMAGE_MIME
        try:
            result = await materialize(BinaryPayload(response.content, mime_type))
        except ContentError as exc:
            return RecoverableFailure(str(exc))
        return Success(result)

    async def invoke(self, prompt: str, candidates: Sequence[str] = IMAGE_MODELS) -> ImageResult:
        async def attempt(model: str) -> CallOutcome:
            return await self.attempt(prompt, model)

        return await run_candidates("image", candidates, attempt)


# --- SDK backend ----------------------------------------------------------

def _first_image(response: Any) -> Any:
    data = getattr(response, "data", None) or []
    if not data:
        return None
    item = data[0]
    return getattr(item, "b64_json", None) or getattr(item, "url", None)


class ClientImagePipeline:
    """Text-to-image through the OpenAI SDK images API."""

    def __init__(self, client: AsyncOpenAI, fetcher: Fetcher, *, default_retry_after: int = 1):
        self._client = client
        self._fetcher = fetcher
        self._default_retry_after = default_retry_after

    async def attempt(self, prompt: str, model: str) -> CallOutcome:
        try:
            response = await self._client.images.generate(model=model, prompt=prompt)
        except openai.RateLimitError as exc:
            return RateLimited(
                parse_retry_after(exc.response.headers.get("retry-after"), self._default_retry_after)
            )
        except openai.APIStatusError as exc:
            if is_account_failure(exc.status_code, exc.message):
                logger.error("Image provider refused the account: %s", exc.body)
                return FatalFailure(
                    f"image provider refused the account (HTTP {exc.status_code})",
                    status_code=exc.status_code,
                )
            logger.warning("Image provider error (%s, HTTP %s): %s", model, exc.status_code, exc.body)
            return RecoverableFailure(f"HTTP {exc.status_code}")
        except openai.APIError as exc:
            logger.warning("Image request failed (%s): %s", model, exc)
            return RecoverableFailure(str(exc))

        raw = _first_image(response)
        payload = classify_payload(raw)
        if payload is None:
            return FatalFailure(f"unexpected result type: {type(raw).__name__}")
        try:
            result = await materialize(payload, self._fetcher)
        except (ContentError, TransportError, UpstreamStatusError) as exc:
            return RecoverableFailure(str(exc))
        return Success(result)

    async def invoke(self, prompt: str, candidates: Sequence[str] = IMAGE_MODELS) -> ImageResult:
        async def attempt(model: str) -> CallOutcome:
            return await self.attempt(prompt, model)

        return await run_candidates("image", candidates, attempt)
