"""
Request-level orchestration: extraction, text tasks and illustrations.

Every call builds its own HTTP client and pipeline from a settings snapshot, so
nothing is shared between requests. Credentials are checked before the first
network call; an empty article body is rejected before any provider is tried.
Passing `transport` swaps the network for an httpx transport (tests, offline
runs).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

import httpx
from openai import AsyncOpenAI

from .config import Settings, get_settings
from .errors import ContentError
from .extractor import extract
from .fetcher import Fetcher, build_http_client
from .images import ClientImagePipeline, ImagePipeline
from .models import ArticleDocument
from .pipeline import TextPipeline, build_text_client, require_credential
from .tasks import ILLUSTRATION_PROMPT, IMAGE_MODELS, GenerationTask, get_task

logger = logging.getLogger(__name__)


@dataclass
class Illustration:
    image: str
    prompt: str


def require_body(body: Optional[str]) -> str:
    """Empty extraction output must never reach a generation task."""
    if not body or not body.strip():
        raise ContentError("Article body is empty; nothing to generate from.")
    return body


def build_image_pipeline(
    settings: Settings, http_client: httpx.AsyncClient
) -> Union[ImagePipeline, ClientImagePipeline]:
    api_key = require_credential(settings.huggingface_api_key, "HUGGINGFACE_API_KEY")
    if settings.image_backend == "openai":
        client = AsyncOpenAI(
            api_key=api_key,
            base_url=settings.image_api_base_url,
            timeout=settings.request_timeout,
            max_retries=0,
            http_client=http_client,
        )
        return ClientImagePipeline(
            client, Fetcher(http_client), default_retry_after=settings.default_retry_after
        )
    return ImagePipeline(
        http_client,
        api_key,
        endpoint_templates=settings.image_endpoint_templates,
        default_warmup_wait=settings.default_warmup_wait,
    )


async def extract_article(
    url: str,
    *,
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ArticleDocument:
    """Fetch ``url`` and run the extraction heuristic over its HTML."""
    settings = settings or get_settings()
    async with build_http_client(settings, transport) as client:
        html = await Fetcher(client).fetch_text(url)
    document = extract(html)
    logger.info(
        "Extracted %s: title=%r, %d body chars", url, document.title, len(document.body)
    )
    return document


async def generate_text(
    task: Union[str, GenerationTask],
    body: Optional[str],
    context: Optional[Mapping[str, Any]] = None,
    *,
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> str:
    """Run one text task over the candidate models and return the generated text."""
    resolved = get_task(task) if isinstance(task, str) else task
    body = require_body(body)
    settings = settings or get_settings()
    require_credential(settings.openrouter_api_key, "OPENROUTER_API_KEY")
    async with build_http_client(settings, transport) as http_client:
        pipeline = TextPipeline(
            build_text_client(settings, http_client),
            default_retry_after=settings.default_retry_after,
        )
        return await pipeline.run_task(resolved, body, context)


async def create_illustration(
    body: Optional[str],
    *,
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Illustration:
    """Author an image prompt from the article, then render it."""
    body = require_body(body)
    settings = settings or get_settings()
    require_credential(settings.openrouter_api_key, "OPENROUTER_API_KEY")
    require_credential(settings.huggingface_api_key, "HUGGINGFACE_API_KEY")

    prompt = await generate_text(
        ILLUSTRATION_PROMPT, body, settings=settings, transport=transport
    )
    logger.info("Generating image with prompt: %s...", prompt[:100])
    async with build_http_client(settings, transport) as http_client:
        pipeline = build_image_pipeline(settings, http_client)
        result = await pipeline.invoke(prompt, IMAGE_MODELS)
    return Illustration(image=result.to_data_uri(), prompt=prompt)
